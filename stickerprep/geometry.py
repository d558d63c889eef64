"""
Geometry planning: which source rectangle to sample and how big the output is
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from .config import CropAnchor
from .errors import UnsupportedGeometryError

logger = logging.getLogger(__name__)

OffsetChooser = Callable[[int], Tuple[int, int]]


@dataclass(frozen=True)
class CropRect:
    """Region of the source to sample"""
    x: int
    y: int
    width: int
    height: int

    @property
    def is_square(self) -> bool:
        return self.width == self.height


@dataclass(frozen=True)
class TargetSize:
    """Output raster dimensions"""
    width: int
    height: int

    @property
    def longest_side(self) -> int:
        return max(self.width, self.height)

    @property
    def is_square(self) -> bool:
        return self.width == self.height


@dataclass(frozen=True)
class GeometryPlan:
    crop_rect: CropRect
    target_size: TargetSize


def fit_within(width: int, height: int, longest_side: int) -> TargetSize:
    """Scale (up or down) so the longer side equals longest_side, keeping aspect ratio"""
    if width >= height:
        new_w = longest_side
        new_h = round(height * longest_side / width)
    else:
        new_h = longest_side
        new_w = round(width * longest_side / height)
    return TargetSize(max(1, new_w), max(1, new_h))


def anchor_offset(anchor: CropAnchor, width: int, height: int, side: int) -> Tuple[int, int]:
    """Top-left of a side x side square for the fixed-position anchors"""
    slack_x = width - side
    slack_y = height - side
    center_x = slack_x // 2
    center_y = slack_y // 2

    if anchor == CropAnchor.CENTER:
        return center_x, center_y
    elif anchor == CropAnchor.NORTH:
        return center_x, 0
    elif anchor == CropAnchor.SOUTH:
        return center_x, slack_y
    elif anchor == CropAnchor.EAST:
        return slack_x, center_y
    elif anchor == CropAnchor.WEST:
        return 0, center_y
    elif anchor == CropAnchor.NORTHEAST:
        return slack_x, 0
    elif anchor == CropAnchor.NORTHWEST:
        return 0, 0
    elif anchor == CropAnchor.SOUTHEAST:
        return slack_x, slack_y
    elif anchor == CropAnchor.SOUTHWEST:
        return 0, slack_y
    raise UnsupportedGeometryError(f"Anchor {anchor.value!r} has no fixed position")


def plan_geometry(
    width: int,
    height: int,
    max_dimension: int,
    force_square: bool,
    anchor: CropAnchor,
    choose_offset: Optional[OffsetChooser] = None,
) -> GeometryPlan:
    """
    Compute crop rectangle and target size for a source of width x height

    Args:
        width, height: Source dimensions
        max_dimension: Longest side of the output
        force_square: Crop to a square and emit max_dimension x max_dimension
        anchor: Crop anchor policy, ignored when force_square is False
        choose_offset: Content-aware chooser for ENTROPY / ATTENTION,
            called with the square side. Center is used when absent.
    """
    if width <= 0 or height <= 0:
        raise UnsupportedGeometryError(f"Source has zero area: {width}x{height}")
    if max_dimension < 1:
        raise UnsupportedGeometryError(f"max_dimension must be at least 1, got {max_dimension}")

    if not force_square:
        return GeometryPlan(
            crop_rect=CropRect(0, 0, width, height),
            target_size=fit_within(width, height, max_dimension),
        )

    side = min(width, height)
    if anchor.is_content_aware:
        if choose_offset is None:
            x, y = anchor_offset(CropAnchor.CENTER, width, height, side)
        else:
            x, y = choose_offset(side)
    else:
        x, y = anchor_offset(anchor, width, height, side)

    if x < 0 or y < 0 or x + side > width or y + side > height:
        raise UnsupportedGeometryError(
            f"Crop {side}x{side} at ({x}, {y}) falls outside {width}x{height} source"
        )

    return GeometryPlan(
        crop_rect=CropRect(x, y, side, side),
        target_size=TargetSize(max_dimension, max_dimension),
    )


def shrink_target(current: TargetSize, scale: float, floor: int) -> TargetSize:
    """
    Next target size for the shrink loop

    The longest side becomes max(floor, round(longest * scale)) but never
    grows past the current size. The other side follows proportionally.
    """
    longest = current.longest_side
    new_longest = min(longest, max(floor, round(longest * scale)))
    new_longest = max(1, new_longest)
    if current.is_square:
        return TargetSize(new_longest, new_longest)
    return fit_within(current.width, current.height, new_longest)
