"""
Size-constrained image normalization

Pipeline Flow:
1. INPUT → fast-path check (already small enough → pass through)
2. Decode → geometry plan (square crop with anchor policy, or fit-within)
3. Render → encode at full quality (PNG)
4. Shrink loop: while over budget and attempts remain, scale the target
   by sqrt(budget / size), re-render and re-encode (final attempt may
   drop to JPEG at reduced quality)
5. OUTPUT → last EncodedImage, whether or not the budget was met

The loop is best effort: callers check validate_size() on the result.
"""
import asyncio
import logging
import math
import time
from dataclasses import dataclass
from functools import partial
from typing import Any, Dict, Optional, Union

from .codec import ImageCodec, PillowCodec, SourceImage
from .config import CropAnchor, NormalizerParams, OutputFormat, get_config
from .errors import DecodeError, UnsupportedGeometryError
from .geometry import GeometryPlan, TargetSize, plan_geometry, shrink_target
from .saliency import AnchorChooser, get_anchor_chooser

logger = logging.getLogger(__name__)

# Format tag reported for fast-path pass-through
DEFAULT_FORMAT = OutputFormat.PNG


@dataclass(frozen=True)
class EncodedImage:
    """Normalized output. width/height are 0 when the input was passed through"""
    data: bytes
    format: OutputFormat
    width: int
    height: int

    @property
    def size_bytes(self) -> int:
        return len(self.data)

    @property
    def mime_type(self) -> str:
        return self.format.mime_type

    @property
    def dimensions_known(self) -> bool:
        return self.width > 0 and self.height > 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": self.format.value,
            "mime_type": self.mime_type,
            "width": self.width,
            "height": self.height,
            "size_bytes": self.size_bytes,
            "size_kb": round(self.size_bytes / 1024, 2),
        }


@dataclass
class ShrinkState:
    target: TargetSize
    quality: float = 1.0
    steps: int = 0


def validate_size(data: bytes, budget: int) -> bool:
    """True when data fits within budget bytes"""
    return len(data) <= budget


class ImageNormalizer:
    """
    Produces a byte-budgeted, optionally square image from arbitrary input

    Stateless between calls: every normalize() owns its own source, plan
    and shrink state, so one instance can serve concurrent callers.
    """

    def __init__(
        self,
        params: Optional[NormalizerParams] = None,
        codec: Optional[ImageCodec] = None,
        chooser: Optional[AnchorChooser] = None,
    ):
        self.params = params or get_config().normalizer
        self.codec = codec or PillowCodec(
            png_compression=self.params.png_compression,
            jpeg_background=self.params.jpeg_background,
        )
        # Overrides the per-anchor chooser for ENTROPY / ATTENTION
        self.chooser = chooser

        logger.info("🔧 ImageNormalizer Initialized")
        logger.info(f"   Budget: {self.params.byte_budget} bytes | Small: <{self.params.small_image_threshold} bytes")
        logger.info(f"   Dimension cap: {self.params.dimension_cap}px | Floor: {self.params.min_dimension}px | "
                    f"Attempts: {self.params.max_encode_attempts}")

    def normalize(
        self,
        data: bytes,
        max_dimension: Optional[int] = None,
        force_square: Optional[bool] = None,
        crop_anchor: Optional[Union[CropAnchor, str]] = None,
        byte_budget: Optional[int] = None,
    ) -> EncodedImage:
        """
        Normalize image bytes under a byte budget

        Args:
            data: Encoded input image
            max_dimension: Longest output side, clamped to the dimension cap
            force_square: Crop to a square before resizing
            crop_anchor: Anchor policy for the square crop
            byte_budget: Maximum encoded size in bytes (best effort)

        Raises:
            DecodeError: input is not a decodable image
            UnsupportedGeometryError: zero-area source, invalid dimensions or unknown anchor
            EncodeError: the encoder failed
        """
        p = self.params
        max_dimension = p.max_dimension if max_dimension is None else max_dimension
        force_square = p.force_square if force_square is None else force_square
        crop_anchor = p.crop_anchor if crop_anchor is None else crop_anchor
        try:
            crop_anchor = CropAnchor(crop_anchor)
        except ValueError as e:
            raise UnsupportedGeometryError(f"Unknown crop anchor {crop_anchor!r}") from e
        byte_budget = p.byte_budget if byte_budget is None else byte_budget

        start_time = time.time()
        original_size = len(data)
        logger.info(f"🖼️ NORMALIZE START | Input: {original_size} bytes | Max: {max_dimension}px | "
                    f"Square: {force_square} | Anchor: {crop_anchor.value} | Budget: {byte_budget} bytes")

        if not data:
            raise DecodeError("Image bytes are empty")

        # ========== FAST PATH ==========
        if original_size <= byte_budget and original_size < p.small_image_threshold:
            logger.info("   ⏩ Already within size limits, passing input through")
            return EncodedImage(data=data, format=DEFAULT_FORMAT, width=0, height=0)

        if max_dimension < 1:
            raise UnsupportedGeometryError(f"max_dimension must be at least 1, got {max_dimension}")
        max_dimension = min(max_dimension, p.dimension_cap)

        # ========== STEP 1: DECODE ==========
        source = self.codec.decode(data)
        if source.width == 0 or source.height == 0:
            raise UnsupportedGeometryError(f"Source has zero area: {source.width}x{source.height}")
        logger.info(f"📥 STEP 1: Decoded {source.width}x{source.height} | mode={source.source_mode} "
                    f"depth={source.color_depth}bit")

        # ========== STEP 2: GEOMETRY ==========
        plan = self._plan(source, max_dimension, force_square, crop_anchor)
        crop = plan.crop_rect
        logger.info(f"📐 STEP 2: Crop {crop.width}x{crop.height} at ({crop.x}, {crop.y}) → "
                    f"{plan.target_size.width}x{plan.target_size.height}")

        # ========== STEP 3-4: RENDER + ENCODE ==========
        state = ShrinkState(target=plan.target_size)
        result = self._render_encode(source, plan, state, OutputFormat.PNG)
        state.steps = 1
        logger.info(f"💾 STEP 3: Encoded {result.format.value} {result.width}x{result.height} | {result.size_bytes} bytes")

        # ========== STEP 5: SHRINK LOOP ==========
        while result.size_bytes > byte_budget and state.steps < p.max_encode_attempts:
            scale = math.sqrt(max(byte_budget, 0) / result.size_bytes)
            state.target = shrink_target(state.target, scale, p.min_dimension)
            final_attempt = state.steps + 1 >= p.max_encode_attempts

            fmt = OutputFormat.PNG
            if final_attempt:
                state.quality = p.final_attempt_quality
                if p.switch_format_on_final_attempt:
                    fmt = OutputFormat.JPEG

            logger.info(f"   🔄 Still too large ({result.size_bytes} > {byte_budget}), scale {scale:.3f} → "
                        f"{state.target.width}x{state.target.height} {fmt.value} q={state.quality:.2f}")
            result = self._render_encode(source, plan, state, fmt)
            state.steps += 1

        duration_ms = int((time.time() - start_time) * 1000)
        if validate_size(result.data, byte_budget):
            logger.info(f"✅ NORMALIZE DONE | {result.width}x{result.height} {result.format.value} | "
                        f"{result.size_bytes} bytes | {state.steps} attempt(s) | {duration_ms}ms")
        else:
            logger.warning(f"⚠️ NORMALIZE DONE OVER BUDGET | {result.size_bytes} > {byte_budget} bytes after "
                           f"{state.steps} attempt(s) | {duration_ms}ms")
        return result

    async def normalize_async(self, data: bytes, **kwargs) -> EncodedImage:
        """normalize() on a worker thread, for event-loop callers"""
        return await asyncio.to_thread(self.normalize, data, **kwargs)

    def _plan(self, source: SourceImage, max_dimension: int, force_square: bool, anchor: CropAnchor) -> GeometryPlan:
        choose_offset = None
        if force_square and anchor.is_content_aware:
            chooser = self.chooser or get_anchor_chooser(anchor)
            choose_offset = partial(chooser.choose_anchor, source)
        return plan_geometry(
            source.width,
            source.height,
            max_dimension,
            force_square,
            anchor,
            choose_offset=choose_offset,
        )

    def _render_encode(self, source: SourceImage, plan: GeometryPlan, state: ShrinkState, fmt: OutputFormat) -> EncodedImage:
        rendered = self.codec.render(source, plan.crop_rect, state.target)
        encoded = self.codec.encode(rendered, fmt, state.quality)
        return EncodedImage(
            data=encoded,
            format=fmt,
            width=state.target.width,
            height=state.target.height,
        )


def normalize_image(
    data: bytes,
    max_dimension: int = 1024,
    force_square: bool = True,
    crop_anchor: Union[CropAnchor, str] = CropAnchor.ATTENTION,
    byte_budget: int = 4 * 1024 * 1024,
) -> EncodedImage:
    """Quick function to normalize an image with default parameters"""
    normalizer = ImageNormalizer()
    return normalizer.normalize(data, max_dimension, force_square, crop_anchor, byte_budget)
