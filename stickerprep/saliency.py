"""
Content-aware crop anchors

Given a decoded source and a square side, pick the top-left offset of the
square window that keeps the most interesting content. Scoring runs on a
downscaled copy; only the axis with slack is searched.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional, Tuple

import cv2
import numpy as np

from .codec import SourceImage
from .config import AnalysisParams, CropAnchor, get_config

logger = logging.getLogger(__name__)


class AnchorChooser(ABC):
    """Picks where a side x side square sits inside the source"""

    @abstractmethod
    def choose_anchor(self, source: SourceImage, side: int) -> Tuple[int, int]:
        ...


class CenterAnchorChooser(AnchorChooser):
    """Conforming fallback: always the centered square"""

    def choose_anchor(self, source: SourceImage, side: int) -> Tuple[int, int]:
        return (source.width - side) // 2, (source.height - side) // 2


class WindowScoringChooser(AnchorChooser):
    """
    Base for choosers that score candidate windows along one axis

    Subclasses implement _score_windows(); the highest score wins and ties
    go to the candidate nearest the center.
    """

    name = "window"

    def __init__(self, params: Optional[AnalysisParams] = None):
        self.params = params or get_config().analysis

    def choose_anchor(self, source: SourceImage, side: int) -> Tuple[int, int]:
        slack_x = max(0, source.width - side)
        slack_y = max(0, source.height - side)
        center = ((source.width - side) // 2, (source.height - side) // 2)
        if slack_x == 0 and slack_y == 0:
            return center

        rgb = source.to_rgb_array(self.params.analysis_max_side)
        horizontal = slack_x >= slack_y
        axis_len = rgb.shape[1] if horizontal else rgb.shape[0]
        src_axis_len = source.width if horizontal else source.height
        src_slack = slack_x if horizontal else slack_y

        window = max(1, min(axis_len, round(side * axis_len / src_axis_len)))
        slack = axis_len - window
        if slack <= 0:
            return center

        count = min(slack + 1, self.params.max_candidates)
        offsets = np.unique(np.linspace(0, slack, num=count).round().astype(int))
        scores = np.asarray(self._score_windows(rgb, horizontal, window, offsets), dtype=np.float64)

        best_score = scores.max()
        if best_score - scores.min() < 1e-9:
            return center
        tied = np.flatnonzero(scores >= best_score - 1e-9)
        best = offsets[tied[np.argmin(np.abs(offsets[tied] - slack / 2))]]

        src_offset = int(min(src_slack, max(0, round(best * src_slack / slack))))
        logger.debug(
            f"   {self.name} anchor: {len(offsets)} candidates, best offset {best}/{slack} "
            f"-> {src_offset}/{src_slack} (score {best_score:.4f})"
        )
        if horizontal:
            return src_offset, center[1]
        return center[0], src_offset

    @abstractmethod
    def _score_windows(self, rgb: np.ndarray, horizontal: bool, window: int, offsets: np.ndarray) -> list:
        ...


class EntropyAnchorChooser(WindowScoringChooser):
    """Window whose grayscale histogram has the highest Shannon entropy"""

    name = "entropy"

    def _score_windows(self, rgb: np.ndarray, horizontal: bool, window: int, offsets: np.ndarray) -> list:
        gray = cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY)
        scores = []
        for offset in offsets:
            if horizontal:
                region = gray[:, offset:offset + window]
            else:
                region = gray[offset:offset + window, :]
            scores.append(self._entropy(region))
        return scores

    @staticmethod
    def _entropy(region: np.ndarray) -> float:
        hist = np.bincount(region.ravel(), minlength=256).astype(np.float64)
        total = hist.sum()
        if total == 0:
            return 0.0
        p = hist[hist > 0] / total
        return float(-(p * np.log2(p)).sum())


class AttentionAnchorChooser(WindowScoringChooser):
    """
    Window with the most summed salience

    Salience combines edge density, fine detail, color saturation and a
    skin-tone prior, each normalized to 0-1.
    """

    name = "attention"

    def salience_map(self, rgb: np.ndarray) -> np.ndarray:
        p = self.params
        gray = cv2.cvtColor(rgb, cv2.COLOR_RGB2GRAY)

        edges = cv2.Canny(gray, p.canny_low, p.canny_high).astype(np.float32) / 255.0
        edges = cv2.GaussianBlur(edges, (5, 5), 0)

        detail = np.abs(cv2.Laplacian(gray, cv2.CV_32F))
        peak = float(detail.max())
        detail = detail / peak if peak > 0 else detail

        hsv = cv2.cvtColor(rgb, cv2.COLOR_RGB2HSV)
        saturation = hsv[:, :, 1].astype(np.float32) / 255.0

        ycrcb = cv2.cvtColor(rgb, cv2.COLOR_RGB2YCrCb)
        skin = cv2.inRange(ycrcb, (0, 133, 77), (255, 173, 127)).astype(np.float32) / 255.0

        return (
            p.edge_weight * edges
            + p.detail_weight * detail
            + p.saturation_weight * saturation
            + p.skin_weight * skin
        )

    def _score_windows(self, rgb: np.ndarray, horizontal: bool, window: int, offsets: np.ndarray) -> list:
        salience = self.salience_map(rgb)
        profile = salience.sum(axis=0 if horizontal else 1, dtype=np.float64)
        cumulative = np.concatenate(([0.0], np.cumsum(profile)))
        return list(cumulative[offsets + window] - cumulative[offsets])


def get_anchor_chooser(anchor: CropAnchor, params: Optional[AnalysisParams] = None) -> AnchorChooser:
    """Chooser for a content-aware anchor; center for everything else"""
    if anchor == CropAnchor.ENTROPY:
        return EntropyAnchorChooser(params)
    if anchor == CropAnchor.ATTENTION:
        return AttentionAnchorChooser(params)
    return CenterAnchorChooser()
