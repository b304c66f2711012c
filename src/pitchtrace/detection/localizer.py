"""Single-frame ball localization from colour and shape cues.

Finds the most ball-like red blob in a frame:

1. Downscale to a bounded working width (area averaging).
2. Blur away sensor/compression noise.
3. HSV threshold on two red hue bands (red wraps around hue 0/180).
4. Morphological open then close to drop speckle and fill small gaps.
5. Score each external contour by circularity * area.
6. Centroid of the best contour, rescaled to source pixels.

Each call is independent: there is no tracking state between frames.
"""

import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from loguru import logger

from pitchtrace.core.config import (
    CONFIDENCE_DIVISOR,
    MIN_CONTOUR_AREA,
    WORKING_WIDTH,
    Settings,
)
from pitchtrace.core.vision import VisionOps
from pitchtrace.models.trajectory import BallCandidate, Frame

BLUR_KERNEL_SIZE = 5
MORPH_KERNEL_SIZE = 3

# OpenCV HSV ranges: hue 0-180, saturation/value 0-255
RED_LOW_BAND = ((0, 120, 80), (10, 255, 255))
RED_HIGH_BAND = ((170, 120, 80), (180, 255, 255))


@dataclass(frozen=True)
class LocalizerConfig:
    """Tunable thresholds for ``BallLocalizer``."""

    working_width: int = WORKING_WIDTH
    blur_kernel_size: int = BLUR_KERNEL_SIZE
    morph_kernel_size: int = MORPH_KERNEL_SIZE
    low_band: tuple = RED_LOW_BAND
    high_band: tuple = RED_HIGH_BAND
    min_contour_area: float = MIN_CONTOUR_AREA
    confidence_divisor: float = CONFIDENCE_DIVISOR

    @classmethod
    def from_settings(cls, settings: Settings) -> "LocalizerConfig":
        return cls(
            working_width=settings.working_width,
            min_contour_area=settings.min_contour_area,
            confidence_divisor=settings.confidence_divisor,
        )


def circularity(area: float, perimeter: float) -> float:
    """Shape metric 4*pi*area / perimeter^2, 1.0 for a perfect circle."""
    if perimeter <= 0:
        return 0.0
    return (4.0 * math.pi * area) / (perimeter * perimeter)


class BallLocalizer:
    """Locates a high-contrast red ball in a single frame."""

    def __init__(self, ops: VisionOps, config: Optional[LocalizerConfig] = None):
        """Initialize the localizer.

        Args:
            ops: Vision primitives backend (see ``pitchtrace.core.vision``).
            config: Thresholds. Defaults to the module constants.
        """
        self.ops = ops
        self.config = config or LocalizerConfig()

    def _working_size(self, width: int, height: int) -> tuple[int, int]:
        scale = self.config.working_width / width if width > self.config.working_width else 1.0
        return max(1, round(width * scale)), max(1, round(height * scale))

    def _ball_mask(self, image: np.ndarray) -> np.ndarray:
        blurred = self.ops.gaussian_blur(image, self.config.blur_kernel_size)
        hsv = self.ops.to_hsv(blurred)

        low_mask = self.ops.in_range(hsv, *self.config.low_band)
        high_mask = self.ops.in_range(hsv, *self.config.high_band)
        mask = self.ops.union(low_mask, high_mask)

        mask = self.ops.morph_open(mask, self.config.morph_kernel_size)
        return self.ops.morph_close(mask, self.config.morph_kernel_size)

    def _best_contour(self, mask: np.ndarray) -> tuple[Optional[np.ndarray], float]:
        best_contour = None
        best_score = 0.0

        for contour in self.ops.find_external_contours(mask):
            area = self.ops.contour_area(contour)
            if area < self.config.min_contour_area:
                continue
            perimeter = self.ops.arc_length(contour)
            if perimeter == 0:
                continue

            score = circularity(area, perimeter) * area
            if score > best_score:
                best_score = score
                best_contour = contour

        return best_contour, best_score

    def locate(self, frame: Frame) -> Optional[BallCandidate]:
        """Find the most ball-like blob in a frame.

        Args:
            frame: BGR frame from the source video.

        Returns:
            BallCandidate in source-frame pixels, or None if nothing qualifies.
        """
        pixels = frame.pixels
        if frame.is_empty or pixels.ndim != 3 or pixels.shape[2] != 3:
            logger.debug(f"Skipping unusable frame at {frame.timestamp:.2f}s (shape {pixels.shape})")
            return None

        height, width = pixels.shape[:2]
        work_width, work_height = self._working_size(width, height)
        if (work_width, work_height) != (width, height):
            working = self.ops.resize(pixels, work_width, work_height)
        else:
            working = pixels

        mask = self._ball_mask(working)
        contour, score = self._best_contour(mask)
        if contour is None:
            return None

        moments = self.ops.moments(contour)
        if moments["m00"] == 0:
            return None

        scale_x = width / work_width
        scale_y = height / work_height
        cx = round((moments["m10"] / moments["m00"]) * scale_x)
        cy = round((moments["m01"] / moments["m00"]) * scale_y)
        confidence = min(1.0, score / self.config.confidence_divisor)

        logger.debug(
            f"Ball at ({cx}, {cy}) t={frame.timestamp:.2f}s score={score:.1f} conf={confidence:.2f}"
        )
        return BallCandidate(x=cx, y=cy, confidence=confidence)
