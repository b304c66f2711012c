"""Data models for detections, Hawk-Eye trajectories and flight summaries.

These are lightweight frozen dataclasses. Each stage of the pipeline
returns new tuples of them, so no stage can alter another's output.
``to_dict`` produces the camelCase wire shape used by the API.
"""

from dataclasses import dataclass
from typing import Optional

import numpy as np


@dataclass(frozen=True, eq=False)
class Frame:
    """A decoded video frame.

    Attributes:
        pixels: BGR uint8 buffer of shape (height, width, 3).
        timestamp: Capture time in seconds.
    """

    pixels: np.ndarray
    timestamp: float = 0.0

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 2 else 0

    @property
    def is_empty(self) -> bool:
        return self.pixels.size == 0 or self.width == 0 or self.height == 0


@dataclass(frozen=True)
class BallCandidate:
    """Single-frame localization result in original-frame pixels."""

    x: int
    y: int
    confidence: float


@dataclass(frozen=True)
class DetectionPoint:
    """A ball sighting at one sampled timestamp."""

    time: float  # Seconds from clip start
    x: float  # Pixels in the source frame
    y: float
    norm_x: float  # x / frame width
    norm_y: float  # y / frame height
    confidence: float  # 0-1

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "x": self.x,
            "y": self.y,
            "normX": self.norm_x,
            "normY": self.norm_y,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class SamplingResult:
    """Outcome of one sampling pass over a clip."""

    detections: tuple[DetectionPoint, ...]
    samples_taken: int  # Frames localized, with or without a ball


@dataclass(frozen=True)
class HawkEyePoint:
    """A trajectory sample in pitch coordinates (metres)."""

    time: float
    distance: float  # Down the pitch from the bowling end
    lateral: float  # Signed offset from the pitch centre-line
    height: float  # Above the pitch surface
    confidence: float

    def to_dict(self) -> dict:
        return {
            "time": self.time,
            "distance": self.distance,
            "lateral": self.lateral,
            "height": self.height,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class TrajectorySummary:
    """Scalar flight metrics. ``None`` means not enough data, never zero."""

    release_speed: Optional[float] = None  # km/h
    peak_height: Optional[float] = None  # metres
    bounce_distance: Optional[float] = None  # metres from the bowling end
    lateral_movement: Optional[float] = None  # metres
    confidence: Optional[float] = None  # 0-1

    def to_dict(self) -> dict:
        return {
            "releaseSpeed": self.release_speed,
            "peakHeight": self.peak_height,
            "bounceDistance": self.bounce_distance,
            "lateralMovement": self.lateral_movement,
            "confidence": self.confidence,
        }


@dataclass(frozen=True)
class DeliveryAnalysis:
    """Complete result of one analysis run."""

    detections: tuple[DetectionPoint, ...]
    trajectory: tuple[HawkEyePoint, ...]
    summary: TrajectorySummary
    frame_width: int
    frame_height: int
    duration: float
    samples_taken: int = 0

    def to_dict(self) -> dict:
        return {
            "detections": [d.to_dict() for d in self.detections],
            "trajectory": [p.to_dict() for p in self.trajectory],
            "summary": self.summary.to_dict(),
            "frameWidth": self.frame_width,
            "frameHeight": self.frame_height,
            "duration": self.duration,
            "samplesTaken": self.samples_taken,
        }
