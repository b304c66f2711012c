"""Flight metrics derived from a Hawk-Eye trajectory."""

import math
from dataclasses import dataclass
from typing import Optional, Sequence

from loguru import logger

from pitchtrace.core.config import MIN_BOUNCE_DROP, RELEASE_WINDOW, Settings
from pitchtrace.models.trajectory import DetectionPoint, HawkEyePoint, TrajectorySummary

MPS_TO_KMH = 3.6


@dataclass(frozen=True)
class SummaryConfig:
    """Tunable parameters for ``summarize_trajectory``."""

    release_window: int = RELEASE_WINDOW
    min_bounce_drop: float = MIN_BOUNCE_DROP

    @classmethod
    def from_settings(cls, settings: Settings) -> "SummaryConfig":
        return cls(
            release_window=settings.release_window,
            min_bounce_drop=settings.min_bounce_drop,
        )


def estimate_release_speed(
    trajectory: Sequence[HawkEyePoint],
    window: int = RELEASE_WINDOW,
) -> Optional[float]:
    """Mean speed (km/h) over the first ``window`` samples after release.

    Returns None when fewer than two usable samples exist.
    """
    early = trajectory[: max(window, 2)]
    speeds = []
    for prev, point in zip(early, early[1:]):
        dt = point.time - prev.time
        if dt <= 0:
            continue
        displacement = math.sqrt(
            (point.distance - prev.distance) ** 2
            + (point.lateral - prev.lateral) ** 2
            + (point.height - prev.height) ** 2
        )
        speeds.append(displacement / dt)

    if not speeds:
        return None
    return sum(speeds) / len(speeds) * MPS_TO_KMH


def find_bounce_distance(
    trajectory: Sequence[HawkEyePoint],
    min_drop: float = MIN_BOUNCE_DROP,
) -> Optional[float]:
    """Distance at the first sample whose height falls below its predecessor.

    A proxy for pitch impact. Returns None when height never decreases.
    """
    for prev, point in zip(trajectory, trajectory[1:]):
        if point.height < prev.height - min_drop:
            return point.distance
    return None


def summarize_trajectory(
    detections: Sequence[DetectionPoint],
    trajectory: Sequence[HawkEyePoint],
    config: Optional[SummaryConfig] = None,
) -> TrajectorySummary:
    """Derive flight metrics. Never raises; missing data yields None fields.

    Args:
        detections: Raw detections the trajectory was projected from.
        trajectory: Hawk-Eye points, one per detection.
        config: Summary parameters.

    Returns:
        TrajectorySummary with None for anything that can't be measured.
    """
    config = config or SummaryConfig()

    if len(detections) != len(trajectory):
        logger.warning(
            f"Detection/trajectory length mismatch ({len(detections)} vs {len(trajectory)}), "
            f"summarizing trajectory only"
        )

    if not trajectory:
        return TrajectorySummary()

    heights = [p.height for p in trajectory]
    laterals = [p.lateral for p in trajectory]

    summary = TrajectorySummary(
        release_speed=estimate_release_speed(trajectory, config.release_window),
        peak_height=max(heights),
        bounce_distance=find_bounce_distance(trajectory, config.min_bounce_drop),
        lateral_movement=max(laterals) - min(laterals) if len(trajectory) >= 2 else None,
        confidence=sum(p.confidence for p in trajectory) / len(trajectory),
    )

    logger.info(
        f"Trajectory summary: {len(trajectory)} points, "
        f"release={summary.release_speed}, peak={summary.peak_height}, "
        f"bounce={summary.bounce_distance}, lateral={summary.lateral_movement}"
    )
    return summary
