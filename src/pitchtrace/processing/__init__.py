"""Trajectory projection and flight summaries."""

from pitchtrace.processing.projection import (
    LATERAL_EXTENT_METERS,
    PITCH_LENGTH_METERS,
    PITCH_WIDTH_METERS,
    CameraCalibration,
    TrajectoryProjector,
)
from pitchtrace.processing.summary import SummaryConfig, summarize_trajectory

__all__ = [
    "LATERAL_EXTENT_METERS",
    "PITCH_LENGTH_METERS",
    "PITCH_WIDTH_METERS",
    "CameraCalibration",
    "TrajectoryProjector",
    "SummaryConfig",
    "summarize_trajectory",
]
