"""Data models and database operations for PitchTrace."""

from pitchtrace.models.trajectory import (
    BallCandidate,
    DeliveryAnalysis,
    DetectionPoint,
    Frame,
    HawkEyePoint,
    SamplingResult,
    TrajectorySummary,
)

__all__ = [
    "BallCandidate",
    "DeliveryAnalysis",
    "DetectionPoint",
    "Frame",
    "HawkEyePoint",
    "SamplingResult",
    "TrajectorySummary",
]
