"""Exceptions raised by the delivery analysis pipeline."""

from typing import Optional


class AnalysisError(Exception):
    """Base exception for analysis failures with pipeline context."""

    code = "PROCESSING_ERROR"

    def __init__(self, message: str, step: str = "analysis", details: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.step = step
        self.details = details or {}


class SourceUnavailableError(AnalysisError):
    """The video cannot be opened or its frame dimensions are unknown."""

    code = "SOURCE_UNAVAILABLE"


class FrameDecodeError(AnalysisError):
    """A single seek/decode failed; the whole run is abandoned."""

    code = "DECODE_ERROR"


class NoDetectionsError(AnalysisError):
    """The sampling pass finished without a single ball detection."""

    code = "NO_DETECTIONS"

    def __init__(self, samples: int = 0):
        super().__init__(
            "No valid ball samples detected. "
            "Ensure the ball is clearly visible and contrasts with the pitch.",
            step="sampling",
            details={"samples": samples},
        )


class VisionEngineError(AnalysisError):
    """The computer vision backend is not available."""

    code = "VISION_UNAVAILABLE"
