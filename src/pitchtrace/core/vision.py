"""Computer vision primitives used by the ball localizer.

The localizer never imports OpenCV directly. It is handed a ``VisionOps``
implementation, so a different backend can be swapped in without
touching the detection logic. ``VisionEngine`` owns the process-wide
backend and gives it an explicit lifecycle: ``start()`` once at startup,
``ops`` while running, ``stop()`` on shutdown.
"""

from typing import Optional, Protocol, Sequence

import cv2
import numpy as np
from loguru import logger

from pitchtrace.core.errors import VisionEngineError


class VisionOps(Protocol):
    """Image-processing capabilities required for ball localization."""

    def resize(self, image: np.ndarray, width: int, height: int) -> np.ndarray: ...

    def gaussian_blur(self, image: np.ndarray, kernel_size: int) -> np.ndarray: ...

    def to_hsv(self, image: np.ndarray) -> np.ndarray: ...

    def in_range(
        self, image: np.ndarray, lower: Sequence[int], upper: Sequence[int]
    ) -> np.ndarray: ...

    def union(self, first: np.ndarray, second: np.ndarray) -> np.ndarray: ...

    def morph_open(self, mask: np.ndarray, kernel_size: int) -> np.ndarray: ...

    def morph_close(self, mask: np.ndarray, kernel_size: int) -> np.ndarray: ...

    def find_external_contours(self, mask: np.ndarray) -> Sequence[np.ndarray]: ...

    def contour_area(self, contour: np.ndarray) -> float: ...

    def arc_length(self, contour: np.ndarray) -> float: ...

    def moments(self, contour: np.ndarray) -> dict: ...


class OpenCVVisionOps:
    """``VisionOps`` backed by opencv-python.

    Images are BGR uint8 arrays as returned by ``cv2.VideoCapture``.
    """

    def resize(self, image: np.ndarray, width: int, height: int) -> np.ndarray:
        # INTER_AREA averages source pixels, avoiding aliasing on downscale
        return cv2.resize(image, (width, height), interpolation=cv2.INTER_AREA)

    def gaussian_blur(self, image: np.ndarray, kernel_size: int) -> np.ndarray:
        return cv2.GaussianBlur(image, (kernel_size, kernel_size), 0)

    def to_hsv(self, image: np.ndarray) -> np.ndarray:
        return cv2.cvtColor(image, cv2.COLOR_BGR2HSV)

    def in_range(
        self, image: np.ndarray, lower: Sequence[int], upper: Sequence[int]
    ) -> np.ndarray:
        return cv2.inRange(
            image,
            np.array(lower, dtype=np.uint8),
            np.array(upper, dtype=np.uint8),
        )

    def union(self, first: np.ndarray, second: np.ndarray) -> np.ndarray:
        return cv2.bitwise_or(first, second)

    def morph_open(self, mask: np.ndarray, kernel_size: int) -> np.ndarray:
        kernel = np.ones((kernel_size, kernel_size), dtype=np.uint8)
        return cv2.morphologyEx(mask, cv2.MORPH_OPEN, kernel)

    def morph_close(self, mask: np.ndarray, kernel_size: int) -> np.ndarray:
        kernel = np.ones((kernel_size, kernel_size), dtype=np.uint8)
        return cv2.morphologyEx(mask, cv2.MORPH_CLOSE, kernel)

    def find_external_contours(self, mask: np.ndarray) -> Sequence[np.ndarray]:
        contours, _ = cv2.findContours(mask, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)
        return contours

    def contour_area(self, contour: np.ndarray) -> float:
        return float(cv2.contourArea(contour))

    def arc_length(self, contour: np.ndarray) -> float:
        return float(cv2.arcLength(contour, True))

    def moments(self, contour: np.ndarray) -> dict:
        return cv2.moments(contour)


class VisionEngine:
    """Process-wide handle for the vision backend."""

    def __init__(self, backend: Optional[VisionOps] = None):
        self._backend = backend
        self._ops: Optional[VisionOps] = None

    @property
    def is_ready(self) -> bool:
        return self._ops is not None

    def start(self) -> VisionOps:
        """Initialize the backend. Safe to call more than once."""
        if self._ops is not None:
            return self._ops

        try:
            ops = self._backend or OpenCVVisionOps()
            # Smoke test so a broken install fails here rather than mid-run
            probe = np.zeros((4, 4, 3), dtype=np.uint8)
            ops.to_hsv(ops.gaussian_blur(probe, 3))
        except Exception as e:
            logger.error(f"Vision engine failed to initialize: {e}")
            raise VisionEngineError(
                "Unable to initialize the OpenCV engine.",
                step="startup",
                details={"exception_type": type(e).__name__},
            ) from e

        self._ops = ops
        logger.info(f"Vision engine ready (OpenCV {cv2.__version__})")
        return ops

    @property
    def ops(self) -> VisionOps:
        if self._ops is None:
            raise VisionEngineError(
                "Computer vision engine is still loading. Please wait a moment.",
                step="startup",
            )
        return self._ops

    def stop(self) -> None:
        if self._ops is not None:
            logger.info("Vision engine stopped")
        self._ops = None


# Default engine - started by the application lifespan
vision_engine = VisionEngine()
