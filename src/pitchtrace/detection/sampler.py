"""Fixed-cadence sampling of a clip into an ordered detection sequence."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from loguru import logger

from pitchtrace.core.config import MAX_SAMPLES, SAMPLE_INTERVAL_FLOOR, Settings
from pitchtrace.core.errors import SourceUnavailableError
from pitchtrace.core.video import FrameSource
from pitchtrace.detection.localizer import BallLocalizer
from pitchtrace.models.trajectory import DetectionPoint, SamplingResult


@dataclass(frozen=True)
class SamplerConfig:
    """Sampling cadence for ``TemporalSampler``."""

    interval_floor: float = SAMPLE_INTERVAL_FLOOR
    max_samples: int = MAX_SAMPLES

    @classmethod
    def from_settings(cls, settings: Settings) -> "SamplerConfig":
        return cls(
            interval_floor=settings.sample_interval_floor,
            max_samples=settings.max_samples,
        )

    def interval_for(self, duration: float) -> float:
        return max(self.interval_floor, duration / self.max_samples)


class TemporalSampler:
    """Drives a frame source at a bounded cadence and localizes the ball."""

    def __init__(self, localizer: BallLocalizer, config: Optional[SamplerConfig] = None):
        self.localizer = localizer
        self.config = config or SamplerConfig()

    async def sample(
        self,
        source: FrameSource,
        on_progress: Optional[Callable[[float], None]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> SamplingResult:
        """Sample the clip and collect detections in time order.

        Args:
            source: Seekable clip with known dimensions.
            on_progress: Called with the fraction complete (0-1) after every
                         sampled step, whether or not the ball was found.
            should_cancel: Checked before each step; returning True stops the
                           run with ``asyncio.CancelledError``.

        Returns:
            SamplingResult with one DetectionPoint per frame where the ball
            was found, and the number of frames sampled.

        Raises:
            SourceUnavailableError: If frame dimensions are unknown.
            FrameDecodeError: If any sampled frame cannot be decoded.
        """
        width = source.width
        height = source.height
        if not width or not height:
            raise SourceUnavailableError(
                "Video dimensions unavailable. Please choose a different file.",
                step="sampling",
            )

        duration = source.duration
        interval = self.config.interval_for(duration)
        logger.info(
            f"Sampling {duration:.2f}s clip ({width}x{height}) every {interval:.3f}s"
        )

        def report_progress(progress: float):
            if on_progress:
                try:
                    on_progress(progress)
                except Exception as e:
                    logger.warning(f"Progress callback error: {e}")

        detections: list[DetectionPoint] = []
        last_progress = 0.0
        sample_index = 0
        time = 0.0

        while time <= duration and sample_index <= self.config.max_samples:
            if should_cancel and should_cancel():
                raise asyncio.CancelledError("Analysis cancelled")

            await source.seek(time)
            frame = source.capture()
            candidate = await asyncio.to_thread(self.localizer.locate, frame)

            if candidate is not None:
                detections.append(
                    DetectionPoint(
                        time=time,
                        x=candidate.x,
                        y=candidate.y,
                        norm_x=candidate.x / width,
                        norm_y=candidate.y / height,
                        confidence=candidate.confidence,
                    )
                )

            last_progress = min(1.0, time / duration) if duration > 0 else 1.0
            report_progress(last_progress)

            sample_index += 1
            time = sample_index * interval

        if last_progress < 1.0:
            report_progress(1.0)

        logger.info(
            f"Sampled {sample_index} frames, ball found in {len(detections)}"
        )
        return SamplingResult(detections=tuple(detections), samples_taken=sample_index)
