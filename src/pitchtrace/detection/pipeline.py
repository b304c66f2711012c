"""End-to-end delivery analysis: sample, localize, project, summarize."""

import asyncio
from pathlib import Path
from typing import Callable, Optional

from loguru import logger

from pitchtrace.core.config import Settings, settings as default_settings
from pitchtrace.core.errors import NoDetectionsError
from pitchtrace.core.video import FrameSource, VideoFileSource
from pitchtrace.core.vision import VisionOps, vision_engine
from pitchtrace.detection.localizer import BallLocalizer, LocalizerConfig
from pitchtrace.detection.sampler import SamplerConfig, TemporalSampler
from pitchtrace.models.trajectory import DeliveryAnalysis
from pitchtrace.processing.projection import CameraCalibration, TrajectoryProjector
from pitchtrace.processing.summary import SummaryConfig, summarize_trajectory


class DeliveryAnalysisPipeline:
    """Turns one delivery clip into a Hawk-Eye trajectory and summary."""

    def __init__(
        self,
        source: FrameSource,
        ops: Optional[VisionOps] = None,
        settings: Optional[Settings] = None,
        calibration: Optional[CameraCalibration] = None,
    ):
        """Initialize the analysis pipeline.

        Args:
            source: Clip to analyze. The pipeline does not close it.
            ops: Vision backend. Defaults to the started process-wide engine.
            settings: Tunable thresholds. Defaults to application settings.
            calibration: Camera-to-pitch mapping. Defaults to down-the-line.
        """
        settings = settings or default_settings
        self.source = source
        self.localizer = BallLocalizer(
            ops if ops is not None else vision_engine.ops,
            LocalizerConfig.from_settings(settings),
        )
        self.sampler = TemporalSampler(self.localizer, SamplerConfig.from_settings(settings))
        self.projector = TrajectoryProjector(calibration)
        self.summary_config = SummaryConfig.from_settings(settings)
        self._cancelled = False

    def cancel(self):
        """Request cancellation. Takes effect before the next sampled frame."""
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    async def run(
        self,
        progress_callback: Optional[Callable[[float], None]] = None,
    ) -> DeliveryAnalysis:
        """Run the full analysis.

        Args:
            progress_callback: Called with sampling progress (0-1).

        Returns:
            DeliveryAnalysis with detections, trajectory and summary.

        Raises:
            SourceUnavailableError: Video dimensions are unavailable.
            FrameDecodeError: A sampled frame could not be decoded.
            NoDetectionsError: The ball was not found in any sampled frame.
            asyncio.CancelledError: ``cancel()`` was called mid-run.
        """
        if self._cancelled:
            raise asyncio.CancelledError("Analysis cancelled")

        sampling = await self.sampler.sample(
            self.source,
            on_progress=progress_callback,
            should_cancel=lambda: self._cancelled,
        )
        detections = sampling.detections

        if not detections:
            logger.warning(
                f"No ball detected in {sampling.samples_taken} sampled frames"
            )
            raise NoDetectionsError(samples=sampling.samples_taken)

        trajectory = self.projector.project(detections)
        summary = summarize_trajectory(detections, trajectory, self.summary_config)

        return DeliveryAnalysis(
            detections=detections,
            trajectory=trajectory,
            summary=summary,
            frame_width=self.source.width or 0,
            frame_height=self.source.height or 0,
            duration=self.source.duration,
            samples_taken=sampling.samples_taken,
        )


async def analyze_video(
    video_path: str | Path,
    progress_callback: Optional[Callable[[float], None]] = None,
    **kwargs,
) -> DeliveryAnalysis:
    """Analyze a video file, closing it afterwards."""
    with VideoFileSource(video_path) as source:
        pipeline = DeliveryAnalysisPipeline(source, **kwargs)
        return await pipeline.run(progress_callback)
