"""Ball detection modules."""

from pitchtrace.detection.localizer import BallLocalizer, LocalizerConfig
from pitchtrace.detection.pipeline import DeliveryAnalysisPipeline, analyze_video
from pitchtrace.detection.sampler import SamplerConfig, TemporalSampler

__all__ = [
    "BallLocalizer",
    "LocalizerConfig",
    "DeliveryAnalysisPipeline",
    "analyze_video",
    "SamplerConfig",
    "TemporalSampler",
]
