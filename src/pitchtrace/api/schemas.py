"""Pydantic schemas for API request/response models."""

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class VideoInfo(BaseModel):
    """Video file metadata."""

    path: str
    duration: float
    width: int
    height: int
    fps: float
    codec: str
    file_size: int


class JobError(BaseModel):
    """Structured error information for failed jobs."""

    code: str = Field(..., description="Error code for programmatic handling")
    message: str = Field(..., description="Human-readable error message")
    details: Optional[dict[str, Any]] = Field(
        default=None, description="Additional error context"
    )


class AnalysisStatus(BaseModel):
    """Current status of an analysis run."""

    job_id: str
    video_path: str
    status: str = Field(
        ...,
        description="Job status: pending, processing, complete, error, cancelled, cancelling"
    )
    progress: float = Field(0, ge=0, le=100, description="Sampling progress percentage")
    current_step: str = ""
    detection_count: int = 0
    error_message: Optional[str] = None


class ProgressEvent(BaseModel):
    """Real-time progress event for SSE streaming."""

    job_id: str
    step: str = Field(..., description="Current processing step name")
    progress: float = Field(..., ge=0, le=100, description="Progress percentage")
    details: Optional[str] = Field(None, description="Additional details or error message")
    timestamp: str = Field(..., description="ISO 8601 timestamp of this event")
    detection_count: int = Field(0, description="Ball samples found (on completion)")


class AnalyzeRequest(BaseModel):
    """Request to analyze a delivery video."""

    video_path: str


class AnalyzeResponse(BaseModel):
    """Response after starting an analysis."""

    job_id: str
    status: AnalysisStatus
    video_info: VideoInfo


class DetectionPointModel(BaseModel):
    """A ball sighting in source-frame pixels."""

    model_config = ConfigDict(populate_by_name=True)

    time: float
    x: float
    y: float
    norm_x: float = Field(..., alias="normX", ge=0, le=1)
    norm_y: float = Field(..., alias="normY", ge=0, le=1)
    confidence: float = Field(..., ge=0, le=1)


class HawkEyePointModel(BaseModel):
    """A trajectory sample in pitch metres."""

    time: float
    distance: float
    lateral: float
    height: float
    confidence: float = Field(..., ge=0, le=1)


class TrajectorySummaryModel(BaseModel):
    """Flight metrics. Null fields mean not enough data."""

    model_config = ConfigDict(populate_by_name=True)

    release_speed: Optional[float] = Field(None, alias="releaseSpeed", description="km/h")
    peak_height: Optional[float] = Field(None, alias="peakHeight", description="metres")
    bounce_distance: Optional[float] = Field(
        None, alias="bounceDistance", description="metres from the bowling end"
    )
    lateral_movement: Optional[float] = Field(None, alias="lateralMovement", description="metres")
    confidence: Optional[float] = Field(None, ge=0, le=1)


class AnalysisResult(BaseModel):
    """Completed analysis for presentation."""

    job_id: str
    detections: list[DetectionPointModel]
    trajectory: list[HawkEyePointModel]
    summary: TrajectorySummaryModel
    analyzed_at: Optional[str] = None


class JobSummary(BaseModel):
    """Summary of a job for listing."""

    job_id: str
    video_path: str
    status: str
    progress: float
    current_step: str
    detection_count: int = 0
    created_at: Optional[str] = None
    completed_at: Optional[str] = None


class JobListResponse(BaseModel):
    """Response for job listing endpoint."""

    jobs: list[JobSummary]
    count: int
