"""API routes for PitchTrace."""

import asyncio
import shutil
import uuid
from datetime import datetime
from pathlib import Path
from typing import AsyncGenerator, Optional

from fastapi import APIRouter, BackgroundTasks, File, HTTPException, UploadFile
from fastapi.responses import StreamingResponse
from loguru import logger

from pitchtrace.api.schemas import (
    AnalysisResult,
    AnalysisStatus,
    AnalyzeRequest,
    AnalyzeResponse,
    JobError,
    JobListResponse,
    JobSummary,
    ProgressEvent,
    VideoInfo,
)
from pitchtrace.core.config import settings
from pitchtrace.core.database import get_database_stats
from pitchtrace.core.errors import AnalysisError
from pitchtrace.core.video import VideoFileSource, get_video_info
from pitchtrace.detection.pipeline import DeliveryAnalysisPipeline
from pitchtrace.models.job import (
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
    create_job,
    delete_job,
    get_active_job_for_video,
    get_all_jobs,
    get_job,
    get_result,
    save_result,
    update_job,
)

router = APIRouter()

ALLOWED_EXTENSIONS = {".mp4", ".mov", ".m4v", ".webm"}

# In-memory job cache for active jobs (synced with database)
_job_cache: dict[str, dict] = {}

# Event queues for SSE streaming per job
_progress_queues: dict[str, asyncio.Queue] = {}

# Running pipelines, so a cancel request can reach them
_pipelines: dict[str, DeliveryAnalysisPipeline] = {}


async def _load_job(job_id: str) -> dict:
    """Get a job from the cache or database, or raise 404."""
    job = _job_cache.get(job_id)
    if not job:
        job = await get_job(job_id)
        if not job:
            raise HTTPException(status_code=404, detail="Job not found")
        _job_cache[job_id] = job
    return job


async def _emit_progress(job_id: str, step: str, progress: float, details: Optional[str] = None):
    """Emit a progress event to the SSE queue for a job."""
    if job_id in _progress_queues:
        job = _job_cache.get(job_id, {})
        event = ProgressEvent(
            job_id=job_id,
            step=step,
            progress=progress,
            details=details,
            timestamp=datetime.utcnow().isoformat(),
            detection_count=job.get("detection_count", 0),
        )
        try:
            _progress_queues[job_id].put_nowait(event)
        except asyncio.QueueFull:
            # Queue is full, skip this event (client is slow)
            logger.warning(f"Progress queue full for job {job_id}, skipping event")


@router.post("/upload")
async def upload_video(file: UploadFile = File(...)):
    """Upload a delivery video.

    Returns the server path where the file was saved, which can then be
    passed to the /analyze endpoint.
    """
    filename = Path(file.filename or "").name
    file_ext = Path(filename).suffix.lower()

    if file_ext not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid file type. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"
        )

    settings.upload_dir.mkdir(parents=True, exist_ok=True)

    unique_id = str(uuid.uuid4())[:8]
    file_path = settings.upload_dir / f"{unique_id}_{filename}"

    try:
        # Stream file to disk to handle large files
        with open(file_path, "wb") as buffer:
            shutil.copyfileobj(file.file, buffer)

        logger.info(f"Uploaded video saved to {file_path}")

        return {
            "path": str(file_path),
            "filename": filename,
            "size": file_path.stat().st_size,
        }

    except OSError as e:
        if file_path.exists():
            file_path.unlink()
        logger.exception(f"Failed to save uploaded file: {e}")
        raise HTTPException(status_code=500, detail=f"Failed to save file: {e}")


@router.post("/analyze", response_model=AnalyzeResponse)
async def analyze_video(request: AnalyzeRequest, background_tasks: BackgroundTasks):
    """Start analyzing a delivery video."""
    video_path = Path(request.video_path)

    if not video_path.exists():
        raise HTTPException(status_code=404, detail=f"Video file not found: {video_path}")

    # One run per video at a time
    active = await get_active_job_for_video(str(video_path))
    if active:
        raise HTTPException(
            status_code=409,
            detail=f"Video is already being analyzed by job {active['id']}",
        )

    try:
        info = get_video_info(video_path)
    except Exception as e:
        logger.exception(f"Failed to read video metadata: {video_path}")
        raise HTTPException(status_code=400, detail=f"Could not read video: {e}")

    job_id = str(uuid.uuid4())
    job = await create_job(job_id=job_id, video_path=str(video_path), video_info=info)
    _job_cache[job_id] = job
    _progress_queues[job_id] = asyncio.Queue(maxsize=100)

    background_tasks.add_task(run_analysis_job, job_id)

    return AnalyzeResponse(
        job_id=job_id,
        status=AnalysisStatus(
            job_id=job_id,
            video_path=str(video_path),
            status="pending",
            progress=0,
            current_step="Initializing",
        ),
        video_info=VideoInfo(path=str(video_path), **info),
    )


async def _finish_job(job_id: str, job: dict, status: str, step: str, **fields):
    job["status"] = status
    job["current_step"] = step
    job["completed_at"] = datetime.utcnow().isoformat()
    job.update(fields)
    await update_job(
        job_id,
        status=status,
        current_step=step,
        completed_at=job["completed_at"],
        **fields,
    )


async def run_analysis_job(job_id: str):
    """Run the delivery analysis pipeline in the background."""
    job = _job_cache.get(job_id) or await get_job(job_id)
    if not job:
        logger.error(f"Job {job_id} not found when starting analysis")
        return
    _job_cache[job_id] = job

    try:
        if job.get("cancelled"):
            await _finish_job(job_id, job, "cancelled", "Cancelled")
            await _emit_progress(job_id, "Cancelled", 0)
            return

        job["status"] = "processing"
        job["started_at"] = datetime.utcnow().isoformat()
        job["current_step"] = "Sampling frames"
        await update_job(
            job_id,
            status="processing",
            started_at=job["started_at"],
            current_step="Sampling frames",
        )
        await _emit_progress(job_id, "Sampling frames", 0)

        def on_progress(fraction: float):
            percent = round(fraction * 100, 1)
            job["progress"] = percent
            asyncio.create_task(_emit_progress(job_id, "Sampling frames", percent))
            # Persist every 10% to avoid a DB write per frame
            if int(percent) % 10 == 0:
                asyncio.create_task(update_job(job_id, progress=percent))

        with VideoFileSource(job["video_path"]) as source:
            pipeline = DeliveryAnalysisPipeline(source)
            _pipelines[job_id] = pipeline
            if job.get("cancelled"):
                pipeline.cancel()
            analysis = await pipeline.run(progress_callback=on_progress)

        await save_result(job_id, analysis)
        await _finish_job(
            job_id,
            job,
            "complete",
            "Analysis complete",
            progress=100,
            detection_count=len(analysis.detections),
        )
        logger.info(f"Job {job_id} complete: {len(analysis.detections)} ball samples")
        await _emit_progress(job_id, "Analysis complete", 100)

    except asyncio.CancelledError:
        logger.info(f"Job {job_id} was cancelled")
        await _finish_job(job_id, job, "cancelled", "Cancelled")
        await _emit_progress(job_id, "Cancelled", job.get("progress", 0))

    except AnalysisError as e:
        logger.warning(f"Job {job_id} failed at {e.step}: {e.message}")
        error = JobError(code=e.code, message=e.message, details={"step": e.step, **e.details})
        await _finish_job(job_id, job, "error", "Error", error=error.model_dump())
        await _emit_progress(job_id, "Error", job.get("progress", 0), details=e.message)

    except Exception as e:
        logger.exception(f"Error processing job {job_id}")
        error = JobError(
            code="PROCESSING_ERROR",
            message="Video analysis failed due to an unexpected error.",
            details={"exception_type": type(e).__name__, "reason": str(e)},
        )
        await _finish_job(job_id, job, "error", "Error", error=error.model_dump())
        await _emit_progress(job_id, "Error", job.get("progress", 0), details=str(e))

    finally:
        _pipelines.pop(job_id, None)

        # Clean up SSE queue after a delay (allow clients to receive final events)
        async def cleanup_queue():
            await asyncio.sleep(30)
            _progress_queues.pop(job_id, None)

        asyncio.create_task(cleanup_queue())


@router.get("/progress/{job_id}")
async def stream_progress(job_id: str):
    """Stream progress events via Server-Sent Events (SSE)."""
    job = await _load_job(job_id)

    # Create queue if it doesn't exist (for late joiners)
    if job_id not in _progress_queues:
        _progress_queues[job_id] = asyncio.Queue(maxsize=100)

    def completion_event(current: dict) -> str:
        event = ProgressEvent(
            job_id=job_id,
            step=current.get("current_step", "Complete"),
            progress=current.get("progress", 0),
            details=current["error"]["message"] if current.get("error") else None,
            timestamp=datetime.utcnow().isoformat(),
            detection_count=current.get("detection_count", 0),
        )
        return f"event: complete\ndata: {event.model_dump_json()}\n\n"

    async def event_generator() -> AsyncGenerator[str, None]:
        queue = _progress_queues.get(job_id)
        if not queue:
            return

        initial_event = ProgressEvent(
            job_id=job_id,
            step=job.get("current_step", "Unknown"),
            progress=job.get("progress", 0),
            timestamp=datetime.utcnow().isoformat(),
            detection_count=job.get("detection_count", 0),
        )
        yield f"data: {initial_event.model_dump_json()}\n\n"

        if job.get("status") in TERMINAL_STATUSES:
            yield completion_event(job)
            return

        while True:
            try:
                event = await asyncio.wait_for(queue.get(), timeout=30.0)
                yield f"data: {event.model_dump_json()}\n\n"

                current_job = _job_cache.get(job_id) or await get_job(job_id)
                if current_job and current_job.get("status") in TERMINAL_STATUSES:
                    yield completion_event(current_job)
                    break

            except asyncio.TimeoutError:
                yield ": keepalive\n\n"

                current_job = _job_cache.get(job_id) or await get_job(job_id)
                if not current_job or current_job.get("status") in TERMINAL_STATUSES:
                    break

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",  # Disable buffering in nginx
        },
    )


@router.get("/status/{job_id}", response_model=AnalysisStatus)
async def get_status(job_id: str):
    """Get the current status of an analysis job."""
    job = await _load_job(job_id)

    return AnalysisStatus(
        job_id=job_id,
        video_path=job["video_path"],
        status=job["status"],
        progress=job["progress"],
        current_step=job["current_step"],
        detection_count=job.get("detection_count", 0),
        error_message=job["error"]["message"] if job.get("error") else None,
    )


@router.post("/cancel/{job_id}")
async def cancel_job(job_id: str):
    """Cancel a running analysis. Stops before the next sampled frame."""
    job = await _load_job(job_id)

    if job["status"] not in ("pending", "processing"):
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel job in '{job['status']}' status"
        )

    job["cancelled"] = True
    job["status"] = "cancelling"
    await update_job(job_id, cancelled=True, status="cancelling")

    pipeline = _pipelines.get(job_id)
    if pipeline:
        pipeline.cancel()

    logger.info(f"Cancellation requested for job {job_id}")

    return {"status": "cancelling", "message": "Cancellation requested"}


@router.get("/result/{job_id}", response_model=AnalysisResult)
async def get_analysis_result(job_id: str):
    """Get detections, trajectory and summary of a completed analysis."""
    job = await _load_job(job_id)

    if job["status"] != "complete":
        detail = f"Analysis is {job['status']}"
        if job.get("error"):
            detail = job["error"]["message"]
        raise HTTPException(status_code=409, detail=detail)

    result = await get_result(job_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Result not found")

    return AnalysisResult(job_id=job_id, **result)


@router.get("/jobs", response_model=JobListResponse)
async def list_jobs(limit: int = 50, status: Optional[str] = None):
    """List analysis jobs, newest first."""
    jobs = await get_all_jobs(limit=limit, status=status)
    summaries = [
        JobSummary(
            job_id=job["id"],
            video_path=job["video_path"],
            status=job["status"],
            progress=job["progress"],
            current_step=job["current_step"],
            detection_count=job["detection_count"],
            created_at=job["created_at"],
            completed_at=job["completed_at"],
        )
        for job in jobs
    ]
    return JobListResponse(jobs=summaries, count=len(summaries))


@router.delete("/jobs/{job_id}")
async def delete_job_endpoint(job_id: str):
    """Delete a finished job and its stored result."""
    job = await _load_job(job_id)

    if job["status"] in ACTIVE_STATUSES:
        raise HTTPException(
            status_code=400,
            detail="Cannot delete an active job. Cancel it first.",
        )

    await delete_job(job_id)
    _job_cache.pop(job_id, None)
    _progress_queues.pop(job_id, None)

    return {"status": "deleted", "job_id": job_id}


@router.get("/db/stats")
async def database_stats():
    """Get database statistics."""
    return await get_database_stats()
