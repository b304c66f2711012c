"""Main entry point for the PitchTrace backend."""

import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from pitchtrace import __version__
from pitchtrace.api.routes import _job_cache, _pipelines, _progress_queues, router
from pitchtrace.core.config import settings
from pitchtrace.core.database import close_db, init_db
from pitchtrace.core.vision import vision_engine
from pitchtrace.models.job import ACTIVE_STATUSES, fail_interrupted_jobs, update_job


def configure_logging(level: str = settings.log_level) -> None:
    """Send loguru output to stderr at the configured level."""
    logger.remove()
    logger.add(sys.stderr, level=level.upper())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("PitchTrace backend starting up...")
    logger.info(f"Upload directory: {settings.upload_dir}")
    logger.info(
        f"Sampling every >= {settings.sample_interval_floor}s, at most {settings.max_samples} samples"
    )

    await init_db()

    # Runs from a previous process never finish on their own
    await fail_interrupted_jobs()

    # Fails startup outright if OpenCV is unusable
    vision_engine.start()

    yield

    logger.info("PitchTrace backend shutting down...")

    # Cancel any running analyses
    for job_id, job in list(_job_cache.items()):
        if job["status"] in ACTIVE_STATUSES:
            job["cancelled"] = True
            pipeline = _pipelines.get(job_id)
            if pipeline:
                pipeline.cancel()
            try:
                await update_job(job_id, cancelled=True, status="cancelled")
            except Exception as e:
                logger.warning(f"Failed to update job {job_id} during shutdown: {e}")
            logger.info(f"Cancelling job {job_id} during shutdown")

    _progress_queues.clear()

    vision_engine.stop()
    await close_db()

    logger.info("Shutdown complete")


app = FastAPI(
    title="PitchTrace",
    description="Hawk-Eye style cricket delivery analysis API",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:5173",
        "http://localhost:3000",
        "http://127.0.0.1:5173",
        "http://127.0.0.1:3000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(router, prefix="/api")


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    active_jobs = sum(1 for j in _job_cache.values() if j["status"] in ACTIVE_STATUSES)

    return {
        "status": "healthy",
        "version": __version__,
        "active_jobs": active_jobs,
        "vision_ready": vision_engine.is_ready,
    }


def main():
    """Run the FastAPI server."""
    configure_logging()
    logger.info(f"Starting PitchTrace server on {settings.host}:{settings.port}")
    uvicorn.run(
        "pitchtrace.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )


if __name__ == "__main__":
    main()
