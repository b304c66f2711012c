"""Database operations for analysis jobs and their results."""

from datetime import datetime
from typing import Any, Optional

import aiosqlite
from loguru import logger

from pitchtrace.core.database import deserialize_json, get_db, serialize_json
from pitchtrace.models.trajectory import DeliveryAnalysis

ACTIVE_STATUSES = ("pending", "processing", "cancelling")
TERMINAL_STATUSES = ("complete", "error", "cancelled")


def job_row_to_dict(row: aiosqlite.Row) -> dict[str, Any]:
    """Convert a database row to a job dictionary matching the API schema."""
    return {
        "id": row["id"],
        "video_path": row["video_path"],
        "status": row["status"],
        "progress": row["progress"],
        "current_step": row["current_step"],
        "video_info": deserialize_json(row["video_info_json"]),
        "created_at": row["created_at"],
        "started_at": row["started_at"],
        "completed_at": row["completed_at"],
        "error": deserialize_json(row["error_json"]),
        "cancelled": bool(row["cancelled"]),
        "detection_count": row["detection_count"],
    }


async def create_job(
    job_id: str,
    video_path: str,
    video_info: Optional[dict],
) -> dict[str, Any]:
    """Create a new analysis job in the database.

    Args:
        job_id: Unique job identifier (UUID).
        video_path: Path to the input video file.
        video_info: Video metadata dictionary.

    Returns:
        The created job as a dictionary.
    """
    db = await get_db()
    created_at = datetime.utcnow().isoformat()

    await db.execute(
        """
        INSERT INTO analyses (
            id, video_path, status, progress, current_step,
            video_info_json, created_at, cancelled, detection_count
        ) VALUES (?, ?, 'pending', 0, 'Initializing', ?, ?, 0, 0)
        """,
        (job_id, video_path, serialize_json(video_info), created_at),
    )
    await db.commit()

    logger.debug(f"Created analysis job {job_id} in database")

    return {
        "id": job_id,
        "video_path": video_path,
        "status": "pending",
        "progress": 0,
        "current_step": "Initializing",
        "video_info": video_info,
        "created_at": created_at,
        "started_at": None,
        "completed_at": None,
        "error": None,
        "cancelled": False,
        "detection_count": 0,
    }


async def get_job(job_id: str) -> Optional[dict[str, Any]]:
    """Get a job by ID, or None if not found."""
    db = await get_db()

    async with db.execute("SELECT * FROM analyses WHERE id = ?", (job_id,)) as cursor:
        row = await cursor.fetchone()

    if not row:
        return None
    return job_row_to_dict(row)


async def get_all_jobs(limit: int = 50, status: Optional[str] = None) -> list[dict[str, Any]]:
    """Get jobs, newest first, optionally filtered by status."""
    db = await get_db()

    if status:
        query = "SELECT * FROM analyses WHERE status = ? ORDER BY created_at DESC LIMIT ?"
        params = (status, limit)
    else:
        query = "SELECT * FROM analyses ORDER BY created_at DESC LIMIT ?"
        params = (limit,)

    async with db.execute(query, params) as cursor:
        rows = await cursor.fetchall()

    return [job_row_to_dict(row) for row in rows]


async def get_active_job_for_video(video_path: str) -> Optional[dict[str, Any]]:
    """Return the running job for a video, if there is one."""
    db = await get_db()
    placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)

    async with db.execute(
        f"SELECT * FROM analyses WHERE video_path = ? AND status IN ({placeholders}) LIMIT 1",
        (video_path, *ACTIVE_STATUSES),
    ) as cursor:
        row = await cursor.fetchone()

    return job_row_to_dict(row) if row else None


# Valid column names for job updates (prevents SQL injection)
_VALID_JOB_COLUMNS = {
    "video_path", "status", "progress", "current_step", "video_info_json",
    "created_at", "started_at", "completed_at", "error_json", "cancelled",
    "detection_count",
}


async def update_job(job_id: str, **updates: Any) -> bool:
    """Update a job in the database.

    Args:
        job_id: The job ID to update.
        **updates: Fields to update. 'error' and 'video_info' are serialized to JSON.

    Returns:
        True if the job was updated, False if not found.

    Raises:
        ValueError: If an invalid column name is provided.
    """
    db = await get_db()

    if "error" in updates:
        updates["error_json"] = serialize_json(updates.pop("error"))
    if "video_info" in updates:
        updates["video_info_json"] = serialize_json(updates.pop("video_info"))

    for key in updates.keys():
        if key not in _VALID_JOB_COLUMNS:
            raise ValueError(f"Invalid column name for job update: {key}")

    set_clauses = []
    values = []
    for key, value in updates.items():
        if isinstance(value, bool):
            value = int(value)
        set_clauses.append(f"{key} = ?")
        values.append(value)

    if not set_clauses:
        return True

    values.append(job_id)
    query = f"UPDATE analyses SET {', '.join(set_clauses)} WHERE id = ?"

    cursor = await db.execute(query, values)
    await db.commit()

    return cursor.rowcount > 0


async def fail_interrupted_jobs() -> int:
    """Close out jobs left active by a previous server process.

    Nothing resumes a run after a restart, so any row still pending,
    processing or cancelling is marked as an error. This frees the video
    for a new analysis and lets the job be deleted.

    Returns:
        Number of jobs closed.
    """
    db = await get_db()
    placeholders = ", ".join("?" for _ in ACTIVE_STATUSES)
    error = {
        "code": "INTERRUPTED",
        "message": "Analysis was interrupted by a server restart. Please run it again.",
        "details": None,
    }

    cursor = await db.execute(
        f"""
        UPDATE analyses
        SET status = 'error', current_step = 'Error', completed_at = ?, error_json = ?
        WHERE status IN ({placeholders})
        """,
        (datetime.utcnow().isoformat(), serialize_json(error), *ACTIVE_STATUSES),
    )
    await db.commit()

    if cursor.rowcount:
        logger.warning(f"Marked {cursor.rowcount} interrupted analysis job(s) as failed")

    return cursor.rowcount


async def delete_job(job_id: str) -> bool:
    """Delete a job and its stored result."""
    db = await get_db()

    cursor = await db.execute("DELETE FROM analyses WHERE id = ?", (job_id,))
    await db.commit()

    deleted = cursor.rowcount > 0
    if deleted:
        logger.debug(f"Deleted analysis job {job_id} from database")

    return deleted


async def save_result(job_id: str, analysis: DeliveryAnalysis) -> None:
    """Store the detections, trajectory and summary of a finished run."""
    db = await get_db()

    await db.execute(
        """
        UPDATE analyses
        SET detections_json = ?, trajectory_json = ?, summary_json = ?, detection_count = ?
        WHERE id = ?
        """,
        (
            serialize_json([d.to_dict() for d in analysis.detections]),
            serialize_json([p.to_dict() for p in analysis.trajectory]),
            serialize_json(analysis.summary.to_dict()),
            len(analysis.detections),
            job_id,
        ),
    )
    await db.commit()

    logger.debug(f"Stored {len(analysis.detections)} detections for job {job_id}")


async def get_result(job_id: str) -> Optional[dict[str, Any]]:
    """Get the stored result of a job, or None if it has none yet."""
    db = await get_db()

    async with db.execute(
        "SELECT detections_json, trajectory_json, summary_json, completed_at "
        "FROM analyses WHERE id = ?",
        (job_id,),
    ) as cursor:
        row = await cursor.fetchone()

    if not row or row["summary_json"] is None:
        return None

    return {
        "detections": deserialize_json(row["detections_json"]) or [],
        "trajectory": deserialize_json(row["trajectory_json"]) or [],
        "summary": deserialize_json(row["summary_json"]),
        "analyzed_at": row["completed_at"],
    }
