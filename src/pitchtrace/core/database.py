"""SQLite database setup and connection management for PitchTrace."""

import json
from datetime import datetime
from typing import Any, Optional

import aiosqlite
from loguru import logger

from pitchtrace.core.config import settings

DB_PATH = settings.db_path

# Current schema version - increment when making schema changes
SCHEMA_VERSION = 1

# Single shared connection (SQLite)
_db_connection: Optional[aiosqlite.Connection] = None


async def init_db() -> None:
    """Initialize the database, creating tables if they don't exist."""
    global _db_connection

    DB_PATH.parent.mkdir(parents=True, exist_ok=True)

    logger.info(f"Initializing database at {DB_PATH}")

    _db_connection = await aiosqlite.connect(str(DB_PATH))
    _db_connection.row_factory = aiosqlite.Row

    await _db_connection.execute("PRAGMA journal_mode=WAL")

    await _db_connection.execute(
        """
        CREATE TABLE IF NOT EXISTS schema_version (
            version INTEGER PRIMARY KEY,
            applied_at TEXT NOT NULL,
            description TEXT
        )
        """
    )

    async with _db_connection.execute(
        "SELECT MAX(version) as version FROM schema_version"
    ) as cursor:
        row = await cursor.fetchone()
        current_version = row["version"] if row and row["version"] else 0

    await _apply_migrations(current_version)

    await _db_connection.commit()

    logger.info(f"Database initialized successfully (schema version {SCHEMA_VERSION})")


async def _apply_migrations(current_version: int) -> None:
    """Apply database migrations incrementally."""
    if current_version < 1:
        await _migrate_v1()


async def _migrate_v1() -> None:
    """Initial schema - version 1."""
    logger.info("Applying migration v1: Initial schema")

    await _db_connection.executescript(
        """
        CREATE TABLE IF NOT EXISTS analyses (
            id TEXT PRIMARY KEY,
            video_path TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'pending',
            progress REAL NOT NULL DEFAULT 0,
            current_step TEXT NOT NULL DEFAULT 'Initializing',
            video_info_json TEXT,
            created_at TEXT NOT NULL,
            started_at TEXT,
            completed_at TEXT,
            error_json TEXT,
            cancelled INTEGER NOT NULL DEFAULT 0,
            detection_count INTEGER NOT NULL DEFAULT 0,
            detections_json TEXT,
            trajectory_json TEXT,
            summary_json TEXT
        );

        CREATE INDEX IF NOT EXISTS idx_analyses_status ON analyses(status);
        CREATE INDEX IF NOT EXISTS idx_analyses_created_at ON analyses(created_at);
        """
    )

    await _db_connection.execute(
        "INSERT OR IGNORE INTO schema_version (version, applied_at, description) VALUES (?, ?, ?)",
        (1, datetime.utcnow().isoformat(), "Initial schema with analyses table"),
    )

    logger.info("Migration v1 applied successfully")


async def close_db() -> None:
    """Close the database connection."""
    global _db_connection
    if _db_connection:
        await _db_connection.close()
        _db_connection = None
        logger.info("Database connection closed")


async def get_db() -> aiosqlite.Connection:
    """Get the database connection.

    Raises:
        RuntimeError: If the database has not been initialized.
    """
    if _db_connection is None:
        raise RuntimeError("Database not initialized. Call init_db() first.")
    return _db_connection


def serialize_json(data: Optional[dict | list]) -> Optional[str]:
    """Serialize a dict or list to JSON string for storage."""
    if data is None:
        return None
    return json.dumps(data)


def deserialize_json(data: Optional[str]) -> Optional[dict | list]:
    """Deserialize a JSON string from storage."""
    if data is None:
        return None
    return json.loads(data)


async def get_schema_version() -> int:
    """Get the current schema version."""
    db = await get_db()
    async with db.execute(
        "SELECT MAX(version) as version FROM schema_version"
    ) as cursor:
        row = await cursor.fetchone()
        return row["version"] if row and row["version"] else 0


async def get_database_stats() -> dict[str, Any]:
    """Get database statistics."""
    db = await get_db()

    stats = {
        "schema_version": await get_schema_version(),
        "db_path": str(DB_PATH),
        "db_size_bytes": DB_PATH.stat().st_size if DB_PATH.exists() else 0,
    }

    async with db.execute(
        "SELECT status, COUNT(*) as count FROM analyses GROUP BY status"
    ) as cursor:
        rows = await cursor.fetchall()
        stats["analyses_by_status"] = {row["status"]: row["count"] for row in rows}

    async with db.execute("SELECT COUNT(*) as count FROM analyses") as cursor:
        row = await cursor.fetchone()
        stats["total_analyses"] = row["count"]

    return stats
