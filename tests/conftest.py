"""Pytest configuration and fixtures for PitchTrace tests."""

import sys
from pathlib import Path
from unittest.mock import patch

import cv2
import numpy as np
import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

FRAME_WIDTH = 640
FRAME_HEIGHT = 360
CLIP_FPS = 30

# BGR
PITCH_GREEN = (70, 140, 60)
BALL_RED = (0, 0, 255)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (deselect with '-m \"not integration\"')"
    )


def make_frame(
    center: tuple[int, int] | None = None,
    radius: int = 8,
    width: int = FRAME_WIDTH,
    height: int = FRAME_HEIGHT,
) -> np.ndarray:
    """A pitch-coloured frame, with a filled red ball when ``center`` is given."""
    frame = np.full((height, width, 3), PITCH_GREEN, dtype=np.uint8)
    if center is not None:
        cv2.circle(frame, center, radius, BALL_RED, thickness=-1)
    return frame


def make_delivery_frames(
    duration: float = 1.0,
    fps: int = CLIP_FPS,
    start: tuple[float, float] = (0.5, 0.9),
    end: tuple[float, float] = (0.5, 0.1),
) -> list[np.ndarray]:
    """Frames of a ball travelling in a straight line at constant speed.

    ``start`` and ``end`` are normalized (x, y) positions.
    """
    count = int(round(duration * fps))
    frames = []
    for i in range(count):
        t = i / max(count - 1, 1)
        x = start[0] + (end[0] - start[0]) * t
        y = start[1] + (end[1] - start[1]) * t
        frames.append(make_frame((round(x * FRAME_WIDTH), round(y * FRAME_HEIGHT))))
    return frames


@pytest.fixture
def vision_ops():
    """OpenCV-backed vision primitives."""
    from pitchtrace.core.vision import OpenCVVisionOps

    return OpenCVVisionOps()


@pytest.fixture
def delivery_frames() -> list[np.ndarray]:
    """One second of a ball moving from the bowling end to the batting end."""
    return make_delivery_frames()


@pytest.fixture
def delivery_source(delivery_frames):
    """Seekable in-memory clip of ``delivery_frames``."""
    from pitchtrace.core.video import ArrayFrameSource

    return ArrayFrameSource(delivery_frames, fps=CLIP_FPS)


@pytest.fixture
def blank_source():
    """One second clip where the ball never appears."""
    from pitchtrace.core.video import ArrayFrameSource

    return ArrayFrameSource([make_frame() for _ in range(CLIP_FPS)], fps=CLIP_FPS)


@pytest.fixture
def sample_video_path(tmp_path) -> Path:
    """A placeholder file on disk for endpoints that check existence."""
    path = tmp_path / "delivery.mp4"
    path.write_bytes(b"\x00" * 64)
    return path


@pytest.fixture
def fake_video_info() -> dict:
    return {
        "duration": 1.0,
        "width": FRAME_WIDTH,
        "height": FRAME_HEIGHT,
        "fps": float(CLIP_FPS),
        "codec": "h264",
        "file_size": 64,
    }


@pytest.fixture
def client(tmp_path):
    """TestClient against a fresh database, with job state cleared."""
    from fastapi.testclient import TestClient

    from pitchtrace.api.routes import _job_cache, _pipelines, _progress_queues
    from pitchtrace.main import app

    _job_cache.clear()
    _progress_queues.clear()
    _pipelines.clear()

    with patch("pitchtrace.core.database.DB_PATH", tmp_path / "test.db"):
        with TestClient(app) as test_client:
            yield test_client

    _job_cache.clear()
    _progress_queues.clear()
    _pipelines.clear()
