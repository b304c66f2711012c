"""Video access: ffprobe metadata and seekable frame sources."""

import asyncio
from pathlib import Path
from typing import Optional, Protocol, Sequence

import cv2
import ffmpeg
import numpy as np
from loguru import logger

from pitchtrace.core.errors import FrameDecodeError, SourceUnavailableError
from pitchtrace.models.trajectory import Frame

# A source already positioned within this many seconds is not re-seeked
SEEK_TOLERANCE = 0.01


def get_video_info(video_path: Path) -> dict:
    """Get video metadata using ffprobe."""
    try:
        probe = ffmpeg.probe(str(video_path))
        video_stream = next(
            (s for s in probe["streams"] if s["codec_type"] == "video"), None
        )

        if not video_stream:
            raise ValueError("No video stream found")

        # Parse frame rate
        fps_parts = video_stream.get("r_frame_rate", "30/1").split("/")
        fps = float(fps_parts[0]) / float(fps_parts[1]) if len(fps_parts) == 2 else 30.0

        return {
            "duration": float(probe["format"].get("duration", 0)),
            "width": int(video_stream.get("width", 0)),
            "height": int(video_stream.get("height", 0)),
            "fps": fps,
            "codec": video_stream.get("codec_name", "unknown"),
            "file_size": int(probe["format"].get("size", 0)),
        }
    except ffmpeg.Error as e:
        logger.error(f"FFprobe error: {e.stderr.decode() if e.stderr else str(e)}")
        raise


class FrameSource(Protocol):
    """A finite, seekable clip.

    ``width``/``height`` are None until metadata is known. ``seek`` clamps
    the target to [0, duration] and suspends until that frame is decoded,
    raising ``FrameDecodeError`` when it cannot be produced.
    """

    @property
    def width(self) -> Optional[int]: ...

    @property
    def height(self) -> Optional[int]: ...

    @property
    def duration(self) -> float: ...

    @property
    def current_time(self) -> Optional[float]: ...

    async def seek(self, time: float) -> None: ...

    def capture(self) -> Frame: ...

    def close(self) -> None: ...


class _PositionedSource:
    """Shared seek bookkeeping for frame sources."""

    def __init__(self):
        self._current_time: Optional[float] = None
        self._frame: Optional[np.ndarray] = None

    @property
    def current_time(self) -> Optional[float]:
        return self._current_time

    def _clamp(self, time: float) -> float:
        return min(max(time, 0.0), self.duration)

    def _is_positioned_at(self, time: float) -> bool:
        return (
            self._frame is not None
            and self._current_time is not None
            and abs(self._current_time - time) < SEEK_TOLERANCE
        )

    def capture(self) -> Frame:
        """Return the frame at the current position."""
        if self._frame is None or self._current_time is None:
            raise FrameDecodeError("No frame decoded yet. Seek before capturing.", step="capture")
        return Frame(pixels=self._frame, timestamp=self._current_time)

    def close(self) -> None:
        self._frame = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class VideoFileSource(_PositionedSource):
    """Frame source over a video file, decoded with OpenCV.

    Decoding runs in a worker thread so seeking never blocks the event loop.
    """

    def __init__(self, path: str | Path):
        super().__init__()
        self.path = str(path)
        self.cap = cv2.VideoCapture(self.path)
        if not self.cap.isOpened():
            raise SourceUnavailableError(f"Could not open video: {self.path}", step="loading")

        self._fps = float(self.cap.get(cv2.CAP_PROP_FPS))
        self._frame_count = int(self.cap.get(cv2.CAP_PROP_FRAME_COUNT))
        self._width = int(self.cap.get(cv2.CAP_PROP_FRAME_WIDTH)) or None
        self._height = int(self.cap.get(cv2.CAP_PROP_FRAME_HEIGHT)) or None
        self._duration = self._frame_count / self._fps if self._fps > 0 else 0.0

        logger.debug(
            f"Opened {self.path}: {self._width}x{self._height}, "
            f"{self._fps:.2f} fps, {self._duration:.2f}s"
        )

    @property
    def width(self) -> Optional[int]:
        return self._width

    @property
    def height(self) -> Optional[int]:
        return self._height

    @property
    def duration(self) -> float:
        return self._duration

    @property
    def fps(self) -> float:
        return self._fps

    def _read_at(self, time: float) -> Optional[np.ndarray]:
        # The last frame starts before `duration`, so clamp the index
        index = min(int(round(time * self._fps)), max(self._frame_count - 1, 0))
        self.cap.set(cv2.CAP_PROP_POS_FRAMES, index)
        ret, frame = self.cap.read()
        if not ret:
            return None
        return frame

    async def seek(self, time: float) -> None:
        target = self._clamp(time)
        if self._is_positioned_at(target):
            return

        frame = await asyncio.to_thread(self._read_at, target)
        if frame is None:
            raise FrameDecodeError(
                "Failed to seek video frame.",
                step="sampling",
                details={"time": target, "path": self.path},
            )
        self._frame = frame
        self._current_time = target

    def close(self) -> None:
        super().close()
        self.cap.release()


class ArrayFrameSource(_PositionedSource):
    """Frame source over in-memory BGR frames at a fixed frame rate.

    Used for synthetic clips and for frames decoded elsewhere.
    """

    def __init__(
        self,
        frames: Sequence[np.ndarray],
        fps: float,
        duration: Optional[float] = None,
    ):
        super().__init__()
        if fps <= 0:
            raise ValueError(f"fps must be positive, got {fps}")
        self._frames = list(frames)
        self._fps = fps
        self._duration = duration if duration is not None else len(self._frames) / fps

    @property
    def width(self) -> Optional[int]:
        if not self._frames or self._frames[0].ndim < 2:
            return None
        return int(self._frames[0].shape[1]) or None

    @property
    def height(self) -> Optional[int]:
        if not self._frames or self._frames[0].ndim < 2:
            return None
        return int(self._frames[0].shape[0]) or None

    @property
    def duration(self) -> float:
        return self._duration

    async def seek(self, time: float) -> None:
        target = self._clamp(time)
        if self._is_positioned_at(target):
            return
        if not self._frames:
            raise FrameDecodeError("Failed to seek video frame.", step="sampling", details={"time": target})

        index = min(int(target * self._fps + 1e-9), len(self._frames) - 1)
        self._frame = self._frames[index]
        self._current_time = target
        # Yield like a real decoder would
        await asyncio.sleep(0)
