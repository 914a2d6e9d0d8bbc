"""Frame sources feeding collision monitors."""

from __future__ import annotations

import base64
import mimetypes
import threading
from itertools import cycle
from pathlib import Path

FRAME_SUFFIXES = {".png", ".jpg", ".jpeg"}


class LatestFrameBuffer:
    """Holds the most recent frame pushed by a client; latest wins."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._frame: str | None = None
        self._received = 0

    @property
    def received_frames(self) -> int:
        with self._lock:
            return self._received

    def push(self, image: str) -> None:
        if not image:
            raise ValueError("empty frame")
        with self._lock:
            self._frame = image
            self._received += 1

    def capture_frame(self) -> str | None:
        with self._lock:
            return self._frame


class DirectoryFrameSource:
    """Replays image files from a directory in name order, looping."""

    def __init__(self, frame_files: list[Path]) -> None:
        if not frame_files:
            raise ValueError("no frames found")
        self._lock = threading.Lock()
        self._files = cycle(frame_files)

    @classmethod
    def from_directory(cls, frames_dir: str) -> DirectoryFrameSource:
        frames_path = Path(frames_dir)
        if not frames_path.is_dir():
            raise ValueError(f"frames dir not found: {frames_path}")
        return cls(list_frame_files(frames_path))

    def capture_frame(self) -> str | None:
        with self._lock:
            frame_path = next(self._files)
        try:
            return encode_frame_file(frame_path)
        except OSError:
            return None


def list_frame_files(frames_path: Path) -> list[Path]:
    return sorted(
        path for path in frames_path.iterdir() if path.suffix.lower() in FRAME_SUFFIXES
    )


def encode_frame_file(frame_path: Path) -> str:
    """Read an image file into a base64 data URL."""
    media_type, _ = mimetypes.guess_type(frame_path.name)
    payload = base64.b64encode(frame_path.read_bytes()).decode("ascii")
    return f"data:{media_type or 'image/jpeg'};base64,{payload}"
