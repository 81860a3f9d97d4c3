"""
Persistence Sink
================

Storage for encoded frames.

This module provides:
    - PersistenceSink: Protocol for async byte storage
    - FileSystemSink: Writes frames as files under a directory
    - MemorySink: Keeps frames in a dict (tests, dry runs)

Design Rules:
    - store() returns a storage reference (a path for the filesystem sink)
    - Failures raise PersistenceError; callers decide whether to continue
    - Blocking file I/O runs in a worker thread
"""

import asyncio
import logging
from pathlib import Path
from typing import Dict, Protocol, Union

from frame_narrator.errors import PersistenceError


logger = logging.getLogger(__name__)


def frame_key(video_id: str, frame_id: int) -> str:
    """Storage key of a frame, e.g. "1761542252139_crashDemo_frame_003"."""
    return f"{video_id}_frame_{frame_id:03d}"


class PersistenceSink(Protocol):
    """
    Protocol for persistence backends.

    All implementations must provide an async `store` method that
    writes bytes under a key and returns a storage reference.
    """

    async def store(self, key: str, data: bytes) -> str:
        """
        Store encoded bytes.

        Args:
            key: Unique key within the sink
            data: Encoded image bytes

        Returns:
            Storage reference

        Raises:
            PersistenceError: If the write fails
        """
        ...


class FileSystemSink:
    """
    Stores frames as files.

    Files are written as `<directory>/<key><extension>`, and the
    returned reference is that path as a string (relative if the
    directory is relative), e.g. "data/clip_frame_001.jpg".

    Attributes:
        directory: Target directory (created on first write)
        extension: File extension including the dot
    """

    def __init__(
        self,
        directory: Union[str, Path] = "data",
        extension: str = ".jpg",
    ) -> None:
        self.directory = Path(directory)
        self.extension = extension
        self._written: int = 0

    @property
    def written_count(self) -> int:
        """Files written so far."""
        return self._written

    async def store(self, key: str, data: bytes) -> str:
        path = self.directory / f"{key}{self.extension}"
        try:
            await asyncio.to_thread(self._write, path, data)
        except OSError as e:
            raise PersistenceError(f"failed to write frame to {path}: {e}") from e

        self._written += 1
        return path.as_posix()

    def _write(self, path: Path, data: bytes) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)


class MemorySink:
    """In-memory sink; references are "memory://<key>"."""

    def __init__(self) -> None:
        self.items: Dict[str, bytes] = {}

    async def store(self, key: str, data: bytes) -> str:
        self.items[key] = data
        return f"memory://{key}"
