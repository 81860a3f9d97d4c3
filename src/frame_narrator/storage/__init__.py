"""
Storage Module
==============

Persistence sinks for encoded frames.
"""

from frame_narrator.storage.sink import (
    FileSystemSink,
    MemorySink,
    PersistenceSink,
    frame_key,
)

__all__ = [
    "PersistenceSink",
    "FileSystemSink",
    "MemorySink",
    "frame_key",
]
