"""
Video Source
============

Decoder adapter that turns a video file into DecodedFrames.

This module provides:
    - FrameSource: Protocol for anything that yields DecodedFrames
    - VideoFileSource: OpenCV-backed decoder for video files
    - IterableFrameSource: Wraps pre-decoded frames (tests, synthetic input)

Design Rules:
    - Frames are yielded lazily in decode order
    - Timestamps never go backwards
    - A decode failure after the first frame ends the sequence early
      (logged, not raised); partial results are acceptable
    - Failure to open the file or decode the first frame is a DecodeError
"""

import logging
import threading
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Protocol, Union

import cv2

from frame_narrator.decode.frame import DecodedFrame
from frame_narrator.errors import DecodeError


logger = logging.getLogger(__name__)


class FrameSource(Protocol):
    """
    Protocol for frame sources.

    Implementations yield DecodedFrames in non-decreasing timestamp
    order and expose a `video_id` used to name stored frames.
    """

    video_id: str

    def __iter__(self) -> Iterator[DecodedFrame]:
        ...


class VideoFileSource:
    """
    OpenCV video file decoder.

    Timestamps come from the container (CAP_PROP_POS_MSEC). When the
    backend reports none, they are derived from the frame index and the
    declared FPS.

    Attributes:
        path: Video file path
        video_id: File stem, e.g. "1761542252139_crashDemo"
        fps: Declared FPS (0.0 if unknown)
        frame_count: Declared frame count (0 if unknown)
        frames_decoded: Frames yielded so far
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self.video_id = self.path.stem or "unknown"
        self.fps: float = 0.0
        self.frame_count: int = 0
        self.frames_decoded: int = 0
        self.ended_early: bool = False
        self._capture: Optional[cv2.VideoCapture] = None
        # Serializes read() in a decode thread against close()
        self._lock = threading.Lock()

    def open(self) -> None:
        """
        Open the video file.

        Raises:
            DecodeError: If the file is missing or has no decodable stream
        """
        if not self.path.exists():
            raise DecodeError(f"Video file not found: {self.path}")

        capture = cv2.VideoCapture(str(self.path))
        if not capture.isOpened():
            capture.release()
            raise DecodeError(f"No video stream found in: {self.path}")

        self._capture = capture
        self.fps = float(capture.get(cv2.CAP_PROP_FPS) or 0.0)
        self.frame_count = int(capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0)

        logger.info(
            f"Opened video {self.video_id}: fps={self.fps:.2f}, "
            f"declared_frames={self.frame_count}"
        )

    def close(self) -> None:
        """
        Release the decoder.

        Safe to call while another thread is iterating; the pending read
        finishes first and iteration then stops.
        """
        with self._lock:
            if self._capture is not None:
                self._capture.release()
                self._capture = None

    def __enter__(self) -> "VideoFileSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def __iter__(self) -> Iterator[DecodedFrame]:
        """
        Yield decoded frames until the stream ends or decoding fails.

        Raises:
            DecodeError: If the first frame cannot be decoded
        """
        if self._capture is None:
            self.open()

        capture = self._capture
        last_ts = 0.0
        index = 0

        try:
            while True:
                with self._lock:
                    if self._capture is None:
                        logger.info(f"Decoder released after {index} frames")
                        break
                    try:
                        ok, bgr = capture.read()
                    except cv2.error as e:
                        ok, bgr = False, None
                        logger.warning(f"Decoder error at frame {index}: {e}")
                    if ok and bgr is not None:
                        ts = self._timestamp(capture, index, last_ts)

                if not ok or bgr is None:
                    if index == 0:
                        raise DecodeError(
                            f"First frame could not be decoded: {self.path}"
                        )
                    if self.frame_count and index < self.frame_count - 1:
                        self.ended_early = True
                        logger.warning(
                            f"Decoding ended early at frame {index} "
                            f"of {self.frame_count} declared"
                        )
                    break

                last_ts = ts
                index += 1
                self.frames_decoded = index

                yield DecodedFrame(timestamp=ts, pixels=bgr, pixel_format="bgr24")
        finally:
            self.close()

        logger.info(f"Decode finished: {self.frames_decoded} frames")

    def _timestamp(
        self,
        capture: cv2.VideoCapture,
        index: int,
        last_ts: float,
    ) -> float:
        """Container timestamp in seconds, clamped to be non-decreasing."""
        pos_msec = capture.get(cv2.CAP_PROP_POS_MSEC)
        ts = pos_msec / 1000.0 if pos_msec and pos_msec > 0 else 0.0

        if index > 0 and ts <= 0.0 and self.fps > 0:
            ts = index / self.fps

        if ts < last_ts:
            logger.debug(
                f"Timestamp went backwards: got {ts:.3f}, "
                f"previous was {last_ts:.3f}"
            )
            ts = last_ts

        return ts


class IterableFrameSource:
    """
    Frame source over already-decoded frames.

    Useful for synthetic sequences and tests. Iterates the given frames
    once, in order.
    """

    def __init__(
        self,
        frames: Iterable[DecodedFrame],
        video_id: str = "synthetic",
    ) -> None:
        self._frames: List[DecodedFrame] = list(frames)
        self.video_id = video_id

    def __iter__(self) -> Iterator[DecodedFrame]:
        return iter(self._frames)

    def __len__(self) -> int:
        return len(self._frames)


def open_source(video: Union[str, Path, FrameSource]) -> FrameSource:
    """
    Resolve a video handle into a FrameSource.

    Args:
        video: File path or an existing FrameSource

    Returns:
        FrameSource ready for iteration
    """
    if isinstance(video, (str, Path)):
        source = VideoFileSource(video)
        source.open()
        return source
    return video
