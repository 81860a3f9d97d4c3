"""
Test Configuration
==================

Pytest fixtures and test doubles for the frame narrator.
"""

import asyncio
from typing import List, Optional

import numpy as np
import pytest

from frame_narrator.decode.frame import DecodedFrame
from frame_narrator.errors import AnnotationError, PersistenceError
from frame_narrator.features.extractor import extract_features
from frame_narrator.models.records import FrameRecord
from frame_narrator.selection.candidate import Candidate


FRAME_SIZE = 32


def gray_frame(value: int, timestamp: float, size: int = FRAME_SIZE) -> DecodedFrame:
    """Uniform gray frame."""
    pixels = np.full((size, size), value, dtype=np.uint8)
    return DecodedFrame(timestamp=timestamp, pixels=pixels, pixel_format="gray")


def half_frame(side: str, timestamp: float, size: int = FRAME_SIZE) -> DecodedFrame:
    """Gray frame whose left or right half is white, the rest black."""
    pixels = np.zeros((size, size), dtype=np.uint8)
    if side == "left":
        pixels[:, : size // 2] = 255
    else:
        pixels[:, size // 2:] = 255
    return DecodedFrame(timestamp=timestamp, pixels=pixels, pixel_format="gray")


def make_candidate(frame_id: int, timestamp: float, value: int = 128) -> Candidate:
    pixels = np.full((FRAME_SIZE, FRAME_SIZE), value, dtype=np.uint8)
    return Candidate(
        frame_id=frame_id,
        timestamp=timestamp,
        pixels=pixels,
        pixel_format="gray",
        feature=extract_features(pixels, grid_size=8),
    )


# =============================================================================
# Test Engines
# =============================================================================

class OverlapTrackingEngine:
    """Description engine that records how many calls overlap."""

    def __init__(self, delay: float = 0.02, text: str = "overlap") -> None:
        self.delay = delay
        self.text = text
        self.active = 0
        self.max_active = 0
        self.calls = 0

    async def describe(self, image_bytes: bytes, mime_type: str) -> str:
        self.calls += 1
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.active -= 1
        return self.text


class FlakyEngine:
    """Fails the first `failures` calls, then succeeds."""

    def __init__(self, failures: int = 1, text: str = "recovered") -> None:
        self.failures = failures
        self.text = text
        self.calls = 0

    async def describe(self, image_bytes: bytes, mime_type: str) -> str:
        self.calls += 1
        if self.calls <= self.failures:
            raise ConnectionError("rate limited")
        return self.text


class SelectiveFailEngine:
    """Fails on the given call numbers (1-based)."""

    def __init__(self, bad_calls: List[int]) -> None:
        self.bad_calls = set(bad_calls)
        self.calls = 0

    async def describe(self, image_bytes: bytes, mime_type: str) -> str:
        self.calls += 1
        if self.calls in self.bad_calls:
            raise AnnotationError("model refused the image")
        return f"ok-{self.calls}"


class SlowEngine:
    """Never answers within a short timeout."""

    def __init__(self, delay: float = 1.0) -> None:
        self.delay = delay

    async def describe(self, image_bytes: bytes, mime_type: str) -> str:
        await asyncio.sleep(self.delay)
        return "too late"


class FailingSummaryEngine:
    async def summarize(self, prompt: str) -> str:
        raise RuntimeError("quota exceeded")


class RecordingAnswerEngine:
    """Text engine that keeps every prompt it was given."""

    def __init__(self, text: str = "The red car runs the light.") -> None:
        self.text = text
        self.prompts: List[str] = []

    async def summarize(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.text


class FailingSink:
    """Sink that rejects selected keys."""

    def __init__(self, failing_keys: Optional[List[str]] = None) -> None:
        self.failing_keys = set(failing_keys or [])
        self.stored = {}

    async def store(self, key: str, data: bytes) -> str:
        if not self.failing_keys or key in self.failing_keys:
            raise PersistenceError(f"disk full while writing {key}")
        self.stored[key] = data
        return f"memory://{key}"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def two_frame_sequence():
    """Black frame at t=0, white frame at t=0.25."""
    return [gray_frame(0, 0.0), gray_frame(255, 0.25)]


@pytest.fixture
def candidates():
    """Five candidates at successive ticks."""
    return [make_candidate(i, i * 0.25, value=40 * i + 10) for i in range(5)]


@pytest.fixture
def video_file(tmp_path):
    """
    Small MJPG video: 1.0s at 20 FPS alternating dark and bright halves.

    Returns:
        Path of the written file
    """
    cv2 = pytest.importorskip("cv2")

    path = tmp_path / "clip.avi"
    writer = cv2.VideoWriter(
        str(path),
        cv2.VideoWriter_fourcc(*"MJPG"),
        20.0,
        (64, 48),
    )
    if not writer.isOpened():
        pytest.skip("MJPG video writer not available")

    for index in range(21):
        frame = np.zeros((48, 64, 3), dtype=np.uint8)
        if (index // 5) % 2 == 0:
            frame[:, :32] = 220
        else:
            frame[:, 32:] = 220
        writer.write(frame)
    writer.release()

    return path


@pytest.fixture
def street_records():
    """Four described frames of a short street scene."""
    return [
        FrameRecord(frame_id=2, timestamp=1.0, description="The red car drives through the intersection.",
                    path="data/street_frame_002.jpg"),
        FrameRecord(frame_id=0, timestamp=0.0, description="A red car waits at the traffic light.",
                    path="data/street_frame_000.jpg"),
        FrameRecord(frame_id=1, timestamp=0.5, description="A cyclist crosses the street."),
        FrameRecord(frame_id=3, timestamp=1.5, description="A dog sleeps on the sidewalk."),
    ]
