"""
Selection Models
================

Candidate and comparison-window types used by the StreamingSelector.

The two-slot comparison window is an explicit tagged variant:
    - EmptyWindow: no candidate awaiting comparison
    - HoldingWindow: exactly one pending candidate

Every selection step consumes a HoldingWindow and produces exactly one
emitted candidate, so "one survivor per comparison" is carried by the
types rather than by nullable slots.
"""

from dataclasses import dataclass
from typing import Union

import numpy as np

from frame_narrator.features.extractor import FeatureVector


@dataclass(frozen=True, slots=True)
class Candidate:
    """
    A decoded frame sampled at one sampling-clock tick.

    Attributes:
        frame_id: Monotonically increasing id (0 for the first frame)
        timestamp: Tick time in seconds (0.0 for the first frame)
        pixels: Pixel buffer of the decoded frame
        pixel_format: Pixel format of the buffer
        feature: Luminance FeatureVector of the frame
    """

    frame_id: int
    timestamp: float
    pixels: np.ndarray
    pixel_format: str
    feature: FeatureVector

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel buffer."""
        return (
            f"Candidate(frame_id={self.frame_id}, "
            f"timestamp={self.timestamp:.3f})"
        )


@dataclass(frozen=True, slots=True)
class EmptyWindow:
    """No candidate is waiting for a comparison."""


@dataclass(frozen=True, slots=True)
class HoldingWindow:
    """One candidate is waiting for the next tick's candidate."""

    candidate: Candidate


Window = Union[EmptyWindow, HoldingWindow]

EMPTY_WINDOW = EmptyWindow()
