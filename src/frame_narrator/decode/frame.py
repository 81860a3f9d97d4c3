"""
Frame Data Model
=================

Internal frame representation for the decode stage.

This module defines the typed DecodedFrame class that is used as the
interface between the decoder adapter and the streaming selector.

Design Rules:
    - This is the ONLY frame format passed to the selector
    - Pixels are kept as decoded (no copies, no resizing)
    - Timestamps are seconds from the start of the video
"""

from dataclasses import dataclass

import numpy as np


PIXEL_FORMATS = ("bgr24", "rgb24", "gray")


@dataclass(frozen=True, slots=True)
class DecodedFrame:
    """
    One decoded video frame.

    Immutable (frozen) so a frame shared by several sampling ticks
    cannot be altered between them.

    Attributes:
        timestamp: Presentation time in seconds, non-decreasing per video
        pixels: Pixel buffer, (H, W, 3) for color formats, (H, W) for gray
        pixel_format: One of "bgr24", "rgb24", "gray"
    """

    timestamp: float
    pixels: np.ndarray
    pixel_format: str = "bgr24"

    def __post_init__(self) -> None:
        """Validate invariants."""
        if self.pixel_format not in PIXEL_FORMATS:
            raise ValueError(
                f"Unsupported pixel format '{self.pixel_format}', "
                f"expected one of {PIXEL_FORMATS}"
            )

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1]) if self.pixels.ndim >= 2 else 0

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0]) if self.pixels.ndim >= 1 else 0

    def __repr__(self) -> str:
        """Compact repr that doesn't dump the pixel buffer."""
        return (
            f"DecodedFrame(timestamp={self.timestamp:.3f}, "
            f"size={self.width}x{self.height}, "
            f"format={self.pixel_format})"
        )
