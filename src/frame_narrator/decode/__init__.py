"""
Decode Module
=============

Decoder adapter and pixel-buffer helpers.

This module provides the ingestion layer for frame_narrator:
    - DecodedFrame: Typed frame data model (internal representation)
    - FrameSource: Protocol for ordered, finite frame sequences
    - VideoFileSource: OpenCV decoder for video files
    - luminance_plane / encode_jpeg: Pixel conversions

Example:
    from frame_narrator.decode import VideoFileSource

    with VideoFileSource("data/clip.mp4") as source:
        for frame in source:
            process(frame)
"""

from frame_narrator.decode.frame import DecodedFrame
from frame_narrator.decode.image_codec import (
    JPEG_MIME_TYPE,
    encode_jpeg,
    frame_luminance,
    luminance_plane,
)
from frame_narrator.decode.video_source import (
    FrameSource,
    IterableFrameSource,
    VideoFileSource,
    open_source,
)


__all__ = [
    "DecodedFrame",
    "FrameSource",
    "IterableFrameSource",
    "VideoFileSource",
    "open_source",
    "JPEG_MIME_TYPE",
    "encode_jpeg",
    "frame_luminance",
    "luminance_plane",
]
