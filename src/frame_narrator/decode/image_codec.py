"""
Image Codec
===========

Dedicated module for pixel-buffer conversions.

Design Rules:
    - This is the ONLY place in the codebase that converts or encodes images
    - Validates shape and dtype
    - Fails fast on malformed buffers
    - Luminance is BT.601 luma, the same signal as a YUV Y plane
"""

import logging

import cv2
import numpy as np

from frame_narrator.decode.frame import DecodedFrame
from frame_narrator.errors import EncodeError, FeatureError


logger = logging.getLogger(__name__)


JPEG_MIME_TYPE = "image/jpeg"


def luminance_plane(pixels: np.ndarray, pixel_format: str) -> np.ndarray:
    """
    Extract the single-channel luminance plane of a pixel buffer.

    Args:
        pixels: Pixel buffer as decoded
        pixel_format: "bgr24", "rgb24" or "gray"

    Returns:
        Luminance plane (H, W), same dtype as the input

    Raises:
        FeatureError: If the buffer geometry does not match the format, or
            OpenCV cannot convert its dtype
    """
    if pixels.size == 0:
        raise FeatureError(f"Empty pixel buffer: shape={pixels.shape}")

    if pixel_format == "gray":
        if pixels.ndim == 3 and pixels.shape[2] == 1:
            return pixels[:, :, 0]
        if pixels.ndim != 2:
            raise FeatureError(
                f"Gray frame must be 2D, got shape {pixels.shape}"
            )
        return pixels

    if pixels.ndim != 3 or pixels.shape[2] != 3:
        raise FeatureError(
            f"Invalid shape for {pixel_format} frame: {pixels.shape}"
        )

    if pixel_format == "bgr24":
        code = cv2.COLOR_BGR2GRAY
    elif pixel_format == "rgb24":
        code = cv2.COLOR_RGB2GRAY
    else:
        raise FeatureError(f"Unsupported pixel format: {pixel_format}")

    try:
        return cv2.cvtColor(pixels, code)
    except cv2.error as e:
        raise FeatureError(
            f"Cannot convert {pixel_format} frame of dtype {pixels.dtype}: {e}"
        ) from e


def frame_luminance(frame: DecodedFrame) -> np.ndarray:
    """Luminance plane of a decoded frame."""
    return luminance_plane(frame.pixels, frame.pixel_format)


def encode_jpeg(
    pixels: np.ndarray,
    pixel_format: str = "bgr24",
    quality: int = 85,
) -> bytes:
    """
    Encode a pixel buffer to JPEG bytes.

    CPU-bound: callers on the event loop should run this in a
    worker thread.

    Args:
        pixels: Pixel buffer
        pixel_format: "bgr24", "rgb24" or "gray"
        quality: JPEG quality 1-100

    Returns:
        JPEG-encoded bytes

    Raises:
        EncodeError: If the buffer is invalid or encoding fails
    """
    if pixels.size == 0:
        raise EncodeError(f"Cannot encode empty buffer: shape={pixels.shape}")

    if pixel_format not in ("bgr24", "rgb24", "gray"):
        raise EncodeError(f"Unsupported pixel format: {pixel_format}")
    if pixel_format != "gray" and (pixels.ndim != 3 or pixels.shape[2] != 3):
        raise EncodeError(f"Invalid shape for {pixel_format} frame: {pixels.shape}")

    image = pixels
    if image.dtype != np.uint8:
        # JPEG is 8-bit; rescale wider integer formats
        if np.issubdtype(image.dtype, np.integer):
            max_value = np.iinfo(image.dtype).max
            scaled = np.clip(image.astype(np.float64), 0, max_value) * (255.0 / max_value)
            image = scaled.astype(np.uint8)
        else:
            image = (np.clip(image, 0.0, 1.0) * 255.0).astype(np.uint8)

    try:
        if pixel_format == "rgb24":
            image = cv2.cvtColor(image, cv2.COLOR_RGB2BGR)
        ok, buffer = cv2.imencode(
            ".jpg",
            image,
            [int(cv2.IMWRITE_JPEG_QUALITY), int(quality)],
        )
    except cv2.error as e:
        raise EncodeError(f"JPEG encode failed: {e}") from e

    if not ok:
        raise EncodeError("JPEG encode failed: cv2.imencode returned False")

    return buffer.tobytes()

