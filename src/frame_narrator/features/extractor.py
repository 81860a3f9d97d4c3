"""
Feature Extraction
==================

Resolution-invariant luminance fingerprints for frame comparison.

A frame's luminance plane is bilinearly downscaled to a fixed
grid (64x64 by default) and normalised by the maximum sample value,
giving a constant-size vector regardless of source resolution.

Formula (per output cell o, per axis):
    src = (o + 0.5) * (in_size / grid) - 0.5
    i0 = max(floor(src), 0), i1 = min(i0 + 1, in_size - 1)
    w1 = clamp(src - i0, 0, 1), w0 = 1 - w1

Design Note:
    Only grid x grid x 4 samples are read from the source plane, so cost
    does not grow with frame size. Sample indices and weights depend only
    on the plane shape and are cached per shape.
"""

import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Tuple

import numpy as np

from frame_narrator.decode.frame import DecodedFrame
from frame_narrator.decode.image_codec import frame_luminance
from frame_narrator.errors import FeatureError


logger = logging.getLogger(__name__)


DEFAULT_GRID_SIZE = 64


@dataclass(frozen=True, slots=True)
class FeatureVector:
    """
    Fixed-size luminance fingerprint.

    Attributes:
        values: Flattened float32 vector, each component in [0, 1]
        norm: Precomputed Euclidean (L2) norm of values
    """

    values: np.ndarray
    norm: float

    def __len__(self) -> int:
        return int(self.values.size)

    def __repr__(self) -> str:
        return f"FeatureVector(dim={self.values.size}, norm={self.norm:.4f})"


@lru_cache(maxsize=64)
def _axis_samples(
    in_size: int,
    out_size: int,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """Source indices and weights for one axis of the bilinear resize."""
    scale = in_size / out_size
    src = (np.arange(out_size, dtype=np.float32) + 0.5) * scale - 0.5

    i0 = np.maximum(np.floor(src), 0.0).astype(np.intp)
    i1 = np.minimum(i0 + 1, in_size - 1)
    w1 = np.clip(src - i0.astype(np.float32), 0.0, 1.0)
    w0 = 1.0 - w1

    return i0, i1, w0.astype(np.float32), w1.astype(np.float32)


def _max_sample_value(dtype: np.dtype) -> float:
    """Maximum representable sample value for a plane dtype."""
    if np.issubdtype(dtype, np.integer):
        return float(np.iinfo(dtype).max)
    return 1.0


def extract_features(
    plane: np.ndarray,
    grid_size: int = DEFAULT_GRID_SIZE,
) -> FeatureVector:
    """
    Compute the feature vector of a luminance plane.

    Args:
        plane: 2D luminance plane (H, W), integer or float samples
        grid_size: Output grid edge length

    Returns:
        FeatureVector with grid_size**2 components in [0, 1]

    Raises:
        FeatureError: If the plane is not a non-empty 2D array
    """
    if grid_size < 1:
        raise FeatureError(f"grid_size must be >= 1, got {grid_size}")

    if plane.ndim != 2:
        raise FeatureError(
            f"Luminance plane must be 2D, got shape {plane.shape}"
        )

    height, width = plane.shape
    if height == 0 or width == 0:
        raise FeatureError(f"Luminance plane is empty: shape {plane.shape}")

    y0, y1, wy0, wy1 = _axis_samples(height, grid_size)
    x0, x1, wx0, wx1 = _axis_samples(width, grid_size)

    # Gather the four neighbours of every output cell
    p00 = plane[np.ix_(y0, x0)].astype(np.float32)
    p01 = plane[np.ix_(y0, x1)].astype(np.float32)
    p10 = plane[np.ix_(y1, x0)].astype(np.float32)
    p11 = plane[np.ix_(y1, x1)].astype(np.float32)

    top = p00 * wx0 + p01 * wx1
    bottom = p10 * wx0 + p11 * wx1
    grid = top * wy0[:, None] + bottom * wy1[:, None]

    values = (grid / _max_sample_value(plane.dtype)).astype(np.float32).ravel()
    values = np.clip(values, 0.0, 1.0)

    norm = float(np.sqrt(np.dot(values.astype(np.float64), values.astype(np.float64))))

    return FeatureVector(values=values, norm=norm)


def extract_frame_features(
    frame: DecodedFrame,
    grid_size: int = DEFAULT_GRID_SIZE,
) -> FeatureVector:
    """Feature vector of a decoded frame's luminance plane."""
    return extract_features(frame_luminance(frame), grid_size=grid_size)
