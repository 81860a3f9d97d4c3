"""
Features Module
===============

Fixed-size luminance fingerprints and their similarity.

This module provides:
    - FeatureVector: Immutable vector + norm
    - extract_features: Bilinear downscale of a luminance plane
    - cosine_similarity: Zero-safe cosine over precomputed norms
"""

from frame_narrator.features.extractor import (
    DEFAULT_GRID_SIZE,
    FeatureVector,
    extract_features,
    extract_frame_features,
)
from frame_narrator.features.similarity import (
    cosine_similarity,
    feature_similarity,
)

__all__ = [
    "DEFAULT_GRID_SIZE",
    "FeatureVector",
    "extract_features",
    "extract_frame_features",
    "cosine_similarity",
    "feature_similarity",
]
