"""
Similarity Metrics
==================

Cosine similarity over precomputed feature vectors.

Formula:
    cosine(a, b) = dot(a, b) / (|a| * |b|)

Defined as 0.0 when either norm is zero, the lengths differ, or
either vector is empty. Never divides by zero.
"""

import numpy as np

from frame_narrator.features.extractor import FeatureVector


def cosine_similarity(
    a: np.ndarray,
    a_norm: float,
    b: np.ndarray,
    b_norm: float,
) -> float:
    """
    Cosine similarity of two vectors with known norms.

    Args:
        a: First vector
        a_norm: L2 norm of a
        b: Second vector
        b_norm: L2 norm of b

    Returns:
        Similarity in [-1, 1], or 0.0 for degenerate inputs
    """
    if a_norm == 0.0 or b_norm == 0.0:
        return 0.0
    if a.size == 0 or b.size == 0 or a.size != b.size:
        return 0.0

    dot = float(np.dot(a.astype(np.float64), b.astype(np.float64)))
    return dot / (a_norm * b_norm)


def feature_similarity(a: FeatureVector, b: FeatureVector) -> float:
    """Cosine similarity of two FeatureVectors."""
    return cosine_similarity(a.values, a.norm, b.values, b.norm)
