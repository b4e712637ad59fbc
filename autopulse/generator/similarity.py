"""Cosine similarity over fixed-length embedding vectors."""

from typing import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Similarity in [-1, 1]; 0.0 when either vector has zero norm

    Raises:
        ValueError: if the vectors differ in length
    """
    vec_a = np.asarray(a, dtype=float)
    vec_b = np.asarray(b, dtype=float)

    if vec_a.shape != vec_b.shape:
        raise ValueError(f"Vectors must have the same length ({vec_a.size} != {vec_b.size})")

    norm_a = np.linalg.norm(vec_a)
    norm_b = np.linalg.norm(vec_b)
    if norm_a == 0 or norm_b == 0:
        return 0.0

    similarity = float(np.dot(vec_a, vec_b) / (norm_a * norm_b))
    # Rounding can push identical vectors a hair past 1
    return max(-1.0, min(1.0, similarity))


def mean_vector(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Element-wise mean of equal-length vectors."""
    if not vectors:
        raise ValueError("Cannot average an empty set of vectors")
    matrix = np.asarray(vectors, dtype=float)
    if matrix.ndim != 2:
        raise ValueError("Vectors must all have the same length")
    return matrix.mean(axis=0)
