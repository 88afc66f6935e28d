"""
Similarity Kernel

Cosine similarity between embedding vectors. A zero vector is treated as
orthogonal to everything (similarity 0) instead of producing NaN.
"""
from typing import Sequence

import numpy as np
from sklearn.metrics.pairwise import cosine_similarity as pairwise_cosine_similarity


class DimensionMismatchError(ValueError):
    """Raised when vectors of different lengths are compared."""


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity in [-1, 1]; 0.0 when either vector has zero norm."""
    vec_a = np.asarray(a, dtype=np.float64)
    vec_b = np.asarray(b, dtype=np.float64)

    if vec_a.ndim != 1 or vec_b.ndim != 1:
        raise DimensionMismatchError("cosine_similarity expects two flat vectors")
    if vec_a.shape[0] != vec_b.shape[0]:
        raise DimensionMismatchError(
            f"Vector length mismatch: {vec_a.shape[0]} != {vec_b.shape[0]}"
        )

    denom = np.linalg.norm(vec_a) * np.linalg.norm(vec_b)
    if denom == 0:
        return 0.0

    # Rounding can push |a.b| marginally past |a||b|
    return float(np.clip(np.dot(vec_a, vec_b) / denom, -1.0, 1.0))


def similarity_matrix(vectors: Sequence[Sequence[float]]) -> np.ndarray:
    """Pairwise cosine similarity matrix; rows with zero norm score 0 against all."""
    if len(vectors) == 0:
        return np.zeros((0, 0))

    lengths = {len(v) for v in vectors}
    if len(lengths) != 1:
        raise DimensionMismatchError(f"Vectors have mixed lengths: {sorted(lengths)}")

    matrix = pairwise_cosine_similarity(np.asarray(vectors, dtype=np.float64))
    return np.clip(matrix, -1.0, 1.0)
