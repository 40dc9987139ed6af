from __future__ import annotations

from typing import Sequence  # noqa: UP035

import numpy as np


def mean_vector(vectors: Sequence[np.ndarray]) -> np.ndarray:
    if len(vectors) == 0:
        raise ValueError("mean_vector() needs at least one vector")
    return np.mean(np.vstack(vectors), axis=0)


def cosine_similarity(query: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """
    Cosine of `query` against every row of `matrix`.

    A zero-norm query or row scores 0.0. Results are clipped to [-1, 1].
    """
    matrix = np.atleast_2d(np.asarray(matrix, dtype=np.float64))
    query = np.asarray(query, dtype=np.float64)

    denom = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
    dots = matrix @ query

    scores = np.zeros(matrix.shape[0], dtype=np.float64)
    nz = denom > 0
    scores[nz] = dots[nz] / denom[nz]
    return np.clip(scores, -1.0, 1.0)


__all__ = ["mean_vector", "cosine_similarity"]
