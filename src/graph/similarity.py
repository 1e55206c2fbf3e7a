"""Vector similarity primitives backed by numpy."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two vectors, in [-1, 1].

    A zero-norm vector has no direction, so its similarity to anything is 0.

    Raises:
        ValueError: If the vectors have different dimensions.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    if va.shape != vb.shape:
        raise ValueError(f"Vector dimension mismatch: {va.shape[0]} vs {vb.shape[0]}")

    denominator = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denominator == 0.0:
        return 0.0
    # Clip float noise so sim(a, a) never reads as 1.0000000002
    return float(np.clip(np.dot(va, vb) / denominator, -1.0, 1.0))


def _normalise_rows(matrix: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(matrix, axis=1, keepdims=True)
    safe = np.where(norms == 0.0, 1.0, norms)
    # Zero rows stay zero, so their dot products (and similarities) are 0
    return matrix / safe


def similarity_matrix(
    left: Sequence[Sequence[float]],
    right: Sequence[Sequence[float]],
) -> np.ndarray:
    """Pairwise cosine similarities, shape ``(len(left), len(right))``."""
    if len(left) == 0 or len(right) == 0:
        return np.zeros((len(left), len(right)))
    lm = _normalise_rows(np.asarray(left, dtype=np.float64))
    rm = _normalise_rows(np.asarray(right, dtype=np.float64))
    if lm.shape[1] != rm.shape[1]:
        raise ValueError(f"Vector dimension mismatch: {lm.shape[1]} vs {rm.shape[1]}")
    return np.clip(lm @ rm.T, -1.0, 1.0)


def centroid(vectors: Sequence[Sequence[float]]) -> list[float] | None:
    """Dimension-wise mean of *vectors*, or None when there are none."""
    if len(vectors) == 0:
        return None
    return np.asarray(vectors, dtype=np.float64).mean(axis=0).tolist()
