"""Cosine similarity and brute-force vector ranking.

Usage:
    from evidence_engine.core.similarity import cosine_similarity, rank_by_similarity

    ranked = rank_by_similarity(query_vec, [("a", vec_a), ("b", vec_b)], min_similarity=0.3, top_k=10)
"""

from collections.abc import Iterable, Sequence
from typing import TypeVar

import numpy as np

from evidence_engine.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """
    Cosine similarity of two vectors.

    Symmetric, exactly 1.0 for identical non-zero vectors, 0.0 when either
    vector is all zeros or the dimensions differ.
    """
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)

    if va.shape != vb.shape:
        logger.warning(f"Vector dimension mismatch: {va.shape} vs {vb.shape}")
        return 0.0

    norm_product_sq = float(np.dot(va, va)) * float(np.dot(vb, vb))
    if norm_product_sq == 0.0:
        return 0.0
    if np.array_equal(va, vb):
        return 1.0

    similarity = float(np.dot(va, vb)) / float(np.sqrt(norm_product_sq))
    return max(-1.0, min(1.0, similarity))


def rank_by_similarity(
    query: Sequence[float],
    candidates: Iterable[tuple[T, Sequence[float]]],
    min_similarity: float = 0.3,
    top_k: int | None = None,
) -> list[tuple[T, float]]:
    """
    Score candidates against a query vector.

    Args:
        query: Query vector
        candidates: (item, vector) pairs
        min_similarity: Similarity floor (inclusive)
        top_k: Max results, None for all

    Returns:
        (item, similarity) pairs, most similar first
    """
    scored = []
    for item, vector in candidates:
        similarity = cosine_similarity(query, vector)
        if similarity >= min_similarity:
            scored.append((item, similarity))

    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored if top_k is None else scored[:top_k]
