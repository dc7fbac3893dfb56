"""Brute-force cosine similarity over the in-memory records."""

from __future__ import annotations

from typing import TYPE_CHECKING

import numpy as np

from noteindex.search.types import SearchResult

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from noteindex.search.types import EmbeddingRecord

EXCERPT_LENGTH = 500


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return the cosine similarity of *a* and *b*.

    Vectors of different lengths, and zero vectors, score 0.
    """
    if len(a) != len(b):
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    norm = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if norm == 0.0:
        return 0.0
    return float(np.dot(va, vb) / norm)


def rank(
    query: Sequence[float],
    records: Iterable[EmbeddingRecord],
    *,
    top_k: int,
    min_similarity: float,
) -> list[SearchResult]:
    """Score every record against *query* and return the best *top_k*.

    Only scores strictly above *min_similarity* are kept.  Ties keep the
    iteration order of *records*.
    """
    results: list[SearchResult] = []
    for record in records:
        similarity = cosine_similarity(query, record.vector)
        if similarity > min_similarity:
            results.append(
                SearchResult(
                    key=record.key,
                    document=record.document,
                    content=record.content[:EXCERPT_LENGTH],
                    similarity=similarity,
                    section_name=record.section_name,
                )
            )

    results.sort(key=lambda r: r.similarity, reverse=True)
    return results[: max(top_k, 0)]
