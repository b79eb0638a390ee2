"""Cosine similarity and linear-scan ranking.

The corpus is a few thousand changelogs at most, so a full scan in
pure Python is fast enough and keeps ranking exactly reproducible.
"""

import math
from collections.abc import Iterable, Sequence

from changelog_index.logging_config import get_logger
from changelog_index.vectorstore.models import SearchResult, VectorRecord

logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Compute cosine similarity between two vectors.

    Degenerate inputs score 0 instead of producing NaN or infinity:
    vectors of different length, empty vectors, zero vectors, and
    vectors with any non-finite component.

    Args:
        a: First vector.
        b: Second vector.

    Returns:
        Similarity in [-1, 1].
    """
    if len(a) != len(b) or not a:
        return 0.0

    dot = 0.0
    norm_a = 0.0
    norm_b = 0.0
    for x, y in zip(a, b):
        if not (math.isfinite(x) and math.isfinite(y)):
            return 0.0
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0

    similarity = dot / (math.sqrt(norm_a) * math.sqrt(norm_b))
    if not math.isfinite(similarity):
        return 0.0
    # Rounding can push identical vectors marginally past 1
    return max(-1.0, min(1.0, similarity))


def select_top(
    results: Iterable[SearchResult],
    limit: int,
    threshold: float,
) -> list[SearchResult]:
    """Filter, order and truncate scored results.

    Keeps results whose similarity is finite and strictly above
    ``threshold``, sorts them by similarity descending (stable, so
    ties keep their input order) and returns at most ``limit``.
    """
    if limit <= 0:
        return []

    kept = [
        result
        for result in results
        if math.isfinite(result.similarity) and result.similarity > threshold
    ]
    kept.sort(key=lambda result: result.similarity, reverse=True)
    return kept[:limit]


def rank(
    query: Sequence[float],
    records: Iterable[VectorRecord],
    limit: int,
    threshold: float,
) -> list[SearchResult]:
    """Score every record against ``query`` and return the best matches.

    Records whose dimension differs from the query are excluded and
    logged as data-integrity anomalies; records with non-finite
    components score 0.

    Args:
        query: Query vector.
        records: Candidate records in scan order.
        limit: Maximum number of results.
        threshold: Results must score strictly above this value.

    Returns:
        Results ordered by similarity descending.
    """
    scored: list[SearchResult] = []
    for record in records:
        if len(record.vector) != len(query):
            logger.warning(
                "Excluding record with mismatched dimension",
                extra={
                    "record_id": record.id,
                    "expected": len(query),
                    "received": len(record.vector),
                },
            )
            continue
        if not all(math.isfinite(v) for v in record.vector):
            logger.warning(
                "Record has non-finite components",
                extra={"record_id": record.id},
            )
        similarity = cosine_similarity(query, record.vector)
        scored.append(SearchResult.from_record(record, similarity))

    return select_top(scored, limit, threshold)
