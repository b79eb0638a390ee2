"""Similarity search module."""

from changelog_index.search.ranker import (
    FallbackRanker,
    QdrantRanker,
    Ranker,
    ScanRanker,
    build_ranker,
)
from changelog_index.search.similarity import cosine_similarity, rank, select_top

__all__ = [
    "FallbackRanker",
    "QdrantRanker",
    "Ranker",
    "ScanRanker",
    "build_ranker",
    "cosine_similarity",
    "rank",
    "select_top",
]
