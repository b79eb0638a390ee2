"""Observability module for metrics and monitoring."""

from changelog_index.observability.metrics import (
    MetricsMiddleware,
    get_metrics,
    set_indexed_records,
    track_embedding_request,
    track_index_operation,
    track_ranker_fallback,
    track_search,
    track_vectorstore_operation,
)

__all__ = [
    "MetricsMiddleware",
    "get_metrics",
    "set_indexed_records",
    "track_embedding_request",
    "track_index_operation",
    "track_ranker_fallback",
    "track_search",
    "track_vectorstore_operation",
]
