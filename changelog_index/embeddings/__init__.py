"""Embedding service module."""

from changelog_index.embeddings.models import EmbeddingResult
from changelog_index.embeddings.service import EmbeddingService, HTTPEmbeddingService

__all__ = [
    "EmbeddingResult",
    "EmbeddingService",
    "HTTPEmbeddingService",
]
