"""Vector store module."""

from changelog_index.vectorstore.models import (
    ChangelogMetadata,
    SearchResult,
    VectorRecord,
    check_vector,
    record_id_for,
)
from changelog_index.vectorstore.service import (
    InMemoryVectorStore,
    QdrantVectorStore,
    VectorStore,
)

__all__ = [
    "ChangelogMetadata",
    "InMemoryVectorStore",
    "QdrantVectorStore",
    "SearchResult",
    "VectorRecord",
    "VectorStore",
    "check_vector",
    "record_id_for",
]
