"""Ranking strategies.

A Ranker turns a query vector into ordered SearchResults. The client-side
ScanRanker works against any store and is always available; QdrantRanker
delegates scoring to the server. FallbackRanker pairs a preferred tier
with a guaranteed one, and both tiers apply the same threshold, ordering
and limit rules.
"""

from abc import ABC, abstractmethod

from changelog_index.exceptions import VectorStoreError
from changelog_index.logging_config import get_logger
from changelog_index.observability.metrics import track_ranker_fallback
from changelog_index.search.similarity import rank, select_top
from changelog_index.vectorstore.models import SearchResult
from changelog_index.vectorstore.service import QdrantVectorStore, VectorStore

logger = get_logger(__name__)


class Ranker(ABC):
    """Abstract ranking strategy."""

    name: str = "ranker"

    @abstractmethod
    async def rank(
        self,
        query: list[float],
        limit: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Rank stored records against a query vector.

        Args:
            query: Query vector.
            limit: Maximum results to return.
            threshold: Results must score strictly above this value.

        Returns:
            Results ordered by similarity descending.

        Raises:
            VectorStoreError: If the store cannot be read.
        """
        ...


class ScanRanker(Ranker):
    """Client-side linear scan over every stored record."""

    name = "scan"

    def __init__(self, store: VectorStore) -> None:
        self._store = store

    async def rank(
        self,
        query: list[float],
        limit: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Score the store's current snapshot."""
        records = await self._store.get_all()
        return rank(query, records, limit, threshold)


class QdrantRanker(Ranker):
    """Server-side cosine ranking through Qdrant."""

    name = "qdrant"

    def __init__(self, store: QdrantVectorStore) -> None:
        self._store = store

    async def rank(
        self,
        query: list[float],
        limit: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Query Qdrant, then apply the client-side result rules."""
        if limit <= 0:
            return []
        results = await self._store.query(query, limit=limit, threshold=threshold)
        # The server threshold is inclusive; results must be strictly above it
        return select_top(results, limit, threshold)


class FallbackRanker(Ranker):
    """Use a preferred ranker, falling back when its store call fails."""

    name = "fallback"

    def __init__(self, preferred: Ranker, fallback: Ranker) -> None:
        self._preferred = preferred
        self._fallback = fallback

    async def rank(
        self,
        query: list[float],
        limit: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Rank with the preferred tier, or the fallback tier on failure."""
        try:
            return await self._preferred.rank(query, limit, threshold)
        except VectorStoreError as e:
            logger.warning(
                f"{self._preferred.name} ranking failed, using {self._fallback.name}: "
                f"{e.message}",
                extra={"error_code": e.code.value},
            )
            track_ranker_fallback()
            return await self._fallback.rank(query, limit, threshold)


def build_ranker(store: VectorStore, server_side: bool = True) -> Ranker:
    """Pick the ranking tiers a store supports.

    Args:
        store: Vector store to rank against.
        server_side: Whether to prefer server-side ranking when available.

    Returns:
        A Ranker whose last tier is always the client-side scan.
    """
    scan = ScanRanker(store)
    if server_side and isinstance(store, QdrantVectorStore):
        return FallbackRanker(preferred=QdrantRanker(store), fallback=scan)
    return scan
