"""Embedding lifecycle coordinator.

Keeps the vector store in step with the changelog table and answers
similarity queries on top of it.
"""

import asyncio
import time
from collections.abc import AsyncIterable, AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field

from changelog_index.changelogs.models import ChangeEvent, ChangeKind, ChangelogEntry
from changelog_index.changelogs.source import ChangelogSource, RESTChangelogSource
from changelog_index.changelogs.text import build_searchable_text
from changelog_index.config import (
    IndexingSettings,
    SearchSettings,
    Settings,
    VectorBackend,
    get_settings,
)
from changelog_index.embeddings.service import EmbeddingService, HTTPEmbeddingService
from changelog_index.exceptions import (
    ChangelogIndexError,
    EmbeddingUnavailableError,
    InvalidInputError,
    VectorStoreError,
)
from changelog_index.indexing.models import IndexSummary
from changelog_index.logging_config import get_logger
from changelog_index.observability.metrics import (
    set_indexed_records,
    track_index_operation,
    track_search,
)
from changelog_index.search.ranker import Ranker, build_ranker
from changelog_index.vectorstore.models import SearchResult, VectorRecord
from changelog_index.vectorstore.service import (
    InMemoryVectorStore,
    QdrantVectorStore,
    VectorStore,
)

logger = get_logger(__name__)


@dataclass
class _EntityLock:
    """Lock for one changelog id and the number of tasks holding or awaiting it."""

    lock: asyncio.Lock = field(default_factory=asyncio.Lock)
    users: int = 0


class ChangelogIndex:
    """Semantic index over changelog entries.

    Writes for the same changelog id are serialized, so an update that
    arrives after a create is applied after it. Incremental writes and
    bulk re-index never overlap: a re-index waits for in-flight writes
    to finish, and writes arriving during a re-index are applied after it.
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        store: VectorStore,
        source: ChangelogSource,
        ranker: Ranker | None = None,
        search_settings: SearchSettings | None = None,
        indexing_settings: IndexingSettings | None = None,
    ) -> None:
        """Initialize the index.

        Args:
            embedding_service: Generator for query and entry vectors.
            store: Vector record store.
            source: Changelog table used for bulk re-index.
            ranker: Ranking strategy. Chosen from the store when not given.
            search_settings: Search defaults.
            indexing_settings: Bulk re-index tuning.
        """
        self._embedding_service = embedding_service
        self._store = store
        self._source = source
        self._search = search_settings or get_settings().search
        self._indexing = indexing_settings or get_settings().indexing
        self._ranker = ranker or build_ranker(store, server_side=self._search.server_side)
        self._entity_locks: dict[int, _EntityLock] = {}
        self._reindex_lock = asyncio.Lock()
        self._sync = asyncio.Condition()
        self._rebuilding = False
        self._active_writes = 0

    @property
    def store(self) -> VectorStore:
        """The underlying vector store."""
        return self._store

    @asynccontextmanager
    async def _entity_lock(self, changelog_id: int) -> AsyncIterator[None]:
        """Hold the write lock of one changelog id."""
        entry = self._entity_locks.get(changelog_id)
        if entry is None:
            entry = self._entity_locks[changelog_id] = _EntityLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._entity_locks[changelog_id]

    @asynccontextmanager
    async def _incremental_write(self) -> AsyncIterator[None]:
        """Admit an incremental write once no re-index is running."""
        async with self._sync:
            await self._sync.wait_for(lambda: not self._rebuilding)
            self._active_writes += 1
        try:
            yield
        finally:
            async with self._sync:
                self._active_writes -= 1
                self._sync.notify_all()

    @asynccontextmanager
    async def _exclusive_rebuild(self) -> AsyncIterator[None]:
        """Block new incremental writes and wait for in-flight ones to drain."""
        async with self._reindex_lock:
            async with self._sync:
                self._rebuilding = True
                await self._sync.wait_for(lambda: self._active_writes == 0)
            try:
                yield
            finally:
                async with self._sync:
                    self._rebuilding = False
                    self._sync.notify_all()

    async def search_similar(
        self,
        query: str,
        limit: int | None = None,
        threshold: float | None = None,
    ) -> list[SearchResult]:
        """Find indexed changelogs similar to free text.

        A failed embedding or store read degrades to an empty result so
        callers can carry on without context.

        Args:
            query: Free text, e.g. commit messages.
            limit: Maximum results (configured default when omitted, capped
                at the configured maximum).
            threshold: Minimum similarity, exclusive (configured default when omitted).

        Returns:
            Results ordered by similarity descending.
        """
        limit = self._search.default_limit if limit is None else limit
        limit = min(limit, self._search.max_limit)
        threshold = self._search.threshold if threshold is None else threshold

        if not query or not query.strip():
            return []

        start = time.perf_counter()
        try:
            embedding = await self._embedding_service.embed(query)
            results = await self._ranker.rank(embedding.embedding, limit, threshold)
        except (EmbeddingUnavailableError, VectorStoreError) as e:
            logger.warning(
                f"Similarity search unavailable, returning no results: {e.message}",
                extra={"error_code": e.code.value, "query_length": len(query)},
            )
            track_search(time.perf_counter() - start, 0, 0.0, success=False)
            return []

        top_score = results[0].similarity if results else 0.0
        track_search(time.perf_counter() - start, len(results), top_score)
        logger.debug(
            f"Found {len(results)} similar changelogs",
            extra={"limit": limit, "threshold": threshold, "top_score": top_score},
        )
        return results

    async def index_entity(self, entry: ChangelogEntry) -> VectorRecord:
        """Embed an entry and store its record, replacing any previous one.

        Args:
            entry: Changelog entry to index.

        Returns:
            The stored record.

        Raises:
            InvalidInputError: If the entry has no searchable text.
            EmbeddingUnavailableError: If embedding fails.
            VectorStoreError: If the record is rejected or cannot be written.
        """
        async with self._incremental_write():
            return await self._index_entity(entry)

    async def _index_entity(self, entry: ChangelogEntry) -> VectorRecord:
        async with self._entity_lock(entry.id):
            try:
                record = await self._build_record(entry)
                await self._store.upsert(record)
            except ChangelogIndexError:
                track_index_operation("index", success=False)
                raise

        track_index_operation("index")
        logger.info("Indexed changelog", extra={"changelog_id": entry.id})
        return record

    async def _build_record(self, entry: ChangelogEntry) -> VectorRecord:
        text = build_searchable_text(entry)
        embedding = await self._embedding_service.embed(text)
        return VectorRecord.from_changelog(entry, text, embedding.embedding)

    async def remove_entity(self, changelog_id: int) -> None:
        """Delete the record of a changelog entry, if any.

        Raises:
            VectorStoreError: If the store cannot be written.
        """
        async with self._incremental_write():
            async with self._entity_lock(changelog_id):
                try:
                    await self._store.delete_by_entity_id(changelog_id)
                except ChangelogIndexError:
                    track_index_operation("remove", success=False)
                    raise

        track_index_operation("remove")
        logger.info("Removed changelog from index", extra={"changelog_id": changelog_id})

    async def count(self) -> int:
        """Return the number of indexed records."""
        total = await self._store.count()
        set_indexed_records(total)
        return total

    async def handle_event(self, event: ChangeEvent) -> None:
        """Apply one change notification from the changelog table.

        Raises:
            InvalidInputError: If a create or update carries no entry.
            ChangelogIndexError: If the change could not be applied.
        """
        logger.debug(
            f"Handling {event.kind.value} event",
            extra={"changelog_id": event.entity_id},
        )
        if event.kind == ChangeKind.DELETED:
            await self.remove_entity(event.entity_id)
            return

        if event.entity is None:
            raise InvalidInputError(
                f"{event.kind.value} event has no changelog entry",
                details={"changelog_id": event.entity_id},
            )
        # Record ids are stable across updates, so an upsert replaces in place
        await self.index_entity(event.entity)

    async def consume(self, events: AsyncIterable[ChangeEvent]) -> None:
        """Apply a stream of change notifications until it ends.

        A failed event is logged and the stream continues.
        """
        async for event in events:
            try:
                await self.handle_event(event)
            except ChangelogIndexError as e:
                logger.error(
                    f"Failed to apply {event.kind.value} event: {e.message}",
                    extra={"changelog_id": event.entity_id, "error_code": e.code.value},
                )

    async def index_all(self) -> IndexSummary:
        """Drop the index and rebuild it from the changelog table.

        Entries are embedded in small concurrent batches with a pause in
        between. An entry that fails is logged and skipped. Incremental
        writes already running finish first; those arriving meanwhile
        wait and are applied on top of the rebuilt index.

        Returns:
            Counts of indexed and skipped entries.

        Raises:
            SourceUnavailableError: If the changelog table cannot be read.
            VectorStoreError: If the store cannot be cleared.
        """
        async with self._exclusive_rebuild():
            start = time.perf_counter()
            entries = await self._source.list_all()
            logger.info(f"Re-indexing {len(entries)} changelogs")

            await self._store.clear()

            succeeded = 0
            failed_ids: list[int] = []
            batch_size = self._indexing.batch_size

            for i in range(0, len(entries), batch_size):
                if i > 0 and self._indexing.batch_delay > 0:
                    await asyncio.sleep(self._indexing.batch_delay)

                batch = entries[i : i + batch_size]
                outcomes = await asyncio.gather(
                    *(self._index_entity(entry) for entry in batch),
                    return_exceptions=True,
                )
                for entry, outcome in zip(batch, outcomes, strict=True):
                    if isinstance(outcome, ChangelogIndexError):
                        failed_ids.append(entry.id)
                        logger.warning(
                            f"Skipping changelog during re-index: {outcome.message}",
                            extra={"changelog_id": entry.id, "error_code": outcome.code.value},
                        )
                    elif isinstance(outcome, BaseException):
                        raise outcome
                    else:
                        succeeded += 1

            summary = IndexSummary(
                total=len(entries),
                succeeded=succeeded,
                failed=len(failed_ids),
                failed_ids=failed_ids,
                duration_seconds=time.perf_counter() - start,
            )

        track_index_operation("reindex", success=summary.ok)
        set_indexed_records(succeeded)
        logger.info(
            "Re-index completed",
            extra={
                "total": summary.total,
                "succeeded": summary.succeeded,
                "failed": summary.failed,
            },
        )
        return summary

    async def close(self) -> None:
        """Close all collaborators."""
        await self._embedding_service.close()
        await self._store.close()
        await self._source.close()


def build_changelog_index(
    settings: Settings | None = None,
    source: ChangelogSource | None = None,
) -> ChangelogIndex:
    """Wire a ChangelogIndex from configuration.

    Args:
        settings: Application settings (cached settings when omitted).
        source: Changelog source overriding the configured REST table.

    Returns:
        A ChangelogIndex using the configured backends.
    """
    settings = settings or get_settings()

    store: VectorStore
    if settings.vector_backend == VectorBackend.QDRANT:
        store = QdrantVectorStore(settings.qdrant, dimensions=settings.embedding.dimensions)
    else:
        store = InMemoryVectorStore(
            dimensions=settings.embedding.dimensions,
            path=settings.indexing.store_path,
        )

    return ChangelogIndex(
        embedding_service=HTTPEmbeddingService(settings.embedding),
        store=store,
        source=source or RESTChangelogSource(settings.source),
        search_settings=settings.search,
        indexing_settings=settings.indexing,
    )
