"""Vector store interface and implementations."""

import asyncio
import os
import tempfile
import time
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any
from uuid import UUID, uuid5

from pydantic import TypeAdapter, ValidationError
from qdrant_client import AsyncQdrantClient
from qdrant_client.models import (
    Distance,
    FieldCondition,
    Filter,
    FilterSelector,
    MatchValue,
    PayloadSchemaType,
    PointIdsList,
    PointStruct,
    VectorParams,
)

from changelog_index.config import QdrantSettings, get_settings
from changelog_index.exceptions import StoreUnavailableError, VectorStoreError
from changelog_index.logging_config import get_logger
from changelog_index.observability.metrics import track_vectorstore_operation
from changelog_index.vectorstore.models import (
    ChangelogMetadata,
    SearchResult,
    VectorRecord,
    check_vector,
)

logger = get_logger(__name__)

_RECORDS_ADAPTER = TypeAdapter(list[VectorRecord])


class VectorStore(ABC):
    """Abstract base class for vector record stores.

    A store holds at most one record per id and a single vector
    dimension. Writes are validated before anything is changed, so a
    rejected record never disturbs the record it would have replaced.
    """

    @property
    @abstractmethod
    def dimensions(self) -> int | None:
        """Established vector dimension, or None while the store is empty."""
        ...

    @abstractmethod
    async def upsert(self, record: VectorRecord) -> None:
        """Insert a record or fully replace the record with the same id.

        Raises:
            MalformedVectorError: If the vector has non-finite components.
            DimensionMismatchError: If the vector length differs from the store's.
            StoreUnavailableError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def get_all(self) -> list[VectorRecord]:
        """Return every current record in a stable order.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def delete_by_entity_id(self, changelog_id: int) -> None:
        """Delete the record of a changelog entry. Missing records are ignored.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def delete_by_id(self, record_id: str) -> None:
        """Delete a record by its own id. Missing records are ignored.

        Raises:
            StoreUnavailableError: If the backend cannot be reached.
        """
        ...

    @abstractmethod
    async def count(self) -> int:
        """Return the number of stored records."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Drop every record and forget the established dimension."""
        ...

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryVectorStore(VectorStore):
    """Embedded per-process store, optionally mirrored to a JSON file.

    Records keep their insertion order, which makes full scans (and the
    tie order of equal similarities) deterministic.
    """

    def __init__(
        self,
        dimensions: int | None = None,
        path: Path | None = None,
    ) -> None:
        """Initialize the in-memory store.

        Args:
            dimensions: Fixed vector dimension. Learned from the first
                record when not given.
            path: JSON file to load from and write through to.
        """
        self._configured_dimensions = dimensions
        self._dimensions = dimensions
        self._path = path
        self._records: dict[str, VectorRecord] = {}
        if path is not None and path.exists():
            self._load(path)

    @property
    def dimensions(self) -> int | None:
        """Established vector dimension."""
        return self._dimensions

    def _load(self, path: Path) -> None:
        try:
            loaded = _RECORDS_ADAPTER.validate_json(path.read_bytes())
        except (OSError, ValidationError) as e:
            raise StoreUnavailableError(
                f"Failed to load vector store file: {e}",
                details={"path": str(path)},
            ) from e

        for record in loaded:
            try:
                check_vector(record.vector, self._dimensions, record.id)
            except VectorStoreError as e:
                logger.warning(
                    f"Skipping invalid stored record: {e.message}",
                    extra={"record_id": record.id, "path": str(path)},
                )
                continue
            self._dimensions = self._dimensions or len(record.vector)
            self._records[record.id] = record

        logger.info(
            f"Loaded {len(self._records)} vector records",
            extra={"path": str(path)},
        )

    def _commit(self, records: dict[str, VectorRecord]) -> None:
        """Persist then publish a new record set."""
        if self._path is not None:
            data = _RECORDS_ADAPTER.dump_json(list(records.values()))
            directory = self._path.parent
            try:
                directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(dir=directory, suffix=".tmp")
                with os.fdopen(fd, "wb") as handle:
                    handle.write(data)
                os.replace(tmp_name, self._path)
            except OSError as e:
                raise StoreUnavailableError(
                    f"Failed to write vector store file: {e}",
                    details={"path": str(self._path)},
                ) from e
        self._records = records

    async def upsert(self, record: VectorRecord) -> None:
        """Validate and insert or replace a record."""
        check_vector(record.vector, self._dimensions, record.id)

        records = dict(self._records)
        records[record.id] = record
        self._commit(records)
        if self._dimensions is None:
            self._dimensions = len(record.vector)

        logger.debug("Upserted record", extra={"record_id": record.id})

    async def get_all(self) -> list[VectorRecord]:
        """Return all records in insertion order."""
        return list(self._records.values())

    async def delete_by_entity_id(self, changelog_id: int) -> None:
        """Delete records belonging to a changelog entry."""
        records = {
            record_id: record
            for record_id, record in self._records.items()
            if record.changelog_id != changelog_id
        }
        if len(records) != len(self._records):
            self._commit(records)
            logger.debug("Deleted record", extra={"changelog_id": changelog_id})

    async def delete_by_id(self, record_id: str) -> None:
        """Delete a record by id."""
        if record_id in self._records:
            records = dict(self._records)
            del records[record_id]
            self._commit(records)
            logger.debug("Deleted record", extra={"record_id": record_id})

    async def count(self) -> int:
        """Return the number of records."""
        return len(self._records)

    async def clear(self) -> None:
        """Drop all records."""
        self._commit({})
        self._dimensions = self._configured_dimensions


# Qdrant point ids must be UUIDs or integers; record ids map onto UUIDv5.
POINT_ID_NAMESPACE = UUID("5b0c5a3e-8f0e-4c8e-9a53-6c1f0d3f7a21")


def point_id_for(record_id: str) -> str:
    """Map a record id to its deterministic Qdrant point id."""
    return str(uuid5(POINT_ID_NAMESPACE, record_id))


class QdrantVectorStore(VectorStore):
    """Qdrant vector store implementation.

    The collection uses cosine distance and is created lazily with the
    dimension of the first record written. The record id and the
    embedded text travel in the point payload next to the metadata.
    """

    SCROLL_PAGE_SIZE = 256

    def __init__(
        self,
        settings: QdrantSettings | None = None,
        client: AsyncQdrantClient | None = None,
        dimensions: int | None = None,
    ) -> None:
        """Initialize Qdrant vector store.

        Args:
            settings: Qdrant configuration.
            client: Existing client (for testing).
            dimensions: Vector dimension for a collection created by this store.
        """
        self._settings = settings or get_settings().qdrant
        self._client = client
        self._owns_client = client is None
        self._configured_dimensions = dimensions
        self._dimensions = dimensions
        self._collection_ready = False
        self._collection_lock = asyncio.Lock()

    @property
    def collection(self) -> str:
        """Name of the backing collection."""
        return self._settings.collection_name

    @property
    def dimensions(self) -> int | None:
        """Established vector dimension."""
        return self._dimensions

    async def _get_client(self) -> AsyncQdrantClient:
        """Get or create Qdrant client."""
        if self._client is None:
            api_key = None
            if self._settings.api_key:
                api_key = self._settings.api_key.get_secret_value()

            self._client = AsyncQdrantClient(
                url=self._settings.url,
                api_key=api_key,
            )
        return self._client

    async def close(self) -> None:
        """Close the Qdrant client."""
        if self._owns_client and self._client is not None:
            await self._client.close()
            self._client = None

    @asynccontextmanager
    async def _operation(self, name: str) -> AsyncIterator[AsyncQdrantClient]:
        """Time a store operation and wrap client failures."""
        client = await self._get_client()
        start = time.perf_counter()
        try:
            yield client
        except VectorStoreError:
            track_vectorstore_operation(name, time.perf_counter() - start, success=False)
            raise
        except Exception as e:
            track_vectorstore_operation(name, time.perf_counter() - start, success=False)
            logger.error(
                f"Vector store {name} failed: {e}",
                extra={"collection": self.collection},
            )
            raise StoreUnavailableError(
                f"Failed to {name}: {e}",
                details={"collection": self.collection, "error": str(e)},
            ) from e
        else:
            track_vectorstore_operation(name, time.perf_counter() - start)

    async def _collection_exists(self, client: AsyncQdrantClient) -> bool:
        if self._collection_ready:
            return True
        if not await client.collection_exists(self.collection):
            return False

        info = await client.get_collection(self.collection)
        vectors = info.config.params.vectors
        if isinstance(vectors, VectorParams):
            self._dimensions = vectors.size
        self._collection_ready = True
        return True

    async def _ensure_collection(self, client: AsyncQdrantClient, dimensions: int) -> None:
        # Concurrent first writes must not race to create the collection
        async with self._collection_lock:
            if await self._collection_exists(client):
                return

            size = self._configured_dimensions or dimensions
            await client.create_collection(
                collection_name=self.collection,
                vectors_config=VectorParams(size=size, distance=Distance.COSINE),
            )
            await client.create_payload_index(
                collection_name=self.collection,
                field_name="changelog_id",
                field_schema=PayloadSchemaType.INTEGER,
            )
            self._dimensions = size
            self._collection_ready = True
            logger.info(f"Created collection: {self.collection}", extra={"dimensions": size})

    def _to_record(self, payload: dict[str, Any], vector: Any) -> VectorRecord | None:
        try:
            data = dict(payload)
            return VectorRecord(
                id=data.pop("record_id"),
                content=data.pop("content"),
                vector=list(vector or []),
                metadata=ChangelogMetadata.model_validate(data),
            )
        except (KeyError, TypeError, ValidationError) as e:
            logger.warning(
                f"Skipping unreadable point: {e}",
                extra={"collection": self.collection},
            )
            return None

    async def upsert(self, record: VectorRecord) -> None:
        """Validate and upsert one record."""
        check_vector(record.vector, None, record.id)

        async with self._operation("upsert") as client:
            await self._ensure_collection(client, len(record.vector))
            check_vector(record.vector, self._dimensions, record.id)

            payload = {
                "record_id": record.id,
                "content": record.content,
                **record.metadata.to_payload(),
            }
            await client.upsert(
                collection_name=self.collection,
                points=[
                    PointStruct(
                        id=point_id_for(record.id),
                        vector=record.vector,
                        payload=payload,
                    )
                ],
                wait=True,
            )

        logger.debug("Upserted record", extra={"record_id": record.id})

    async def get_all(self) -> list[VectorRecord]:
        """Scroll through every point in the collection."""
        records: list[VectorRecord] = []

        async with self._operation("scroll") as client:
            if not await self._collection_exists(client):
                return []

            offset = None
            while True:
                points, offset = await client.scroll(
                    collection_name=self.collection,
                    limit=self.SCROLL_PAGE_SIZE,
                    offset=offset,
                    with_payload=True,
                    with_vectors=True,
                )
                for point in points:
                    record = self._to_record(point.payload or {}, point.vector)
                    if record is not None:
                        records.append(record)
                if offset is None:
                    break

        return records

    async def query(
        self,
        vector: list[float],
        limit: int,
        threshold: float,
    ) -> list[SearchResult]:
        """Rank records server-side by cosine similarity.

        Args:
            vector: Query vector.
            limit: Maximum results to return.
            threshold: Minimum similarity requested from the server.

        Returns:
            Scored records as returned by Qdrant.
        """
        results: list[SearchResult] = []

        async with self._operation("query") as client:
            if not await self._collection_exists(client):
                return []

            response = await client.query_points(
                collection_name=self.collection,
                query=vector,
                limit=limit,
                score_threshold=threshold,
                with_payload=True,
                with_vectors=True,
            )
            for point in response.points:
                record = self._to_record(point.payload or {}, point.vector)
                if record is not None:
                    score = point.score if point.score is not None else 0.0
                    results.append(SearchResult.from_record(record, score))

        return results

    async def delete_by_entity_id(self, changelog_id: int) -> None:
        """Delete the points of a changelog entry by payload filter."""
        async with self._operation("delete") as client:
            if not await self._collection_exists(client):
                return
            await client.delete(
                collection_name=self.collection,
                points_selector=FilterSelector(
                    filter=Filter(
                        must=[
                            FieldCondition(
                                key="changelog_id",
                                match=MatchValue(value=changelog_id),
                            )
                        ]
                    )
                ),
                wait=True,
            )

        logger.debug("Deleted record", extra={"changelog_id": changelog_id})

    async def delete_by_id(self, record_id: str) -> None:
        """Delete a point by record id."""
        async with self._operation("delete") as client:
            if not await self._collection_exists(client):
                return
            await client.delete(
                collection_name=self.collection,
                points_selector=PointIdsList(points=[point_id_for(record_id)]),
                wait=True,
            )

        logger.debug("Deleted record", extra={"record_id": record_id})

    async def count(self) -> int:
        """Count points exactly."""
        async with self._operation("count") as client:
            if not await self._collection_exists(client):
                return 0
            result = await client.count(collection_name=self.collection, exact=True)
            return result.count

    async def clear(self) -> None:
        """Drop the collection; the next upsert recreates it."""
        async with self._operation("clear") as client:
            if await client.collection_exists(self.collection):
                await client.delete_collection(self.collection)
                logger.info(f"Deleted collection: {self.collection}")

        self._collection_ready = False
        self._dimensions = self._configured_dimensions
