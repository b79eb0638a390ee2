"""Vector store data models."""

import math
from collections.abc import Sequence
from datetime import datetime
from typing import Any, ClassVar

from pydantic import BaseModel, Field

from changelog_index.changelogs.models import ChangelogEntry
from changelog_index.exceptions import DimensionMismatchError, MalformedVectorError

RECORD_ID_PREFIX = "changelog_"


def record_id_for(changelog_id: int) -> str:
    """Derive the vector record id for a changelog primary key."""
    return f"{RECORD_ID_PREFIX}{changelog_id}"


class ChangelogMetadata(BaseModel):
    """Denormalized changelog attributes stored beside each vector.

    Attributes:
        schema_version: Layout version of this metadata.
        changelog_id: Source primary key.
        version: Version label.
        created_at: Source row creation time.
        product: Optional product tag.
    """

    SCHEMA_VERSION: ClassVar[int] = 1
    OPTIONAL_FIELDS: ClassVar[tuple[str, ...]] = ("product",)

    schema_version: int = Field(default=SCHEMA_VERSION, description="Metadata layout version")
    changelog_id: int = Field(description="Source primary key")
    version: str = Field(description="Version label")
    created_at: datetime = Field(description="Source row creation time")
    product: str | None = Field(default=None, description="Optional product tag")

    def to_payload(self) -> dict[str, Any]:
        """Flatten to a JSON-compatible payload, dropping unset optionals."""
        payload = self.model_dump(mode="json")
        for name in self.OPTIONAL_FIELDS:
            if payload.get(name) is None:
                payload.pop(name, None)
        return payload


class VectorRecord(BaseModel):
    """A changelog embedding stored in the vector database.

    Attributes:
        id: Deterministic record id (``changelog_<pk>``).
        content: The exact text that was embedded.
        vector: The embedding vector.
        metadata: Denormalized changelog attributes.
    """

    id: str = Field(description="Unique record identifier")
    content: str = Field(description="Embedded text")
    vector: list[float] = Field(description="Embedding vector")
    metadata: ChangelogMetadata = Field(description="Changelog attributes")

    @property
    def changelog_id(self) -> int:
        """Source primary key of the record."""
        return self.metadata.changelog_id

    @classmethod
    def from_changelog(
        cls,
        entry: ChangelogEntry,
        content: str,
        vector: list[float],
    ) -> "VectorRecord":
        """Build the record for a changelog entry.

        Args:
            entry: Source changelog entry.
            content: Searchable text that was embedded.
            vector: Embedding of ``content``.

        Returns:
            New VectorRecord keyed by the entry id.
        """
        return cls(
            id=record_id_for(entry.id),
            content=content,
            vector=vector,
            metadata=ChangelogMetadata(
                changelog_id=entry.id,
                version=entry.version,
                created_at=entry.created_at,
                product=entry.product or None,
            ),
        )


class SearchResult(VectorRecord):
    """A vector record scored against a query.

    Attributes:
        similarity: Cosine similarity to the query vector.
    """

    similarity: float = Field(description="Cosine similarity to the query")

    @classmethod
    def from_record(cls, record: VectorRecord, similarity: float) -> "SearchResult":
        """Attach a similarity score to a record."""
        return cls(
            id=record.id,
            content=record.content,
            vector=record.vector,
            metadata=record.metadata,
            similarity=similarity,
        )


def check_vector(vector: Sequence[float], dimensions: int | None, record_id: str = "") -> None:
    """Validate a vector before it is persisted.

    Args:
        vector: Vector to check.
        dimensions: Established store dimension, or None if not yet fixed.
        record_id: Record id for error details.

    Raises:
        MalformedVectorError: If the vector is empty or has non-finite components.
        DimensionMismatchError: If the length differs from ``dimensions``.
    """
    if not vector:
        raise MalformedVectorError(
            "Vector is empty",
            details={"id": record_id},
        )
    if not all(math.isfinite(v) for v in vector):
        raise MalformedVectorError(
            "Vector contains NaN or infinite components",
            details={"id": record_id},
        )
    if dimensions is not None and len(vector) != dimensions:
        raise DimensionMismatchError(
            f"Vector has {len(vector)} dimensions, store expects {dimensions}",
            details={"id": record_id, "expected": dimensions, "received": len(vector)},
        )
