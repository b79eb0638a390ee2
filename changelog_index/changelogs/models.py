"""Changelog entity and change-notification models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, ValidationError, model_validator

from changelog_index.exceptions import ErrorCode, SourceUnavailableError


class ChangelogEntry(BaseModel):
    """A changelog row as read from the source-of-truth table.

    Attributes:
        id: Primary key of the row.
        version: Version label, e.g. ``"2.4.0"``.
        content: Changelog body (markdown).
        product: Optional product tag.
        created_at: Creation timestamp of the row.
    """

    id: int = Field(description="Source primary key")
    version: str = Field(description="Version label")
    content: str = Field(description="Changelog body")
    product: str | None = Field(default=None, description="Optional product tag")
    created_at: datetime = Field(description="Row creation timestamp")


class ChangeKind(str, Enum):
    """Kind of row-level change on the source table."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


# Row-level webhook event types as emitted by the database
_WEBHOOK_KINDS = {
    "INSERT": ChangeKind.CREATED,
    "UPDATE": ChangeKind.UPDATED,
    "DELETE": ChangeKind.DELETED,
}


class ChangeEvent(BaseModel):
    """A single change notification for one changelog entry.

    Created and updated events carry the new entity state; deleted
    events only need the id.
    """

    kind: ChangeKind = Field(description="What happened to the entity")
    entity_id: int = Field(description="Source primary key")
    entity: ChangelogEntry | None = Field(
        default=None,
        description="New entity state (absent for deletes)",
    )

    @model_validator(mode="after")
    def _check_entity(self) -> "ChangeEvent":
        if self.kind != ChangeKind.DELETED:
            if self.entity is None:
                raise ValueError(f"{self.kind.value} event requires the entity")
            if self.entity.id != self.entity_id:
                raise ValueError(
                    f"entity_id ({self.entity_id}) does not match "
                    f"entity.id ({self.entity.id})"
                )
        return self

    @classmethod
    def created(cls, entry: ChangelogEntry) -> "ChangeEvent":
        """Build a created event for an entry."""
        return cls(kind=ChangeKind.CREATED, entity_id=entry.id, entity=entry)

    @classmethod
    def updated(cls, entry: ChangelogEntry) -> "ChangeEvent":
        """Build an updated event for an entry."""
        return cls(kind=ChangeKind.UPDATED, entity_id=entry.id, entity=entry)

    @classmethod
    def deleted(cls, entity_id: int) -> "ChangeEvent":
        """Build a deleted event for an entry id."""
        return cls(kind=ChangeKind.DELETED, entity_id=entity_id)

    @classmethod
    def from_webhook(cls, payload: dict[str, Any]) -> "ChangeEvent":
        """Parse a row-level database webhook payload.

        Expected shape::

            {"type": "INSERT" | "UPDATE" | "DELETE",
             "table": "changelogs",
             "record": {...} | None,
             "old_record": {...} | None}

        Args:
            payload: Decoded webhook body.

        Returns:
            The corresponding ChangeEvent.

        Raises:
            SourceUnavailableError: If the payload cannot be interpreted.
        """
        event_type = str(payload.get("type", "")).upper()
        kind = _WEBHOOK_KINDS.get(event_type)
        if kind is None:
            raise SourceUnavailableError(
                f"Unsupported change event type: {event_type or '<missing>'}",
                code=ErrorCode.SOURCE_PARSE_ERROR,
                details={"type": event_type},
            )

        try:
            if kind == ChangeKind.DELETED:
                old = payload.get("old_record") or {}
                return cls.deleted(int(old["id"]))
            entry = ChangelogEntry.model_validate(payload.get("record") or {})
        except (KeyError, TypeError, ValueError, ValidationError) as e:
            raise SourceUnavailableError(
                f"Malformed {event_type} change event: {e}",
                code=ErrorCode.SOURCE_PARSE_ERROR,
                details={"type": event_type},
            ) from e

        return cls(kind=kind, entity_id=entry.id, entity=entry)
