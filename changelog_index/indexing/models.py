"""Indexing data models."""

from pydantic import BaseModel, Field


class IndexSummary(BaseModel):
    """Outcome of a bulk re-index.

    Attributes:
        total: Entries read from the source.
        succeeded: Entries embedded and stored.
        failed: Entries skipped after an error.
        failed_ids: Source ids of the skipped entries.
        duration_seconds: Wall time of the whole run.
    """

    total: int = Field(description="Entries read from the source")
    succeeded: int = Field(description="Entries indexed")
    failed: int = Field(description="Entries skipped after an error")
    failed_ids: list[int] = Field(default_factory=list, description="Skipped entry ids")
    duration_seconds: float = Field(default=0.0, description="Run duration")

    @property
    def ok(self) -> bool:
        """Whether every entry was indexed."""
        return self.failed == 0
