"""Embedding lifecycle module."""

from changelog_index.indexing.coordinator import ChangelogIndex, build_changelog_index
from changelog_index.indexing.models import IndexSummary

__all__ = [
    "ChangelogIndex",
    "IndexSummary",
    "build_changelog_index",
]
