"""Changelog source-of-truth module."""

from changelog_index.changelogs.models import ChangeEvent, ChangeKind, ChangelogEntry
from changelog_index.changelogs.source import (
    ChangelogSource,
    RESTChangelogSource,
    StaticChangelogSource,
)
from changelog_index.changelogs.text import build_searchable_text

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "ChangelogEntry",
    "ChangelogSource",
    "RESTChangelogSource",
    "StaticChangelogSource",
    "build_searchable_text",
]
