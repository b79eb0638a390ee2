"""Search result consumption module."""

from changelog_index.retrieval.context import (
    display_percentage,
    format_context,
    select_context,
)

__all__ = [
    "display_percentage",
    "format_context",
    "select_context",
]
