"""Helpers for callers consuming search results.

Ranking stays in the search engine; picking which results to use as
generation context, and how to show them, is decided here.
"""

import math
from collections.abc import Sequence

from changelog_index.vectorstore.models import SearchResult

DEFAULT_AUTO_SELECT_THRESHOLD = 0.2


def display_percentage(similarity: float) -> int:
    """Convert a similarity score to a 0-100 match percentage.

    Non-finite scores display as 0; values are rounded half up and
    clamped to the 0-100 range.
    """
    if not math.isfinite(similarity):
        return 0
    percent = math.floor(similarity * 100 + 0.5)
    return max(0, min(100, percent))


def select_context(
    results: Sequence[SearchResult],
    auto_select_threshold: float = DEFAULT_AUTO_SELECT_THRESHOLD,
) -> list[SearchResult]:
    """Choose which results to use as generation context.

    Results strictly above ``auto_select_threshold`` are selected. When
    none qualifies, the single top result is used instead.

    Args:
        results: Ranked search results, best first.
        auto_select_threshold: Confidence band for automatic selection.

    Returns:
        Selected results in ranking order.
    """
    selected = [
        result
        for result in results
        if math.isfinite(result.similarity) and result.similarity > auto_select_threshold
    ]
    if not selected and results:
        selected = [results[0]]
    return selected


def format_context(results: Sequence[SearchResult]) -> str:
    """Render results as a numbered context block for a Q&A prompt."""
    blocks = []
    for position, result in enumerate(results, start=1):
        metadata = result.metadata
        blocks.append(
            f"Changelog {position}:\n"
            f"Version: {metadata.version}\n"
            f"Product: {metadata.product or 'Not specified'}\n"
            f"Date: {metadata.created_at.date().isoformat()}\n"
            f"Content:\n"
            f"{result.content}\n"
            f"---"
        )
    return "\n\n".join(blocks)
