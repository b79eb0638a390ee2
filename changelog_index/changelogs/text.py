"""Searchable text derivation for changelog entries."""

from changelog_index.changelogs.models import ChangelogEntry

SEPARATOR = "\n\n"


def build_searchable_text(entry: ChangelogEntry) -> str:
    """Build the text that is embedded for an entry.

    Version label, optional product tag and body are joined by a blank
    line; empty parts are omitted. The result depends only on the
    entry's own fields, so equal entries always produce equal text.

    Args:
        entry: Changelog entry.

    Returns:
        Deterministic searchable text.
    """
    parts = [
        f"Version {entry.version.strip()}" if entry.version.strip() else "",
        f"Product: {entry.product.strip()}" if entry.product and entry.product.strip() else "",
        entry.content.strip(),
    ]
    return SEPARATOR.join(part for part in parts if part)
