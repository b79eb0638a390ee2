#!/usr/bin/env python
"""Rebuild the changelog vector index.

Usage:
    python -m scripts.reindex
    python -m scripts.reindex --from-file exports/changelogs.json --output summary.json

Reads every changelog from the configured source table (or a JSON export),
drops the index and re-embeds each entry. Exits non-zero if any entry
could not be indexed.
"""

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import TypeAdapter

from changelog_index.changelogs.models import ChangelogEntry
from changelog_index.changelogs.source import StaticChangelogSource
from changelog_index.config import get_settings
from changelog_index.indexing.coordinator import build_changelog_index
from changelog_index.indexing.models import IndexSummary
from changelog_index.logging_config import get_logger, setup_logging

logger = get_logger(__name__)


def load_export(path: Path) -> list[ChangelogEntry]:
    """Load changelog rows from a JSON array export."""
    return TypeAdapter(list[ChangelogEntry]).validate_json(path.read_bytes())


async def run_reindex(
    from_file: Path | None = None,
    output_path: Path | None = None,
) -> IndexSummary:
    """Run a bulk re-index and report the outcome.

    Args:
        from_file: Optional JSON export used instead of the source table.
        output_path: Optional path to save the summary JSON.

    Returns:
        The re-index summary.
    """
    setup_logging(level="INFO")
    settings = get_settings()

    source = None
    if from_file is not None:
        logger.info(f"Loading changelogs from {from_file}")
        source = StaticChangelogSource(load_export(from_file))

    index = build_changelog_index(settings, source=source)
    try:
        summary = await index.index_all()
    finally:
        await index.close()

    print("\n" + "=" * 60)
    print("RE-INDEX SUMMARY")
    print("=" * 60)
    print(f"Backend: {settings.vector_backend.value}")
    print(f"Total Changelogs: {summary.total}")
    print(f"Indexed: {summary.succeeded}")
    print(f"Failed: {summary.failed}")
    if summary.failed_ids:
        print(f"Failed Ids: {', '.join(str(i) for i in summary.failed_ids)}")
    print(f"Duration: {summary.duration_seconds:.1f}s")
    print("=" * 60)

    if output_path:
        output_path.write_text(summary.model_dump_json(indent=2))
        logger.info(f"Summary saved to {output_path}")

    return summary


def main() -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Rebuild the changelog vector index",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--from-file",
        type=Path,
        default=None,
        help="JSON export of changelog rows to index instead of the source table",
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=None,
        help="Path to save the summary JSON",
    )

    args = parser.parse_args()

    summary = asyncio.run(run_reindex(from_file=args.from_file, output_path=args.output))

    sys.exit(0 if summary.ok else 1)


if __name__ == "__main__":
    main()
