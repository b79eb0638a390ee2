"""Source-of-truth changelog table interface and implementations."""

from abc import ABC, abstractmethod
from collections.abc import Iterable

import httpx
from pydantic import ValidationError

from changelog_index.changelogs.models import ChangelogEntry
from changelog_index.config import SourceSettings, get_settings
from changelog_index.exceptions import ErrorCode, SourceUnavailableError
from changelog_index.logging_config import get_logger

logger = get_logger(__name__)


class ChangelogSource(ABC):
    """Read access to the changelog table.

    The index only needs to enumerate entries for a bulk rebuild;
    individual changes arrive as ChangeEvents.
    """

    @abstractmethod
    async def list_all(self) -> list[ChangelogEntry]:
        """List every changelog entry, newest first.

        Returns:
            Entries ordered by ``created_at`` descending.

        Raises:
            SourceUnavailableError: If the table cannot be read.
        """
        ...

    async def close(self) -> None:
        """Release any held resources."""
        return None


class StaticChangelogSource(ChangelogSource):
    """Source backed by a fixed list of entries (exports, tests)."""

    def __init__(self, entries: Iterable[ChangelogEntry] = ()) -> None:
        self._entries = list(entries)

    async def list_all(self) -> list[ChangelogEntry]:
        """Return the entries newest first."""
        return sorted(self._entries, key=lambda e: e.created_at, reverse=True)


class RESTChangelogSource(ChangelogSource):
    """Changelog table exposed through a PostgREST-style endpoint."""

    COLUMNS = "id,version,content,product,created_at"

    def __init__(
        self,
        settings: SourceSettings | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the REST source.

        Args:
            settings: Source configuration. Uses defaults if not provided.
            client: HTTP client. Creates new one if not provided.
        """
        self._settings = settings or get_settings().source
        self._client = client
        self._owns_client = client is None

    def _headers(self) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._settings.api_key is not None:
            key = self._settings.api_key.get_secret_value()
            headers["apikey"] = key
            headers["Authorization"] = f"Bearer {key}"
        return headers

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._settings.timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if we own it."""
        if self._owns_client and self._client is not None:
            await self._client.aclose()
            self._client = None

    async def list_all(self) -> list[ChangelogEntry]:
        """Fetch every changelog row, newest first."""
        client = await self._get_client()
        url = f"{self._settings.url.rstrip('/')}/{self._settings.table}"
        params = {"select": self.COLUMNS, "order": "created_at.desc"}

        try:
            response = await client.get(url, params=params, headers=self._headers())
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            logger.error(
                f"Changelog listing failed: {e.response.status_code}",
                extra={"url": url, "status": e.response.status_code},
            )
            raise SourceUnavailableError(
                f"Changelog source returned {e.response.status_code}",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.RequestError as e:
            logger.error(f"Changelog listing error: {e}", extra={"url": url})
            raise SourceUnavailableError(
                f"Failed to connect to changelog source: {e}",
                details={"url": url},
            ) from e

        try:
            rows = response.json()
            if not isinstance(rows, list):
                raise ValueError(f"expected a list of rows, got {type(rows).__name__}")
            entries = [ChangelogEntry.model_validate(row) for row in rows]
        except (ValueError, ValidationError) as e:
            raise SourceUnavailableError(
                f"Invalid response from changelog source: {e}",
                code=ErrorCode.SOURCE_PARSE_ERROR,
                details={"error": str(e)},
            ) from e

        logger.debug(f"Listed {len(entries)} changelogs", extra={"table": self._settings.table})
        return entries
