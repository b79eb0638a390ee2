"""Tests for changelog models, text and sources."""

from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from pydantic import SecretStr, ValidationError

from changelog_index.changelogs.models import ChangeEvent, ChangeKind
from changelog_index.changelogs.source import RESTChangelogSource, StaticChangelogSource
from changelog_index.changelogs.text import build_searchable_text
from changelog_index.config import SourceSettings
from changelog_index.exceptions import ErrorCode, SourceUnavailableError
from fakes import make_entry

ROW = {
    "id": 12,
    "version": "3.2.0",
    "content": "Added dark mode",
    "product": "web",
    "created_at": "2024-03-01T10:00:00+00:00",
}


class TestSearchableText:
    """Tests for build_searchable_text."""

    def test_all_fields(self) -> None:
        """Version, product and content are joined by blank lines."""
        entry = make_entry(1, version="2.0.0", content="New API", product="core")

        assert build_searchable_text(entry) == "Version 2.0.0\n\nProduct: core\n\nNew API"

    def test_without_product(self) -> None:
        """A missing product is omitted entirely."""
        entry = make_entry(1, version="2.0.0", content="New API")

        assert build_searchable_text(entry) == "Version 2.0.0\n\nNew API"

    def test_blank_parts_omitted(self) -> None:
        """Whitespace-only fields leave no empty segments."""
        entry = make_entry(1, version="2.0.0", content="   ", product="  ")

        assert build_searchable_text(entry) == "Version 2.0.0"

    def test_deterministic(self) -> None:
        """Equal entries produce identical text."""
        a = make_entry(1, version="1.1", content="Fix", product="cli", day=1)
        b = make_entry(2, version="1.1", content="Fix", product="cli", day=9)

        assert build_searchable_text(a) == build_searchable_text(b)


class TestChangeEvent:
    """Tests for ChangeEvent."""

    def test_factories(self) -> None:
        """Factories build consistent events."""
        entry = make_entry(4)

        assert ChangeEvent.created(entry).kind == ChangeKind.CREATED
        assert ChangeEvent.updated(entry).entity_id == 4
        deleted = ChangeEvent.deleted(4)
        assert deleted.kind == ChangeKind.DELETED
        assert deleted.entity is None

    def test_create_requires_entity(self) -> None:
        """Created events must carry the entity."""
        with pytest.raises(ValidationError, match="requires the entity"):
            ChangeEvent(kind=ChangeKind.CREATED, entity_id=1)

    def test_entity_id_must_match(self) -> None:
        """The event id must be the entity's id."""
        with pytest.raises(ValidationError, match="does not match"):
            ChangeEvent(kind=ChangeKind.UPDATED, entity_id=1, entity=make_entry(2))

    def test_from_webhook_insert(self) -> None:
        """INSERT payloads become created events."""
        event = ChangeEvent.from_webhook({"type": "INSERT", "table": "changelogs", "record": ROW})

        assert event.kind == ChangeKind.CREATED
        assert event.entity_id == 12
        assert event.entity is not None
        assert event.entity.product == "web"

    def test_from_webhook_update(self) -> None:
        """UPDATE payloads become updated events."""
        event = ChangeEvent.from_webhook({"type": "update", "record": ROW, "old_record": ROW})

        assert event.kind == ChangeKind.UPDATED

    def test_from_webhook_delete(self) -> None:
        """DELETE payloads only need the old id."""
        event = ChangeEvent.from_webhook({"type": "DELETE", "old_record": {"id": 12}})

        assert event.kind == ChangeKind.DELETED
        assert event.entity_id == 12

    @pytest.mark.parametrize(
        "payload",
        [
            {},
            {"type": "TRUNCATE"},
            {"type": "INSERT", "record": {"id": 1}},
            {"type": "DELETE", "old_record": None},
        ],
    )
    def test_from_webhook_invalid(self, payload: dict) -> None:
        """Unusable payloads raise a parse error."""
        with pytest.raises(SourceUnavailableError) as exc_info:
            ChangeEvent.from_webhook(payload)

        assert exc_info.value.code == ErrorCode.SOURCE_PARSE_ERROR


class TestStaticChangelogSource:
    """Tests for StaticChangelogSource."""

    @pytest.mark.asyncio
    async def test_newest_first(self) -> None:
        """Entries are listed newest first."""
        source = StaticChangelogSource([make_entry(1, day=1), make_entry(2, day=5)])

        entries = await source.list_all()

        assert [e.id for e in entries] == [2, 1]


class TestRESTChangelogSource:
    """Tests for RESTChangelogSource."""

    def _settings(self, **kwargs: object) -> SourceSettings:
        return SourceSettings(url="http://db.test/rest/v1", **kwargs)

    @pytest.mark.asyncio
    async def test_list_all(self) -> None:
        """Rows are fetched newest first and parsed."""
        mock_response = MagicMock()
        mock_response.json.return_value = [ROW]
        mock_response.raise_for_status = MagicMock()
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.get.return_value = mock_response

        source = RESTChangelogSource(
            settings=self._settings(api_key=SecretStr("secret")),
            client=mock_client,
        )
        entries = await source.list_all()

        assert len(entries) == 1
        assert entries[0].id == 12
        call = mock_client.get.call_args
        assert call.args[0] == "http://db.test/rest/v1/changelogs"
        assert call.kwargs["params"]["order"] == "created_at.desc"
        assert call.kwargs["headers"]["apikey"] == "secret"
        assert call.kwargs["headers"]["Authorization"] == "Bearer secret"

    @pytest.mark.asyncio
    async def test_http_error(self) -> None:
        """HTTP errors raise SourceUnavailableError."""
        mock_response = MagicMock()
        mock_response.status_code = 503
        mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Unavailable",
            request=MagicMock(),
            response=mock_response,
        )
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.get.return_value = mock_response

        source = RESTChangelogSource(settings=self._settings(), client=mock_client)

        with pytest.raises(SourceUnavailableError) as exc_info:
            await source.list_all()

        assert exc_info.value.code == ErrorCode.SOURCE_UNAVAILABLE
        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_connection_error(self) -> None:
        """Connection errors raise SourceUnavailableError."""
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.get.side_effect = httpx.ConnectError("Connection refused")

        source = RESTChangelogSource(settings=self._settings(), client=mock_client)

        with pytest.raises(SourceUnavailableError, match="connect"):
            await source.list_all()

    @pytest.mark.asyncio
    async def test_malformed_rows(self) -> None:
        """Unparseable rows raise a parse error."""
        mock_response = MagicMock()
        mock_response.json.return_value = {"rows": []}
        mock_response.raise_for_status = MagicMock()
        mock_client = AsyncMock(spec=httpx.AsyncClient)
        mock_client.get.return_value = mock_response

        source = RESTChangelogSource(settings=self._settings(), client=mock_client)

        with pytest.raises(SourceUnavailableError) as exc_info:
            await source.list_all()

        assert exc_info.value.code == ErrorCode.SOURCE_PARSE_ERROR
