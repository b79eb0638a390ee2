"""Tests for changelog index API routes."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from changelog_index.api.app import app
from changelog_index.api.routes import (
    SearchRequest,
    get_changelog_index,
    search_results_to_response,
)
from changelog_index.indexing.coordinator import ChangelogIndex
from changelog_index.vectorstore.models import SearchResult, VectorRecord
from fakes import FakeEmbeddingService, make_entry

ENTRY_JSON = {
    "id": 5,
    "version": "4.0.0",
    "content": "Rewrote the importer",
    "product": "cli",
    "created_at": "2024-02-01T09:00:00+00:00",
}


def _result(entry_id: int, similarity: float) -> SearchResult:
    record = VectorRecord.from_changelog(make_entry(entry_id), f"entry {entry_id}", [1.0])
    return SearchResult.from_record(record, similarity)


@pytest.fixture
async def index_client(
    changelog_index: ChangelogIndex,
) -> AsyncGenerator[AsyncClient, None]:
    """Client whose routes use an index over fakes."""
    app.dependency_overrides[get_changelog_index] = lambda: changelog_index
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


class TestSearchRequest:
    """Tests for SearchRequest model."""

    def test_defaults(self) -> None:
        """Request has sensible defaults."""
        req = SearchRequest(query="Fix login")
        assert req.limit is None
        assert req.threshold is None


class TestConverters:
    """Tests for response converters."""

    def test_search_results_to_response(self) -> None:
        """Converts ranked results to the API response."""
        results = [_result(1, 0.856), _result(2, 0.12)]

        response = search_results_to_response(results, results[:1])

        assert response.selected_ids == ["changelog_1"]
        assert response.results[0].match_percent == 86
        assert response.results[0].selected
        assert not response.results[1].selected
        assert response.results[1].changelog_id == 2


class TestWithoutIndex:
    """Endpoints report 503 before the index is built."""

    @pytest.mark.asyncio
    async def test_search_returns_503_without_index(self, client: AsyncClient) -> None:
        """Search returns 503 when the index is not configured."""
        response = await client.post("/api/v1/search", json={"query": "What changed?"})

        assert response.status_code == 503
        data = response.json()
        assert "not configured" in data["detail"]["error"]

    @pytest.mark.asyncio
    async def test_count_returns_503_without_index(self, client: AsyncClient) -> None:
        """Count returns 503 when the index is not configured."""
        response = await client.get("/api/v1/index/count")

        assert response.status_code == 503


class TestSearchEndpoint:
    """Tests for /api/v1/search endpoint."""

    @pytest.mark.asyncio
    async def test_search(
        self,
        index_client: AsyncClient,
        changelog_index: ChangelogIndex,
    ) -> None:
        """Search returns ranked results with auto-selection."""
        await changelog_index.index_entity(make_entry(1, content="Fixed login"))

        response = await index_client.post("/api/v1/search", json={"query": "login"})

        assert response.status_code == 200
        data = response.json()
        assert len(data["results"]) == 1
        assert data["results"][0]["changelog_id"] == 1
        assert data["results"][0]["match_percent"] == 100
        assert data["selected_ids"] == ["changelog_1"]

    @pytest.mark.asyncio
    async def test_search_validates_request(self, index_client: AsyncClient) -> None:
        """Search validates request parameters."""
        response = await index_client.post("/api/v1/search", json={})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_search_caps_large_limit(
        self,
        index_client: AsyncClient,
        changelog_index: ChangelogIndex,
    ) -> None:
        """Limits above the configured maximum are capped, not rejected."""
        for i in range(1, 6):
            await changelog_index.index_entity(make_entry(i, content=f"entry {i}"))

        response = await index_client.post("/api/v1/search", json={"query": "x", "limit": 500})

        assert response.status_code == 200
        assert len(response.json()["results"]) == 5

    @pytest.mark.asyncio
    async def test_search_uses_default_limit(
        self,
        index_client: AsyncClient,
        changelog_index: ChangelogIndex,
    ) -> None:
        """Omitting the limit applies the configured default."""
        for i in range(1, 6):
            await changelog_index.index_entity(make_entry(i, content=f"entry {i}"))

        response = await index_client.post("/api/v1/search", json={"query": "x"})

        assert response.status_code == 200
        assert len(response.json()["results"]) == 3

    @pytest.mark.asyncio
    async def test_search_rejects_zero_limit(self, index_client: AsyncClient) -> None:
        """A limit below one is a validation error."""
        response = await index_client.post("/api/v1/search", json={"query": "x", "limit": 0})

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_search_empty_index(self, index_client: AsyncClient) -> None:
        """Searching an empty index returns an empty list."""
        response = await index_client.post("/api/v1/search", json={"query": "login"})

        assert response.status_code == 200
        assert response.json() == {"results": [], "selected_ids": []}


class TestIndexEndpoints:
    """Tests for index maintenance endpoints."""

    @pytest.mark.asyncio
    async def test_put_index(self, index_client: AsyncClient) -> None:
        """PUT indexes one changelog."""
        response = await index_client.put("/api/v1/index/5", json=ENTRY_JSON)

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == "changelog_5"
        assert data["dimensions"] == 3

        count = await index_client.get("/api/v1/index/count")
        assert count.json() == {"count": 1}

    @pytest.mark.asyncio
    async def test_put_index_id_mismatch(self, index_client: AsyncClient) -> None:
        """A path id that differs from the body id is a 400."""
        response = await index_client.put("/api/v1/index/6", json=ENTRY_JSON)

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "IDX-1002"

    @pytest.mark.asyncio
    async def test_put_index_embedding_failure(
        self,
        index_client: AsyncClient,
        embedding_service: FakeEmbeddingService,
    ) -> None:
        """Embedding failures on the write path surface as 502."""
        embedding_service.fail_on.add("importer")

        response = await index_client.put("/api/v1/index/5", json=ENTRY_JSON)

        assert response.status_code == 502
        assert response.json()["error"]["code"] == "IDX-3000"

    @pytest.mark.asyncio
    async def test_delete_index(self, index_client: AsyncClient) -> None:
        """DELETE removes a changelog from the index."""
        await index_client.put("/api/v1/index/5", json=ENTRY_JSON)

        response = await index_client.delete("/api/v1/index/5")

        assert response.status_code == 204
        count = await index_client.get("/api/v1/index/count")
        assert count.json() == {"count": 0}

    @pytest.mark.asyncio
    async def test_reindex(self, index_client: AsyncClient) -> None:
        """POST /index runs a bulk re-index and returns the summary."""
        response = await index_client.post("/api/v1/index")

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 0
        assert data["failed"] == 0


class TestEventsEndpoint:
    """Tests for /api/v1/events endpoint."""

    @pytest.mark.asyncio
    async def test_insert_then_delete(self, index_client: AsyncClient) -> None:
        """Webhook events index and remove changelogs."""
        created = await index_client.post(
            "/api/v1/events",
            json={"type": "INSERT", "table": "changelogs", "record": ENTRY_JSON},
        )
        assert created.status_code == 200
        assert created.json() == {"kind": "created", "changelog_id": 5}

        deleted = await index_client.post(
            "/api/v1/events",
            json={"type": "DELETE", "table": "changelogs", "old_record": {"id": 5}},
        )
        assert deleted.json() == {"kind": "deleted", "changelog_id": 5}

        count = await index_client.get("/api/v1/index/count")
        assert count.json() == {"count": 0}

    @pytest.mark.asyncio
    async def test_unknown_event_type(self, index_client: AsyncClient) -> None:
        """Unsupported webhook types are a 400."""
        response = await index_client.post("/api/v1/events", json={"type": "TRUNCATE"})

        assert response.status_code == 400
        assert response.json()["error"]["code"] == "IDX-2001"
