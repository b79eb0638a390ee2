"""Pytest configuration and shared fixtures."""

from collections.abc import AsyncGenerator

import pytest
from httpx import ASGITransport, AsyncClient

from changelog_index.api.app import app
from changelog_index.changelogs.source import StaticChangelogSource
from changelog_index.config import IndexingSettings, SearchSettings
from changelog_index.indexing.coordinator import ChangelogIndex
from changelog_index.vectorstore.service import InMemoryVectorStore
from fakes import FakeEmbeddingService


@pytest.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Create async test client for FastAPI app.

    Yields:
        AsyncClient configured for testing.
    """
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def embedding_service() -> FakeEmbeddingService:
    """Deterministic embedding service."""
    return FakeEmbeddingService()


@pytest.fixture
def store() -> InMemoryVectorStore:
    """Empty in-memory vector store."""
    return InMemoryVectorStore()


@pytest.fixture
def source() -> StaticChangelogSource:
    """Empty changelog source."""
    return StaticChangelogSource()


@pytest.fixture
def changelog_index(
    embedding_service: FakeEmbeddingService,
    store: InMemoryVectorStore,
    source: StaticChangelogSource,
) -> ChangelogIndex:
    """ChangelogIndex over fakes, with no delay between batches."""
    return ChangelogIndex(
        embedding_service=embedding_service,
        store=store,
        source=source,
        search_settings=SearchSettings(),
        indexing_settings=IndexingSettings(batch_size=3, batch_delay=0.0),
    )
