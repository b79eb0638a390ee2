"""API routes for changelog search and index maintenance."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status
from pydantic import BaseModel, Field

from changelog_index.changelogs.models import ChangeEvent, ChangelogEntry
from changelog_index.config import get_settings
from changelog_index.exceptions import InvalidInputError
from changelog_index.indexing.coordinator import ChangelogIndex
from changelog_index.indexing.models import IndexSummary
from changelog_index.logging_config import get_logger
from changelog_index.retrieval.context import display_percentage, select_context
from changelog_index.vectorstore.models import SearchResult

logger = get_logger(__name__)


router = APIRouter(prefix="/api/v1", tags=["Changelog Index"])


def get_changelog_index(request: Request) -> ChangelogIndex:
    """Resolve the ChangelogIndex built during application startup."""
    index = getattr(request.app.state, "changelog_index", None)
    if index is None:
        logger.warning("Changelog index not configured")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={
                "error": "Changelog index not configured",
                "message": "The index requires an embedding service and a vector store",
            },
        )
    return index


class SearchRequest(BaseModel):
    """Request body for a similarity search."""

    query: str = Field(description="Free text to match, e.g. commit messages")
    limit: int | None = Field(
        default=None,
        ge=1,
        description="Maximum results; configured default when omitted, capped at the maximum",
    )
    threshold: float | None = Field(
        default=None,
        ge=-1.0,
        le=1.0,
        description="Minimum similarity (exclusive); configured default when omitted",
    )


class SearchResultItem(BaseModel):
    """One ranked changelog."""

    id: str = Field(description="Vector record id")
    changelog_id: int = Field(description="Source changelog id")
    version: str = Field(description="Version label")
    product: str | None = Field(default=None, description="Product tag")
    created_at: datetime = Field(description="Changelog creation time")
    content: str = Field(description="Embedded text")
    similarity: float = Field(description="Cosine similarity")
    match_percent: int = Field(description="Similarity as a 0-100 percentage")
    selected: bool = Field(description="Auto-selected as generation context")


class SearchResponse(BaseModel):
    """Response from a similarity search."""

    results: list[SearchResultItem] = Field(description="Ranked changelogs")
    selected_ids: list[str] = Field(description="Ids auto-selected as context")


class IndexResponse(BaseModel):
    """Response from indexing one changelog."""

    id: str = Field(description="Vector record id")
    changelog_id: int = Field(description="Source changelog id")
    dimensions: int = Field(description="Stored vector dimensions")


class CountResponse(BaseModel):
    """Number of indexed changelogs."""

    count: int = Field(description="Indexed record count")


class EventResponse(BaseModel):
    """Acknowledgement of an applied change event."""

    kind: str = Field(description="Applied change kind")
    changelog_id: int = Field(description="Source changelog id")


@router.post("/search", response_model=SearchResponse)
async def search_endpoint(
    request: SearchRequest,
    index: ChangelogIndex = Depends(get_changelog_index),
) -> SearchResponse:
    """Find changelogs similar to the query text."""
    results = await index.search_similar(
        request.query,
        limit=request.limit,
        threshold=request.threshold,
    )
    selected = select_context(results, get_settings().search.auto_select_threshold)
    return search_results_to_response(results, selected)


@router.post("/index", response_model=IndexSummary)
async def reindex_endpoint(
    index: ChangelogIndex = Depends(get_changelog_index),
) -> IndexSummary:
    """Rebuild the whole index from the changelog table."""
    return await index.index_all()


@router.get("/index/count", response_model=CountResponse)
async def count_endpoint(
    index: ChangelogIndex = Depends(get_changelog_index),
) -> CountResponse:
    """Report how many changelogs are indexed."""
    return CountResponse(count=await index.count())


@router.put("/index/{changelog_id}", response_model=IndexResponse)
async def index_endpoint(
    changelog_id: int,
    entry: ChangelogEntry,
    index: ChangelogIndex = Depends(get_changelog_index),
) -> IndexResponse:
    """Index or re-index one changelog."""
    if entry.id != changelog_id:
        raise InvalidInputError(
            "Path id does not match changelog id",
            details={"path_id": changelog_id, "body_id": entry.id},
        )
    record = await index.index_entity(entry)
    return IndexResponse(
        id=record.id,
        changelog_id=record.changelog_id,
        dimensions=len(record.vector),
    )


@router.delete("/index/{changelog_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_endpoint(
    changelog_id: int,
    index: ChangelogIndex = Depends(get_changelog_index),
) -> Response:
    """Remove one changelog from the index."""
    await index.remove_entity(changelog_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/events", response_model=EventResponse)
async def events_endpoint(
    payload: dict[str, Any],
    index: ChangelogIndex = Depends(get_changelog_index),
) -> EventResponse:
    """Apply a row-level change webhook from the changelog table."""
    event = ChangeEvent.from_webhook(payload)
    await index.handle_event(event)
    return EventResponse(kind=event.kind.value, changelog_id=event.entity_id)


def search_results_to_response(
    results: list[SearchResult],
    selected: list[SearchResult],
) -> SearchResponse:
    """Convert ranked results to the API response."""
    selected_ids = [result.id for result in selected]
    return SearchResponse(
        results=[
            SearchResultItem(
                id=result.id,
                changelog_id=result.changelog_id,
                version=result.metadata.version,
                product=result.metadata.product,
                created_at=result.metadata.created_at,
                content=result.content,
                similarity=result.similarity,
                match_percent=display_percentage(result.similarity),
                selected=result.id in selected_ids,
            )
            for result in results
        ],
        selected_ids=selected_ids,
    )
