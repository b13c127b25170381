# @TEST tests/test_api_search.py

"""Search API endpoint.

Provides:
- ``POST /search`` -- v1 hybrid search over notes, recipes and linked-page
  snapshots.

Request and response bodies use camelCase field names.  Modes:
- **auto** / **hybrid** (default): weighted RRF over every applicable channel.
- **keyword**: tsvector search only, native rank order.
- **semantic**: pgvector cosine similarity only, native order.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any

from fastapi import APIRouter, HTTPException, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from notecatalog.config import Settings, get_settings
from notecatalog.database import async_session_factory
from notecatalog.search.criteria import CookedFilter, Scope, SearchFilters, SearchMode, build_criteria
from notecatalog.search.embeddings import EmbeddingService
from notecatalog.search.engine import SearchEngine, SearchPage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/search", tags=["search"])

SUPPORTED_VERSION = 1
TARGET_TYPE_NOTE = "note"


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class SearchRequestError(Exception):
    """A search request the server understands but cannot serve (HTTP 400)."""


class UnsupportedVersionError(SearchRequestError):
    pass


class UnsupportedTargetTypeError(SearchRequestError):
    pass


# ---------------------------------------------------------------------------
# Request & Response schemas
# ---------------------------------------------------------------------------


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchFiltersRequest(CamelModel):
    """Structured filters; every field is optional."""

    subject_id: str | None = None
    topic_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    status: str | None = None
    imported_only: bool | None = None
    import_batch_id: str | None = None
    source_type: str | None = None
    updated_from: datetime | None = None
    updated_to: datetime | None = None
    created_from: datetime | None = None
    created_to: datetime | None = None
    max_prep_minutes: int | None = None
    max_cook_minutes: int | None = None
    max_total_minutes: int | None = None
    cuisine: list[str] = Field(default_factory=list)
    category: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    include_ingredients: list[str] = Field(default_factory=list)
    exclude_ingredients: list[str] = Field(default_factory=list)
    cooked: CookedFilter = CookedFilter.any
    cooked_within_days: int | None = Field(None, ge=0)
    min_avg_rating: float | None = None

    @field_validator("cuisine", "category", "keywords", "tags", mode="before")
    @classmethod
    def _listify(cls, value: Any) -> Any:
        if value is None:
            return []
        if isinstance(value, str):
            return [value] if value.strip() else []
        return value

    def to_filters(self) -> SearchFilters:
        return SearchFilters(**self.model_dump())


class SearchRequest(CamelModel):
    version: int = SUPPORTED_VERSION
    q: str = ""
    scope: Scope = Scope.notes
    target_types: list[str] = Field(default_factory=lambda: [TARGET_TYPE_NOTE])
    filters: SearchFiltersRequest = Field(default_factory=SearchFiltersRequest)
    mode: SearchMode = SearchMode.auto
    limit: int | None = None
    offset: int | None = None
    include_linked_snapshots: bool = False
    min_semantic_score: float | None = None
    explain: bool = False


class HitContributionResponse(CamelModel):
    channel: str
    rank: int
    raw_score: float
    rrf_score: float


class SearchHitResponse(CamelModel):
    """A single search result in the API response."""

    target_type: str = TARGET_TYPE_NOTE
    id: int
    subject_id: str | None = None
    topic_id: str | None = None
    title: str
    doc_kind: str
    snippet: str | None = None
    score: float | None = None
    updated_at: str | None = None
    sources: list[str] = Field(default_factory=list)
    explain: list[HitContributionResponse] | None = None


class SearchResponse(CamelModel):
    """Search API response: one page of hits plus the candidate count."""

    version: int = SUPPORTED_VERSION
    approximate_total: int
    total: int
    mode: str
    hits: list[SearchHitResponse]
    degraded: dict[str, str] | None = None


# ---------------------------------------------------------------------------
# Engine factory helpers (extracted for easy mocking in tests)
# ---------------------------------------------------------------------------


def build_embedding_service(settings: Settings | None = None) -> EmbeddingService:
    if settings is None:
        settings = get_settings()
    return EmbeddingService(
        api_key=settings.OPENAI_API_KEY,
        model=settings.EMBEDDING_MODEL,
        dimensions=settings.EMBEDDING_DIMENSION,
        local_url=settings.EMBEDDING_SERVICE_URL,
        max_tokens=settings.EMBEDDING_MAX_TOKENS,
    )


def _build_search_engine(settings: Settings | None = None) -> SearchEngine:
    """Create a SearchEngine bound to the application session factory.

    Extracted as a function to allow easy mocking in tests.
    """
    if settings is None:
        settings = get_settings()
    return SearchEngine(
        session_factory=async_session_factory,
        embedding_service=build_embedding_service(settings),
        timeout_seconds=settings.SEARCH_CHANNEL_TIMEOUT_SECONDS,
    )


def _validate_request(body: SearchRequest) -> None:
    if body.version != SUPPORTED_VERSION:
        raise UnsupportedVersionError(f"Unsupported search version: {body.version}")
    if TARGET_TYPE_NOTE not in body.target_types:
        raise UnsupportedTargetTypeError("targetTypes must include 'note'")


def _to_response(page: SearchPage, explain: bool) -> SearchResponse:
    hits = [
        SearchHitResponse(
            id=hit.document_id,
            subject_id=hit.subject_id,
            topic_id=hit.topic_id,
            title=hit.title,
            doc_kind=hit.doc_kind,
            snippet=hit.snippet,
            score=hit.score,
            updated_at=hit.updated_at,
            sources=hit.channels,
            explain=(
                [HitContributionResponse(**c.model_dump()) for c in hit.contributions] if explain else None
            ),
        )
        for hit in page.hits
    ]
    return SearchResponse(
        approximate_total=page.approximate_total,
        total=page.approximate_total,
        mode=page.mode,
        hits=hits,
        degraded=page.degraded if explain and page.degraded else None,
    )


# ---------------------------------------------------------------------------
# Endpoint
# ---------------------------------------------------------------------------


@router.post("", response_model=SearchResponse, response_model_by_alias=True, response_model_exclude_none=True)
async def search(body: SearchRequest) -> SearchResponse:
    """Search notes and recipes.

    Args:
        body: v1 search request. ``version`` must be 1 and ``targetTypes``
            must include ``"note"``.

    Returns:
        SearchResponse with one page of hits.  ``approximateTotal`` (and its
        alias ``total``) counts fused candidates before paging; it is exact
        only for browse queries (empty or ``*``).
    """
    try:
        _validate_request(body)
    except SearchRequestError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    settings = get_settings()
    criteria = build_criteria(
        body.q,
        scope=body.scope,
        mode=body.mode,
        filters=body.filters.to_filters(),
        limit=body.limit,
        offset=body.offset,
        include_linked_snapshots=body.include_linked_snapshots,
        min_semantic_score=body.min_semantic_score,
        explain=body.explain,
        max_limit=settings.SEARCH_MAX_LIMIT,
    )
    logger.info(
        "Search request: query=%r, scope=%s, mode=%s, limit=%d, offset=%d",
        criteria.raw_query,
        criteria.scope.value,
        criteria.mode.value,
        criteria.limit,
        criteria.offset,
    )

    engine = _build_search_engine(settings)
    page = await engine.search(criteria)
    return _to_response(page, body.explain)
