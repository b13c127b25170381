# @TEST tests/test_api_admin.py

"""Admin maintenance endpoints.

Every route requires the ``X-Admin-Token`` header to equal the configured
``ADMIN_TOKEN``.  With no server token configured the routes answer 503.
"""

from __future__ import annotations

import logging
import secrets
from typing import Literal

from fastapi import APIRouter, Depends, Header, HTTPException, Query, status
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from notecatalog.api.search import CamelModel, _build_search_engine, build_embedding_service
from notecatalog.config import Settings, get_settings
from notecatalog.database import get_db
from notecatalog.search.criteria import Scope, SearchMode, build_criteria
from notecatalog.search.freshness import EmbeddingFreshnessMaintainer
from notecatalog.services.backfill import (
    backfill_content_updated_at,
    backfill_cooked_fields,
    backfill_ingredient_tokens,
)

logger = logging.getLogger(__name__)


async def require_admin_token(
    x_admin_token: str | None = Header(None),  # noqa: B008
    settings: Settings = Depends(get_settings),  # noqa: B008
) -> None:
    """Dependency that requires the shared admin secret."""
    if not settings.ADMIN_TOKEN:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Admin endpoints are disabled (ADMIN_TOKEN not set)",
        )
    if not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid admin token")


router = APIRouter(prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin_token)])


def _clamp(value: int | None, low: int, high: int, default: int) -> int:
    if value is None:
        return default
    return min(max(value, low), high)


def _build_maintainer(db: AsyncSession) -> EmbeddingFreshnessMaintainer:
    """Extracted as a function to allow easy mocking in tests."""
    return EmbeddingFreshnessMaintainer(session=db, embedding_service=build_embedding_service())


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------


class EmbeddingBackfillRequest(CamelModel):
    target: Literal["notes", "recipes", "snapshots"] = "notes"
    limit: int | None = None
    force: bool = False
    model: str | None = None
    max_text_chars: int | None = None
    after_id: int | None = None


class EmbeddingBackfillResponse(CamelModel):
    target: str
    examined: int
    updated: int
    skipped: int
    errors: int
    updated_ids: list[int]
    error_samples: list[dict]
    stopped_due_to_rate_limit: bool
    retry_after_seconds: float | None = None
    next_cursor: int | None = None


class IngredientTokensBackfillRequest(CamelModel):
    limit: int | None = None
    dry_run: bool = False
    after_id: int | None = None


class LimitRequest(CamelModel):
    limit: int | None = None


class BackfillResponse(CamelModel):
    examined: int
    updated: int
    updated_ids: list[int]
    samples: list[dict] = Field(default_factory=list)
    dry_run: bool = False
    next_cursor: int | None = None


class SemanticDebugHit(CamelModel):
    id: int
    title: str
    doc_kind: str
    score: float | None = None


class SemanticDebugResponse(CamelModel):
    q: str
    scope: str
    model: str
    configured: bool
    hits: list[SemanticDebugHit]
    degraded: dict[str, str] = Field(default_factory=dict)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@router.post("/embeddings/backfill", response_model=EmbeddingBackfillResponse, response_model_by_alias=True)
async def embeddings_backfill(
    body: EmbeddingBackfillRequest | None = None,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> EmbeddingBackfillResponse:
    """Run one freshness batch for notes, recipes or snapshots."""
    body = body or EmbeddingBackfillRequest()
    maintainer = _build_maintainer(db)
    report = await maintainer.run(
        target=body.target,
        limit=_clamp(body.limit, 1, 500, 50),
        force=body.force,
        model=body.model,
        max_text_chars=_clamp(body.max_text_chars, 1000, 50000, 8000),
        after_id=body.after_id,
    )
    return EmbeddingBackfillResponse(**vars(report))


@router.post("/ingredient-tokens/backfill", response_model=BackfillResponse, response_model_by_alias=True)
async def ingredient_tokens_backfill(
    body: IngredientTokensBackfillRequest | None = None,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> BackfillResponse:
    body = body or IngredientTokensBackfillRequest()
    result = await backfill_ingredient_tokens(
        db,
        limit=_clamp(body.limit, 1, 1000, 100),
        dry_run=body.dry_run,
        after_id=body.after_id,
    )
    return BackfillResponse(**vars(result))


@router.post("/cooked-fields/backfill", response_model=BackfillResponse, response_model_by_alias=True)
async def cooked_fields_backfill(
    body: LimitRequest | None = None,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> BackfillResponse:
    """Recompute cooked aggregates for rows that only carry raw history."""
    body = body or LimitRequest()
    result = await backfill_cooked_fields(db, limit=_clamp(body.limit, 1, 1000, 100))
    return BackfillResponse(**vars(result))


@router.post("/content-updated-at/backfill", response_model=BackfillResponse, response_model_by_alias=True)
async def content_updated_at_backfill(
    body: LimitRequest | None = None,
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> BackfillResponse:
    body = body or LimitRequest()
    result = await backfill_content_updated_at(db, limit=_clamp(body.limit, 1, 500, 100))
    return BackfillResponse(**vars(result))


@router.get("/semantic-debug", response_model=SemanticDebugResponse, response_model_by_alias=True)
async def semantic_debug(
    q: str = Query(..., min_length=1),  # noqa: B008
    limit: int = Query(10, ge=1, le=50),  # noqa: B008
    scope: Scope = Query(Scope.notes),  # noqa: B008
) -> SemanticDebugResponse:
    """Run a semantic-only query with no similarity floor and report raw scores."""
    settings = get_settings()
    engine = _build_search_engine(settings)
    criteria = build_criteria(
        q,
        scope=scope,
        mode=SearchMode.semantic,
        limit=limit,
        min_semantic_score=0.0,
        max_limit=settings.SEARCH_MAX_LIMIT,
    )
    page = await engine.search(criteria)
    logger.info("Semantic debug: query=%r scope=%s hits=%d", q, scope.value, len(page.hits))
    return SemanticDebugResponse(
        q=q,
        scope=scope.value,
        model=settings.EMBEDDING_MODEL,
        configured=build_embedding_service(settings).is_configured,
        hits=[
            SemanticDebugHit(id=hit.document_id, title=hit.title, doc_kind=hit.doc_kind, score=hit.score)
            for hit in page.hits
        ],
        degraded=page.degraded,
    )
