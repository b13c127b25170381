# @TEST tests/test_api_recipes.py

"""Recipe lookup by ingredients.

``GET /recipes/search?query=chicken, lemon and thyme&mode=any|all`` splits
the free-text query into canonical ingredient tokens and matches them
against each recipe's ``ingredient_tokens``.
"""

from __future__ import annotations

import logging
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from notecatalog.api.search import CamelModel
from notecatalog.database import get_db
from notecatalog.models import DOC_KIND_RECIPE, Document
from notecatalog.search.canonical import build_ingredient_search_tokens
from notecatalog.search.filters import And, ArrayContainsAll, ArrayOverlaps, Eq

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/recipes", tags=["recipes"])

MAX_RESULTS = 100


class RecipeMatchResponse(CamelModel):
    id: int
    title: str
    subject_id: str | None = None
    topic_id: str | None = None
    updated_at: str | None = None
    ingredient_tokens: list[str]


@router.get("/search", response_model=list[RecipeMatchResponse], response_model_by_alias=True)
async def search_recipes_by_ingredients(
    query: str = Query(""),  # noqa: B008
    mode: Literal["any", "all"] = Query("any"),  # noqa: B008
    db: AsyncSession = Depends(get_db),  # noqa: B008
) -> list[RecipeMatchResponse]:
    """Recipes holding any (or all) of the ingredients named in *query*, newest first."""
    if not query.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="query is required")
    tokens = tuple(build_ingredient_search_tokens(query))
    if not tokens:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="query has no tokens")

    token_match = (
        ArrayContainsAll("ingredient_tokens", tokens) if mode == "all" else ArrayOverlaps("ingredient_tokens", tokens)
    )
    where = And((Eq("doc_kind", DOC_KIND_RECIPE), token_match)).to_clause()
    stmt = (
        select(
            Document.id,
            Document.title,
            Document.subject_id,
            Document.topic_id,
            Document.updated_at,
            Document.ingredient_tokens,
        )
        .where(where)
        .order_by(Document.updated_at.desc(), Document.id.desc())
        .limit(MAX_RESULTS)
    )
    rows = (await db.execute(stmt)).fetchall()
    logger.info("Ingredient lookup: tokens=%s mode=%s matches=%d", list(tokens), mode, len(rows))
    return [
        RecipeMatchResponse(
            id=row.id,
            title=row.title or "Untitled",
            subject_id=row.subject_id,
            topic_id=row.topic_id,
            updated_at=row.updated_at.isoformat() if row.updated_at else None,
            ingredient_tokens=list(row.ingredient_tokens or []),
        )
        for row in rows
    ]
