# @TEST tests/test_backfill.py

"""One-off maintenance backfills run from the admin API.

Each function processes a bounded batch and commits per row, so an
interrupted run leaves every processed row consistent.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from notecatalog.models import DOC_KIND_RECIPE, Document
from notecatalog.search.canonical import build_ingredient_tokens
from notecatalog.services.cooked import compute_cooked_aggregate

logger = logging.getLogger(__name__)

MAX_SAMPLES = 5


@dataclass
class BackfillResult:
    """Counts for one backfill batch.

    Attributes:
        examined: Rows loaded into the batch.
        updated: Rows written (or that would be written on a dry run).
        updated_ids: Ids of those rows.
        samples: Up to five ``{"id", ...}`` previews of the new values.
        next_cursor: ``after_id`` for the next batch, ``None`` when done.
    """

    examined: int = 0
    updated: int = 0
    updated_ids: list[int] = field(default_factory=list)
    samples: list[dict[str, Any]] = field(default_factory=list)
    dry_run: bool = False
    next_cursor: int | None = None


async def backfill_ingredient_tokens(
    session: AsyncSession,
    limit: int = 100,
    dry_run: bool = False,
    after_id: int | None = None,
) -> BackfillResult:
    """Recompute ``ingredient_tokens`` for recipes, writing only changed rows.

    Recipes are scanned in id order after ``after_id``.
    """
    result = BackfillResult(dry_run=dry_run)
    stmt = select(Document.id, Document.ingredients, Document.ingredients_raw, Document.ingredient_tokens).where(
        Document.doc_kind == DOC_KIND_RECIPE
    )
    if after_id is not None:
        stmt = stmt.where(Document.id > after_id)
    rows = (await session.execute(stmt.order_by(Document.id.asc()).limit(limit))).fetchall()
    result.examined = len(rows)

    for row in rows:
        tokens = build_ingredient_tokens(row.ingredients, row.ingredients_raw)
        if list(row.ingredient_tokens or []) == tokens:
            continue
        if not dry_run:
            await session.execute(
                update(Document)
                .where(Document.id == row.id)
                .values(ingredient_tokens=tokens, updated_at=Document.updated_at)
            )
            await session.commit()
        result.updated += 1
        result.updated_ids.append(row.id)
        if len(result.samples) < MAX_SAMPLES:
            result.samples.append({"id": row.id, "ingredient_tokens": tokens})

    if rows and len(rows) >= limit:
        result.next_cursor = rows[-1].id
    logger.info(
        "Ingredient token backfill: examined=%d updated=%d dry_run=%s",
        result.examined,
        result.updated,
        dry_run,
    )
    return result


async def backfill_content_updated_at(session: AsyncSession, limit: int = 100) -> BackfillResult:
    """Set ``content_updated_at`` where missing, from ``updated_at`` or ``created_at``."""
    result = BackfillResult()
    stmt = (
        select(Document.id, Document.updated_at, Document.created_at)
        .where(Document.content_updated_at.is_(None))
        .order_by(Document.id.asc())
        .limit(limit)
    )
    rows = (await session.execute(stmt)).fetchall()
    result.examined = len(rows)

    for row in rows:
        value = row.updated_at or row.created_at or func.now()
        outcome = await session.execute(
            update(Document)
            .where(Document.id == row.id, Document.content_updated_at.is_(None))
            .values(content_updated_at=value, updated_at=Document.updated_at)
        )
        await session.commit()
        if outcome.rowcount:
            result.updated += 1
            result.updated_ids.append(row.id)

    logger.info("content_updated_at backfill: examined=%d updated=%d", result.examined, result.updated)
    return result


async def backfill_cooked_fields(session: AsyncSession, limit: int = 100) -> BackfillResult:
    """Fill the cooked aggregate for rows that only carry raw ``cooked_history``."""
    result = BackfillResult()
    stmt = (
        select(Document.id, Document.cooked_history)
        .where(Document.cooked_count.is_(None), Document.cooked_history.is_not(None))
        .order_by(Document.id.asc())
        .limit(limit)
    )
    rows = (await session.execute(stmt)).fetchall()
    result.examined = len(rows)

    for row in rows:
        aggregate = compute_cooked_aggregate(row.cooked_history)
        await session.execute(
            update(Document)
            .where(Document.id == row.id)
            .values(
                cooked_count=aggregate.cooked_count,
                last_cooked_at=aggregate.last_cooked_at,
                avg_cooked_rating=aggregate.avg_cooked_rating,
                cooked_notes_text=aggregate.cooked_notes_text,
                updated_at=Document.updated_at,
            )
        )
        await session.commit()
        result.updated += 1
        result.updated_ids.append(row.id)
        if len(result.samples) < MAX_SAMPLES:
            result.samples.append(
                {
                    "id": row.id,
                    "cooked_count": aggregate.cooked_count,
                    "avg_cooked_rating": aggregate.avg_cooked_rating,
                }
            )

    logger.info("Cooked fields backfill: examined=%d updated=%d", result.examined, result.updated)
    return result
