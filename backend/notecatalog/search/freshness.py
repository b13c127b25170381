# @TEST tests/test_freshness.py

"""Incremental embedding maintenance.

Keeps the stored vectors of documents and linked-page snapshots in step
with their content without a full re-index.  Each run processes one
bounded batch:

1. rows that have no embedding yet and were not checked since their last
   content change (ordered by id after ``after_id``);
2. remaining slots go to rows whose embedding predates the content
   timestamp and which have not been checked since that change.

A row whose freshly built embedding text hashes to the stored hash only
gets its checked timestamp bumped; the provider is not called.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from notecatalog.models import DOC_KIND_RECIPE, Document, LinkedPageSnapshot
from notecatalog.search.embedding_text import (
    build_note_embedding_text,
    build_recipe_semantic_text,
    build_snapshot_embedding_text,
    hash_embedding_text,
)
from notecatalog.search.embeddings import EmbeddingRateLimitError, EmbeddingService

logger = logging.getLogger(__name__)

TARGETS = ("notes", "recipes", "snapshots")
MIN_TEXT_CHARS = 10
MAX_ERROR_SAMPLES = 5


@dataclass
class FreshnessReport:
    """Outcome of one maintenance batch.

    Attributes:
        examined: Rows loaded into the batch.
        updated: Rows that received a new embedding.
        skipped: Rows left as is (hash unchanged, or too little text).
        errors: Rows that failed for reasons other than rate limiting.
        next_cursor: ``after_id`` for the next batch, ``None`` when the
            batch did not fill up.  It stays on the incoming range while
            rows without an embedding fill the batch.
    """

    target: str
    examined: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    updated_ids: list[int] = field(default_factory=list)
    error_samples: list[dict[str, Any]] = field(default_factory=list)
    stopped_due_to_rate_limit: bool = False
    retry_after_seconds: float | None = None
    next_cursor: int | None = None


@dataclass(frozen=True)
class _Target:
    model: Any
    vector: Any
    model_col: str
    hash_col: str
    updated_col: str
    checked_col: str
    content_ts: Any
    base_filter: Any
    build_text: Callable[[Any, int], str]

    @property
    def columns(self) -> tuple[str, str, str, str, str]:
        return (self.vector.key, self.model_col, self.hash_col, self.updated_col, self.checked_col)


def _target(name: str) -> _Target:
    if name == "notes":
        return _Target(
            model=Document,
            vector=Document.embedding,
            model_col="embedding_model",
            hash_col="embedding_text_hash",
            updated_col="embedding_updated_at",
            checked_col="embedding_checked_at",
            content_ts=func.coalesce(Document.content_updated_at, Document.updated_at),
            base_filter=None,
            build_text=lambda row, max_chars: build_note_embedding_text(row, max_body_chars=max_chars),
        )
    if name == "recipes":
        return _Target(
            model=Document,
            vector=Document.recipe_embedding,
            model_col="recipe_embedding_model",
            hash_col="recipe_embedding_text_hash",
            updated_col="recipe_embedding_updated_at",
            checked_col="recipe_embedding_checked_at",
            content_ts=func.coalesce(Document.content_updated_at, Document.updated_at),
            base_filter=Document.doc_kind == DOC_KIND_RECIPE,
            build_text=lambda row, max_chars: build_recipe_semantic_text(row),
        )
    if name == "snapshots":
        return _Target(
            model=LinkedPageSnapshot,
            vector=LinkedPageSnapshot.embedding,
            model_col="embedding_model",
            hash_col="embedding_text_hash",
            updated_col="embedding_updated_at",
            checked_col="embedding_checked_at",
            content_ts=LinkedPageSnapshot.fetched_at,
            base_filter=LinkedPageSnapshot.status == "ok",
            build_text=lambda row, max_chars: build_snapshot_embedding_text(row, max_chars=max_chars),
        )
    raise ValueError(f"Unknown embedding target: {name!r}")


class EmbeddingFreshnessMaintainer:
    """Brings stored embeddings up to date, one bounded batch per call.

    Args:
        session: Async session used for reads and the per-row commits.
        embedding_service: Provider used for rows whose text changed.
    """

    def __init__(self, session: AsyncSession, embedding_service: EmbeddingService) -> None:
        self._session = session
        self._embedding_service = embedding_service

    async def run(
        self,
        target: str = "notes",
        limit: int = 50,
        force: bool = False,
        model: str | None = None,
        max_text_chars: int = 8000,
        after_id: int | None = None,
    ) -> FreshnessReport:
        tgt = _target(target)
        report = FreshnessReport(target=target)
        used_model = model or self._embedding_service.model

        missing = await self._select_missing(tgt, limit, after_id)
        stale: list[Any] = []
        if len(missing) < limit:
            stale = await self._select_stale(tgt, limit - len(missing), after_id, [row.id for row in missing])
        rows = missing + stale
        last_stale_id = stale[-1].id if stale else None
        report.examined = len(rows)

        for row in rows:
            row_id = row.id
            now = datetime.now(timezone.utc)
            try:
                text = tgt.build_text(row, max_text_chars)
                if len(text.strip()) < MIN_TEXT_CHARS:
                    await self._write(tgt, row_id, {tgt.checked_col: now})
                    report.skipped += 1
                    continue

                text_hash = hash_embedding_text(text)
                unchanged = (
                    getattr(row, tgt.hash_col) == text_hash
                    and getattr(row, tgt.model_col) == used_model
                    and getattr(row, tgt.vector.key) is not None
                )
                if unchanged and not force:
                    await self._write(tgt, row_id, {tgt.checked_col: now})
                    report.skipped += 1
                    continue

                vector, produced_by = await self._embedding_service.embed(text, model=used_model)
                vec_col, model_col, hash_col, updated_col, checked_col = tgt.columns
                await self._write(
                    tgt,
                    row_id,
                    {
                        vec_col: vector,
                        model_col: produced_by,
                        hash_col: text_hash,
                        updated_col: now,
                        checked_col: now,
                    },
                )
                report.updated += 1
                report.updated_ids.append(row_id)
            except EmbeddingRateLimitError as exc:
                await self._session.rollback()
                report.stopped_due_to_rate_limit = True
                report.retry_after_seconds = exc.retry_after_seconds
                logger.warning(
                    "Embedding backfill (%s) stopped by rate limit at id=%d (retry_after=%s)",
                    target,
                    row_id,
                    exc.retry_after_seconds,
                )
                break
            except Exception as exc:
                await self._session.rollback()
                report.errors += 1
                if len(report.error_samples) < MAX_ERROR_SAMPLES:
                    report.error_samples.append({"id": row_id, "error": str(exc)[:300]})
                logger.exception("Embedding backfill (%s) failed for id=%d", target, row_id)

        if report.stopped_due_to_rate_limit:
            report.next_cursor = after_id
        elif len(missing) >= limit:
            # Stale rows in this id range are still unvisited
            report.next_cursor = after_id if after_id is not None else 0
        elif last_stale_id is not None and len(rows) >= limit:
            report.next_cursor = last_stale_id

        logger.info(
            "Embedding backfill (%s): examined=%d updated=%d skipped=%d errors=%d",
            target,
            report.examined,
            report.updated,
            report.skipped,
            report.errors,
        )
        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _base(self, tgt: _Target, after_id: int | None) -> list[Any]:
        conditions = []
        if tgt.base_filter is not None:
            conditions.append(tgt.base_filter)
        if after_id is not None:
            conditions.append(tgt.model.id > after_id)
        return conditions

    async def _select_missing(self, tgt: _Target, limit: int, after_id: int | None) -> list[Any]:
        if limit <= 0:
            return []
        checked = getattr(tgt.model, tgt.checked_col)
        stmt = (
            select(*tgt.model.__table__.columns)
            .where(
                tgt.vector.is_(None),
                or_(checked.is_(None), checked < tgt.content_ts),
                *self._base(tgt, after_id),
            )
            .order_by(tgt.model.id.asc())
            .limit(limit)
        )
        result = await self._session.execute(stmt)
        return list(result.fetchall())

    async def _select_stale(
        self,
        tgt: _Target,
        limit: int,
        after_id: int | None,
        exclude_ids: list[int],
    ) -> list[Any]:
        if limit <= 0:
            return []
        updated = getattr(tgt.model, tgt.updated_col)
        checked = getattr(tgt.model, tgt.checked_col)
        conditions = [
            tgt.vector.is_not(None),
            or_(updated.is_(None), updated < tgt.content_ts),
            or_(checked.is_(None), checked < tgt.content_ts),
            *self._base(tgt, after_id),
        ]
        if exclude_ids:
            conditions.append(tgt.model.id.not_in(exclude_ids))
        stmt = select(*tgt.model.__table__.columns).where(and_(*conditions)).order_by(tgt.model.id.asc()).limit(limit)
        result = await self._session.execute(stmt)
        return list(result.fetchall())

    async def _write(self, tgt: _Target, row_id: int, values: dict[str, Any]) -> None:
        """Apply *values* to one row in a single UPDATE and commit."""
        if tgt.model is Document:
            # Maintenance writes leave updated_at untouched
            values = {**values, "updated_at": Document.updated_at}
        stmt = update(tgt.model).where(tgt.model.id == row_id).values(**values)
        await self._session.execute(stmt)
        await self._session.commit()
