# @TEST tests/test_channels.py

"""Retrieval channels.

Each channel turns one signal into an ordered candidate list of
:class:`~notecatalog.search.fusion.ChannelHit`:

* ``keyword``           -- tsvector search on documents (phrase plan, then OR fallback)
* ``semantic``          -- pgvector cosine search on document embeddings
* ``ingredient``        -- canonical ingredient-token match, most recent first
* ``snapshot_keyword``  -- tsvector search on linked-page snapshots
* ``snapshot_semantic`` -- pgvector cosine search on snapshot embeddings

Channels open their own session from the session factory so the engine can
run them concurrently.  Snapshot channels map hits to owning documents and
re-check those documents against the document filters in one batched query.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from sqlalchemy import func, literal_column, select
from sqlalchemy.exc import DBAPIError, ProgrammingError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notecatalog.models import DOC_KIND_NOTE, DOC_KIND_RECIPE, Document, LinkedPageSnapshot
from notecatalog.search.criteria import Scope
from notecatalog.search.embeddings import EmbeddingError, EmbeddingNotConfiguredError
from notecatalog.search.filters import CompiledFilter
from notecatalog.search.fusion import ChannelHit
from notecatalog.search.query_parser import KeywordPlan

logger = logging.getLogger(__name__)

TEXT_SEARCH_CONFIG = "english"

# Columns the Python post-filter reads
_POSTFILTER_COLUMNS = (
    Document.id,
    Document.ingredient_tokens,
    Document.cooked_count,
    Document.last_cooked_at,
    Document.avg_cooked_rating,
    Document.cooked_history,
)


def _tsquery(plan: str, any_group: str | None = None):
    config = literal_column(f"'{TEXT_SEARCH_CONFIG}'")
    query = func.websearch_to_tsquery(config, plan)
    if any_group:
        query = query.op("&&")(func.websearch_to_tsquery(config, any_group)).self_group()
    return query


def map_semantic_error(exc: BaseException) -> str:
    """Classify a semantic-channel failure for logs and explain output."""
    if isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    if isinstance(exc, EmbeddingNotConfiguredError):
        return "not_configured"
    if isinstance(exc, EmbeddingError):
        return "error"
    if isinstance(exc, (ProgrammingError, DBAPIError)):
        message = str(exc).lower()
        if "column" in message and "does not exist" in message:
            return "missing_embedding_field"
        if "index" in message or "operator does not exist" in message or "type \"vector\"" in message:
            return "missing_index"
    return "error"


async def refilter_documents(
    session: AsyncSession,
    document_ids: Sequence[int],
    compiled: CompiledFilter,
) -> set[int]:
    """Return the subset of *document_ids* passing the document filters.

    One query for the whole id set: the pre-filter runs in SQL, the
    post-filter on the returned rows.
    """
    if not document_ids:
        return set()
    stmt = select(*_POSTFILTER_COLUMNS).where(
        Document.id.in_(list(document_ids)),
        compiled.prefilter.to_clause(),
    )
    result = await session.execute(stmt)
    return {row.id for row in result.fetchall() if compiled.postfilter.matches(row)}


def _owner_hits(
    channel: str,
    rows: Sequence[Any],
    allowed: set[int],
    limit: int,
) -> list[ChannelHit]:
    """Map snapshot rows to owning documents: first occurrence wins, filtered, re-ranked."""
    hits: list[ChannelHit] = []
    seen: set[int] = set()
    for row in rows:
        doc_id = row.document_id
        if doc_id in seen or doc_id not in allowed:
            continue
        seen.add(doc_id)
        hits.append(ChannelHit(document_id=doc_id, rank=len(hits), score=float(row.score), channel=channel))
        if len(hits) >= limit:
            break
    return hits


def _unique_owner_ids(rows: Sequence[Any]) -> list[int]:
    return list(dict.fromkeys(row.document_id for row in rows))


class KeywordChannel:
    """PostgreSQL tsvector search over documents.

    The primary plan runs first; when it returns fewer than ``limit`` hits
    and the plan has a fallback, fallback hits are appended after every
    primary hit, so an exact phrase always outranks scattered terms.

    Args:
        session_factory: Factory for the channel's own AsyncSession.
    """

    name = "keyword"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(self, plan: KeywordPlan | None, compiled: CompiledFilter, limit: int) -> list[ChannelHit]:
        if plan is None or limit <= 0:
            return []

        async with self._session_factory() as session:
            rows = await self._run(session, plan.primary, compiled, limit, plan.any_group)
            if plan.fallback and len(rows) < limit:
                primary_ids = {row.id for row in rows}
                fallback = await self._run(session, plan.fallback, compiled, limit)
                extra = [row for row in fallback if row.id not in primary_ids][: limit - len(rows)]
                logger.debug("Keyword fallback %r added %d hits", plan.fallback, len(extra))
                rows += extra

        return [
            ChannelHit(document_id=row.id, rank=rank, score=float(row.score), channel=self.name)
            for rank, row in enumerate(rows)
        ]

    @staticmethod
    async def _run(
        session: AsyncSession,
        plan: str,
        compiled: CompiledFilter,
        limit: int,
        any_group: str | None = None,
    ) -> list[Any]:
        tsquery = _tsquery(plan, any_group)
        score = func.ts_rank_cd(Document.search_vector, tsquery).label("score")
        stmt = (
            select(Document.id, score)
            .where(Document.search_vector.op("@@")(tsquery), compiled.combined.to_clause())
            .order_by(score.desc(), Document.id.asc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.fetchall())


class SemanticChannel:
    """pgvector cosine search over document embeddings.

    Notes are searched on ``embedding`` and recipes on
    ``recipe_embedding``; scope ``all`` searches both and keeps each
    document's best similarity.  The pre-filter runs inside the ANN query,
    the post-filter on the returned candidates.
    """

    name = "semantic"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @staticmethod
    def _targets(scope: Scope) -> list[tuple[Any, str]]:
        targets = []
        if scope in (Scope.notes, Scope.all):
            targets.append((Document.embedding, DOC_KIND_NOTE))
        if scope in (Scope.recipes, Scope.all):
            targets.append((Document.recipe_embedding, DOC_KIND_RECIPE))
        return targets

    async def search(
        self,
        vector: list[float] | None,
        compiled: CompiledFilter,
        scope: Scope,
        limit: int,
        num_candidates: int,
        min_similarity: float = 0.0,
    ) -> list[ChannelHit]:
        if not vector or limit <= 0:
            return []

        best: dict[int, float] = {}
        async with self._session_factory() as session:
            for column, kind in self._targets(scope):
                distance = column.cosine_distance(vector).label("distance")
                stmt = (
                    select(*_POSTFILTER_COLUMNS, distance)
                    .where(column.is_not(None), compiled.with_kind(kind).prefilter.to_clause())
                    .order_by(distance.asc())
                    .limit(num_candidates)
                )
                result = await session.execute(stmt)
                for row in result.fetchall():
                    similarity = round(1.0 - float(row.distance), 10)
                    if similarity < min_similarity or not compiled.postfilter.matches(row):
                        continue
                    if similarity > best.get(row.id, -1.0):
                        best[row.id] = similarity

        ordered = sorted(best.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [
            ChannelHit(document_id=doc_id, rank=rank, score=score, channel=self.name)
            for rank, (doc_id, score) in enumerate(ordered)
        ]


class IngredientChannel:
    """Direct canonical-token match on recipes, most recently changed first."""

    name = "ingredient"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(self, compiled: CompiledFilter, limit: int) -> list[ChannelHit]:
        if not compiled.has_ingredient_filter or limit <= 0:
            return []

        stmt = (
            select(Document.id)
            .where(Document.doc_kind == DOC_KIND_RECIPE, compiled.combined.to_clause())
            .order_by(
                Document.content_updated_at.desc().nulls_last(),
                Document.updated_at.desc(),
                Document.id.desc(),
            )
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            ids = [row.id for row in result.fetchall()]

        return [ChannelHit(document_id=doc_id, rank=rank, score=1.0, channel=self.name) for rank, doc_id in enumerate(ids)]


class SnapshotKeywordChannel:
    """tsvector search over linked-page snapshots, mapped to owning documents."""

    name = "snapshot_keyword"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(self, plan: KeywordPlan | None, compiled: CompiledFilter, limit: int) -> list[ChannelHit]:
        if plan is None or limit <= 0:
            return []

        # Snapshots take the broad plan when there is one
        query = plan.fallback or plan.primary
        tsquery = _tsquery(query, plan.any_group)
        score = func.ts_rank_cd(LinkedPageSnapshot.search_vector, tsquery).label("score")
        stmt = (
            select(LinkedPageSnapshot.document_id, score)
            .where(
                LinkedPageSnapshot.status == "ok",
                LinkedPageSnapshot.search_vector.op("@@")(tsquery),
            )
            .order_by(score.desc(), LinkedPageSnapshot.id.asc())
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = list(result.fetchall())
            allowed = await refilter_documents(session, _unique_owner_ids(rows), compiled)

        return _owner_hits(self.name, rows, allowed, limit)


class SnapshotSemanticChannel:
    """pgvector cosine search over snapshot embeddings, mapped to owning documents."""

    name = "snapshot_semantic"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def search(
        self,
        vector: list[float] | None,
        compiled: CompiledFilter,
        limit: int,
        num_candidates: int,
        min_similarity: float = 0.0,
    ) -> list[ChannelHit]:
        if not vector or limit <= 0:
            return []

        distance = LinkedPageSnapshot.embedding.cosine_distance(vector)
        score = (1.0 - distance).label("score")
        stmt = (
            select(LinkedPageSnapshot.document_id, score)
            .where(LinkedPageSnapshot.status == "ok", LinkedPageSnapshot.embedding.is_not(None))
            .order_by(distance.asc())
            .limit(num_candidates)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            rows = [row for row in result.fetchall() if float(row.score) >= min_similarity]
            allowed = await refilter_documents(session, _unique_owner_ids(rows), compiled)

        return _owner_hits(self.name, rows, allowed, limit)
