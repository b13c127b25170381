# @TEST tests/test_engine.py

"""Search orchestration: mode policy, concurrent channels, fusion and paging.

Flow for one request::

    criteria -> compile filters -> keyword plan
             -> embed query once (semantic channels only)
             -> run channels concurrently (each under a timeout)
             -> fuse (auto/hybrid) or keep native order (keyword/semantic)
             -> slice [offset : offset + limit] -> load rows -> snippets

Pagination is merge-then-slice: every channel fetches the same candidate
depth (the keyword cap) and only the fused list is sliced, so consecutive
pages agree while no channel fills its depth.  ``approximate_total`` is the
number of fused candidates, not a corpus-wide count; browse mode (empty
or ``*`` query) lists filtered documents by recency with an exact count.

Failure policy: semantic and snapshot channels degrade to no contribution
when the provider or vector index fails; keyword channel errors propagate.
Any channel that times out contributes nothing.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from datetime import datetime

from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from notecatalog.models import Document
from notecatalog.search.channels import (
    IngredientChannel,
    KeywordChannel,
    SemanticChannel,
    SnapshotKeywordChannel,
    SnapshotSemanticChannel,
    map_semantic_error,
)
from notecatalog.search.criteria import SearchCriteria, SearchMode
from notecatalog.search.embeddings import EmbeddingService
from notecatalog.search.filters import CompiledFilter, compile_filters
from notecatalog.search.fusion import ChannelContribution, ChannelHit, FusedHit, rrf_fuse, single_channel
from notecatalog.search.params import channel_weights, get_search_params
from notecatalog.search.query_parser import build_keyword_plan
from notecatalog.search.snippets import build_snippet, extract_snippet_terms

logger = logging.getLogger(__name__)


def _dt_to_iso(dt: datetime | None) -> str | None:
    """Convert a datetime to ISO 8601 string, or None."""
    return dt.isoformat() if dt else None


class SearchHit(BaseModel):
    """A single search result."""

    document_id: int
    title: str
    subject_id: str | None = None
    topic_id: str | None = None
    doc_kind: str
    snippet: str | None = None
    score: float | None = None
    updated_at: str | None = None
    channels: list[str] = Field(default_factory=list)
    contributions: list[ChannelContribution] = Field(default_factory=list)


class SearchPage(BaseModel):
    """One page of results.

    Attributes:
        approximate_total: Fused candidate count before paging (exact in browse mode).
        degraded: Channel name -> failure reason for channels that contributed nothing.
    """

    hits: list[SearchHit]
    approximate_total: int
    mode: str
    channels: list[str] = Field(default_factory=list)
    degraded: dict[str, str] = Field(default_factory=dict)


class SearchEngine:
    """Runs the retrieval channels for a request and fuses their results.

    Args:
        session_factory: Factory used by each channel and for loading result rows.
        embedding_service: Query embedding provider.
        timeout_seconds: Per-channel (and query-embedding) time budget.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        embedding_service: EmbeddingService,
        timeout_seconds: float = 8.0,
    ) -> None:
        self._session_factory = session_factory
        self._embedding_service = embedding_service
        self._timeout = timeout_seconds
        self.keyword = KeywordChannel(session_factory)
        self.semantic = SemanticChannel(session_factory)
        self.ingredient = IngredientChannel(session_factory)
        self.snapshot_keyword = SnapshotKeywordChannel(session_factory)
        self.snapshot_semantic = SnapshotSemanticChannel(session_factory)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def search(self, criteria: SearchCriteria, now: datetime | None = None) -> SearchPage:
        compiled = compile_filters(criteria, now=now)
        if criteria.is_browse:
            return await self.browse(criteria, compiled)

        channel_lists, degraded = await self._gather_channels(criteria, compiled)

        if len(channel_lists) == 1:
            (only,) = channel_lists.values()
            fused = single_channel(only)
        else:
            params = get_search_params()
            fused = rrf_fuse(channel_lists, channel_weights(), k=int(params["rrf_k"]))

        page = fused[criteria.offset : criteria.offset + criteria.limit]
        hits = await self._hydrate(page, criteria)

        logger.info(
            "Search: mode=%s scope=%s channels=%s candidates=%d returned=%d degraded=%s",
            criteria.mode.value,
            criteria.scope.value,
            {name: len(items) for name, items in channel_lists.items()},
            len(fused),
            len(hits),
            degraded or None,
        )
        return SearchPage(
            hits=hits,
            approximate_total=len(fused),
            mode=criteria.mode.value,
            channels=list(channel_lists),
            degraded=degraded,
        )

    async def browse(self, criteria: SearchCriteria, compiled: CompiledFilter) -> SearchPage:
        """List filtered documents, most recently changed first, with an exact total."""
        where = compiled.combined.to_clause()
        async with self._session_factory() as session:
            total = (await session.execute(select(func.count()).select_from(Document).where(where))).scalar_one()
            stmt = (
                select(Document)
                .where(where)
                .order_by(
                    Document.content_updated_at.desc().nulls_last(),
                    Document.updated_at.desc(),
                    Document.id.desc(),
                )
                .offset(criteria.offset)
                .limit(criteria.limit)
            )
            docs = (await session.execute(stmt)).scalars().all()

        hits = [
            SearchHit(
                document_id=doc.id,
                title=doc.title or "Untitled",
                subject_id=doc.subject_id,
                topic_id=doc.topic_id,
                doc_kind=doc.doc_kind,
                updated_at=_dt_to_iso(doc.updated_at),
            )
            for doc in docs
        ]
        return SearchPage(hits=hits, approximate_total=int(total), mode="browse")

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _channel_names(self, criteria: SearchCriteria, compiled: CompiledFilter) -> list[str]:
        """Channels that apply to this request's mode and scope."""
        if criteria.mode == SearchMode.keyword:
            return ["keyword", "snapshot_keyword"] if criteria.include_linked_snapshots else ["keyword"]
        if criteria.mode == SearchMode.semantic:
            return ["semantic"]
        names = ["keyword", "semantic"]
        if compiled.has_ingredient_filter and criteria.wants_recipes:
            names.append("ingredient")
        if criteria.include_linked_snapshots:
            names += ["snapshot_keyword", "snapshot_semantic"]
        return names

    async def _embed_query(self, text: str) -> list[float]:
        vector, _ = await asyncio.wait_for(self._embedding_service.embed(text), timeout=self._timeout)
        return vector

    async def _gather_channels(
        self,
        criteria: SearchCriteria,
        compiled: CompiledFilter,
    ) -> tuple[dict[str, list[ChannelHit]], dict[str, str]]:
        names = self._channel_names(criteria, compiled)
        plan = build_keyword_plan(criteria.parsed)
        degraded: dict[str, str] = {}
        depth = criteria.keyword_cap
        candidates = max(criteria.semantic_candidates, depth)
        threshold = criteria.semantic_threshold

        vector: list[float] | None = None
        semantic_names = [n for n in names if n in ("semantic", "snapshot_semantic")]
        if semantic_names:
            try:
                vector = await self._embed_query(criteria.text)
            except Exception as exc:
                reason = map_semantic_error(exc)
                logger.warning("Query embedding failed (%s) for query: %r", reason, criteria.text)
                for name in semantic_names:
                    degraded[name] = reason

        tasks: dict[str, Awaitable[list[ChannelHit]]] = {}
        for name in names:
            if name == "keyword":
                tasks[name] = self.keyword.search(plan, compiled, depth)
            elif name == "semantic" and vector is not None:
                tasks[name] = self.semantic.search(vector, compiled, criteria.scope, depth, candidates, threshold)
            elif name == "ingredient":
                tasks[name] = self.ingredient.search(compiled, depth)
            elif name == "snapshot_keyword":
                tasks[name] = self.snapshot_keyword.search(plan, compiled, depth)
            elif name == "snapshot_semantic" and vector is not None:
                tasks[name] = self.snapshot_semantic.search(vector, compiled, depth, candidates, threshold)

        results = await asyncio.gather(
            *(self._safe_search(name, coro, degraded) for name, coro in tasks.items())
        )
        lists = dict(zip(tasks, results))
        for name in names:
            lists.setdefault(name, [])
        return {name: lists[name] for name in names}, degraded

    async def _safe_search(
        self,
        name: str,
        coro: Awaitable[list[ChannelHit]],
        degraded: dict[str, str],
    ) -> list[ChannelHit]:
        """Await one channel under the timeout.

        Semantic and snapshot channel errors are logged and yield ``[]``;
        keyword errors are re-raised.  A timeout always yields ``[]``.
        """
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.warning("%s channel timed out after %.1fs", name, self._timeout)
            degraded[name] = "timeout"
            return []
        except Exception as exc:
            if name == "keyword":
                raise
            reason = map_semantic_error(exc)
            logger.warning("%s channel failed (%s): %s", name, reason, exc)
            degraded[name] = reason
            return []

    async def _hydrate(self, page: list[FusedHit], criteria: SearchCriteria) -> list[SearchHit]:
        """Load display fields for one page of fused hits in a single query."""
        if not page:
            return []

        ids = [item.document_id for item in page]
        stmt = select(
            Document.id,
            Document.title,
            Document.subject_id,
            Document.topic_id,
            Document.doc_kind,
            Document.body,
            Document.updated_at,
        ).where(Document.id.in_(ids))
        async with self._session_factory() as session:
            rows = {row.id: row for row in (await session.execute(stmt)).fetchall()}

        terms = extract_snippet_terms(criteria.parsed)
        max_len = int(get_search_params()["snippet_max_chars"])
        hits: list[SearchHit] = []
        for item in page:
            row = rows.get(item.document_id)
            if row is None:
                # Deleted between retrieval and hydration
                continue
            hits.append(
                SearchHit(
                    document_id=row.id,
                    title=row.title or "Untitled",
                    subject_id=row.subject_id,
                    topic_id=row.topic_id,
                    doc_kind=row.doc_kind,
                    snippet=build_snippet(row.body, terms, max_len=max_len),
                    score=item.score,
                    updated_at=_dt_to_iso(row.updated_at),
                    channels=item.channels,
                    contributions=item.contributions if criteria.explain else [],
                )
            )
        return hits
