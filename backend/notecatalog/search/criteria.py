# @TEST tests/test_criteria.py

"""Request-scoped search criteria.

:func:`build_criteria` is the single place where a raw search request is
normalized: operators are pulled out of the query text, the remaining
text is parsed, limits are clamped and operator values are merged into the
structured filters.  Everything downstream (filter compiler, channels,
engine) reads a :class:`SearchCriteria` and never the raw request.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum

from notecatalog.search.operators import ExtractedQuery, extract_operators
from notecatalog.search.params import get_search_params
from notecatalog.search.query_parser import ParsedQuery, parse_query

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 20
MAX_TIME_MINUTES = 72460
WILDCARD_QUERIES = frozenset({"", "*"})


class Scope(str, Enum):
    """Which document kinds a search targets."""

    notes = "notes"
    recipes = "recipes"
    all = "all"


class SearchMode(str, Enum):
    """Retrieval mode requested by the client."""

    auto = "auto"
    hybrid = "hybrid"
    keyword = "keyword"
    semantic = "semantic"


class CookedFilter(str, Enum):
    any = "any"
    ever = "ever"
    never = "never"


@dataclass
class SearchFilters:
    """Structured filters, all optional and AND-ed together.

    Attributes:
        tags: Document must carry every listed tag (contains-all), so
            each added tag narrows the result; this differs from the
            match-any behavior of cuisine, category and keywords.
        imported_only: True keeps imported documents only, False keeps
            documents without an import batch, None disables the check.
        updated_from / updated_to: Bounds on ``content_updated_at``.
        max_*_minutes: Upper bounds on recipe times, clamped to [0, 72460].
        cuisine / category / keywords: Match any listed value, case-insensitively.
        include_ingredients / exclude_ingredients: Raw ingredient phrases;
            canonicalized by the filter compiler.
    """

    subject_id: str | None = None
    topic_id: str | None = None
    tags: list[str] = field(default_factory=list)
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
    cuisine: list[str] = field(default_factory=list)
    category: list[str] = field(default_factory=list)
    keywords: list[str] = field(default_factory=list)
    include_ingredients: list[str] = field(default_factory=list)
    exclude_ingredients: list[str] = field(default_factory=list)
    cooked: CookedFilter = CookedFilter.any
    cooked_within_days: int | None = None
    min_avg_rating: float | None = None


@dataclass
class SearchCriteria:
    """Everything one search request needs, normalized once."""

    raw_query: str
    text: str
    parsed: ParsedQuery
    scope: Scope = Scope.notes
    mode: SearchMode = SearchMode.auto
    filters: SearchFilters = field(default_factory=SearchFilters)
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    include_linked_snapshots: bool = False
    min_semantic_score: float | None = None
    explain: bool = False

    @property
    def is_browse(self) -> bool:
        """Empty or ``*`` query: list filtered documents, most recent first."""
        return self.text.strip() in WILDCARD_QUERIES or self.parsed.is_empty

    @property
    def fetch_limit(self) -> int:
        """End position of this page in the fused list."""
        return self.offset + self.limit

    @property
    def keyword_cap(self) -> int:
        """Candidate depth shared by every channel."""
        return min(max(self.fetch_limit * 5, 50), 500)

    @property
    def semantic_candidates(self) -> int:
        return max(self.limit * 10, 100)

    @property
    def semantic_threshold(self) -> float:
        """Minimum cosine similarity for semantic hits.

        An explicit request value wins; otherwise recipes use a lower bar
        than notes, and semantic-only mode is stricter than fused modes.
        """
        if self.min_semantic_score is not None:
            return min(max(self.min_semantic_score, 0.0), 1.0)
        params = get_search_params()
        strict = self.mode == SearchMode.semantic
        if self.scope == Scope.recipes:
            key = "min_semantic_recipes_strict" if strict else "min_semantic_recipes"
        else:
            key = "min_semantic_notes_strict" if strict else "min_semantic_notes"
        return float(params[key])

    @property
    def wants_recipes(self) -> bool:
        return self.scope in (Scope.recipes, Scope.all)

    @property
    def wants_notes(self) -> bool:
        return self.scope in (Scope.notes, Scope.all)


def clamp_minutes(value: int | None) -> int | None:
    if value is None:
        return None
    return min(max(int(value), 0), MAX_TIME_MINUTES)


def _parse_operator_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug("Ignoring unparseable date operator: %r", value)
        return None


def merge_operators(filters: SearchFilters, extracted: ExtractedQuery) -> SearchFilters:
    """Merge inline operator values into *filters*.

    Explicit request filters win over operators for single-valued fields;
    operator tags are added to the request's tag list.
    """
    tags = list(filters.tags)
    seen = {t.lower() for t in tags}
    for tag in extracted.tags:
        if tag.lower() not in seen:
            seen.add(tag.lower())
            tags.append(tag)

    return replace(
        filters,
        subject_id=filters.subject_id or extracted.subject,
        topic_id=filters.topic_id or extracted.topic,
        tags=tags,
        status=filters.status or extracted.status,
        imported_only=filters.imported_only if filters.imported_only is not None else extracted.imported,
        updated_from=filters.updated_from or _parse_operator_date(extracted.updated_from),
        updated_to=filters.updated_to or _parse_operator_date(extracted.updated_to),
    )


def build_criteria(
    q: str | None,
    *,
    scope: Scope = Scope.notes,
    mode: SearchMode = SearchMode.auto,
    filters: SearchFilters | None = None,
    limit: int | None = None,
    offset: int | None = None,
    include_linked_snapshots: bool = False,
    min_semantic_score: float | None = None,
    explain: bool = False,
    max_limit: int = 50,
) -> SearchCriteria:
    """Normalize a raw search request into :class:`SearchCriteria`."""
    raw = (q or "").strip()
    extracted = extract_operators(raw)
    merged = filters or SearchFilters()
    if extracted.has_operators:
        merged = merge_operators(merged, extracted)
    merged = replace(
        merged,
        max_prep_minutes=clamp_minutes(merged.max_prep_minutes),
        max_cook_minutes=clamp_minutes(merged.max_cook_minutes),
        max_total_minutes=clamp_minutes(merged.max_total_minutes),
    )

    return SearchCriteria(
        raw_query=raw,
        text=extracted.text,
        parsed=parse_query(extracted.text),
        scope=scope,
        mode=mode,
        filters=merged,
        limit=min(max(limit if limit is not None else DEFAULT_LIMIT, 1), max_limit),
        offset=max(offset or 0, 0),
        include_linked_snapshots=include_linked_snapshots,
        min_semantic_score=min_semantic_score,
        explain=explain,
    )
