# @TEST tests/test_filters.py

"""Filter compilation: search criteria -> pre-filter + post-filter.

Filters are a small predicate tree over :class:`~notecatalog.models.Document`
columns.  Every node renders to a SQLAlchemy clause (``to_clause``) and can
also be evaluated against a loaded row (``matches``), so the same filter
serves three places:

* the **pre-filter** goes into the ANN query alongside the vector ordering
  (scope, hierarchy, tags, dates, recipe metadata);
* the **post-filter** is checked in Python on ANN candidates (ingredient
  tokens, cooking history);
* the **combined** filter is a plain WHERE clause for keyword, ingredient
  and browse queries.

Cooking history exists in two shapes: the precomputed aggregate columns
(``cooked_count``, ``last_cooked_at``, ``avg_cooked_rating``) and the raw
``cooked_history`` list on rows not yet backfilled.  Each cooked predicate
is an OR across both.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from sqlalchemy import and_, cast, func, literal, not_, or_, true
from sqlalchemy.dialects.postgresql import JSONB, JSONPATH
from sqlalchemy.sql.elements import ColumnElement

from notecatalog.models import DOC_KIND_NOTE, DOC_KIND_RECIPE, Document
from notecatalog.search.canonical import canonicalize_filter_tokens
from notecatalog.search.criteria import CookedFilter, Scope, SearchCriteria


def _column(name: str):
    return getattr(Document, name)


def _value(obj: Any, name: str) -> Any:
    return getattr(obj, name, None)


def _aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def _parse_datetime(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return _aware(value)
    if isinstance(value, str) and value:
        try:
            return _aware(datetime.fromisoformat(value.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def _comparable(value: Any) -> Any:
    return _aware(value) if isinstance(value, datetime) else value


# ---------------------------------------------------------------------------
# Predicate nodes
# ---------------------------------------------------------------------------


class Predicate:
    """Base predicate node."""

    def to_clause(self) -> ColumnElement[bool]:
        raise NotImplementedError

    def matches(self, obj: Any) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class Eq(Predicate):
    field: str
    value: Any

    def to_clause(self) -> ColumnElement[bool]:
        return _column(self.field) == self.value

    def matches(self, obj: Any) -> bool:
        return _value(obj, self.field) == self.value


@dataclass(frozen=True)
class In(Predicate):
    field: str
    values: tuple[Any, ...]

    def to_clause(self) -> ColumnElement[bool]:
        return _column(self.field).in_(self.values)

    def matches(self, obj: Any) -> bool:
        return _value(obj, self.field) in self.values


@dataclass(frozen=True)
class IsNull(Predicate):
    field: str

    def to_clause(self) -> ColumnElement[bool]:
        return _column(self.field).is_(None)

    def matches(self, obj: Any) -> bool:
        return _value(obj, self.field) is None


@dataclass(frozen=True)
class HasText(Predicate):
    """Column is neither NULL nor the empty string."""

    field: str

    def to_clause(self) -> ColumnElement[bool]:
        col = _column(self.field)
        return and_(col.is_not(None), col != "")

    def matches(self, obj: Any) -> bool:
        return bool(_value(obj, self.field))


@dataclass(frozen=True)
class Compare(Predicate):
    """``field <op> value``; a NULL column never matches."""

    field: str
    op: str  # "gt", "gte", "lte"
    value: Any

    def to_clause(self) -> ColumnElement[bool]:
        col = _column(self.field)
        if self.op == "gt":
            return col > self.value
        if self.op == "gte":
            return col >= self.value
        return col <= self.value

    def matches(self, obj: Any) -> bool:
        current = _value(obj, self.field)
        if current is None:
            return False
        current, bound = _comparable(current), _comparable(self.value)
        if self.op == "gt":
            return current > bound
        if self.op == "gte":
            return current >= bound
        return current <= bound


@dataclass(frozen=True)
class ArrayContainsAll(Predicate):
    """Array column holds every value (``@>``)."""

    field: str
    values: tuple[str, ...]

    def to_clause(self) -> ColumnElement[bool]:
        return _column(self.field).contains(list(self.values))

    def matches(self, obj: Any) -> bool:
        return set(self.values) <= set(_value(obj, self.field) or [])


@dataclass(frozen=True)
class ArrayOverlaps(Predicate):
    """Array column holds at least one value (``&&``)."""

    field: str
    values: tuple[str, ...]

    def to_clause(self) -> ColumnElement[bool]:
        return _column(self.field).overlap(list(self.values))

    def matches(self, obj: Any) -> bool:
        return bool(set(self.values) & set(_value(obj, self.field) or []))


@dataclass(frozen=True)
class ArrayExcludesAll(Predicate):
    """Array column holds none of the values; a NULL array qualifies."""

    field: str
    values: tuple[str, ...]

    def to_clause(self) -> ColumnElement[bool]:
        col = _column(self.field)
        return or_(col.is_(None), not_(col.overlap(list(self.values))))

    def matches(self, obj: Any) -> bool:
        return not (set(self.values) & set(_value(obj, self.field) or []))


def _history(obj: Any) -> list[dict]:
    events = _value(obj, "cooked_history") or []
    return [e for e in events if isinstance(e, dict)]


@dataclass(frozen=True)
class HistoryNonEmpty(Predicate):
    """Raw cooking history has at least one event."""

    def to_clause(self) -> ColumnElement[bool]:
        history = func.coalesce(Document.cooked_history, literal([], type_=JSONB))
        return func.jsonb_array_length(history) > 0

    def matches(self, obj: Any) -> bool:
        return bool(_history(obj))


@dataclass(frozen=True)
class HistoryAny(Predicate):
    """Some raw history event has ``key >= value``.

    ``cookedAt`` values are ISO-8601 UTC strings, so the database compares
    them as strings; the Python side parses them.
    """

    key: str  # "cookedAt" or "rating"
    value: Any

    def to_clause(self) -> ColumnElement[bool]:
        bound = self.value
        if isinstance(bound, datetime):
            bound = _aware(bound).astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S")
        history = func.coalesce(Document.cooked_history, literal([], type_=JSONB))
        return func.jsonb_path_exists(
            history,
            cast(f"$[*] ? (@.{self.key} >= $bound)", JSONPATH),
            literal({"bound": bound}, type_=JSONB),
        )

    def matches(self, obj: Any) -> bool:
        for event in _history(obj):
            raw = event.get(self.key)
            if raw is None:
                continue
            if isinstance(self.value, datetime):
                parsed = _parse_datetime(raw)
                if parsed is not None and parsed >= _aware(self.value):
                    return True
            elif isinstance(raw, (int, float)) and raw >= self.value:
                return True
        return False


@dataclass(frozen=True)
class And(Predicate):
    items: tuple[Predicate, ...] = ()

    def to_clause(self) -> ColumnElement[bool]:
        if not self.items:
            return true()
        if len(self.items) == 1:
            return self.items[0].to_clause()
        return and_(*(p.to_clause() for p in self.items))

    def matches(self, obj: Any) -> bool:
        return all(p.matches(obj) for p in self.items)

    def __bool__(self) -> bool:
        return bool(self.items)


@dataclass(frozen=True)
class Or(Predicate):
    items: tuple[Predicate, ...]

    def to_clause(self) -> ColumnElement[bool]:
        return or_(*(p.to_clause() for p in self.items))

    def matches(self, obj: Any) -> bool:
        return any(p.matches(obj) for p in self.items)


@dataclass(frozen=True)
class Not(Predicate):
    """Negation of a predicate whose clause never evaluates to NULL."""

    item: Predicate

    def to_clause(self) -> ColumnElement[bool]:
        return not_(self.item.to_clause())

    def matches(self, obj: Any) -> bool:
        return not self.item.matches(obj)


# ---------------------------------------------------------------------------
# Compilation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CompiledFilter:
    """Pre-filter and post-filter for one request.

    Attributes:
        prefilter: Predicates the index can evaluate next to an ANN search.
        postfilter: Predicates checked on candidates after ANN selection.
        include_tokens: Canonical ingredient tokens that must all be present.
        exclude_tokens: Canonical ingredient tokens that must all be absent.
    """

    prefilter: And = field(default_factory=And)
    postfilter: And = field(default_factory=And)
    include_tokens: tuple[str, ...] = ()
    exclude_tokens: tuple[str, ...] = ()

    @property
    def combined(self) -> And:
        return And(self.prefilter.items + self.postfilter.items)

    @property
    def has_ingredient_filter(self) -> bool:
        return bool(self.include_tokens or self.exclude_tokens)

    def with_kind(self, kind: str) -> CompiledFilter:
        """Copy with the pre-filter narrowed to one document kind."""
        return CompiledFilter(
            prefilter=And(self.prefilter.items + (Eq("doc_kind", kind),)),
            postfilter=self.postfilter,
            include_tokens=self.include_tokens,
            exclude_tokens=self.exclude_tokens,
        )


def expand_variants(values: Iterable[str]) -> tuple[str, ...]:
    """Original, lower and Title Case spellings of each value, deduplicated."""
    out: dict[str, None] = {}
    for raw in values:
        value = str(raw).strip()
        if not value:
            continue
        for variant in (value, value.lower(), value.title()):
            out.setdefault(variant, None)
    return tuple(out)


def _clean_list(values: Sequence[str]) -> tuple[str, ...]:
    return tuple(v.strip() for v in values if v and v.strip())


def scope_predicate(scope: Scope) -> Predicate | None:
    if scope == Scope.recipes:
        return Eq("doc_kind", DOC_KIND_RECIPE)
    if scope == Scope.notes:
        return Eq("doc_kind", DOC_KIND_NOTE)
    return None


def cooked_predicates(
    cooked: CookedFilter = CookedFilter.any,
    within_days: int | None = None,
    min_avg_rating: float | None = None,
    now: datetime | None = None,
) -> list[Predicate]:
    """Cooking-history predicates, one per active constraint (AND-ed by the caller).

    ``never`` is the exact negation of ``ever``: no positive count (an
    absent count qualifies) and an empty history.
    """
    predicates: list[Predicate] = []
    ever = Or((Compare("cooked_count", "gt", 0), HistoryNonEmpty()))

    if cooked == CookedFilter.ever:
        predicates.append(ever)
    elif cooked == CookedFilter.never:
        predicates.append(
            And((
                Or((IsNull("cooked_count"), Compare("cooked_count", "lte", 0))),
                Not(HistoryNonEmpty()),
            ))
        )

    if within_days is not None and within_days > 0:
        cutoff = (now or datetime.now(timezone.utc)) - timedelta(days=within_days)
        predicates.append(Or((Compare("last_cooked_at", "gte", cutoff), HistoryAny("cookedAt", cutoff))))

    if min_avg_rating is not None:
        predicates.append(
            Or((Compare("avg_cooked_rating", "gte", min_avg_rating), HistoryAny("rating", min_avg_rating)))
        )

    return predicates


def compile_filters(criteria: SearchCriteria, now: datetime | None = None) -> CompiledFilter:
    """Compile request criteria into a pre-filter and a post-filter.

    Ingredient filters that canonicalize to nothing ("for serving") add no
    constraint.
    """
    f = criteria.filters
    pre: list[Predicate] = []

    kind = scope_predicate(criteria.scope)
    if kind is not None:
        pre.append(kind)
    if f.subject_id:
        pre.append(Eq("subject_id", f.subject_id))
    if f.topic_id:
        pre.append(Eq("topic_id", f.topic_id))
    tags = _clean_list(f.tags)
    if tags:
        pre.append(ArrayContainsAll("tags", tags))
    if f.status and f.status.strip():
        pre.append(Eq("status", f.status.strip()))
    if f.imported_only is True:
        pre.append(HasText("import_batch_id"))
    elif f.imported_only is False:
        pre.append(Not(HasText("import_batch_id")))
    if f.import_batch_id and f.import_batch_id.strip():
        pre.append(Eq("import_batch_id", f.import_batch_id.strip()))
    if f.source_type and f.source_type.strip():
        pre.append(Eq("source_type", f.source_type.strip()))
    if f.updated_from is not None:
        pre.append(Compare("content_updated_at", "gte", f.updated_from))
    if f.updated_to is not None:
        pre.append(Compare("content_updated_at", "lte", f.updated_to))
    if f.created_from is not None:
        pre.append(Compare("created_at", "gte", f.created_from))
    if f.created_to is not None:
        pre.append(Compare("created_at", "lte", f.created_to))
    for column, bound in (
        ("prep_time_minutes", f.max_prep_minutes),
        ("cook_time_minutes", f.max_cook_minutes),
        ("total_time_minutes", f.max_total_minutes),
    ):
        if bound is not None:
            pre.append(Compare(column, "lte", bound))
    if f.cuisine:
        variants = expand_variants(f.cuisine)
        if variants:
            pre.append(In("cuisine", variants))
    for column, values in (("category", f.category), ("keywords", f.keywords)):
        variants = expand_variants(values)
        if variants:
            pre.append(ArrayOverlaps(column, variants))

    post: list[Predicate] = []
    include = tuple(canonicalize_filter_tokens(f.include_ingredients))
    exclude = tuple(canonicalize_filter_tokens(f.exclude_ingredients))
    if include:
        post.append(ArrayContainsAll("ingredient_tokens", include))
    if exclude:
        post.append(ArrayExcludesAll("ingredient_tokens", exclude))
    post.extend(cooked_predicates(f.cooked, f.cooked_within_days, f.min_avg_rating, now=now))

    return CompiledFilter(
        prefilter=And(tuple(pre)),
        postfilter=And(tuple(post)),
        include_tokens=include,
        exclude_tokens=exclude,
    )
