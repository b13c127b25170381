"""Tests for request normalization into SearchCriteria."""

from __future__ import annotations

from datetime import datetime

import pytest

from notecatalog.search.criteria import (
    DEFAULT_LIMIT,
    MAX_TIME_MINUTES,
    Scope,
    SearchFilters,
    SearchMode,
    build_criteria,
)

# ---------------------------------------------------------------------------
# Paging
# ---------------------------------------------------------------------------


class TestPaging:
    @pytest.mark.parametrize(
        ("limit", "expected"),
        [(None, DEFAULT_LIMIT), (0, 1), (-5, 1), (7, 7), (500, 50)],
    )
    def test_limit_is_clamped(self, limit, expected):
        assert build_criteria("soup", limit=limit).limit == expected

    def test_custom_max_limit(self):
        assert build_criteria("soup", limit=80, max_limit=100).limit == 80

    def test_negative_offset_becomes_zero(self):
        assert build_criteria("soup", offset=-3).offset == 0

    def test_fetch_limit_covers_offset(self):
        criteria = build_criteria("soup", limit=10, offset=30)
        assert criteria.fetch_limit == 40

    @pytest.mark.parametrize(
        ("limit", "offset", "expected"),
        [(20, 0, 100), (5, 0, 50), (50, 100, 500)],
    )
    def test_keyword_cap(self, limit, offset, expected):
        assert build_criteria("soup", limit=limit, offset=offset).keyword_cap == expected

    def test_semantic_candidates(self):
        assert build_criteria("soup", limit=5).semantic_candidates == 100
        assert build_criteria("soup", limit=20).semantic_candidates == 200


# ---------------------------------------------------------------------------
# Operators and browse detection
# ---------------------------------------------------------------------------


class TestOperators:
    def test_operators_fill_filters(self):
        criteria = build_criteria("subject:s1 tag:ops after:2024-01-05 rsync")
        assert criteria.text == "rsync"
        assert criteria.filters.subject_id == "s1"
        assert criteria.filters.tags == ["ops"]
        assert criteria.filters.updated_from == datetime(2024, 1, 5)

    def test_request_filters_win_over_operators(self):
        filters = SearchFilters(subject_id="request", tags=["Ops"], imported_only=False)
        criteria = build_criteria("subject:operator tag:ops tag:backup imported:true x", filters=filters)
        assert criteria.filters.subject_id == "request"
        assert criteria.filters.tags == ["Ops", "backup"]
        assert criteria.filters.imported_only is False

    def test_bad_date_operator_is_ignored(self):
        assert build_criteria("after:yesterday soup").filters.updated_from is None

    @pytest.mark.parametrize("q", ["", "   ", "*", None, "tag:ops", "subject:s1 imported:true"])
    def test_browse_queries(self, q):
        assert build_criteria(q).is_browse

    def test_text_query_is_not_browse(self):
        assert not build_criteria("tag:ops rsync").is_browse

    def test_raw_query_is_trimmed(self):
        assert build_criteria("  soup  ").raw_query == "soup"


# ---------------------------------------------------------------------------
# Semantic thresholds
# ---------------------------------------------------------------------------


class TestSemanticThreshold:
    @pytest.mark.parametrize(
        ("scope", "mode", "expected"),
        [
            (Scope.notes, SearchMode.auto, 0.55),
            (Scope.all, SearchMode.hybrid, 0.55),
            (Scope.notes, SearchMode.semantic, 0.7),
            (Scope.recipes, SearchMode.auto, 0.35),
            (Scope.recipes, SearchMode.semantic, 0.45),
        ],
    )
    def test_defaults(self, scope, mode, expected):
        assert build_criteria("soup", scope=scope, mode=mode).semantic_threshold == expected

    @pytest.mark.parametrize(("value", "expected"), [(0.2, 0.2), (-1.0, 0.0), (3.0, 1.0), (0.0, 0.0)])
    def test_explicit_value_is_clamped(self, value, expected):
        assert build_criteria("soup", min_semantic_score=value).semantic_threshold == expected


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


class TestFilterNormalization:
    def test_recipe_times_are_clamped(self):
        filters = SearchFilters(max_prep_minutes=-10, max_cook_minutes=10**6, max_total_minutes=45)
        merged = build_criteria("soup", filters=filters).filters
        assert merged.max_prep_minutes == 0
        assert merged.max_cook_minutes == MAX_TIME_MINUTES
        assert merged.max_total_minutes == 45

    def test_input_filters_are_not_mutated(self):
        filters = SearchFilters(tags=["a"])
        build_criteria("tag:b soup", filters=filters)
        assert filters.tags == ["a"]

    @pytest.mark.parametrize(
        ("scope", "notes", "recipes"),
        [(Scope.notes, True, False), (Scope.recipes, False, True), (Scope.all, True, True)],
    )
    def test_scope_flags(self, scope, notes, recipes):
        criteria = build_criteria("soup", scope=scope)
        assert criteria.wants_notes is notes
        assert criteria.wants_recipes is recipes
