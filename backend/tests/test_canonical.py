"""Tests for ingredient canonicalization.

Covers singularization, unit/descriptor stripping, synonym tables,
phrase/pair/single emission and the index-time and query-time helpers.
"""

from __future__ import annotations

import pytest

from notecatalog.search.canonical import (
    build_ingredient_search_tokens,
    build_ingredient_tokens,
    canonicalize_filter_tokens,
    canonicalize_ingredient,
    singularize,
)

# ---------------------------------------------------------------------------
# singularize
# ---------------------------------------------------------------------------


class TestSingularize:
    @pytest.mark.parametrize(
        ("word", "expected"),
        [
            ("berries", "berry"),
            ("tomatoes", "tomato"),
            ("radishes", "radish"),
            ("peaches", "peach"),
            ("olives", "olive"),
            ("flakes", "flake"),
            ("onions", "onion"),
            ("glass", "glass"),
            ("hummus", "hummus"),
            ("pies", "pie"),
            ("gas", "gas"),
        ],
    )
    def test_suffix_rules(self, word, expected):
        assert singularize(word) == expected

    @pytest.mark.parametrize("word", ["berries", "tomatoes", "olives", "molasses", "leaves", "couscous"])
    def test_idempotent(self, word):
        once = singularize(word)
        assert singularize(once) == once


# ---------------------------------------------------------------------------
# canonicalize_ingredient
# ---------------------------------------------------------------------------


class TestCanonicalizeIngredient:
    def test_dried_oregano_keeps_phrase_and_head_noun(self):
        """Quantities and units go, the modifier stays only inside the phrase."""
        tokens = canonicalize_ingredient("1 tablespoon dried oregano")
        assert tokens == ["dried oregano", "oregano"]
        assert "dried" not in tokens

    def test_descriptors_are_dropped(self):
        assert canonicalize_ingredient("2 cups extra virgin olive oil") == ["olive oil", "olive", "oil"]

    def test_clause_after_comma_is_ignored(self):
        assert canonicalize_ingredient("3 scallions, thinly sliced") == ["green onion", "green", "onion"]

    def test_parenthetical_is_ignored(self):
        assert canonicalize_ingredient("Salt (kosher), to taste") == ["salt"]

    def test_such_as_clause_is_ignored(self):
        assert canonicalize_ingredient("hot sauce such as Tabasco") == ["hot sauce", "hot", "sauce"]

    def test_three_word_phrase_emits_pairs(self):
        tokens = canonicalize_ingredient("red pepper flakes")
        assert tokens == ["red pepper flake", "red pepper", "pepper flake", "red", "pepper", "flake"]

    def test_phrase_synonym(self):
        assert canonicalize_ingredient("1 can garbanzo beans", include_singles=False) == ["chickpea"]

    def test_word_synonym(self):
        assert canonicalize_ingredient("fresh cilantro") == ["coriander"]

    def test_single_word_has_no_extra_tokens(self):
        assert canonicalize_ingredient("Butter") == ["butter"]

    def test_include_singles_false_returns_phrase_only(self):
        assert canonicalize_ingredient("unsalted butter", include_singles=False) == ["unsalted butter"]

    @pytest.mark.parametrize("text", ["", None, "for serving", "2 cups", "to taste"])
    def test_empty_result_means_no_constraint(self, text):
        assert canonicalize_ingredient(text) == []

    @pytest.mark.parametrize(
        "text",
        ["1 tablespoon dried oregano", "3 scallions, thinly sliced", "red pepper flakes", "2 cups diced tomatoes"],
    )
    def test_tokens_are_fixed_points(self, text):
        for token in canonicalize_ingredient(text):
            assert canonicalize_ingredient(token, include_singles=False) == [token]

    def test_deterministic(self):
        text = "2 large boneless skinless chicken breasts"
        assert canonicalize_ingredient(text) == canonicalize_ingredient(text)


# ---------------------------------------------------------------------------
# Index-time and query-time helpers
# ---------------------------------------------------------------------------


class TestBuildIngredientTokens:
    def test_names_first_then_raw_lines_deduped(self):
        tokens = build_ingredient_tokens(
            [{"name": "olive oil"}, {"name": "garlic", "deleted": True}, {"raw": "2 lemons"}],
            ["olive oil", "1 tsp salt"],
        )
        assert tokens == ["olive oil", "olive", "oil", "lemon", "salt"]

    def test_empty_inputs(self):
        assert build_ingredient_tokens(None, None) == []


class TestFilterTokens:
    def test_phrases_only(self):
        assert canonicalize_filter_tokens(["Olive Oil", "butter", "for serving"]) == ["olive oil", "butter"]

    def test_search_query_split(self):
        assert build_ingredient_search_tokens("chicken, lemons and thyme") == ["chicken", "lemon", "thyme"]

    def test_search_query_empty(self):
        assert build_ingredient_search_tokens("   ") == []
