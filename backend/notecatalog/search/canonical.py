# @TEST tests/test_canonical.py

"""Ingredient phrase canonicalization.

The same function produces ``Document.ingredient_tokens`` at index time and
the include/exclude tokens of an ingredient filter at query time, so both
sides always agree on what "olive oil" or "scallions" means.

Pipeline for one phrase:

1. lowercase, drop parentheticals, cut at the first comma/semicolon or
   ``such as`` clause (brand notes and preparation hints live there)
2. collapse non-alphanumerics to spaces and split into words
3. drop numbers, unit words and filler descriptors
4. singularize and apply word synonyms
5. rejoin and apply phrase synonyms

The phrase is always emitted.  Multi-word phrases also emit their
contiguous word pairs and their single words (3+ chars) unless the word is
a modifier that means nothing on its own ("dried", "smoked").
"""

from __future__ import annotations

import re
from collections.abc import Iterable

UNIT_WORDS = frozenset({
    "cup", "tbsp", "tablespoon", "tsp", "teaspoon", "oz", "ounce", "lb", "pound",
    "g", "gram", "kg", "kilogram", "ml", "milliliter", "l", "liter", "litre", "qt", "quart",
    "pint", "pinch", "dash", "clove", "slice", "package", "pkg", "can", "jar", "bunch",
    "sprig", "piece", "stick", "handful", "head", "inch",
})

STOP_WORDS = frozenset({
    "fresh", "freshly", "chopped", "minced", "diced", "sliced", "ground", "optional",
    "to", "taste", "and", "or", "of", "for", "serving", "a", "an", "the", "about",
    "finely", "coarsely", "roughly", "thinly", "coarse", "extra", "virgin", "large",
    "small", "medium", "plus", "more", "divided", "packed", "peeled", "grated",
    "halved", "cut", "into", "room", "temperature", "needed", "garnish", "lightly",
    "beaten", "melted", "softened", "cubed", "crushed", "trimmed", "rinsed", "drained",
})

# Kept inside phrases but never emitted alone.
MODIFIER_WORDS = frozenset({
    "dried", "smoked", "frozen", "toasted", "roasted", "unsalted", "salted", "whole",
    "boneless", "skinless", "canned", "raw", "cooked", "low", "fat", "sodium",
})

WORD_SYNONYMS = {
    "garbanzo": "chickpea",
    "scallion": "green onion",
    "capsicum": "bell pepper",
    "aubergine": "eggplant",
    "courgette": "zucchini",
    "cilantro": "coriander",
}

PHRASE_SYNONYMS = {
    "garbanzo bean": "chickpea",
    "chickpea bean": "chickpea",
    "spring onion": "green onion",
    "capsicum": "bell pepper",
    "aubergine": "eggplant",
    "courgette": "zucchini",
}

_PAREN_RE = re.compile(r"\([^)]*\)?|\[[^\]]*\]?")
_CLAUSE_RE = re.compile(r"[,;]|\bsuch as\b")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]+")
_SEARCH_SPLIT_RE = re.compile(r",|;|&|\band\b")
_SIBILANT_ES = ("sses", "shes", "ches", "xes", "zes", "oes")


def singularize(word: str) -> str:
    """Strip a plural suffix, guarded by word length.

    ``singularize(singularize(w)) == singularize(w)`` for every word.
    """
    if word.endswith("ies") and len(word) > 4:
        return word[:-3] + "y"
    if word.endswith(_SIBILANT_ES) and len(word) > 4:
        return word[:-2]
    if word.endswith("s") and not word.endswith(("ss", "us", "is")) and len(word) > 3:
        return word[:-1]
    return word


def normalize_text(text: str) -> str:
    """Lowercase and collapse every non-alphanumeric run to a single space."""
    return _NON_ALNUM_RE.sub(" ", text.lower()).strip()


def _words(text: str) -> list[str]:
    words: list[str] = []
    for raw in normalize_text(text).split():
        if any(ch.isdigit() for ch in raw):
            continue
        word = singularize(raw)
        if word in UNIT_WORDS or word in STOP_WORDS or raw in STOP_WORDS:
            continue
        words.extend(WORD_SYNONYMS.get(word, word).split())
    return words


def canonicalize_ingredient(text: str | None, include_singles: bool = True) -> list[str]:
    """Return the canonical tokens for one ingredient phrase.

    An empty list means the phrase carried no ingredient ("for serving"),
    which callers treat as "no constraint".

    Args:
        text: Raw ingredient line or filter value.
        include_singles: Also emit word pairs and single words of
            multi-word phrases. Index time uses ``True``; query-time
            filters use ``False`` so "olive oil" only matches "olive oil".

    Returns:
        Tokens in a stable order: phrase first, then pairs, then singles.
    """
    if not text:
        return []

    lowered = _PAREN_RE.sub(" ", str(text).lower())
    head = _CLAUSE_RE.split(lowered, maxsplit=1)[0]
    words = _words(head)
    if not words:
        return []

    phrase = " ".join(words)
    phrase = PHRASE_SYNONYMS.get(phrase, phrase)
    tokens: dict[str, None] = {phrase: None}

    if include_singles and len(words) > 1:
        if len(words) > 2:
            for left, right in zip(words, words[1:]):
                if left not in MODIFIER_WORDS or right not in MODIFIER_WORDS:
                    tokens.setdefault(f"{left} {right}", None)
        for word in words:
            if len(word) > 2 and word not in MODIFIER_WORDS:
                tokens.setdefault(word, None)

    return list(tokens)


def _ingredient_base(item: object) -> str:
    if isinstance(item, dict):
        if item.get("deleted"):
            return ""
        return str(item.get("name") or item.get("raw") or "")
    return str(item or "")


def build_ingredient_tokens(
    ingredients: Iterable[object] | None,
    ingredients_raw: Iterable[str] | None,
) -> list[str]:
    """Build the index-time token set for a recipe.

    Structured ingredients (their ``name``, falling back to ``raw``) come
    first, raw ingredient lines second; duplicates keep their first position.
    """
    tokens: dict[str, None] = {}
    for item in ingredients or []:
        for token in canonicalize_ingredient(_ingredient_base(item), include_singles=True):
            tokens.setdefault(token, None)
    for raw in ingredients_raw or []:
        for token in canonicalize_ingredient(raw, include_singles=True):
            tokens.setdefault(token, None)
    return list(tokens)


def canonicalize_filter_tokens(raw_tokens: Iterable[str] | None) -> list[str]:
    """Canonicalize include/exclude filter values (phrases only)."""
    tokens: dict[str, None] = {}
    for raw in raw_tokens or []:
        for token in canonicalize_ingredient(raw, include_singles=False):
            tokens.setdefault(token, None)
    return list(tokens)


def build_ingredient_search_tokens(query: str | None) -> list[str]:
    """Split a free-text ingredient query ("chicken, lemon and thyme") into tokens."""
    if not query:
        return []
    parts = [part.strip() for part in _SEARCH_SPLIT_RE.split(query.lower())]
    return canonicalize_filter_tokens(part for part in parts if part)
