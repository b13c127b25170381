# @TEST tests/test_embedding_text.py

"""Canonical embedding input text and its hash.

The text built here is what gets embedded, and its SHA-256 hash is what
gets stored next to the vector.  A stored hash equal to the hash of the
freshly built text means the embedding is still fresh, so every builder
must be deterministic for the same row contents.
"""

from __future__ import annotations

import hashlib
import re
from collections.abc import Iterable
from typing import Any

DEFAULT_MAX_BODY_CHARS = 8000
MAX_RECIPE_TEXT_CHARS = 4000
MAX_RECIPE_STEPS_CHARS = 1200
MAX_SNAPSHOT_TEXT_CHARS = 8000

_TRAILING_WS_RE = re.compile(r"[ \t]+\n")
_BLANK_RUN_RE = re.compile(r"\n{3,}")
_WS_RE = re.compile(r"\s+")


def normalize_for_embedding(text: str | None) -> str:
    """CRLF to LF, strip trailing blanks per line, collapse blank runs, trim."""
    if not text:
        return ""
    text = text.replace("\r\n", "\n")
    text = _TRAILING_WS_RE.sub("\n", text)
    text = _BLANK_RUN_RE.sub("\n\n", text)
    return text.strip()


def hash_embedding_text(text: str) -> str:
    return hashlib.sha256(normalize_for_embedding(text).encode("utf-8")).hexdigest()


def _one_line(value: Any) -> str:
    return _WS_RE.sub(" ", str(value or "")).strip()


def _clean_list(values: Iterable[Any] | None) -> list[str]:
    return [v for v in (_one_line(x) for x in values or []) if v]


def _unique(values: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        key = value.lower()
        if key not in seen:
            seen.add(key)
            out.append(value)
    return out


def _ingredient_names(ingredients: Iterable[Any] | None) -> list[str]:
    names = []
    for item in ingredients or []:
        if isinstance(item, dict):
            if item.get("deleted"):
                continue
            names.append(_one_line(item.get("name")))
        else:
            names.append(_one_line(item))
    return [n for n in names if n]


def build_note_embedding_text(
    doc: Any,
    max_body_chars: int = DEFAULT_MAX_BODY_CHARS,
    include_recipe: bool = True,
) -> str:
    """Embedding input for a document's general ``embedding``.

    Sections (each only when non-empty), separated by blank lines::

        Title: ...
        Summary: ...
        Tags: a, b
        Recipe: Cuisine: ... | Category: ... | Ingredients: ...
        Body:
        <markdown, truncated to max_body_chars>
    """
    parts: list[str] = []

    title = normalize_for_embedding(doc.title)
    if title:
        parts.append(f"Title: {title}")

    summary = normalize_for_embedding(doc.summary)
    if summary:
        parts.append(f"Summary: {summary}")

    tags = [t for t in (normalize_for_embedding(str(t)) for t in doc.tags or []) if t]
    if tags:
        parts.append(f"Tags: {', '.join(tags)}")

    if include_recipe and doc.doc_kind == "recipe":
        bits: list[str] = []
        if doc.cuisine:
            bits.append(f"Cuisine: {normalize_for_embedding(doc.cuisine)}")
        category = _clean_list(doc.category)
        if category:
            bits.append(f"Category: {', '.join(category)}")
        keywords = _clean_list(doc.keywords)
        if keywords:
            bits.append(f"Keywords: {', '.join(keywords)}")
        if doc.recipe_description:
            bits.append(f"Description: {normalize_for_embedding(doc.recipe_description)}")
        names = _unique(_ingredient_names(doc.ingredients))[:40]
        if names:
            bits.append(f"Ingredients: {', '.join(names)}")
        if bits:
            parts.append(f"Recipe: {' | '.join(bits)}")

    body = normalize_for_embedding(doc.body)
    if body:
        parts.append(f"Body:\n{body[:max_body_chars]}")

    return "\n\n".join(parts).strip()


def build_recipe_semantic_text(doc: Any) -> str:
    """Embedding input for a recipe's ``recipe_embedding``.

    Focuses on what a cook searches by: dish, cuisine, time, ingredients
    and the first steps.  Capped at 4000 characters.
    """
    title = _one_line(doc.title)
    lines: list[str] = []
    if title:
        lines.append(f"Title: {title}")

    for label, value in (
        ("Description", _one_line(doc.recipe_description)),
        ("Cuisine", _one_line(doc.cuisine)),
        ("Category", ", ".join(_clean_list(doc.category))),
        ("Keywords", ", ".join(_clean_list(doc.keywords))),
        ("Yield", _one_line(doc.recipe_yield)),
    ):
        if value:
            lines.append(f"{label}: {value}")

    times = [
        f"{label} {minutes}m"
        for label, minutes in (
            ("prep", doc.prep_time_minutes),
            ("cook", doc.cook_time_minutes),
            ("total", doc.total_time_minutes),
        )
        if minutes is not None
    ]
    if times:
        lines.append(f"Time: {', '.join(times)}")

    ingredients = _ingredient_names(doc.ingredients) or _clean_list(doc.ingredients_raw)
    if ingredients:
        lines.append(f"Ingredients: {', '.join(ingredients[:120])}")

    steps = _clean_list(doc.steps_raw)[:8]
    if steps:
        block = "\n".join(f"{i}. {step}" for i, step in enumerate(steps, start=1))
        lines.append(f"Steps:\n{block[:MAX_RECIPE_STEPS_CHARS].strip()}")

    return "\n".join(lines).strip()[:MAX_RECIPE_TEXT_CHARS].strip()


def build_snapshot_embedding_text(snapshot: Any, max_chars: int = MAX_SNAPSHOT_TEXT_CHARS) -> str:
    """Embedding input for a linked-page snapshot: title, excerpt, then page text."""
    parts: list[str] = []
    title = normalize_for_embedding(snapshot.title)
    if title:
        parts.append(f"Title: {title}")
    excerpt = normalize_for_embedding(snapshot.excerpt)
    if excerpt:
        parts.append(f"Excerpt: {excerpt}")
    text = normalize_for_embedding(snapshot.extracted_text)
    if text:
        parts.append(f"Text:\n{text[:max_chars]}")
    return "\n\n".join(parts).strip()
