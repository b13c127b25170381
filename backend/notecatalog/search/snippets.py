# @TEST tests/test_snippets.py

"""Bounded preview text centered on the first matched query term."""

from __future__ import annotations

import re

from notecatalog.search.query_parser import ParsedQuery

MAX_SNIPPET_TERMS = 8

_MARKDOWN_RULES: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"```.*?```", re.DOTALL), " "),
    (re.compile(r"`[^`]*`"), " "),
    (re.compile(r"!\[[^\]]*\]\([^)]*\)"), " "),
    (re.compile(r"\[([^\]]+)\]\([^)]*\)"), r"\1"),
    (re.compile(r"^[>#]+\s+", re.MULTILINE), ""),
    (re.compile(r"[*_~]+"), ""),
]
_WS_RE = re.compile(r"\s+")


def strip_markdown(markdown: str | None) -> str:
    """Very small markdown-to-text pass: code, images and emphasis go; link text stays."""
    text = markdown or ""
    for pattern, replacement in _MARKDOWN_RULES:
        text = pattern.sub(replacement, text)
    return _WS_RE.sub(" ", text).strip()


def extract_snippet_terms(parsed: ParsedQuery) -> list[str]:
    """Terms worth highlighting: phrases first, then bare terms (2+ chars, max 8)."""
    terms: list[str] = []
    seen: set[str] = set()
    for term in [*parsed.phrases, *parsed.terms]:
        key = term.lower()
        if len(key) < 2 or key in seen:
            continue
        seen.add(key)
        terms.append(term)
        if len(terms) >= MAX_SNIPPET_TERMS:
            break
    return terms


def _leading(text: str, max_len: int) -> str:
    if len(text) <= max_len:
        return text
    return text[: max_len - 1].rstrip() + "…"


def build_snippet(markdown: str | None, terms: list[str], max_len: int = 200) -> str | None:
    """Return at most ``max_len`` characters (plus ellipses) around the first hit.

    Terms of three or more characters match on word boundaries; shorter
    terms match anywhere.  Without a hit the leading text is returned, and
    ``None`` when there is no text at all.
    """
    text = strip_markdown(markdown)
    if not text:
        return None

    patterns = [
        rf"\b{re.escape(term)}\b" if len(term) >= 3 else re.escape(term)
        for term in terms[:MAX_SNIPPET_TERMS]
        if term
    ]
    if not patterns:
        return _leading(text, max_len)

    match = re.search("|".join(patterns), text, re.IGNORECASE)
    if match is None:
        return _leading(text, max_len)

    context = max((max_len - (match.end() - match.start())) // 2, 0)
    start = max(0, match.start() - context)
    end = min(len(text), match.end() + context)

    snippet = text[start:end].strip()
    if start > 0:
        snippet = "…" + snippet
    if end < len(text):
        snippet = snippet + "…"
    return snippet
