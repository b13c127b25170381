# @TEST tests/test_query_parser.py

"""Power-query parsing and keyword search planning.

Parsing splits raw text into quoted phrases, bare terms, an OR group and
negated terms::

    >>> q = parse_query('soup "chicken stock" OR broth -cream')
    >>> q.phrases, q.must_terms, q.any_terms, q.not_terms
    (['chicken stock'], ['soup'], ['broth'], ['cream'])

Planning turns a parsed query into one or two ``websearch_to_tsquery``
strings.  The primary plan is precise (a phrase); the optional fallback is
broad (an OR of terms) and only appends hits after the primary ones.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_TOKEN_RE = re.compile(r'(-?)"((?:[^"\\]|\\.)*)"|(\S+)')
_OR_TOKENS = frozenset({"OR", "or", "|"})
# Characters websearch_to_tsquery treats as syntax inside a bare term
_UNSAFE_RE = re.compile(r'["()]')


@dataclass(frozen=True)
class ParsedQuery:
    """Structured view of a raw query string.

    Attributes:
        raw: The trimmed input.
        terms: Every bare (non-negated, unquoted) term, must and any alike.
        phrases: Quoted phrases, without quotes.
        must_terms: Bare terms before the first OR.
        any_terms: Bare terms after an OR/``|`` separator.
        not_terms: Negated terms and phrases (leading ``-``).
        has_explicit_or: True when the OR group is non-empty.
    """

    raw: str
    terms: list[str] = field(default_factory=list)
    phrases: list[str] = field(default_factory=list)
    must_terms: list[str] = field(default_factory=list)
    any_terms: list[str] = field(default_factory=list)
    not_terms: list[str] = field(default_factory=list)
    has_explicit_or: bool = False

    @property
    def is_empty(self) -> bool:
        return not (self.terms or self.phrases or self.not_terms)


@dataclass(frozen=True)
class KeywordPlan:
    """Primary text-search query plus an optional broader fallback.

    ``any_group`` is a separate ``a or b`` query ANDed with ``primary``;
    ``websearch_to_tsquery`` has no grouping and binds AND tighter than OR.
    """

    primary: str
    fallback: str | None = None
    any_group: str | None = None


def _dedupe(values: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for value in values:
        key = value.lower()
        if key in seen:
            continue
        seen.add(key)
        out.append(value)
    return out


def _tokenize(text: str) -> list[str]:
    tokens: list[str] = []
    for match in _TOKEN_RE.finditer(text):
        sign, phrase, word = match.groups()
        if phrase is not None:
            tokens.append(sign + '"' + phrase.replace('\\"', '"') + '"')
        else:
            tokens.append(word)
    return tokens


def parse_query(text: str | None) -> ParsedQuery:
    """Parse raw query text.  Never raises; empty input gives an empty query."""
    raw = (text or "").strip()

    terms: list[str] = []
    phrases: list[str] = []
    must_terms: list[str] = []
    any_terms: list[str] = []
    not_terms: list[str] = []
    in_any_group = False
    last_was_must = False

    for token in _tokenize(raw):
        if token in _OR_TOKENS:
            # "a OR b": the left operand joins the OR group
            if last_was_must and must_terms:
                any_terms.append(must_terms.pop())
            in_any_group = True
            last_was_must = False
            continue
        last_was_must = False

        negated = token.startswith("-") and len(token) > 1
        if negated:
            token = token[1:]

        quoted = len(token) >= 2 and token.startswith('"') and token.endswith('"')
        inner = token[1:-1].strip() if quoted else token.strip()
        if not inner:
            continue
        value = inner.lower()

        if negated:
            not_terms.append(value)
        elif quoted:
            phrases.append(value)
        else:
            terms.append(value)
            if in_any_group:
                any_terms.append(value)
            else:
                must_terms.append(value)
                last_was_must = True

    any_terms = _dedupe(any_terms)
    return ParsedQuery(
        raw=raw,
        terms=_dedupe(terms),
        phrases=_dedupe(phrases),
        must_terms=_dedupe(must_terms),
        any_terms=any_terms,
        not_terms=_dedupe(not_terms),
        has_explicit_or=bool(any_terms),
    )


def _clean(value: str) -> str:
    return " ".join(_UNSAFE_RE.sub(" ", value).split())


def _quote(value: str) -> str:
    return f'"{_clean(value)}"'


def _negations(parsed: ParsedQuery) -> list[str]:
    out = []
    for term in parsed.not_terms:
        cleaned = _clean(term)
        if not cleaned:
            continue
        out.append(f'-"{cleaned}"' if " " in cleaned else f"-{cleaned}")
    return out


def build_keyword_plan(parsed: ParsedQuery) -> KeywordPlan | None:
    """Build the keyword channel's search plan.

    1. Quoted phrase(s): search them verbatim, negations appended. No fallback.
    2. Two or more bare terms, no OR, no negations: the terms as one
       contiguous phrase, with an OR search over the same terms as fallback.
    3. Otherwise: must terms and negations, with the OR group kept as a
       second query that must also match.

    Returns ``None`` when nothing searchable remains.
    """
    negations = _negations(parsed)
    any_group = " or ".join(_clean(t) for t in parsed.any_terms if _clean(t)) or None

    if parsed.phrases:
        parts = [_quote(p) for p in parsed.phrases if _clean(p)]
        parts += [_clean(t) for t in parsed.must_terms if _clean(t)]
        return _plan_with_group(parts, any_group, negations)

    terms = [_clean(t) for t in parsed.terms if _clean(t)]
    if len(terms) >= 2 and not parsed.has_explicit_or and not parsed.not_terms:
        return KeywordPlan(primary=_quote(" ".join(terms)), fallback=" or ".join(terms))

    must = [_clean(t) for t in parsed.must_terms if _clean(t)]
    return _plan_with_group(must, any_group, negations)


def _plan_with_group(parts: list[str], any_group: str | None, negations: list[str]) -> KeywordPlan | None:
    if not parts and not any_group:
        return None
    if not any_group:
        return KeywordPlan(primary=" ".join(parts + negations))
    if not parts and not negations:
        return KeywordPlan(primary=any_group)
    return KeywordPlan(primary=" ".join(parts + negations), any_group=any_group)
