# @TEST tests/test_operators.py

"""Inline ``field:value`` operators embedded in the search box text.

Supported operators (field names are case-insensitive)::

    subject:<id>          topic:<id>
    tag:foo  tag:foo,bar  tag:"two words"
    imported:true|false   status:<status>
    after:YYYY-MM-DD      before:YYYY-MM-DD

Operators are removed from the text before the query parser sees it.
Quoted phrases and unknown ``field:value`` tokens stay in the text.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

_TOKEN_RE = re.compile(r'([A-Za-z]+):"([^"]*)"|("[^"]*")|(\S+)')

_TRUE_VALUES = frozenset({"true", "yes", "1", "only"})
_FALSE_VALUES = frozenset({"false", "no", "0"})


@dataclass
class ExtractedQuery:
    """Query text with its inline operators pulled out."""

    text: str
    subject: str | None = None
    topic: str | None = None
    tags: list[str] = field(default_factory=list)
    imported: bool | None = None
    status: str | None = None
    updated_from: str | None = None
    updated_to: str | None = None

    @property
    def has_operators(self) -> bool:
        return any(
            value not in (None, [])
            for value in (
                self.subject,
                self.topic,
                self.tags,
                self.imported,
                self.status,
                self.updated_from,
                self.updated_to,
            )
        )


def _parse_bool(value: str) -> bool | None:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    return None


def _apply(result: ExtractedQuery, name: str, value: str) -> bool:
    """Store one operator value; return False for unknown fields."""
    value = value.strip()
    if name == "tag":
        seen = {t.lower() for t in result.tags}
        for tag in (part.strip() for part in value.split(",")):
            if tag and tag.lower() not in seen:
                seen.add(tag.lower())
                result.tags.append(tag)
        return True
    if name == "imported":
        parsed = _parse_bool(value)
        if parsed is not None:
            result.imported = parsed
        return True
    attr = {
        "subject": "subject",
        "topic": "topic",
        "status": "status",
        "after": "updated_from",
        "before": "updated_to",
    }.get(name)
    if attr is None:
        return False
    if value:
        setattr(result, attr, value)
    return True


def extract_operators(text: str | None) -> ExtractedQuery:
    """Strip supported operators from *text*.

    A repeated single-valued operator keeps its last value; repeated
    ``tag:`` operators accumulate (deduplicated case-insensitively).

    Examples:
        >>> extract_operators('"rsync backup" tag:ops,Backup imported:yes').tags
        ['ops', 'Backup']
    """
    result = ExtractedQuery(text="")
    kept: list[str] = []

    for match in _TOKEN_RE.finditer((text or "").strip()):
        quoted_field, quoted_value, phrase, word = match.groups()
        if quoted_field is not None:
            if not _apply(result, quoted_field.lower(), quoted_value):
                kept.append(match.group(0))
            continue
        if phrase is not None:
            kept.append(phrase)
            continue
        name, sep, value = word.partition(":")
        if sep and name and _apply(result, name.lower(), value):
            continue
        kept.append(word)

    result.text = " ".join(kept).strip()
    return result
