# @TEST tests/test_cooked.py

"""Cooking-history aggregates stored next to the raw ``cooked_history`` list."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class CookedAggregate:
    """Aggregates derived from a recipe's cooking events.

    Attributes:
        cooked_count: Number of events (valid dates or not).
        last_cooked_at: Latest parseable ``cookedAt``.
        avg_cooked_rating: Mean of numeric ratings, rounded to 1 decimal.
        cooked_notes_text: Non-empty event notes joined by newlines.
    """

    cooked_count: int
    last_cooked_at: datetime | None = None
    avg_cooked_rating: float | None = None
    cooked_notes_text: str | None = None


def parse_event_time(value: Any) -> datetime | None:
    """Parse an ISO 8601 ``cookedAt`` value (``Z`` suffix allowed) to aware UTC."""
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith(("Z", "z")):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _is_rating(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _round_half_up(value: float) -> float:
    return math.floor(value * 10 + 0.5) / 10


def compute_cooked_aggregate(history: list[dict[str, Any]] | None) -> CookedAggregate:
    events = [e for e in history if isinstance(e, dict)] if isinstance(history, list) else []

    times = [t for t in (parse_event_time(e.get("cookedAt")) for e in events) if t is not None]
    ratings = [float(e["rating"]) for e in events if _is_rating(e.get("rating"))]
    notes = [str(e.get("notes") or "").strip() for e in events]
    notes_text = "\n".join(n for n in notes if n)

    return CookedAggregate(
        cooked_count=len(events),
        last_cooked_at=max(times) if times else None,
        avg_cooked_rating=_round_half_up(sum(ratings) / len(ratings)) if ratings else None,
        cooked_notes_text=notes_text or None,
    )
