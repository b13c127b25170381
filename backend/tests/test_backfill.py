"""Tests for the maintenance backfills."""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from conftest import make_result, make_session
from sqlalchemy.dialects import postgresql

from notecatalog.services.backfill import (
    backfill_content_updated_at,
    backfill_cooked_fields,
    backfill_ingredient_tokens,
)


def _compiled(session, call_index: int):
    stmt = session.execute.call_args_list[call_index].args[0]
    return stmt.compile(dialect=postgresql.dialect())


def _recipe(doc_id: int, raw: list[str], tokens: list[str] | None = None) -> SimpleNamespace:
    return SimpleNamespace(id=doc_id, ingredients=None, ingredients_raw=raw, ingredient_tokens=tokens)


# ---------------------------------------------------------------------------
# Ingredient tokens
# ---------------------------------------------------------------------------


class TestIngredientTokens:
    @pytest.mark.asyncio
    async def test_only_changed_rows_are_written(self):
        rows = [_recipe(1, ["2 lemons"], ["lemon"]), _recipe(2, ["1 tbsp dried oregano"], [])]
        session = make_session(make_result(rows), make_result())

        result = await backfill_ingredient_tokens(session, limit=10)

        assert result.examined == 2
        assert result.updated_ids == [2]
        assert result.samples == [{"id": 2, "ingredient_tokens": ["dried oregano", "oregano"]}]
        assert result.next_cursor is None
        assert _compiled(session, 1).params["ingredient_tokens"] == ["dried oregano", "oregano"]
        assert "updated_at=documents.updated_at" in str(_compiled(session, 1))
        session.commit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_dry_run_writes_nothing(self):
        session = make_session(make_result([_recipe(1, ["salt"], None)]))

        result = await backfill_ingredient_tokens(session, limit=10, dry_run=True)

        assert result.dry_run is True
        assert result.updated == 1
        assert session.execute.await_count == 1
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_cursor(self):
        rows = [_recipe(5, ["salt"], ["salt"]), _recipe(9, ["salt"], ["salt"])]
        session = make_session(make_result(rows))

        result = await backfill_ingredient_tokens(session, limit=2, after_id=4)

        assert result.next_cursor == 9
        sql = str(_compiled(session, 0))
        assert "documents.id >" in sql
        assert "documents.doc_kind" in sql


# ---------------------------------------------------------------------------
# content_updated_at
# ---------------------------------------------------------------------------


class TestContentUpdatedAt:
    @pytest.mark.asyncio
    async def test_copies_updated_at_then_created_at(self):
        updated = datetime(2024, 3, 1, tzinfo=timezone.utc)
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        rows = [
            SimpleNamespace(id=1, updated_at=updated, created_at=created),
            SimpleNamespace(id=2, updated_at=None, created_at=created),
        ]
        session = make_session(make_result(rows), make_result(rowcount=1), make_result(rowcount=0))

        result = await backfill_content_updated_at(session, limit=10)

        assert result.examined == 2
        assert result.updated_ids == [1]
        assert _compiled(session, 1).params["content_updated_at"] == updated
        assert _compiled(session, 2).params["content_updated_at"] == created
        assert "content_updated_at IS NULL" in str(_compiled(session, 1))
        assert "updated_at=documents.updated_at" in str(_compiled(session, 1))


# ---------------------------------------------------------------------------
# Cooked fields
# ---------------------------------------------------------------------------


class TestCookedFields:
    @pytest.mark.asyncio
    async def test_writes_aggregate(self):
        history = [
            {"cookedAt": "2024-01-01T00:00:00Z", "rating": 4},
            {"cookedAt": "2024-02-01T00:00:00Z", "rating": 5, "notes": "more garlic"},
        ]
        session = make_session(make_result([SimpleNamespace(id=3, cooked_history=history)]), make_result())

        result = await backfill_cooked_fields(session, limit=10)

        assert result.updated_ids == [3]
        assert result.samples == [{"id": 3, "cooked_count": 2, "avg_cooked_rating": 4.5}]
        params = _compiled(session, 1).params
        assert params["cooked_count"] == 2
        assert params["last_cooked_at"] == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert params["cooked_notes_text"] == "more garlic"
        assert "now()" not in str(_compiled(session, 1))

    @pytest.mark.asyncio
    async def test_selects_rows_without_aggregate(self):
        session = make_session(make_result([]))

        result = await backfill_cooked_fields(session)

        assert result.examined == 0
        sql = str(_compiled(session, 0))
        assert "documents.cooked_count IS NULL" in sql
        assert "documents.cooked_history IS NOT NULL" in sql
