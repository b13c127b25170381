# @TEST tests/test_api_search.py

"""Tests for the Search API endpoint (POST /api/search).

Covers:
- camelCase request parsing and response serialization
- Request -> criteria mapping (scope, filters, paging clamps)
- version / targetTypes rejection (400) and schema errors (422)
- explain output (per-channel contributions and degraded channels)
- The engine is always mocked
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest
from httpx import ASGITransport, AsyncClient

from notecatalog.search.criteria import CookedFilter, Scope, SearchMode
from notecatalog.search.engine import SearchHit, SearchPage
from notecatalog.search.fusion import ChannelContribution

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _get_app():
    """Import and return the FastAPI app with the search router included."""
    from notecatalog.main import app

    return app


def _make_page(count: int = 2, degraded: dict | None = None) -> SearchPage:
    hits = [
        SearchHit(
            document_id=i + 1,
            title=f"Note {i + 1}",
            subject_id="s-1",
            topic_id=None,
            doc_kind="note",
            snippet=f"Snippet {i + 1}" if i == 0 else None,
            score=0.03 - i * 0.001,
            updated_at="2024-01-02T00:00:00+00:00",
            channels=["keyword", "semantic"],
            contributions=[ChannelContribution(channel="keyword", rank=i, raw_score=0.5, rrf_score=1 / (61 + i))],
        )
        for i in range(count)
    ]
    return SearchPage(
        hits=hits,
        approximate_total=17,
        mode="auto",
        channels=["keyword", "semantic"],
        degraded=degraded or {},
    )


async def _post(body: dict, page: SearchPage | None = None):
    mock_engine = AsyncMock()
    mock_engine.search = AsyncMock(return_value=page or _make_page())
    transport = ASGITransport(app=_get_app())

    with patch("notecatalog.api.search._build_search_engine", return_value=mock_engine):
        async with AsyncClient(transport=transport, base_url="http://test") as client:
            response = await client.post("/api/search", json=body)

    return response, mock_engine


# ---------------------------------------------------------------------------
# Success
# ---------------------------------------------------------------------------


class TestSearchSuccess:
    @pytest.mark.asyncio
    async def test_response_uses_camel_case(self):
        response, _ = await _post({"version": 1, "q": "rsync backup"})

        assert response.status_code == 200
        data = response.json()
        assert data["version"] == 1
        assert data["approximateTotal"] == 17
        assert data["total"] == 17
        assert data["mode"] == "auto"
        first = data["hits"][0]
        assert first["targetType"] == "note"
        assert first["id"] == 1
        assert first["subjectId"] == "s-1"
        assert first["docKind"] == "note"
        assert first["updatedAt"] == "2024-01-02T00:00:00+00:00"
        assert first["sources"] == ["keyword", "semantic"]
        assert "explain" not in first
        assert "snippet" not in data["hits"][1]
        assert "degraded" not in data

    @pytest.mark.asyncio
    async def test_request_maps_to_criteria(self):
        body = {
            "q": "soup tag:weeknight",
            "scope": "recipes",
            "mode": "hybrid",
            "limit": 500,
            "offset": -2,
            "includeLinkedSnapshots": True,
            "filters": {
                "includeIngredients": ["Olive Oil"],
                "excludeIngredients": ["butter"],
                "cuisine": "Thai",
                "maxTotalMinutes": 45,
                "cooked": "ever",
                "minAvgRating": 4,
            },
        }
        response, engine = await _post(body)

        assert response.status_code == 200
        criteria = engine.search.call_args.args[0]
        assert criteria.text == "soup"
        assert criteria.scope == Scope.recipes
        assert criteria.mode == SearchMode.hybrid
        assert criteria.limit == 50
        assert criteria.offset == 0
        assert criteria.include_linked_snapshots is True
        assert criteria.filters.tags == ["weeknight"]
        assert criteria.filters.include_ingredients == ["Olive Oil"]
        assert criteria.filters.cuisine == ["Thai"]
        assert criteria.filters.max_total_minutes == 45
        assert criteria.filters.cooked == CookedFilter.ever
        assert criteria.filters.min_avg_rating == 4.0

    @pytest.mark.asyncio
    async def test_defaults(self):
        response, engine = await _post({})

        assert response.status_code == 200
        criteria = engine.search.call_args.args[0]
        assert criteria.scope == Scope.notes
        assert criteria.mode == SearchMode.auto
        assert criteria.limit == 20
        assert criteria.is_browse

    @pytest.mark.asyncio
    async def test_explain_includes_contributions_and_degraded(self):
        page = _make_page(1, degraded={"semantic": "timeout"})
        response, _ = await _post({"q": "soup", "explain": True}, page=page)

        data = response.json()
        assert data["degraded"] == {"semantic": "timeout"}
        assert data["hits"][0]["explain"] == [
            {"channel": "keyword", "rank": 0, "rawScore": 0.5, "rrfScore": pytest.approx(1 / 61)}
        ]

    @pytest.mark.asyncio
    async def test_empty_results(self):
        page = SearchPage(hits=[], approximate_total=0, mode="keyword")
        response, _ = await _post({"q": "nothing matches", "mode": "keyword"}, page=page)

        assert response.status_code == 200
        assert response.json()["hits"] == []


# ---------------------------------------------------------------------------
# Rejections
# ---------------------------------------------------------------------------


class TestSearchRejections:
    @pytest.mark.asyncio
    async def test_unsupported_version(self):
        response, engine = await _post({"version": 2, "q": "soup"})

        assert response.status_code == 400
        assert "version" in response.json()["detail"]
        engine.search.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_target_types_must_include_note(self):
        response, _ = await _post({"q": "soup", "targetTypes": ["snapshot"]})

        assert response.status_code == 400
        assert "targetTypes" in response.json()["detail"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "body",
        [
            {"q": "soup", "mode": "fuzzy"},
            {"q": "soup", "scope": "everything"},
            {"q": "soup", "filters": {"cooked": "sometimes"}},
            {"q": "soup", "filters": {"cookedWithinDays": -1}},
        ],
    )
    async def test_schema_errors_are_422(self, body):
        response, _ = await _post(body)

        assert response.status_code == 422
