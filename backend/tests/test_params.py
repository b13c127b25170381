"""Tests for search parameter overrides."""

from __future__ import annotations

from unittest.mock import patch

from notecatalog.config import Settings
from notecatalog.search.params import DEFAULT_SEARCH_PARAMS, channel_weights, get_search_params


def test_defaults():
    with patch("notecatalog.search.params.get_settings", return_value=Settings(SEARCH_PARAMS={})):
        assert get_search_params() == DEFAULT_SEARCH_PARAMS


def test_known_keys_override_and_unknown_keys_are_ignored():
    settings = Settings(SEARCH_PARAMS={"rrf_k": 20, "snapshot_keyword_weight": 0.3, "bogus": 1.0})
    with patch("notecatalog.search.params.get_settings", return_value=settings):
        params = get_search_params()
        weights = channel_weights()

    assert params["rrf_k"] == 20
    assert "bogus" not in params
    assert weights["snapshot_keyword"] == 0.3
    assert weights["keyword"] == 1.0
