"""Centralized search parameter management.

All tunable retrieval parameters (RRF constant, channel weights, semantic
similarity floors) live here.  Deployments override individual keys with
the ``SEARCH_PARAMS`` environment variable (a JSON object); unknown keys
are ignored.

Usage in search code::

    from notecatalog.search.params import get_search_params
    params = get_search_params()
    contribution = params["keyword_weight"] / (params["rrf_k"] + rank + 1)
"""

from __future__ import annotations

from typing import Any

from notecatalog.config import get_settings

DEFAULT_SEARCH_PARAMS: dict[str, float | int] = {
    # Rank fusion
    "rrf_k": 60,
    "keyword_weight": 1.0,
    "semantic_weight": 1.0,
    "ingredient_weight": 1.0,
    "snapshot_keyword_weight": 0.6,
    "snapshot_semantic_weight": 0.6,
    # Semantic similarity floors (cosine similarity, 0..1)
    "min_semantic_notes": 0.55,
    "min_semantic_notes_strict": 0.7,
    "min_semantic_recipes": 0.35,
    "min_semantic_recipes_strict": 0.45,
    # Snippets
    "snippet_max_chars": 200,
}


def get_search_params() -> dict[str, Any]:
    """Return current search parameters, merging configured overrides with defaults."""
    saved: dict[str, Any] = get_settings().SEARCH_PARAMS
    merged = {**DEFAULT_SEARCH_PARAMS}
    if isinstance(saved, dict):
        for key in DEFAULT_SEARCH_PARAMS:
            if key in saved:
                merged[key] = saved[key]
    return merged


def channel_weights() -> dict[str, float]:
    """Fusion weight per retrieval channel name."""
    params = get_search_params()
    return {
        "keyword": float(params["keyword_weight"]),
        "semantic": float(params["semantic_weight"]),
        "ingredient": float(params["ingredient_weight"]),
        "snapshot_keyword": float(params["snapshot_keyword_weight"]),
        "snapshot_semantic": float(params["snapshot_semantic_weight"]),
    }
