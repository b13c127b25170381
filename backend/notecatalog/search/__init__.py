"""Hybrid keyword, semantic and ingredient retrieval with rank fusion."""

from notecatalog.search.embeddings import EmbeddingError, EmbeddingRateLimitError, EmbeddingService
from notecatalog.search.engine import SearchEngine, SearchHit, SearchPage
from notecatalog.search.fusion import ChannelHit, FusedHit, rrf_fuse

__all__ = [
    "ChannelHit",
    "EmbeddingError",
    "EmbeddingRateLimitError",
    "EmbeddingService",
    "FusedHit",
    "SearchEngine",
    "SearchHit",
    "SearchPage",
    "rrf_fuse",
]
