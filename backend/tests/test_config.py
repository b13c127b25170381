"""Tests for settings validation and the values derived from them."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from notecatalog.api.search import build_embedding_service
from notecatalog.config import Settings, get_settings
from notecatalog.models import Document, LinkedPageSnapshot


class TestEmbeddingDimension:
    def test_vector_columns_follow_configured_dimension(self):
        dim = get_settings().EMBEDDING_DIMENSION
        assert Document.__table__.c.embedding.type.dim == dim
        assert Document.__table__.c.recipe_embedding.type.dim == dim
        assert LinkedPageSnapshot.__table__.c.embedding.type.dim == dim

    def test_provider_requests_the_same_dimension(self):
        settings = get_settings()
        assert build_embedding_service(settings).dimensions == Document.__table__.c.embedding.type.dim

    @pytest.mark.parametrize("value", [0, 2001, 3072])
    def test_out_of_range_dimension_is_rejected(self, value):
        with pytest.raises(ValidationError):
            Settings(EMBEDDING_DIMENSION=value)
