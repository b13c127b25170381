"""Tests for embedding input text builders and hashing."""

from __future__ import annotations

from types import SimpleNamespace

from conftest import doc_row

from notecatalog.search.embedding_text import (
    MAX_RECIPE_TEXT_CHARS,
    build_note_embedding_text,
    build_recipe_semantic_text,
    build_snapshot_embedding_text,
    hash_embedding_text,
    normalize_for_embedding,
)


class TestNormalize:
    def test_line_endings_and_blank_runs(self):
        assert normalize_for_embedding("a  \r\nb\n\n\n\nc  ") == "a\nb\n\nc"

    def test_empty(self):
        assert normalize_for_embedding(None) == ""

    def test_hash_ignores_formatting_noise(self):
        assert hash_embedding_text("Title\r\n\r\n\r\nBody  ") == hash_embedding_text("Title\n\nBody")
        assert hash_embedding_text("a") != hash_embedding_text("b")
        assert len(hash_embedding_text("a")) == 64


class TestNoteText:
    def test_recipe_sections(self):
        doc = doc_row(
            1,
            title="Pasta",
            tags=["quick", " "],
            body="Boil water.",
            doc_kind="recipe",
            cuisine="Italian",
            category=["Main"],
            ingredients=[{"name": "pasta"}, {"name": "Pasta"}, {"name": "salt", "deleted": True}],
        )
        assert build_note_embedding_text(doc) == (
            "Title: Pasta\n\n"
            "Tags: quick\n\n"
            "Recipe: Cuisine: Italian | Category: Main | Ingredients: pasta\n\n"
            "Body:\nBoil water."
        )

    def test_recipe_block_can_be_disabled(self):
        doc = doc_row(1, title="Pasta", doc_kind="recipe", cuisine="Italian")
        assert build_note_embedding_text(doc, include_recipe=False) == "Title: Pasta"

    def test_note_has_no_recipe_block(self):
        doc = doc_row(1, title="Backups", summary="Nightly rsync", cuisine="ignored")
        assert build_note_embedding_text(doc) == "Title: Backups\n\nSummary: Nightly rsync"

    def test_body_is_truncated(self):
        doc = doc_row(1, title="", body="x" * 50)
        assert build_note_embedding_text(doc, max_body_chars=10) == "Body:\n" + "x" * 10

    def test_deterministic(self):
        doc = doc_row(1, title="T", body="B", tags=["a", "b"])
        assert build_note_embedding_text(doc) == build_note_embedding_text(doc)


class TestRecipeText:
    def test_sections(self):
        doc = doc_row(
            2,
            title="Soup",
            doc_kind="recipe",
            prep_time_minutes=10,
            total_time_minutes=40,
            ingredients_raw=["1 onion", "2 carrots"],
            steps_raw=["Chop.", "Simmer."],
        )
        assert build_recipe_semantic_text(doc) == (
            "Title: Soup\n"
            "Time: prep 10m, total 40m\n"
            "Ingredients: 1 onion, 2 carrots\n"
            "Steps:\n1. Chop.\n2. Simmer."
        )

    def test_structured_ingredients_preferred(self):
        doc = doc_row(2, title="Soup", ingredients=[{"name": "leek"}], ingredients_raw=["1 onion"])
        assert "Ingredients: leek" in build_recipe_semantic_text(doc)

    def test_capped(self):
        doc = doc_row(2, title="Soup", recipe_description="word " * 2000)
        assert len(build_recipe_semantic_text(doc)) <= MAX_RECIPE_TEXT_CHARS


class TestSnapshotText:
    def test_sections(self):
        snap = SimpleNamespace(title="Page", excerpt=None, extracted_text="y" * 20)
        assert build_snapshot_embedding_text(snap, max_chars=5) == "Title: Page\n\nText:\nyyyyy"
