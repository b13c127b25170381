"""Tests for inline query operator extraction."""

from __future__ import annotations

import pytest

from notecatalog.search.operators import extract_operators


class TestExtractOperators:
    def test_plain_text_untouched(self):
        result = extract_operators("chicken soup")
        assert result.text == "chicken soup"
        assert not result.has_operators

    def test_subject_and_topic(self):
        result = extract_operators("subject:s-42 Topic:t-7 pasta")
        assert result.subject == "s-42"
        assert result.topic == "t-7"
        assert result.text == "pasta"

    def test_tags_accumulate_and_dedupe(self):
        result = extract_operators('tag:ops,Backup tag:"two words" TAG:backup rsync')
        assert result.tags == ["ops", "Backup", "two words"]
        assert result.text == "rsync"

    @pytest.mark.parametrize(
        ("value", "expected"),
        [("true", True), ("yes", True), ("1", True), ("only", True), ("false", False), ("no", False), ("0", False)],
    )
    def test_imported_values(self, value, expected):
        assert extract_operators(f"imported:{value}").imported is expected

    def test_imported_unknown_value_is_ignored(self):
        result = extract_operators("imported:maybe")
        assert result.imported is None
        assert result.text == ""

    def test_quoted_phrase_preserved(self):
        result = extract_operators('"rsync backup" tag:ops')
        assert result.text == '"rsync backup"'
        assert result.tags == ["ops"]

    def test_unknown_field_preserved(self):
        result = extract_operators("url:example.com recipe")
        assert result.text == "url:example.com recipe"
        assert not result.has_operators

    def test_date_operators(self):
        result = extract_operators("after:2024-01-05 before:2024-02-01 stew")
        assert result.updated_from == "2024-01-05"
        assert result.updated_to == "2024-02-01"
        assert result.text == "stew"

    def test_empty_input(self):
        assert extract_operators(None).text == ""
