"""Tests for catalog.yml loading."""

from pathlib import Path

import pytest

from revguard.book.catalog import load_catalog, load_catalog_from_string, parse_catalog


class TestParseCatalog:
    """Tests for catalog parsing."""

    def test_sections_in_order(self):
        catalog = load_catalog_from_string(
            """
PREDEF:
  - preface.re
CHAPS:
  - ch01.re
  - ch02.re
APPENDIX:
  - appendix.re
POSTDEF:
  - afterword.re
"""
        )
        assert catalog.predef == ["preface.re"]
        assert catalog.chaps == ["ch01.re", "ch02.re"]
        assert catalog.files == ["preface.re", "ch01.re", "ch02.re", "appendix.re", "afterword.re"]
        assert len(catalog) == 5

    def test_parts_are_flattened(self):
        catalog = load_catalog_from_string(
            """
CHAPS:
  - intro.re
  - part1.re:
      - ch01.re
      - ch02.re
  - part2.re:
      - ch03.re
"""
        )
        assert catalog.chaps == ["intro.re", "part1.re", "ch01.re", "ch02.re", "part2.re", "ch03.re"]

    def test_missing_sections_are_empty(self):
        catalog = load_catalog_from_string("CHAPS:\n  - ch01.re\n")
        assert catalog.predef == []
        assert catalog.appendix == []
        assert catalog.postdef == []

    def test_empty_document(self):
        assert load_catalog_from_string("").files == []

    def test_non_mapping_rejected(self):
        with pytest.raises(ValueError):
            parse_catalog(["ch01.re"])


class TestLoadCatalog:
    """Tests for loading catalogs from disk."""

    def test_load(self, temp_workspace: Path):
        (temp_workspace / "catalog.yml").write_text("CHAPS:\n  - ch01.re\n")
        catalog = load_catalog(temp_workspace)
        assert catalog.files == ["ch01.re"]
        assert catalog.catalog_path == temp_workspace / "catalog.yml"

    def test_custom_path(self, temp_workspace: Path):
        (temp_workspace / "book").mkdir()
        (temp_workspace / "book" / "cat.yml").write_text("CHAPS:\n  - a.re\n")
        assert load_catalog(temp_workspace, "book/cat.yml").files == ["a.re"]

    def test_missing_file(self, temp_workspace: Path):
        with pytest.raises(FileNotFoundError):
            load_catalog(temp_workspace)

    def test_invalid_yaml(self, temp_workspace: Path):
        (temp_workspace / "catalog.yml").write_text("CHAPS: [unclosed\n")
        with pytest.raises(ValueError):
            load_catalog(temp_workspace)
