"""Tests for version module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from revguard._version import (
    __version__,
    get_full_version_string,
    get_review_version,
    get_version,
    get_version_info,
)


@pytest.fixture(autouse=True)
def _clear_review_cache():
    get_review_version.cache_clear()
    yield
    get_review_version.cache_clear()


class TestVersionModule:
    """Tests for version module functions."""

    def test_version_is_string(self) -> None:
        """__version__ should be a string."""
        assert isinstance(__version__, str)

    def test_version_format(self) -> None:
        """Version should follow semver pattern."""
        parts = __version__.split(".")
        assert len(parts) >= 2
        assert all(p.isdigit() for p in parts[:2])

    def test_get_version_returns_version(self) -> None:
        """get_version should return the version string."""
        assert get_version() == __version__

    def test_get_version_info_without_project(self) -> None:
        """Without a project directory Re:VIEW is not probed."""
        with patch("revguard.book.compiler.review_version") as mock_version:
            info = get_version_info()
        assert info == {"version": __version__, "review": None}
        mock_version.assert_not_called()

    def test_get_version_info_with_review(self, tmp_path: Path) -> None:
        with patch("revguard.book.compiler.review_version", return_value="5.8.0"):
            info = get_version_info(tmp_path)
        assert info["review"] == "5.8.0"

    def test_review_unavailable(self, tmp_path: Path) -> None:
        """A failing review --version is reported as None."""
        with patch("revguard.book.compiler.review_version", side_effect=RuntimeError("missing")):
            assert get_review_version(tmp_path) is None


class TestFullVersionString:
    """Tests for the human-readable version string."""

    def test_without_review(self) -> None:
        assert get_full_version_string() == f"revguard {__version__}"

    def test_with_review(self, tmp_path: Path) -> None:
        with patch("revguard.book.compiler.review_version", return_value="5.8.0"):
            result = get_full_version_string(tmp_path)
        assert result == f"revguard {__version__} (Re:VIEW 5.8.0)"
