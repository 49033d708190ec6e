"""Tests for mapfile security settings."""

import json
from pathlib import Path
from unittest.mock import patch

from revguard.book.compiler import CommandResult
from revguard.book.security import (
    DEFAULT_SECURITY,
    SOURCE_DEFAULT,
    SOURCE_LOCAL,
    SOURCE_REVIEW_EXT,
    SecurityConfig,
    SecurityConfigCache,
    compare_with_review_ext,
    load_from_local_config,
    load_from_review_ext,
    load_security_config,
    sanitize_mapfile,
    validate_mapfile_path,
    validate_mapfile_size,
)


def probe_output(**overrides) -> CommandResult:
    data = {
        "max_file_size": 2048,
        "allowed_extensions": [".rb"],
        "allowed_paths": ["code/"],
        "block_absolute_paths": True,
        "block_traversal": False,
    }
    data.update(overrides)
    return CommandResult(stdout=json.dumps(data), stderr="", exit_code=0, duration_ms=1)


class TestValidateMapfilePath:
    """Tests for mapfile path validation."""

    def test_allowed_path(self):
        assert validate_mapfile_path("code/sample.rb", DEFAULT_SECURITY).valid is True

    def test_absolute_path(self):
        result = validate_mapfile_path("/etc/passwd.txt", DEFAULT_SECURITY)
        assert result.valid is False
        assert result.reason == "Absolute paths are not allowed"

    def test_windows_absolute_path(self):
        assert validate_mapfile_path("C:\\code\\a.rb", DEFAULT_SECURITY).valid is False

    def test_traversal(self):
        result = validate_mapfile_path("code/../../secret.rb", DEFAULT_SECURITY)
        assert result.valid is False
        assert result.reason == "Path traversal is not allowed"

    def test_extension_not_allowed(self):
        result = validate_mapfile_path("code/run.sh", DEFAULT_SECURITY)
        assert result.valid is False
        assert "'.sh'" in result.reason

    def test_directory_not_allowed(self):
        result = validate_mapfile_path("other/a.rb", DEFAULT_SECURITY)
        assert result.valid is False
        assert "allowed directories" in result.reason

    def test_checks_can_be_disabled(self):
        config = SecurityConfig(
            allowed_extensions=[], allowed_paths=[], block_absolute_paths=False, block_traversal=False
        )
        assert validate_mapfile_path("/tmp/../x.anything", config).valid is True


class TestValidateMapfileSize:
    """Tests for mapfile size validation."""

    def test_within_limit(self, tmp_path: Path):
        (tmp_path / "a.rb").write_text("puts 1\n")
        result = validate_mapfile_size("a.rb", tmp_path, DEFAULT_SECURITY)
        assert result.valid is True
        assert result.size == 7

    def test_too_large(self, tmp_path: Path):
        (tmp_path / "a.rb").write_text("x" * 20)
        result = validate_mapfile_size("a.rb", tmp_path, SecurityConfig(max_file_size=10))
        assert result.valid is False
        assert result.size == 20

    def test_missing_file(self, tmp_path: Path):
        result = validate_mapfile_size("missing.rb", tmp_path, DEFAULT_SECURITY)
        assert result.valid is False
        assert result.reason.startswith("Cannot access file")


class TestSanitizeMapfile:
    """Tests for suspicious content detection."""

    def test_clean_content(self):
        result = sanitize_mapfile("def hello\n  puts 'hi'\nend\n")
        assert result.safe is True
        assert result.sanitized == "def hello\n  puts 'hi'\nend\n"

    def test_flags_eval_and_backticks(self):
        result = sanitize_mapfile("eval(code)\nx = `ls`\n")
        assert result.safe is False
        assert result.sanitized is None
        assert len(result.issues) == 2


class TestLoaders:
    """Tests for the config sources."""

    def test_review_ext_probe(self, tmp_path: Path):
        with patch("revguard.book.security.run_command", return_value=probe_output()):
            config = load_from_review_ext(tmp_path)

        assert config.source == SOURCE_REVIEW_EXT
        assert config.max_file_size == 2048
        assert config.block_traversal is False

    def test_review_ext_failure(self, tmp_path: Path):
        failed = CommandResult(stdout="", stderr="LoadError", exit_code=1, duration_ms=1)
        with patch("revguard.book.security.run_command", return_value=failed):
            assert load_from_review_ext(tmp_path) is None

    def test_review_ext_bad_output(self, tmp_path: Path):
        garbage = CommandResult(stdout="not json", stderr="", exit_code=0, duration_ms=1)
        with patch("revguard.book.security.run_command", return_value=garbage):
            assert load_from_review_ext(tmp_path) is None

    def test_local_config(self, tmp_path: Path):
        (tmp_path / "config").mkdir()
        (tmp_path / "config" / "security.yml").write_text(
            "security:\n  max_file_size: 100\n  block_traversal: false\n"
        )
        config = load_from_local_config(tmp_path)

        assert config.source == SOURCE_LOCAL
        assert config.max_file_size == 100
        assert config.block_traversal is False
        assert config.block_absolute_paths is True
        assert config.allowed_extensions == DEFAULT_SECURITY.allowed_extensions

    def test_local_config_without_section(self, tmp_path: Path):
        (tmp_path / "security.yml").write_text("other: 1\n")
        assert load_from_local_config(tmp_path) is None

    def test_falls_back_to_defaults(self, tmp_path: Path):
        with patch("revguard.book.security.load_from_review_ext", return_value=None):
            config = load_security_config(tmp_path)
        assert config.source == SOURCE_DEFAULT
        assert config.max_file_size == DEFAULT_SECURITY.max_file_size

    def test_review_ext_wins(self, tmp_path: Path):
        (tmp_path / "security.yml").write_text("security:\n  max_file_size: 5\n")
        with patch("revguard.book.security.run_command", return_value=probe_output()):
            config = load_security_config(tmp_path)
        assert config.source == SOURCE_REVIEW_EXT


class TestSecurityConfigCache:
    """Tests for the TTL cache."""

    def make_cache(self):
        self.now = 0.0
        self.loads = 0

        def loader(cwd: Path) -> SecurityConfig:
            self.loads += 1
            return SecurityConfig()

        return SecurityConfigCache(ttl_seconds=300, clock=lambda: self.now, loader=loader)

    def test_cached_within_ttl(self, tmp_path: Path):
        cache = self.make_cache()
        first = cache.get(tmp_path)
        self.now = 299
        assert cache.get(tmp_path) is first
        assert self.loads == 1

    def test_reloads_after_ttl(self, tmp_path: Path):
        cache = self.make_cache()
        cache.get(tmp_path)
        self.now = 300
        cache.get(tmp_path)
        assert self.loads == 2

    def test_force_reload(self, tmp_path: Path):
        cache = self.make_cache()
        cache.get(tmp_path)
        cache.get(tmp_path, force_reload=True)
        assert self.loads == 2

    def test_keyed_by_project(self, tmp_path: Path):
        cache = self.make_cache()
        (tmp_path / "a").mkdir()
        (tmp_path / "b").mkdir()
        cache.get(tmp_path / "a")
        cache.get(tmp_path / "b")
        assert self.loads == 2

    def test_invalidate(self, tmp_path: Path):
        cache = self.make_cache()
        cache.get(tmp_path)
        cache.invalidate()
        cache.get(tmp_path)
        assert self.loads == 2


class TestCompareWithReviewExt:
    """Tests for comparing configs with review-ext.rb."""

    def test_unavailable(self, tmp_path: Path):
        with patch("revguard.book.security.load_from_review_ext", return_value=None):
            result = compare_with_review_ext(tmp_path, DEFAULT_SECURITY)
        assert result.matching is False
        assert result.differences == ["ReviewExtention config not available"]

    def test_matching(self, tmp_path: Path):
        with patch("revguard.book.security.load_from_review_ext", return_value=SecurityConfig()):
            result = compare_with_review_ext(tmp_path, SecurityConfig())
        assert result.matching is True
        assert result.differences == []

    def test_differences(self, tmp_path: Path):
        ext = SecurityConfig(max_file_size=10, allowed_extensions=[".rb", ".go"])
        current = SecurityConfig(allowed_extensions=[".rb", ".py"])
        with patch("revguard.book.security.load_from_review_ext", return_value=ext):
            result = compare_with_review_ext(tmp_path, current)

        assert result.matching is False
        assert result.differences == [
            f"Max file size: current={current.max_file_size}, review-ext=10",
            "Allowed extensions differ: +.py, -.go",
        ]
