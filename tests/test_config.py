"""Tests for revguard configuration management."""

import json
from pathlib import Path

import pytest

from revguard.config import (
    CONFIG_FILE,
    LEGACY_CONFIG_FILE,
    CheckConfig,
    RevguardConfig,
    load_config,
    save_config,
)
from revguard.tools.review.allowlist import BUILTIN_ALLOWLIST, Allowlist


class TestCheckConfig:
    """Tests for CheckConfig dataclass."""

    def test_default_values(self):
        config = CheckConfig()
        assert config.profile == "dual"
        assert config.target == "latex"
        assert config.block_on_unknown_tags is True
        assert config.preview_limit == 20

    def test_unknown_profile(self):
        with pytest.raises(ValueError, match="Unknown profile"):
            CheckConfig(profile="review-9")

    def test_unknown_target(self):
        with pytest.raises(ValueError, match="Unknown target"):
            CheckConfig(target="pdf")


class TestRevguardConfig:
    """Tests for RevguardConfig dataclass."""

    def test_builtin_allowlist_by_default(self):
        config = RevguardConfig()
        assert config.effective_allowlist is BUILTIN_ALLOWLIST
        assert config.allowlist_source == "builtin"

    def test_explicit_allowlist(self):
        allowlist = Allowlist.of(blocks=["list"], inline=[])
        config = RevguardConfig(allowlist=allowlist, source="toml")
        assert config.effective_allowlist is allowlist
        assert config.allowlist_source == "toml"


class TestLoadConfig:
    """Tests for load_config function."""

    def test_no_config_returns_defaults(self, temp_workspace: Path):
        config = load_config(temp_workspace)
        assert config.source == "default"
        assert config.project.catalog == "catalog.yml"

    def test_load_toml(self, temp_workspace: Path):
        (temp_workspace / ".revguard").mkdir()
        (temp_workspace / CONFIG_FILE).write_text(
            """
[project]
catalog = "book/catalog.yml"

[check]
profile = "review-5.8"
target = "html"
block_on_unknown_tags = false

[allowlist]
blocks = ["list"]
inline = ["code"]
"""
        )
        config = load_config(temp_workspace)

        assert config.source == "toml"
        assert config.project.catalog == "book/catalog.yml"
        assert config.project.review_config == "config.yml"
        assert config.check.profile == "review-5.8"
        assert config.check.target == "html"
        assert config.check.block_on_unknown_tags is False
        assert config.allowlist == Allowlist.of(blocks=["list"], inline=["code"])

    def test_toml_without_allowlist_uses_builtin(self, temp_workspace: Path):
        (temp_workspace / ".revguard").mkdir()
        (temp_workspace / CONFIG_FILE).write_text('[check]\nprofile = "review-2.5"\n')
        config = load_config(temp_workspace)
        assert config.allowlist_source == "builtin"

    def test_invalid_profile_raises(self, temp_workspace: Path):
        (temp_workspace / ".revguard").mkdir()
        (temp_workspace / CONFIG_FILE).write_text('[check]\nprofile = "nope"\n')
        with pytest.raises(ValueError):
            load_config(temp_workspace)

    def test_invalid_toml_raises(self, temp_workspace: Path):
        (temp_workspace / ".revguard").mkdir()
        (temp_workspace / CONFIG_FILE).write_text("[check\n")
        with pytest.raises(ValueError):
            load_config(temp_workspace)

    def test_legacy_json(self, temp_workspace: Path):
        (temp_workspace / LEGACY_CONFIG_FILE).write_text(
            json.dumps(
                {
                    "profile": "review-2.5",
                    "blockOnUnknownTags": False,
                    "allow": {"blocks": ["emlist"]},
                }
            )
        )
        config = load_config(temp_workspace)

        assert config.source == "json"
        assert config.check.profile == "review-2.5"
        assert config.check.block_on_unknown_tags is False
        assert config.allowlist == Allowlist.of(blocks=["emlist"], inline=[])

    def test_toml_takes_precedence_over_json(self, temp_workspace: Path):
        (temp_workspace / LEGACY_CONFIG_FILE).write_text(json.dumps({"profile": "review-2.5"}))
        (temp_workspace / ".revguard").mkdir()
        (temp_workspace / CONFIG_FILE).write_text('[check]\nprofile = "review-5.8"\n')
        assert load_config(temp_workspace).check.profile == "review-5.8"

    def test_invalid_json_raises(self, temp_workspace: Path):
        (temp_workspace / LEGACY_CONFIG_FILE).write_text("{broken")
        with pytest.raises(ValueError, match="Invalid JSON"):
            load_config(temp_workspace)


class TestSaveConfig:
    """Tests for save_config function."""

    def test_save_and_reload(self, temp_workspace: Path):
        config = RevguardConfig(
            check=CheckConfig(profile="review-5.8", preview_limit=5),
            allowlist=Allowlist.of(blocks=["list", "table"], inline=["b"]),
        )
        path = save_config(config, temp_workspace)

        assert path == temp_workspace / CONFIG_FILE
        loaded = load_config(temp_workspace)
        assert loaded.check.profile == "review-5.8"
        assert loaded.check.preview_limit == 5
        assert loaded.allowlist == config.allowlist

    def test_save_without_allowlist(self, temp_workspace: Path):
        save_config(RevguardConfig(), temp_workspace)
        assert "[allowlist]" not in (temp_workspace / CONFIG_FILE).read_text()
        assert load_config(temp_workspace).allowlist is None

    def test_no_temp_files_left(self, temp_workspace: Path):
        save_config(RevguardConfig(), temp_workspace)
        names = [p.name for p in (temp_workspace / ".revguard").iterdir()]
        assert names == ["config.toml"]
