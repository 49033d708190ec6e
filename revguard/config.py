"""revguard configuration management.

Loads configuration from .revguard/config.toml if present, falling back to
a legacy review-mcp.json, with sensible defaults.
Configuration hierarchy (highest priority first):
1. Command-line flags
2. Repo-level config (.revguard/config.toml)
3. Legacy JSON config (review-mcp.json)
4. Defaults
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore[import-not-found]

import tomli_w

from revguard.tools.review.allowlist import BUILTIN_ALLOWLIST, Allowlist
from revguard.utils.files import atomic_write

logger = logging.getLogger(__name__)

CONFIG_DIR = ".revguard"
CONFIG_FILE = f"{CONFIG_DIR}/config.toml"
LEGACY_CONFIG_FILE = "review-mcp.json"

PROFILES = ("review-5.8", "review-2.5", "dual")
TARGETS = ("latex", "html", "idgxml")


@dataclass
class ProjectConfig:
    """Project layout settings."""

    catalog: str = "catalog.yml"
    review_config: str = "config.yml"


@dataclass
class CheckConfig:
    """Checking behavior settings."""

    profile: str = "dual"
    target: str = "latex"
    block_on_unknown_tags: bool = True
    preview_limit: int = 20

    def __post_init__(self) -> None:
        if self.profile not in PROFILES:
            raise ValueError(f"Unknown profile: {self.profile}. Available: {', '.join(PROFILES)}")
        if self.target not in TARGETS:
            raise ValueError(f"Unknown target: {self.target}. Available: {', '.join(TARGETS)}")


@dataclass
class RevguardConfig:
    """revguard configuration."""

    project: ProjectConfig = field(default_factory=ProjectConfig)
    check: CheckConfig = field(default_factory=CheckConfig)
    allowlist: Allowlist | None = None  # None means the built-in allowlist
    source: str = "default"

    @property
    def effective_allowlist(self) -> Allowlist:
        """Get the configured allowlist, or the built-in one if none is set."""
        return self.allowlist if self.allowlist is not None else BUILTIN_ALLOWLIST

    @property
    def allowlist_source(self) -> str:
        return "builtin" if self.allowlist is None else self.source


def _load_toml(path: Path) -> RevguardConfig:
    with open(path, "rb") as f:
        data = tomllib.load(f)

    project_data = data.get("project", {})
    check_data = data.get("check", {})
    allow_data = data.get("allowlist")

    project = ProjectConfig(
        catalog=project_data.get("catalog", "catalog.yml"),
        review_config=project_data.get("review_config", "config.yml"),
    )
    check = CheckConfig(
        profile=check_data.get("profile", "dual"),
        target=check_data.get("target", "latex"),
        block_on_unknown_tags=check_data.get("block_on_unknown_tags", True),
        preview_limit=check_data.get("preview_limit", 20),
    )
    allowlist = Allowlist.from_dict(allow_data) if allow_data is not None else None

    return RevguardConfig(project=project, check=check, allowlist=allowlist, source="toml")


def _load_legacy_json(path: Path) -> RevguardConfig:
    data: dict[str, Any] = json.loads(path.read_text(encoding="utf-8"))

    check = CheckConfig(
        profile=data.get("profile", "dual"),
        target=data.get("target", "latex"),
        block_on_unknown_tags=data.get("blockOnUnknownTags", True),
    )
    allow_data = data.get("allow")
    allowlist = Allowlist.from_dict(allow_data) if allow_data is not None else None

    return RevguardConfig(check=check, allowlist=allowlist, source="json")


def load_config(workspace: Path) -> RevguardConfig:
    """Load configuration for a Re:VIEW project.

    Args:
        workspace: Path to the project root (where catalog.yml lives).

    Returns:
        RevguardConfig with values from a config file or defaults.

    Raises:
        ValueError: If a config file exists but holds invalid values
    """
    toml_path = workspace / CONFIG_FILE
    if toml_path.exists():
        logger.debug("Loading config from %s", toml_path)
        return _load_toml(toml_path)

    json_path = workspace / LEGACY_CONFIG_FILE
    if json_path.exists():
        logger.debug("Loading legacy config from %s", json_path)
        try:
            return _load_legacy_json(json_path)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {json_path}: {e}") from e

    return RevguardConfig()


def save_config(config: RevguardConfig, workspace: Path) -> Path:
    """Save configuration to .revguard/config.toml.

    Returns:
        Path of the written file
    """
    data: dict[str, Any] = {
        "project": {
            "catalog": config.project.catalog,
            "review_config": config.project.review_config,
        },
        "check": {
            "profile": config.check.profile,
            "target": config.check.target,
            "block_on_unknown_tags": config.check.block_on_unknown_tags,
            "preview_limit": config.check.preview_limit,
        },
    }
    if config.allowlist is not None:
        data["allowlist"] = config.allowlist.to_dict()

    path = workspace / CONFIG_FILE
    atomic_write(path, tomli_w.dumps(data).encode("utf-8"))
    return path
