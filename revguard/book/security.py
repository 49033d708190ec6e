"""Security settings for #@mapfile includes.

Settings are taken from the first source that provides them:
1. Constants defined by the project's review-ext.rb (probed through Ruby)
2. A local YAML file with a ``security:`` section
3. Built-in defaults
"""

import json
import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Any

import yaml

from revguard.book.compiler import RunOptions, run_command

logger = logging.getLogger(__name__)

SOURCE_REVIEW_EXT = "reviewextention"
SOURCE_LOCAL = "local"
SOURCE_DEFAULT = "default"

CACHE_TTL_SECONDS = 300

LOCAL_CONFIG_PATHS = (
    "config/security.yml",
    "config/security.yaml",
    "security.yml",
    ".review-security.yml",
)

# Prints the security constants of review-ext.rb as JSON, exits 1 if it can't be loaded
REVIEW_EXT_PROBE = """
begin
  require_relative './review-ext.rb'
  require 'json'

  config = {
    max_file_size: defined?(MAX_FILE_SIZE) ? MAX_FILE_SIZE : 1048576,
    allowed_extensions: defined?(ALLOWED_EXTENSIONS) ? ALLOWED_EXTENSIONS : [],
    allowed_paths: defined?(ALLOWED_PATHS) ? ALLOWED_PATHS : [],
    block_absolute_paths: defined?(BLOCK_ABSOLUTE_PATHS) ? BLOCK_ABSOLUTE_PATHS : true,
    block_traversal: defined?(BLOCK_TRAVERSAL) ? BLOCK_TRAVERSAL : true
  }

  puts JSON.generate(config)
rescue LoadError => e
  exit 1
end
"""

SUSPICIOUS_PATTERNS = (
    re.compile(r"eval\s*\(", re.IGNORECASE),
    re.compile(r"require\s*\(", re.IGNORECASE),
    re.compile(r"import\s+", re.IGNORECASE),
    re.compile(r"__import__", re.IGNORECASE),
    re.compile(r"exec\s*\(", re.IGNORECASE),
    re.compile(r"system\s*\(", re.IGNORECASE),
    re.compile(r"`[^`]*`"),
)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


@dataclass
class SecurityConfig:
    """Limits applied to files pulled in with #@mapfile."""

    max_file_size: int = 1024 * 1024
    allowed_extensions: list[str] = field(
        default_factory=lambda: [".txt", ".re", ".rb", ".cs", ".java", ".py", ".js", ".ts"]
    )
    allowed_paths: list[str] = field(
        default_factory=lambda: ["code/", "src/", "lib/", "examples/"]
    )
    block_absolute_paths: bool = True
    block_traversal: bool = True
    source: str = SOURCE_DEFAULT
    timestamp: str = field(default_factory=_now_iso)

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_file_size": self.max_file_size,
            "allowed_extensions": self.allowed_extensions,
            "allowed_paths": self.allowed_paths,
            "block_absolute_paths": self.block_absolute_paths,
            "block_traversal": self.block_traversal,
            "source": self.source,
            "timestamp": self.timestamp,
        }


DEFAULT_SECURITY = SecurityConfig()


@dataclass
class ValidationResult:
    """Result of a mapfile path or size check."""

    valid: bool
    reason: str | None = None
    size: int | None = None


@dataclass
class SanitizeResult:
    """Result of scanning mapfile content for code-execution patterns."""

    safe: bool
    issues: list[str] = field(default_factory=list)
    sanitized: str | None = None


@dataclass
class ComparisonResult:
    """Differences between a config and the one review-ext.rb defines."""

    matching: bool
    differences: list[str] = field(default_factory=list)


def load_from_review_ext(cwd: Path) -> SecurityConfig | None:
    """Read the security constants of ``review-ext.rb``.

    Returns None when Ruby or the extension file is unavailable or the
    probe prints something that is not the expected JSON.
    """
    result = run_command("ruby", ["-e", REVIEW_EXT_PROBE], RunOptions(cwd=cwd, timeout=5))
    if not result.success:
        return None

    try:
        data = json.loads(result.stdout)
        return SecurityConfig(
            max_file_size=int(data["max_file_size"]),
            allowed_extensions=list(data["allowed_extensions"]),
            allowed_paths=list(data["allowed_paths"]),
            block_absolute_paths=bool(data["block_absolute_paths"]),
            block_traversal=bool(data["block_traversal"]),
            source=SOURCE_REVIEW_EXT,
        )
    except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
        logger.warning("Unexpected output from review-ext.rb probe: %s", e)
        return None


def load_from_local_config(cwd: Path) -> SecurityConfig | None:
    """Read the first local YAML file that has a ``security:`` section.

    Unreadable or invalid files are skipped. Keys missing from the section
    take their default values.
    """
    for relative in LOCAL_CONFIG_PATHS:
        path = cwd / relative
        if not path.exists():
            continue
        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            logger.warning("Skipping security config %s: %s", path, e)
            continue

        section = data.get("security") if isinstance(data, dict) else None
        if not isinstance(section, dict):
            continue

        block_absolute = section.get("block_absolute_paths")
        block_traversal = section.get("block_traversal")
        return SecurityConfig(
            max_file_size=section.get("max_file_size") or DEFAULT_SECURITY.max_file_size,
            allowed_extensions=section.get("allowed_extensions")
            or list(DEFAULT_SECURITY.allowed_extensions),
            allowed_paths=section.get("allowed_paths") or list(DEFAULT_SECURITY.allowed_paths),
            block_absolute_paths=(
                DEFAULT_SECURITY.block_absolute_paths if block_absolute is None else block_absolute
            ),
            block_traversal=(
                DEFAULT_SECURITY.block_traversal if block_traversal is None else block_traversal
            ),
            source=SOURCE_LOCAL,
        )

    return None


def load_security_config(cwd: Path) -> SecurityConfig:
    """Load the security config from the first available source."""
    config = load_from_review_ext(cwd)
    if config is None:
        logger.warning("review-ext.rb security settings unavailable, trying local config")
        config = load_from_local_config(cwd)
    if config is None:
        config = replace(DEFAULT_SECURITY, timestamp=_now_iso())

    logger.info("Security configuration loaded from: %s", config.source)
    logger.debug(
        "Max file size: %d bytes, extensions: %s, paths: %s",
        config.max_file_size,
        ", ".join(config.allowed_extensions),
        ", ".join(config.allowed_paths),
    )
    return config


class SecurityConfigCache:
    """Per-project cache of loaded security configs with a time-to-live."""

    def __init__(
        self,
        ttl_seconds: float = CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        loader: Callable[[Path], SecurityConfig] = load_security_config,
    ):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._loader = loader
        self._entries: dict[Path, tuple[SecurityConfig, float]] = {}

    def get(self, cwd: Path, force_reload: bool = False) -> SecurityConfig:
        """Get the config for a project, loading it if missing or expired."""
        key = cwd.resolve()
        now = self._clock()

        entry = self._entries.get(key)
        if entry and not force_reload and now < entry[1]:
            logger.debug("Using cached security config for %s", key)
            return entry[0]

        config = self._loader(key)
        self._entries[key] = (config, now + self.ttl_seconds)
        return config

    def invalidate(self) -> None:
        self._entries.clear()


def validate_mapfile_path(filepath: str, config: SecurityConfig) -> ValidationResult:
    """Check a mapfile path against the configured restrictions."""
    if config.block_absolute_paths and (
        PurePosixPath(filepath).is_absolute() or PureWindowsPath(filepath).is_absolute()
    ):
        return ValidationResult(False, "Absolute paths are not allowed")

    if config.block_traversal and ("../" in filepath or "..\\" in filepath):
        return ValidationResult(False, "Path traversal is not allowed")

    ext = PurePosixPath(filepath.replace("\\", "/")).suffix.lower()
    if config.allowed_extensions and ext not in config.allowed_extensions:
        return ValidationResult(
            False,
            f"File extension '{ext}' is not allowed. "
            f"Allowed: {', '.join(config.allowed_extensions)}",
        )

    normalized = filepath.replace("\\", "/")
    if config.allowed_paths and not any(normalized.startswith(p) for p in config.allowed_paths):
        return ValidationResult(
            False,
            f"Path must be within allowed directories: {', '.join(config.allowed_paths)}",
        )

    return ValidationResult(True)


def validate_mapfile_size(filepath: str, cwd: Path, config: SecurityConfig) -> ValidationResult:
    """Check that a mapfile exists and is within the size limit."""
    try:
        size = (cwd / filepath).stat().st_size
    except OSError as e:
        return ValidationResult(False, f"Cannot access file: {e}")

    if size > config.max_file_size:
        return ValidationResult(
            False,
            f"File size ({size} bytes) exceeds maximum allowed size "
            f"({config.max_file_size} bytes)",
            size,
        )
    return ValidationResult(True, size=size)


def sanitize_mapfile(content: str) -> SanitizeResult:
    """Flag mapfile content that looks like it executes code."""
    issues = [
        f"Suspicious pattern detected: {pattern.pattern}"
        for pattern in SUSPICIOUS_PATTERNS
        if pattern.search(content)
    ]
    if issues:
        return SanitizeResult(safe=False, issues=issues)
    return SanitizeResult(safe=True, sanitized=content)


def _set_difference(current: list[str], other: list[str]) -> list[str]:
    """List items only in ``current`` as ``+item`` and only in ``other`` as ``-item``."""
    added = [f"+{item}" for item in dict.fromkeys(current) if item not in other]
    removed = [f"-{item}" for item in dict.fromkeys(other) if item not in current]
    return added + removed


def compare_with_review_ext(cwd: Path, current: SecurityConfig) -> ComparisonResult:
    """Compare a config with the settings review-ext.rb defines."""
    ext_config = load_from_review_ext(cwd)
    if ext_config is None:
        return ComparisonResult(False, ["ReviewExtention config not available"])

    differences: list[str] = []
    if current.max_file_size != ext_config.max_file_size:
        differences.append(
            f"Max file size: current={current.max_file_size}, "
            f"review-ext={ext_config.max_file_size}"
        )

    ext_diff = _set_difference(current.allowed_extensions, ext_config.allowed_extensions)
    if ext_diff:
        differences.append(f"Allowed extensions differ: {', '.join(ext_diff)}")

    path_diff = _set_difference(current.allowed_paths, ext_config.allowed_paths)
    if path_diff:
        differences.append(f"Allowed paths differ: {', '.join(path_diff)}")

    return ComparisonResult(matching=not differences, differences=differences)
