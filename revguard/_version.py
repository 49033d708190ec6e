"""Version information for revguard.

The package version is statically defined here and should match
pyproject.toml. The version of the Re:VIEW toolchain a project builds
with is detected at runtime, since it depends on the project's Gemfile.
"""

from functools import lru_cache
from pathlib import Path

__version__ = "0.1.0"


def get_version() -> str:
    """Get the version string.

    Returns:
        Version string like "0.1.0"
    """
    return __version__


@lru_cache(maxsize=8)
def get_review_version(cwd: Path) -> str | None:
    """Get the Re:VIEW CLI version for a project, or None if unavailable."""
    from revguard.book.compiler import review_version

    try:
        return review_version(cwd)
    except RuntimeError:
        return None


def get_version_info(cwd: Path | None = None) -> dict[str, str | None]:
    """Get detailed version information.

    Args:
        cwd: Project root to probe for the Re:VIEW version. Not probed if None.

    Returns:
        Dict with 'version' and 'review' (the Re:VIEW CLI version)
    """
    return {
        "version": __version__,
        "review": get_review_version(cwd.resolve()) if cwd is not None else None,
    }


def get_full_version_string(cwd: Path | None = None) -> str:
    """Get a human-readable version string.

    Returns:
        String like "revguard 0.1.0 (Re:VIEW 5.8.0)" or "revguard 0.1.0"
    """
    info = get_version_info(cwd)
    if info["review"]:
        return f"revguard {info['version']} (Re:VIEW {info['review']})"
    return f"revguard {info['version']}"
