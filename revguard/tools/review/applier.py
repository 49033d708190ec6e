"""Apply planned ID fixes to manuscript files.

Each file is handled as one unit: read once, rewritten in memory, backed
up to ``<file>.bak`` and only then written. A batch is not transactional
across files. If a file fails, the files before it stay fixed (with
backups), the files after it are untouched, and the raised ``ApplyError``
says which is which.
"""

import logging
import re
import shutil
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path

from revguard.utils.files import atomic_write

from .matcher import LINE_BREAK_PATTERN
from .planner import FixEdit

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".bak"

# Splitting keeps the separators: [line, ending, line, ending, ..., last line]
LINE_SPLIT_PATTERN = re.compile(f"({LINE_BREAK_PATTERN.pattern})")


class ApplyError(Exception):
    """Applying a fix plan failed partway through a batch."""

    def __init__(
        self,
        message: str,
        *,
        file: str,
        completed: list[str] | None = None,
        applied: int = 0,
    ):
        super().__init__(message)
        self.file = file
        self.completed = completed or []
        self.applied = applied


class StaleFixError(ApplyError):
    """A planned edit no longer matches the file it targets."""


@dataclass
class ApplyResult:
    """Result of applying a fix plan."""

    applied: int = 0
    files: list[str] = field(default_factory=list)
    backups: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"applied": self.applied, "files": self.files, "backups": self.backups}


def group_by_file(fixes: Iterable[FixEdit]) -> dict[str, list[FixEdit]]:
    """Group fixes by file, keeping the order in which files first appear."""
    grouped: dict[str, list[FixEdit]] = {}
    for fix in fixes:
        grouped.setdefault(fix.file, []).append(fix)
    return grouped


def backup_path(path: Path) -> Path:
    return path.with_name(path.name + BACKUP_SUFFIX)


def rewrite_lines(file: str, content: str, fixes: list[FixEdit]) -> tuple[str, int]:
    """Apply fixes to file content in memory.

    Edits go in descending line order. Every target line must still read
    exactly as it did when the fix was planned. Each line keeps its own
    line ending, so untouched lines come out byte-identical.

    Returns:
        Tuple of (new content, number of edits applied)

    Raises:
        StaleFixError: If a fix is out of range or its line has changed
    """
    parts = LINE_SPLIT_PATTERN.split(content)
    lines = parts[0::2]
    endings = [*parts[1::2], ""]

    applied = 0
    for fix in sorted(fixes, key=lambda f: f.line_start, reverse=True):
        index = fix.line_start - 1
        if index < 0 or index >= len(lines):
            raise StaleFixError(
                f"{file}:{fix.line_start}: line is out of range", file=file
            )
        if lines[index] != fix.before:
            raise StaleFixError(
                f"{file}:{fix.line_start}: line changed since the fix was planned", file=file
            )
        lines[index] = fix.after
        applied += 1

    return "".join(line + ending for line, ending in zip(lines, endings, strict=True)), applied


def _apply_to_file(root: Path, file: str, fixes: list[FixEdit]) -> tuple[Path, int]:
    """Back up and rewrite one file. Returns (backup path, edits applied)."""
    path = (root / file).resolve()
    if not path.is_relative_to(root):
        raise ApplyError(f"Invalid path (outside project): {file}", file=file)

    # Decoding bytes keeps \r\n line endings intact
    content = path.read_bytes().decode("utf-8")
    new_content, applied = rewrite_lines(file, content, fixes)

    # The backup must be on disk before the rewrite is persisted
    backup = backup_path(path)
    shutil.copy2(path, backup)
    atomic_write(path, new_content.encode("utf-8"))

    logger.info("Applied %d fix(es) to %s (backup: %s)", applied, file, backup.name)
    return backup, applied


def apply_fixes(project_root: str | Path, fixes: Iterable[FixEdit]) -> ApplyResult:
    """Apply a fix plan to the files under ``project_root``.

    Args:
        project_root: Directory the fix paths are relative to
        fixes: Planned edits, typically from ``plan_fixes``

    Returns:
        ApplyResult with the edit count, rewritten files and backup paths

    Raises:
        ApplyError: If a file cannot be read, backed up or written. The
            error lists the files completed before the failure.
    """
    root = Path(project_root).resolve()
    result = ApplyResult()

    for file, file_fixes in group_by_file(fixes).items():
        try:
            backup, applied = _apply_to_file(root, file, file_fixes)
        except ApplyError as e:
            e.completed = list(result.files)
            e.applied = result.applied
            logger.warning("Fix batch stopped at %s: %s", file, e)
            raise
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Fix batch stopped at %s: %s", file, e)
            raise ApplyError(
                f"Failed to apply fixes to {file}: {e}",
                file=file,
                completed=list(result.files),
                applied=result.applied,
            ) from e

        result.applied += applied
        result.files.append(file)
        result.backups.append(str(backup.relative_to(root)))

    return result
