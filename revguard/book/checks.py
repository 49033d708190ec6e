"""Project-level checks: the tag and ID engine run over a book's files."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from revguard.book.compiler import compile_document
from revguard.tools.review.allowlist import Allowlist, find_violations
from revguard.tools.review.applier import ApplyResult, apply_fixes
from revguard.tools.review.diagnostics import Diagnostic, parse_stderr
from revguard.tools.review.ids import collect_used_ids
from revguard.tools.review.matcher import TagOccurrence
from revguard.tools.review.planner import FixEdit, plan_documents

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadFailure:
    """A manuscript file that could not be read."""

    file: str
    error: str

    def to_dict(self) -> dict[str, str]:
        return {"file": self.file, "error": self.error}


@dataclass
class TagCheckResult:
    """Tags that are not allowlisted, plus files that could not be scanned."""

    violations: list[TagOccurrence] = field(default_factory=list)
    failures: list[ReadFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.violations and not self.failures

    def to_dict(self) -> dict[str, Any]:
        return {
            "violations": [v.to_dict() for v in self.violations],
            "failures": [f.to_dict() for f in self.failures],
        }


@dataclass
class FixPlan:
    """Planned ID fixes for a project."""

    fixes: list[FixEdit] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.fixes)

    def to_dict(self) -> dict[str, Any]:
        return {"count": self.count, "fixes": [f.to_dict() for f in self.fixes]}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FixPlan":
        return cls(fixes=[FixEdit.from_dict(f) for f in data.get("fixes", [])])


def read_document(cwd: Path, file: str) -> str:
    """Read a manuscript file relative to the project root.

    Raises:
        OSError: If the file cannot be read or lies outside the project
        UnicodeDecodeError: If the file is not UTF-8
    """
    root = cwd.resolve()
    path = (root / file).resolve()
    if not path.is_relative_to(root):
        raise OSError(f"Invalid path (outside project): {file}")
    return path.read_text(encoding="utf-8")


def read_documents(cwd: Path, files: Iterable[str]) -> list[tuple[str, str]]:
    """Read every file, failing on the first one that can't be read."""
    return [(file, read_document(cwd, file)) for file in files]


def enforce_tags(cwd: Path, files: Iterable[str], allowlist: Allowlist) -> TagCheckResult:
    """Find tags that are not in the allowlist.

    Unreadable files are recorded in the result and scanning continues.
    """
    result = TagCheckResult()
    for file in files:
        try:
            text = read_document(cwd, file)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read %s: %s", file, e)
            result.failures.append(ReadFailure(file=file, error=str(e)))
            continue
        result.violations.extend(find_violations(file, text, allowlist))
    return result


def plan_id_fixes(cwd: Path, files: Iterable[str]) -> FixPlan:
    """Plan ID fixes across a project's files in catalog order.

    IDs from every file are collected before any file is planned, so a
    fix in an early chapter never takes an ID a later chapter already uses.

    Raises:
        OSError: If a file cannot be read
        UnicodeDecodeError: If a file is not UTF-8
    """
    documents = read_documents(cwd, files)
    used_ids = collect_used_ids(documents)
    logger.debug("Collected %d existing IDs from %d files", len(used_ids), len(documents))
    return FixPlan(fixes=plan_documents(documents, used_ids))


def apply_id_fixes(cwd: Path, fixes: Iterable[FixEdit]) -> ApplyResult:
    """Apply planned ID fixes to a project's files."""
    return apply_fixes(cwd, fixes)


def lint_project(cwd: Path, files: Iterable[str], target: str = "latex") -> list[Diagnostic]:
    """Compile each file and collect warnings from its stderr.

    Output is parsed whatever the exit status, since Re:VIEW prints
    warnings on successful runs too.
    """
    diagnostics: list[Diagnostic] = []
    for file in files:
        result = compile_document(cwd, file, target)
        diagnostics.extend(parse_stderr(result.stderr, fallback_file=file))
    return diagnostics
