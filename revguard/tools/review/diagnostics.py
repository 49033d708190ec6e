"""Best-effort extraction of warnings from review-compile output."""

import re
import unicodedata
from dataclasses import dataclass

# "⚠ WARN" marker Re:VIEW puts in front of warnings
WARN_MARKER_PATTERN = re.compile(r"^\s*(?:⚠\s*)?WARN(?=[\s:])\s*:?\s*")
# chapter01.re:42: `//' seen but is not valid command: "//badtag{"
INVALID_BLOCK_PATTERN = re.compile(r"^([^\s:]+):(\d+):\s+`//'\s+seen.*?:\s+\"(.+)\"$", re.IGNORECASE)
DUPLICATE_ID_PATTERN = re.compile(r"warning:\s+duplicate ID:", re.IGNORECASE)


@dataclass(frozen=True)
class Diagnostic:
    """A warning extracted from compiler output."""

    file: str | None
    line: int | None
    message: str
    severity: str = "warning"

    def to_dict(self) -> dict[str, str | int | None]:
        return {
            "file": self.file,
            "line": self.line,
            "severity": self.severity,
            "message": self.message,
        }


def strip_marker(line: str) -> str:
    """Remove a leading warning marker or symbol character from a line."""
    stripped = WARN_MARKER_PATTERN.sub("", line, count=1)
    if stripped == line and line and unicodedata.category(line[0]) == "So":
        stripped = line[1:]
    return stripped.strip()


def parse_stderr(stderr: str, fallback_file: str | None = None) -> list[Diagnostic]:
    """Convert compiler stderr into diagnostics.

    Only two messages are modelled: invalid block starts, which carry a file
    and line, and duplicate/empty ID warnings, which do not and are
    attributed to ``fallback_file``. Anything else is ignored.
    """
    diagnostics: list[Diagnostic] = []

    for raw in stderr.splitlines():
        line = strip_marker(raw)

        match = INVALID_BLOCK_PATTERN.match(line)
        if match:
            file, line_number, detail = match.groups()
            diagnostics.append(
                Diagnostic(
                    file=file,
                    line=int(line_number),
                    message=f"Invalid block start '//': {detail}",
                )
            )
            continue

        if DUPLICATE_ID_PATTERN.search(line):
            diagnostics.append(
                Diagnostic(file=fallback_file, line=None, message="Duplicate/empty ID detected")
            )

    return diagnostics
