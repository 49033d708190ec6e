"""ID fix planning for Re:VIEW manuscripts.

The planner walks every ID slot of a document (referenceable blocks and
caption macros) and decides, per slot, whether the identifier is fine,
missing, or a duplicate of one claimed earlier in the same run. Missing
and duplicate slots get a freshly minted identifier, and the rewrite is
recorded as a single-line ``FixEdit``. Planning never touches the file
system; applying the edits is the job of the applier.
"""

import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from pathlib import PurePath
from typing import Any

from .ids import CAPTION_PATTERN, UsedIdSet, parse_id_attribute
from .matcher import BlockOpen, recognize_block_open, split_lines

# Block kinds that take part in ID assignment
ID_TARGET_BLOCKS = frozenset(
    {"list", "emlist", "image", "figure", "table", "source", "cmd", "quote"}
)

# Role token for caption-derived IDs: <prefix>-cap-NNN
CAPTION_ROLE = "cap"

REASON_EMPTY = "empty"
REASON_DUPLICATE = "duplicate"

# An id= key that is present but has no value: id= or id=""
EMPTY_ID_ATTRIBUTE_PATTERN = re.compile(r'(?:^|,)\s*id\s*=\s*(?P<quote>"?)(?P=quote)\s*(?=,|$)')


@dataclass(frozen=True)
class FixEdit:
    """A planned rewrite of one line."""

    file: str
    line_start: int  # 1-based
    line_end: int  # Always equal to line_start
    before: str
    after: str
    reason: str  # 'empty' or 'duplicate'

    def to_dict(self) -> dict[str, str | int]:
        return {
            "file": self.file,
            "line_start": self.line_start,
            "line_end": self.line_end,
            "before": self.before,
            "after": self.after,
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "FixEdit":
        """Create from a dict, accepting snake_case or camelCase line keys."""
        line_start = data.get("line_start", data.get("lineStart"))
        if line_start is None:
            raise ValueError("Fix is missing 'line_start'")
        line_end = data.get("line_end", data.get("lineEnd", line_start))
        return cls(
            file=str(data["file"]),
            line_start=int(line_start),
            line_end=int(line_end),
            before=str(data["before"]),
            after=str(data["after"]),
            reason=str(data.get("reason", REASON_EMPTY)),
        )


def slugify_prefix(filename: str) -> str:
    """Derive an ID prefix from a document file name.

    ``chapter01.re`` becomes ``chapter01``, ``Intro Part.re`` becomes
    ``intro-part``. Names with no ASCII letters or digits fall back to
    ``doc``.
    """
    stem = PurePath(filename).stem.lower()
    slug = re.sub(r"[^a-z0-9]+", "-", stem).strip("-")
    return slug or "doc"


def _rewrite_block_line(
    line: str, block: BlockOpen, used_ids: UsedIdSet, prefix: str
) -> tuple[str, str | None]:
    """Decide the fate of a block-opening line.

    Returns ``(new_line, reason)``, with reason None when no edit is needed.
    """
    attribute = parse_id_attribute(block.attrs)

    if block.name not in ID_TARGET_BLOCKS:
        # Not fixable, but its ID still counts toward uniqueness
        if attribute:
            used_ids.claim(attribute.value)
        return line, None

    if attribute and used_ids.claim(attribute.value):
        return line, None

    candidate = used_ids.mint(f"{prefix}-{block.name}")

    if attribute:
        # Duplicate: swap only the value, quotes stay where they are
        offset = block.bracket_start + 1
        new_line = (
            line[: offset + attribute.start] + candidate + line[offset + attribute.end :]
        )
        return new_line, REASON_DUPLICATE

    if not block.has_bracket:
        return line[: block.name_end] + f"[id={candidate}]" + line[block.name_end :], REASON_EMPTY

    inner = block.attrs or ""
    empty_key = EMPTY_ID_ATTRIBUTE_PATTERN.search(inner)
    if empty_key:
        pos = empty_key.end("quote")
        new_inner = inner[:pos] + candidate + inner[pos:]
    elif inner.strip():
        new_inner = f"{inner}, id={candidate}"
    else:
        new_inner = f"id={candidate}"

    new_line = line[: block.bracket_start] + f"[{new_inner}]" + line[block.bracket_end :]
    return new_line, REASON_EMPTY


def _rewrite_caption_line(
    line: str, used_ids: UsedIdSet, prefix: str
) -> tuple[str, list[str]]:
    """Fix every caption macro on a line.

    Returns ``(new_line, reasons)`` listing the reason of each rewritten slot.
    """
    reasons: list[str] = []

    def replace(match: re.Match) -> str:
        caption_id = match.group(2).strip()
        if caption_id and used_ids.claim(caption_id):
            return match.group(0)
        reasons.append(REASON_DUPLICATE if caption_id else REASON_EMPTY)
        candidate = used_ids.mint(f"{prefix}-{CAPTION_ROLE}")
        return f"{match.group(1)}[{candidate}]{{"

    return CAPTION_PATTERN.sub(replace, line), reasons


def plan_fixes(file: str, text: str, used_ids: UsedIdSet, name_prefix: str) -> list[FixEdit]:
    """Plan ID fixes for one document.

    ``used_ids`` is shared across every document of the run and is mutated:
    unique values are claimed and minted values reserved as they are
    produced, so later slots in this or later documents never reuse them.

    Args:
        file: Document path as reported in the edits
        text: Document content
        used_ids: The run's shared used-ID set
        name_prefix: Prefix for minted IDs (usually from ``slugify_prefix``)

    Returns:
        Edits ordered by line number, at most one per line
    """
    lines = split_lines(text)
    rewritten: dict[int, str] = {}
    reasons: dict[int, set[str]] = {}

    # Block slots first, then caption slots, each in line order
    for i, line in enumerate(lines):
        block = recognize_block_open(line)
        if not block:
            continue
        new_line, reason = _rewrite_block_line(line, block, used_ids, name_prefix)
        if reason:
            rewritten[i] = new_line
            reasons.setdefault(i, set()).add(reason)

    for i, line in enumerate(lines):
        current = rewritten.get(i, line)
        new_line, caption_reasons = _rewrite_caption_line(current, used_ids, name_prefix)
        if caption_reasons:
            rewritten[i] = new_line
            reasons.setdefault(i, set()).update(caption_reasons)

    fixes: list[FixEdit] = []
    for i in sorted(rewritten):
        reason = REASON_DUPLICATE if REASON_DUPLICATE in reasons[i] else REASON_EMPTY
        fixes.append(
            FixEdit(
                file=file,
                line_start=i + 1,
                line_end=i + 1,
                before=lines[i],
                after=rewritten[i],
                reason=reason,
            )
        )
    return fixes


def plan_documents(documents: Iterable[tuple[str, str]], used_ids: UsedIdSet) -> list[FixEdit]:
    """Plan fixes for ``(file, text)`` documents in order, sharing ``used_ids``."""
    fixes: list[FixEdit] = []
    for file, text in documents:
        fixes.extend(plan_fixes(file, text, used_ids, slugify_prefix(file)))
    return fixes
