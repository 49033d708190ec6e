"""Block and inline tag recognition for Re:VIEW manuscripts."""

import re
from collections.abc import Iterator
from dataclasses import dataclass

# Block opening line: //name[attrs]{  (a single optional bracket, whole line)
BLOCK_OPEN_PATTERN = re.compile(r"^\s*//([A-Za-z0-9_]+)(\[[^\]]*\])?\s*\{\s*$")
BLOCK_CLOSE_PATTERN = re.compile(r"^\s*//\}\s*$")
# Inline payloads stop at the first '}': nested braces are not supported,
# so @<code>{a{b}c} matches only "@<code>{a{b}".
INLINE_PATTERN = re.compile(r"@<([A-Za-z0-9_]+)>\{([^}]*)\}")
LINE_BREAK_PATTERN = re.compile(r"\r?\n")


@dataclass(frozen=True)
class TagOccurrence:
    """A block or inline tag found in a document."""

    file: str
    line: int  # 1-based
    kind: str  # 'block' or 'inline'
    name: str
    snippet: str

    def to_dict(self) -> dict[str, str | int]:
        return {
            "file": self.file,
            "line": self.line,
            "kind": self.kind,
            "name": self.name,
            "snippet": self.snippet,
        }


@dataclass(frozen=True)
class BlockOpen:
    """A recognized block-opening line.

    Offsets index into the original (untrimmed) line so callers can rewrite
    the line by position.
    """

    name: str
    attrs: str | None  # Inner text of the bracket, None when there is no bracket
    name_end: int
    bracket_start: int | None = None
    bracket_end: int | None = None  # Exclusive, points just past ']'

    @property
    def has_bracket(self) -> bool:
        return self.attrs is not None


@dataclass(frozen=True)
class InlineTag:
    """An inline tag invocation within a text."""

    name: str
    start: int
    end: int
    payload: str


def split_lines(text: str) -> list[str]:
    """Split text into lines on LF or CRLF."""
    return LINE_BREAK_PATTERN.split(text)


def recognize_block_open(line: str) -> BlockOpen | None:
    """Recognize a block-opening line such as ``//list[id=x]{``."""
    match = BLOCK_OPEN_PATTERN.match(line)
    if not match:
        return None

    bracket = match.group(2)
    if bracket is None:
        return BlockOpen(name=match.group(1), attrs=None, name_end=match.end(1))

    return BlockOpen(
        name=match.group(1),
        attrs=bracket[1:-1],
        name_end=match.end(1),
        bracket_start=match.start(2),
        bracket_end=match.end(2),
    )


def recognize_block_close(line: str) -> bool:
    """Check whether a line closes a block (``//}``)."""
    return BLOCK_CLOSE_PATTERN.match(line) is not None


def recognize_inline(text: str) -> Iterator[InlineTag]:
    """Yield every inline tag invocation in text, in offset order."""
    for match in INLINE_PATTERN.finditer(text):
        yield InlineTag(
            name=match.group(1),
            start=match.start(),
            end=match.end(),
            payload=match.group(2),
        )


def line_number_at(text: str, offset: int) -> int:
    """Get the 1-based line number of a character offset."""
    return text.count("\n", 0, offset) + 1


def iter_tags(file: str, text: str) -> Iterator[TagOccurrence]:
    """Yield all tag occurrences in a document.

    Block openings come first in line order, followed by inline tags in
    offset order. The generator is a pure function of its input and can be
    restarted by calling it again.
    """
    for i, line in enumerate(split_lines(text)):
        block = recognize_block_open(line)
        if block:
            yield TagOccurrence(
                file=file, line=i + 1, kind="block", name=block.name, snippet=line.strip()
            )

    for tag in recognize_inline(text):
        yield TagOccurrence(
            file=file,
            line=line_number_at(text, tag.start),
            kind="inline",
            name=tag.name,
            snippet=text[tag.start : tag.end],
        )
