"""Tag allowlist and violation filtering."""

from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from typing import Any

from .matcher import TagOccurrence, iter_tags


@dataclass(frozen=True)
class Allowlist:
    """Permitted tag names, partitioned by block and inline kind."""

    blocks: frozenset[str] = field(default_factory=frozenset)
    inline: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, blocks: Iterable[str], inline: Iterable[str]) -> "Allowlist":
        return cls(blocks=frozenset(blocks), inline=frozenset(inline))

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Allowlist":
        """Build an allowlist from ``{"blocks": [...], "inline": [...]}``.

        A missing key means an empty set. Once an explicit allowlist is
        supplied there is no fallback to the built-in names.
        """
        blocks = data.get("blocks") or []
        inline = data.get("inline") or []
        if isinstance(blocks, str) or isinstance(inline, str):
            raise ValueError("Allowlist 'blocks' and 'inline' must be lists of tag names")
        return cls.of((str(b) for b in blocks), (str(i) for i in inline))

    def to_dict(self) -> dict[str, list[str]]:
        return {"blocks": sorted(self.blocks), "inline": sorted(self.inline)}

    def allows(self, kind: str, name: str) -> bool:
        """Check whether a tag name is permitted for the given kind."""
        names = self.blocks if kind == "block" else self.inline
        return name in names


# Narrower than the tag set Re:VIEW itself accepts.
BUILTIN_ALLOWLIST = Allowlist.of(
    blocks=[
        "list",
        "emlist",
        "source",
        "cmd",
        "quote",
        "image",
        "figure",
        "table",
        "note",
        "memo",
        "column",
        "dialog",
        "footnote",
        "reviewlistblock",
    ],
    inline=[
        "href",
        "code",
        "tt",
        "b",
        "strong",
        "em",
        "i",
        "u",
        "m",
        "rb",
        "kw",
        "key",
        "sup",
        "sub",
    ],
)


def is_violation(occurrence: TagOccurrence, allowlist: Allowlist) -> bool:
    """Check whether an occurrence uses a tag that is not allowlisted."""
    return not allowlist.allows(occurrence.kind, occurrence.name)


def find_violations(file: str, text: str, allowlist: Allowlist) -> Iterator[TagOccurrence]:
    """Yield the tag occurrences in a document that are not allowlisted."""
    for occurrence in iter_tags(file, text):
        if is_violation(occurrence, allowlist):
            yield occurrence
