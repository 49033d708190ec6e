"""Identifier collection and the shared used-ID set of a planning run."""

import re
import threading
from collections.abc import Iterable, Iterator
from dataclasses import dataclass

from .matcher import recognize_block_open, split_lines

# id=value inside a bracketed attribute list; quoted with " or unquoted
ID_ATTRIBUTE_PATTERN = re.compile(r'(?:^|,\s*)id\s*=\s*("?)([^",\]]+)\1')
# \reviewlistcaption[id]{title}, \reviewimagecaption[id]{...}, ...
CAPTION_PATTERN = re.compile(r"(\\review\w*caption)\[(.*?)\]\{")


@dataclass(frozen=True)
class IdAttribute:
    """An ``id=`` value found in an attribute list.

    ``start``/``end`` delimit the trimmed value within the attribute text.
    """

    value: str
    start: int
    end: int
    quote: str


def parse_id_attribute(attrs: str | None) -> IdAttribute | None:
    """Find the ``id=`` pair in the inner text of an attribute bracket.

    Returns None when there is no usable value, including for attribute
    lists that do not parse the expected way.
    """
    if not attrs:
        return None

    match = ID_ATTRIBUTE_PATTERN.search(attrs)
    if not match:
        return None

    raw = match.group(2)
    value = raw.strip()
    if not value:
        return None

    start = match.start(2) + (len(raw) - len(raw.lstrip()))
    return IdAttribute(value=value, start=start, end=start + len(value), quote=match.group(1))


def iter_caption_ids(text: str) -> Iterator[str]:
    """Yield the trimmed ID argument of every caption macro in text."""
    for match in CAPTION_PATTERN.finditer(text):
        yield match.group(2).strip()


class UsedIdSet:
    """Identifiers seen or minted during one planning run.

    ``reserved`` holds every value that must never be minted again.
    ``claimed`` holds values already owned by a slot processed earlier in
    the run, which is what duplicate detection checks against. Every
    claimed value is also reserved.
    """

    def __init__(self, ids: Iterable[str] = ()):
        self._reserved: set[str] = set(ids)
        self._claimed: set[str] = set()
        self._cursors: dict[str, int] = {}
        self._lock = threading.Lock()

    def __contains__(self, value: object) -> bool:
        with self._lock:
            return value in self._reserved

    def __len__(self) -> int:
        with self._lock:
            return len(self._reserved)

    def __iter__(self) -> Iterator[str]:
        # Iterates over a sorted snapshot
        with self._lock:
            snapshot = sorted(self._reserved)
        return iter(snapshot)

    def reserve(self, value: str) -> None:
        """Mark a value as taken without assigning it to a slot."""
        with self._lock:
            self._reserved.add(value)

    def claim(self, value: str) -> bool:
        """Assign a value to a slot.

        Returns False if an earlier slot already claimed the value.
        """
        with self._lock:
            if value in self._claimed:
                return False
            self._claimed.add(value)
            self._reserved.add(value)
            return True

    def is_claimed(self, value: str) -> bool:
        with self._lock:
            return value in self._claimed

    def mint(self, base: str) -> str:
        """Create a fresh ``<base>-NNN`` identifier and claim it.

        The counter starts at 1, is zero-padded to three digits and probes
        upward until it finds a value that is not reserved.
        """
        with self._lock:
            n = self._cursors.get(base, 1)
            candidate = f"{base}-{n:03d}"
            while candidate in self._reserved:
                n += 1
                candidate = f"{base}-{n:03d}"
            self._cursors[base] = n + 1
            self._reserved.add(candidate)
            self._claimed.add(candidate)
            return candidate

    def copy(self) -> "UsedIdSet":
        """Snapshot the set so a plan can be replayed from the same state."""
        with self._lock:
            clone = UsedIdSet(self._reserved)
            clone._claimed = set(self._claimed)
            clone._cursors = dict(self._cursors)
            return clone


def collect_ids_from_text(text: str, used: UsedIdSet) -> None:
    """Reserve every identifier already assigned in one document.

    Block IDs are collected whatever the block kind.
    """
    for line in split_lines(text):
        block = recognize_block_open(line)
        if not block:
            continue
        attribute = parse_id_attribute(block.attrs)
        if attribute:
            used.reserve(attribute.value)

    for caption_id in iter_caption_ids(text):
        if caption_id:
            used.reserve(caption_id)


def collect_used_ids(
    documents: Iterable[tuple[str, str]], used: UsedIdSet | None = None
) -> UsedIdSet:
    """Build the used-ID universe of a set of ``(file, text)`` documents."""
    used = used if used is not None else UsedIdSet()
    for _file, text in documents:
        collect_ids_from_text(text, used)
    return used
