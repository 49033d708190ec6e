"""Tests for the tag allowlist and violation filtering."""

import pytest

from revguard.tools.review.allowlist import (
    BUILTIN_ALLOWLIST,
    Allowlist,
    find_violations,
    is_violation,
)
from revguard.tools.review.matcher import TagOccurrence


class TestAllowlist:
    """Tests for the Allowlist type."""

    def test_allows_by_kind(self):
        allowlist = Allowlist.of(blocks=["list"], inline=["code"])
        assert allowlist.allows("block", "list") is True
        assert allowlist.allows("inline", "code") is True
        # Names are partitioned by kind
        assert allowlist.allows("inline", "list") is False
        assert allowlist.allows("block", "code") is False

    def test_from_dict_missing_key_is_empty(self):
        allowlist = Allowlist.from_dict({"blocks": ["list"]})
        assert allowlist.blocks == frozenset({"list"})
        assert allowlist.inline == frozenset()

    def test_from_dict_rejects_string(self):
        with pytest.raises(ValueError):
            Allowlist.from_dict({"blocks": "list"})

    def test_to_dict_sorted(self):
        allowlist = Allowlist.of(blocks=["table", "list"], inline=["tt", "b"])
        assert allowlist.to_dict() == {"blocks": ["list", "table"], "inline": ["b", "tt"]}

    def test_builtin_contents(self):
        assert len(BUILTIN_ALLOWLIST.blocks) == 14
        assert len(BUILTIN_ALLOWLIST.inline) == 14
        assert "reviewlistblock" in BUILTIN_ALLOWLIST.blocks
        assert "href" in BUILTIN_ALLOWLIST.inline
        # Valid Re:VIEW, but outside the conservative set
        assert "ruby" not in BUILTIN_ALLOWLIST.inline
        assert "lead" not in BUILTIN_ALLOWLIST.blocks


class TestViolations:
    """Tests for violation filtering."""

    def test_is_violation(self):
        allowed = TagOccurrence(file="a.re", line=1, kind="block", name="list", snippet="//list{")
        unknown = TagOccurrence(file="a.re", line=2, kind="block", name="box", snippet="//box{")
        assert is_violation(allowed, BUILTIN_ALLOWLIST) is False
        assert is_violation(unknown, BUILTIN_ALLOWLIST) is True

    def test_find_violations_in_document(self):
        text = "//list[id=a]{\n//}\n//custom{\n//}\nSee @<code>{x} and @<ruby>{y}.\n"
        violations = list(find_violations("ch.re", text, BUILTIN_ALLOWLIST))
        assert [(v.kind, v.name, v.line) for v in violations] == [
            ("block", "custom", 3),
            ("inline", "ruby", 5),
        ]

    def test_empty_inline_allowlist_flags_every_inline_tag(self):
        allowlist = Allowlist.of(blocks=BUILTIN_ALLOWLIST.blocks, inline=[])
        text = "@<b>{x} @<code>{y} @<href>{z}"
        violations = list(find_violations("ch.re", text, allowlist))
        assert [v.name for v in violations] == ["b", "code", "href"]

    def test_no_violations(self):
        text = "//note{\ntext @<em>{x}\n//}\n"
        assert list(find_violations("ch.re", text, BUILTIN_ALLOWLIST)) == []
