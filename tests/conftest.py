"""Pytest configuration and fixtures."""

import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest

CATALOG = """\
PREDEF:
  - preface.re
CHAPS:
  - chapter01.re
  - chapter02.re
"""

PREFACE = """\
= Preface

Read @<b>{this} first.
"""

CHAPTER01 = """\
= Chapter 1

//list[id=intro]{
puts "hello"
//}

//emlist{
plain
//}

Use @<code>{puts} to print.
"""

CHAPTER02 = """\
= Chapter 2

//list[id=intro]{
duplicate
//}

//custombox{
unknown block
//}

An @<ruby>{unknown, tag} inline.
"""


@pytest.fixture
def temp_workspace() -> Generator[Path, None, None]:
    """Create a temporary workspace directory for testing."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def book_project(temp_workspace: Path) -> Path:
    """Create a small Re:VIEW book with one unknown block, one unknown inline
    tag, an ID-less emlist and a duplicate list ID."""
    (temp_workspace / "catalog.yml").write_text(CATALOG)
    (temp_workspace / "preface.re").write_text(PREFACE)
    (temp_workspace / "chapter01.re").write_text(CHAPTER01)
    (temp_workspace / "chapter02.re").write_text(CHAPTER02)
    return temp_workspace
