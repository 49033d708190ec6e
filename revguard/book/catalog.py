"""Re:VIEW catalog (catalog.yml) loading.

The catalog lists the manuscript files of a book in reading order:

    PREDEF:
      - preface.re
    CHAPS:
      - chapter01.re
      - part1.re:
          - chapter02.re
    APPENDIX:
      - appendix.re
    POSTDEF:
      - afterword.re
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

DEFAULT_CATALOG = "catalog.yml"

# Sections in the order their files are read
CATALOG_SECTIONS = ("PREDEF", "CHAPS", "APPENDIX", "POSTDEF")


@dataclass
class Catalog:
    """Manuscript files grouped by catalog section."""

    predef: list[str] = field(default_factory=list)
    chaps: list[str] = field(default_factory=list)
    appendix: list[str] = field(default_factory=list)
    postdef: list[str] = field(default_factory=list)

    # Metadata
    catalog_path: Path | None = None

    @property
    def files(self) -> list[str]:
        """Get all files as one flat list in catalog order."""
        return [*self.predef, *self.chaps, *self.appendix, *self.postdef]

    def __len__(self) -> int:
        return len(self.files)


def _flatten_entries(entries: Any) -> list[str]:
    """Flatten section entries, expanding ``{part.re: [chapters]}`` parts."""
    if entries is None:
        return []
    if not isinstance(entries, list):
        entries = [entries]

    files: list[str] = []
    for entry in entries:
        if isinstance(entry, str):
            files.append(entry)
        elif isinstance(entry, dict):
            for part, chapters in entry.items():
                files.append(str(part))
                files.extend(_flatten_entries(chapters))
    return files


def parse_catalog(data: Any, catalog_path: Path | None = None) -> Catalog:
    """Parse loaded YAML data into a Catalog.

    Raises:
        ValueError: If the data is not a mapping
    """
    if data is None:
        return Catalog(catalog_path=catalog_path)
    if not isinstance(data, dict):
        raise ValueError(f"Catalog must be a mapping of sections, got {type(data).__name__}")

    sections = {name: _flatten_entries(data.get(name)) for name in CATALOG_SECTIONS}
    return Catalog(
        predef=sections["PREDEF"],
        chaps=sections["CHAPS"],
        appendix=sections["APPENDIX"],
        postdef=sections["POSTDEF"],
        catalog_path=catalog_path,
    )


def load_catalog_from_string(yaml_content: str) -> Catalog:
    """Load a catalog from a YAML string."""
    return parse_catalog(yaml.safe_load(yaml_content))


def load_catalog(cwd: Path, catalog_path: str = DEFAULT_CATALOG) -> Catalog:
    """Load the catalog of a Re:VIEW project.

    Args:
        cwd: Project root directory
        catalog_path: Catalog file relative to the project root

    Returns:
        Catalog parsed from the file

    Raises:
        FileNotFoundError: If the catalog doesn't exist
        ValueError: If the YAML is invalid
    """
    path = cwd / catalog_path
    if not path.exists():
        raise FileNotFoundError(f"Catalog not found: {path}")

    try:
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in {path}: {e}") from e

    return parse_catalog(data, catalog_path=path)
