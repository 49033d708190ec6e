"""File helpers shared by the config writer and the fix applier."""

import os
import shutil
import tempfile
from pathlib import Path


def atomic_write(path: Path, content: bytes) -> None:
    """Replace a file's content in one rename.

    The bytes are written to a sibling temp file, which is renamed over
    ``path``. Readers see either the old or the new content. When ``path``
    already exists its permission bits carry over to the new file, so a
    fixed manuscript keeps the mode it had.

    Args:
        path: Target file path
        content: Bytes to write, without newline translation
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    # Same directory, so os.replace stays a rename on one filesystem
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(content)
        if path.exists():
            shutil.copymode(path, tmp_path)
        os.replace(tmp_path, path)
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise
