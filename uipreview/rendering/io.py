"""File I/O operations for rendering."""

from __future__ import annotations

import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator


def ensure_dir(path: Path) -> Path:
    """Create a directory (and its parents) if it does not exist yet.

    Args:
        path: Directory to create

    Returns:
        The same path, for chaining
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def ensure_parent(path: Path) -> None:
    """Ensure parent directories exist for the given path.

    Args:
        path: Path whose parent directories should be created
    """
    ensure_dir(path.parent)


@contextmanager
def atomic_destination(path: Path, mode: int = 0o644) -> Iterator[Path]:
    """Yield a temporary sibling of ``path`` that replaces it on success.

    The temporary file is removed if the block raises, so ``path`` is either
    left untouched or holds the complete new content.

    Args:
        path: Final destination file path
        mode: File permissions (octal) applied after the rename
    """
    ensure_parent(path)

    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=str(path.parent))
    os.close(fd)
    try:
        yield Path(tmp_name)
        os.replace(tmp_name, path)
        os.chmod(path, mode)
    finally:
        if os.path.exists(tmp_name):
            os.remove(tmp_name)


def atomic_write_text(path: Path, text: str, mode: int = 0o644) -> None:
    """Write text to a file atomically using a temporary file.

    Args:
        path: Destination file path
        text: Text content to write
        mode: File permissions (octal)
    """
    with atomic_destination(path, mode=mode) as tmp_path:
        with open(tmp_path, "w", encoding="utf-8") as tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
