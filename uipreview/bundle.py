"""Packaging of the compiled UI tree into a distributable archive."""

from __future__ import annotations

import logging
import zipfile
from pathlib import Path

from .core.errors import PackagingError
from .rendering.io import atomic_destination

logger = logging.getLogger(__name__)

BUNDLE_SUFFIX = "-bundle.zip"
# Fixed entry metadata keeps archives byte-identical for identical trees.
ENTRY_TIMESTAMP = (1980, 1, 1, 0, 0, 0)
ENTRY_MODE = 0o644
COMPRESSION_LEVEL = 9


def bundle_path(output_dir: Path, name: str) -> Path:
    return output_dir / f"{name}{BUNDLE_SUFFIX}"


def collect_files(source_dir: Path, exclude: Path | None = None) -> list[tuple[Path, str]]:
    """List every file under ``source_dir`` with its POSIX archive name.

    Args:
        source_dir: Root of the tree to package
        exclude: Directory whose in-progress bundle files must be skipped

    Returns:
        Sorted ``(path, archive name)`` pairs
    """
    files: list[tuple[Path, str]] = []
    for path in sorted(source_dir.rglob("*")):
        if not path.is_file():
            continue
        if exclude is not None and path.parent == exclude and BUNDLE_SUFFIX in path.name:
            continue
        files.append((path, path.relative_to(source_dir).as_posix()))
    return files


def create_bundle(source_dir: Path, output_dir: Path, name: str = "ui") -> Path:
    """Write every file of ``source_dir`` into ``<output_dir>/<name>-bundle.zip``.

    The archive is assembled in a temporary file and moved into place only
    once it is complete, so a failure never leaves a truncated bundle behind.

    Args:
        source_dir: Directory to package
        output_dir: Directory receiving the archive
        name: Bundle name prefix

    Returns:
        Path of the finished archive

    Raises:
        PackagingError: A file could not be read or the archive not written
    """
    if not source_dir.is_dir():
        raise PackagingError(f"Bundle source directory not found: {source_dir}")

    target = bundle_path(output_dir, name)
    try:
        files = collect_files(source_dir, exclude=output_dir)
        with atomic_destination(target) as tmp_path:
            with zipfile.ZipFile(
                tmp_path,
                "w",
                compression=zipfile.ZIP_DEFLATED,
                compresslevel=COMPRESSION_LEVEL,
            ) as archive:
                for path, arcname in files:
                    info = zipfile.ZipInfo(arcname, date_time=ENTRY_TIMESTAMP)
                    info.compress_type = zipfile.ZIP_DEFLATED
                    info.external_attr = ENTRY_MODE << 16
                    archive.writestr(info, path.read_bytes(), compresslevel=COMPRESSION_LEVEL)
    except (OSError, zipfile.BadZipFile) as exc:
        raise PackagingError(f"Error creating UI bundle {target}: {exc}") from exc

    logger.info(f"UI bundle created: {target} ({target.stat().st_size} total bytes)")
    return target
