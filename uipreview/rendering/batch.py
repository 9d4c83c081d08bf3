"""Batch build: render every content file once."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

from ..cache import load_generation
from ..core.errors import PreviewError
from ..core.models import BuildFailure, BuildReport
from ..settings import UI_DIR_NAME
from .converter import Converter, MarkdownConverter
from .engine import batch_paths, conversion_attributes, render_page
from .io import atomic_write_text

logger = logging.getLogger(__name__)


def discover_content(content_root: Path, suffix: str = ".md") -> list[Path]:
    """Collect content files below ``content_root`` in a stable order."""
    if not content_root.is_dir():
        logger.info(f"No content directory found at {content_root}, nothing to build")
        return []
    return sorted(path for path in content_root.rglob(f"*{suffix}") if path.is_file())


def output_path_for(content_path: Path, content_root: Path, output_root: Path) -> Path:
    """Mirror ``content_path`` under ``output_root`` with an ``.html`` suffix."""
    relative = content_path.relative_to(content_root)
    return output_root / relative.with_suffix(".html")


def build_all(
    content_root: Path,
    output_root: Path,
    *,
    source_root: Path,
    model_path: Path,
    converter: Converter | None = None,
    image_dir: Path | None = None,
    suffix: str = ".md",
    strict_templates: bool = False,
    attributes: Mapping[str, Any] | None = None,
) -> BuildReport:
    """Render all content files into ``output_root``.

    The cache generation is loaded once up front. A file that fails to render
    is logged and skipped; the remaining files are still built.

    Args:
        content_root: Directory holding the content files
        output_root: Directory receiving the rendered pages
        source_root: Directory with partials, helpers and layouts
        model_path: UI model document
        converter: Markup converter (Markdown by default)
        image_dir: Directory for generated images (default ``output_root/_/img``)
        suffix: Content file extension
        strict_templates: Fail on undefined template variables
        attributes: Converter attributes (defaults to ``conversion_attributes()``)

    Returns:
        Written files and skipped files

    Raises:
        LoadError: The model or the templates could not be loaded
    """
    converter = converter or MarkdownConverter()
    image_dir = image_dir or output_root / UI_DIR_NAME / "img"
    attrs = dict(attributes) if attributes is not None else conversion_attributes()

    logger.info("Building preview pages with Jinja2 templates...")
    generation = load_generation(source_root, model_path, strict_templates=strict_templates)

    report = BuildReport()
    for content_path in discover_content(content_root, suffix):
        output_path = output_path_for(content_path, content_root, output_root)
        relative = content_path.relative_to(content_root)
        try:
            page = render_page(
                content_path,
                generation,
                converter,
                batch_paths(output_path, output_root, image_dir),
                attributes=attrs,
            )
            atomic_write_text(output_path, page.html)
        except (PreviewError, OSError) as exc:
            logger.error(f"Error processing {relative}: {exc}")
            logger.warning(f"Skipping {relative} due to processing error")
            report.failed.append(BuildFailure(source=content_path, error=str(exc)))
            continue

        logger.info(f"Generated: {output_path}")
        report.written.append(output_path)

    logger.info(
        f"Preview pages build completed: {len(report.written)} written, "
        f"{len(report.failed)} skipped"
    )
    return report
