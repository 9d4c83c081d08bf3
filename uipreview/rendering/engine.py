"""Page rendering engine."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Any, Mapping

from jinja2 import TemplateError

from ..core.errors import ConversionError, TemplateRenderError
from ..core.models import PagePaths, RenderedPage
from ..settings import UI_DIR_NAME
from .converter import DIAGRAM_FETCH_ATTRIBUTE, DIAGRAM_SERVER_ATTRIBUTE, Converter, Document
from .io import ensure_dir

if TYPE_CHECKING:
    from ..cache import CacheGeneration

logger = logging.getLogger(__name__)

NOT_FOUND_PAGE = "404"
NOT_FOUND_TITLE = "Page Not Found"
DEFAULT_LAYOUT = "default"
PAGE_ATTRIBUTE_PREFIX = "page-"

BASE_ATTRIBUTES: Mapping[str, Any] = {
    "stem": "latexmath",
    "source-highlighter": "highlight.js",
    DIAGRAM_FETCH_ATTRIBUTE: True,
    "experimental": True,
}


def conversion_attributes(
    diagram_server_url: str | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Build the attribute set handed to the converter.

    Args:
        diagram_server_url: Diagram service used when fetching is enabled
        overrides: Extra attributes replacing the defaults

    Returns:
        Attribute mapping for ``Converter.load``
    """
    attributes = dict(BASE_ATTRIBUTES)
    if diagram_server_url:
        attributes[DIAGRAM_SERVER_ATTRIBUTE] = diagram_server_url
    if overrides:
        attributes.update(overrides)
    return attributes


def dev_paths(image_dir: Path) -> PagePaths:
    """Paths for pages served by the development server."""
    return PagePaths(site_root_path=".", ui_root_path=f"./{UI_DIR_NAME}", image_dir=image_dir)


def batch_paths(output_path: Path, output_root: Path, image_dir: Path) -> PagePaths:
    """Paths for a page written to ``output_path`` under ``output_root``."""
    relative = os.path.relpath(output_root, output_path.parent)
    site_root = Path(relative).as_posix() if relative != "." else "."
    return PagePaths(
        site_root_path=site_root,
        ui_root_path=f"{site_root}/{UI_DIR_NAME}",
        image_dir=image_dir,
    )


def page_attributes(document: Document) -> dict[str, Any]:
    """Collect ``page-*`` attributes with the prefix removed."""
    return {
        name[len(PAGE_ATTRIBUTE_PREFIX):]: value
        for name, value in document.get_attributes().items()
        if name.startswith(PAGE_ATTRIBUTE_PREFIX)
    }


def convert_document(
    converter: Converter,
    source: str,
    *,
    base_dir: Path,
    attributes: Mapping[str, Any],
    label: str = "document",
) -> tuple[Document, str]:
    """Load and convert a document, retrying once without diagram fetching.

    Returns:
        The loaded document and its HTML body

    Raises:
        ConversionError: Both attempts failed
    """
    try:
        document = converter.load(source, base_dir=base_dir, attributes=attributes)
        return document, document.convert()
    except ConversionError as exc:
        if not attributes.get(DIAGRAM_FETCH_ATTRIBUTE):
            raise
        logger.warning(f"Error loading {label}, skipping diagrams: {exc}")

    reduced = {k: v for k, v in attributes.items() if k != DIAGRAM_FETCH_ATTRIBUTE}
    document = converter.load(source, base_dir=base_dir, attributes=reduced)
    return document, document.convert()


def render_page(
    content_path: Path,
    generation: CacheGeneration,
    converter: Converter,
    paths: PagePaths,
    *,
    attributes: Mapping[str, Any] | None = None,
) -> RenderedPage:
    """Render one content file through its layout.

    Args:
        content_path: Content source; a file named ``404`` skips conversion
        generation: Cache generation captured for the whole render
        converter: Markup converter
        paths: Root-relative paths and the image output directory
        attributes: Converter attributes (defaults to ``conversion_attributes()``)

    Returns:
        Rendered page

    Raises:
        ConversionError: The content could not be converted
        LayoutResolutionError: The selected layout is not registered
        TemplateRenderError: The layout failed while rendering
        OSError: The content file could not be read
    """
    context = generation.site_model.page_context()
    context["siteRootPath"] = paths.site_root_path
    context["uiRootPath"] = paths.ui_root_path

    if content_path.stem == NOT_FOUND_PAGE:
        page: dict[str, Any] = {"layout": NOT_FOUND_PAGE, "title": NOT_FOUND_TITLE}
    else:
        try:
            source = content_path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            raise ConversionError(f"Cannot decode {content_path.name}: {exc}") from exc
        ensure_dir(paths.image_dir)

        attrs = dict(attributes if attributes is not None else conversion_attributes())
        attrs.setdefault("imagesdir", f"{paths.ui_root_path}/img")
        document, html = convert_document(
            converter,
            source,
            base_dir=paths.image_dir,
            attributes=attrs,
            label=content_path.name,
        )

        page = dict(context.get("page") or {})
        page["attributes"] = page_attributes(document)
        page["layout"] = document.get_attribute("page-layout", DEFAULT_LAYOUT)
        page["title"] = document.get_document_title()
        page["contents"] = html

    context["page"] = page
    layout = page["layout"]
    template = generation.registry.layout(layout)

    try:
        html = template.render(**context)
    except TemplateError as exc:
        raise TemplateRenderError(f"Error rendering layout {layout}: {exc}") from exc
    except Exception as exc:
        # Helpers are arbitrary user code.
        raise TemplateRenderError(
            f"Error in helper while rendering layout {layout}: {exc}"
        ) from exc

    return RenderedPage(html=html, layout=layout, attributes=page.get("attributes", {}))
