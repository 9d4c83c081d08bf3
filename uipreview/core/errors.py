"""Error taxonomy for rendering, caching and packaging."""

from __future__ import annotations


class PreviewError(Exception):
    """Base class for all uipreview failures."""


class LoadError(PreviewError):
    """Raised when the site model or a template source cannot be loaded."""


class ConversionError(PreviewError):
    """Raised when a content document cannot be converted to HTML."""


class LayoutResolutionError(PreviewError):
    """Raised when a page selects a layout the registry does not hold."""

    def __init__(self, layout: str) -> None:
        super().__init__(f"Layout not found: {layout}")
        self.layout = layout


class TemplateRenderError(PreviewError):
    """Raised when a layout fails while rendering a page."""


class PackagingError(PreviewError):
    """Raised when the UI bundle archive cannot be produced."""
