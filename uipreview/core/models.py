"""Domain models for site data, page rendering and build results."""

from __future__ import annotations

import copy
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SiteModel(BaseModel):
    """Site and page variables loaded from the UI model document."""

    model_config = ConfigDict(extra="allow", frozen=True)

    site: dict[str, Any] = Field(..., description="Site-level variables")
    page: dict[str, Any] = Field(..., description="Default page-level variables")

    def page_context(self) -> dict[str, Any]:
        """Return an independent copy of the model for rendering one page.

        Returns:
            Deep copy of every model key (including extra keys) as plain dicts
        """
        return copy.deepcopy(self.model_dump())


DEFAULT_SITE_MODEL = SiteModel(
    site={"title": "Preview"},
    page={"title": "Preview Page"},
)


class PagePaths(BaseModel):
    """Location data a page needs to link back to the site and UI roots."""

    model_config = ConfigDict(frozen=True)

    site_root_path: str = Field(default=".", description="Path to the site root")
    ui_root_path: str = Field(default="./_", description="Path to the UI assets")
    image_dir: Path = Field(..., description="Directory receiving generated images")


class RenderedPage(BaseModel):
    """Result of rendering a single content file."""

    html: str = Field(..., description="Final HTML document")
    layout: str = Field(..., description="Layout used to wrap the page")
    attributes: dict[str, Any] = Field(
        default_factory=dict, description="page-* attributes with the prefix removed"
    )


class BuildFailure(BaseModel):
    """A content file the batch build skipped."""

    source: Path
    error: str


class BuildReport(BaseModel):
    """Outcome of a batch build."""

    written: list[Path] = Field(default_factory=list, description="Output files")
    failed: list[BuildFailure] = Field(default_factory=list, description="Skipped files")

    @property
    def ok(self) -> bool:
        return not self.failed
