"""Loading of the UI model document (site and page variables)."""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from ..core.errors import LoadError
from ..core.models import DEFAULT_SITE_MODEL, SiteModel

logger = logging.getLogger(__name__)


def load_site_model(path: Path) -> SiteModel:
    """Load and validate the UI model document.

    Args:
        path: YAML document providing at least ``site`` and ``page`` mappings

    Returns:
        Immutable site model

    Raises:
        LoadError: The file is unreadable, not valid YAML, or lacks the
            required mappings
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadError(f"Cannot read UI model {path}: {exc}") from exc

    try:
        data = yaml.safe_load(raw) or {}
    except yaml.YAMLError as exc:
        raise LoadError(f"Invalid YAML in UI model {path}: {exc}") from exc

    if not isinstance(data, dict):
        raise LoadError(f"UI model {path} must be a mapping, got {type(data).__name__}")

    try:
        model = SiteModel.model_validate(data)
    except ValidationError as exc:
        raise LoadError(f"Invalid UI model {path}: {exc}") from exc

    logger.debug(f"Loaded UI model from {path}")
    return model


def load_site_model_or_default(path: Path) -> SiteModel:
    """Load the UI model, falling back to a minimal model on failure.

    Used by the development server so a broken model file still leaves the
    preview reachable.
    """
    try:
        return load_site_model(path)
    except LoadError as exc:
        logger.error(f"Error loading {path.name}, using default model: {exc}")
        return DEFAULT_SITE_MODEL
