"""Template registry: partials, helpers and layouts loaded from a source tree."""

from __future__ import annotations

import importlib.util
import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Callable, Mapping

from jinja2 import (
    DictLoader,
    Environment,
    StrictUndefined,
    Template,
    TemplateError,
    Undefined,
)

from ..core.errors import LayoutResolutionError, LoadError

logger = logging.getLogger(__name__)

PARTIALS_DIR = "partials"
HELPERS_DIR = "helpers"
LAYOUTS_DIR = "layouts"
TEMPLATE_SUFFIX = ".html"
HELPER_SUFFIX = ".py"
HELPER_ATTRIBUTE = "helper"

Helper = Callable[..., Any]


def resolve_page(target: Any, **hash: Any) -> Any:
    """Return the keyword arguments as the page when given, else ``target``."""
    return hash or target


def resolve_page_url(target: Any, **hash: Any) -> str:
    """Return the ``url`` keyword argument, ``"#"`` when missing."""
    if not hash:
        return "#"
    return hash.get("url") or "#"


BUILTIN_HELPERS: Mapping[str, Helper] = MappingProxyType(
    {
        "resolvePage": resolve_page,
        "resolvePageURL": resolve_page_url,
    }
)


def create_environment(partials: Mapping[str, str], *, strict: bool = False) -> Environment:
    """Create a pristine Jinja2 environment serving ``partials`` by name."""
    return Environment(
        loader=DictLoader(dict(partials)),
        undefined=StrictUndefined if strict else Undefined,
        autoescape=False,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


# Globals Jinja2 installs on every environment; helpers may never shadow them.
RESERVED_NAMES = frozenset(create_environment({}).globals)


@dataclass(frozen=True)
class TemplateRegistry:
    """Compiled templates and helpers for one cache generation."""

    environment: Environment
    partials: Mapping[str, Template]
    helpers: Mapping[str, Helper]
    layouts: Mapping[str, Template]

    def layout(self, name: str) -> Template:
        try:
            return self.layouts[name]
        except KeyError:
            raise LayoutResolutionError(name) from None


def _discover(directory: Path, suffix: str) -> list[Path]:
    if not directory.is_dir():
        logger.debug(f"No {directory.name} directory at {directory}")
        return []
    return sorted(path for path in directory.glob(f"*{suffix}") if path.is_file())


def _read_source(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise LoadError(f"Cannot read {path}: {exc}") from exc


def load_helper(path: Path) -> Helper:
    """Import a helper module from ``path`` and return its ``helper`` callable.

    Args:
        path: Python source file exposing a module-level ``helper`` function

    Returns:
        The helper callable

    Raises:
        LoadError: The module fails to import or exposes no callable ``helper``
    """
    module_name = f"uipreview_helpers.{path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, path)
    if spec is None or spec.loader is None:
        raise LoadError(f"Cannot load helper module {path}")

    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        raise LoadError(f"Error executing helper {path}: {exc}") from exc

    helper = getattr(module, HELPER_ATTRIBUTE, None)
    if not callable(helper):
        raise LoadError(f"Helper {path} must define a callable '{HELPER_ATTRIBUTE}'")
    return helper


def load_registry(source_root: Path, *, strict: bool = False) -> TemplateRegistry:
    """Load partials, helpers and layouts from ``source_root``.

    Each file's stem becomes its registry key; files are read in sorted
    order so the last one wins on a name collision. Any failure aborts the
    whole load.

    Args:
        source_root: Directory holding ``partials/``, ``helpers/`` and ``layouts/``
        strict: Fail on undefined template variables instead of rendering blanks

    Returns:
        Fully populated registry

    Raises:
        LoadError: A source cannot be read, compiled or imported
    """
    partial_sources: dict[str, str] = {}
    for path in _discover(source_root / PARTIALS_DIR, TEMPLATE_SUFFIX):
        partial_sources[path.stem] = _read_source(path)

    helpers: dict[str, Helper] = dict(BUILTIN_HELPERS)
    for path in _discover(source_root / HELPERS_DIR, HELPER_SUFFIX):
        if path.stem in RESERVED_NAMES:
            raise LoadError(f"Helper {path} would shadow the built-in '{path.stem}'")
        helpers[path.stem] = load_helper(path)
        logger.debug(f"Registered helper: {path.stem}")

    environment = create_environment(partial_sources, strict=strict)
    environment.globals.update(helpers)

    partials: dict[str, Template] = {}
    for name in partial_sources:
        try:
            partials[name] = environment.get_template(name)
        except TemplateError as exc:
            raise LoadError(f"Error compiling partial {name}: {exc}") from exc
        logger.debug(f"Registered partial: {name}")

    layouts: dict[str, Template] = {}
    for path in _discover(source_root / LAYOUTS_DIR, TEMPLATE_SUFFIX):
        try:
            layouts[path.stem] = environment.from_string(_read_source(path))
        except TemplateError as exc:
            raise LoadError(f"Error compiling layout {path}: {exc}") from exc
        logger.debug(f"Compiled layout: {path.stem}")

    logger.info(
        f"Loaded {len(partials)} partial(s), {len(helpers)} helper(s), "
        f"{len(layouts)} layout(s) from {source_root}"
    )
    return TemplateRegistry(
        environment=environment,
        partials=MappingProxyType(partials),
        helpers=MappingProxyType(helpers),
        layouts=MappingProxyType(layouts),
    )
