"""Cache generations and the controller that populates and invalidates them."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Mapping

from jinja2 import Template

from .core.models import SiteModel
from .rendering.registry import Helper, TemplateRegistry, load_registry
from .rendering.site_model import load_site_model, load_site_model_or_default

logger = logging.getLogger(__name__)


class CacheState(str, enum.Enum):
    ABSENT = "absent"
    POPULATING = "populating"
    POPULATED = "populated"


@dataclass(frozen=True)
class CacheGeneration:
    """One consistent set of site model, partials, helpers and layouts."""

    site_model: SiteModel
    registry: TemplateRegistry

    @property
    def partials(self) -> Mapping[str, Template]:
        return self.registry.partials

    @property
    def helpers(self) -> Mapping[str, Helper]:
        return self.registry.helpers

    @property
    def layouts(self) -> Mapping[str, Template]:
        return self.registry.layouts


@dataclass(frozen=True)
class CacheEvent:
    state: CacheState
    reason: str = ""


CacheListener = Callable[[CacheEvent], None]


def load_generation(
    source_root: Path,
    model_path: Path,
    *,
    strict_templates: bool = False,
    lenient_model: bool = False,
) -> CacheGeneration:
    """Load a complete cache generation.

    Args:
        source_root: Directory with partials, helpers and layouts
        model_path: UI model document
        strict_templates: Fail on undefined template variables
        lenient_model: Substitute the default model when the document is broken

    Returns:
        Populated generation

    Raises:
        LoadError: The model (unless lenient) or a template source failed to load
    """
    if lenient_model:
        site_model = load_site_model_or_default(model_path)
    else:
        site_model = load_site_model(model_path)
    registry = load_registry(source_root, strict=strict_templates)
    return CacheGeneration(site_model=site_model, registry=registry)


class CacheController:
    """Owns the live cache generation for the development server.

    All state changes happen on the event loop thread. Population itself runs
    ``loader`` in a worker thread; callers arriving while it is in flight
    await the same task instead of starting another one.
    """

    def __init__(self, loader: Callable[[], CacheGeneration]) -> None:
        self._loader = loader
        self._generation: CacheGeneration | None = None
        self._pending: asyncio.Future[CacheGeneration] | None = None
        self._epoch = 0
        self._listeners: list[CacheListener] = []

    @property
    def state(self) -> CacheState:
        if self._generation is not None:
            return CacheState.POPULATED
        if self._pending is not None:
            return CacheState.POPULATING
        return CacheState.ABSENT

    @property
    def generation(self) -> CacheGeneration | None:
        return self._generation

    def subscribe(self, listener: CacheListener) -> CacheListener:
        self._listeners.append(listener)
        return listener

    def _emit(self, state: CacheState, reason: str = "") -> None:
        event = CacheEvent(state=state, reason=reason)
        for listener in list(self._listeners):
            listener(event)

    async def acquire(self) -> CacheGeneration:
        """Return the live generation, populating it first when absent."""
        if self._generation is not None:
            return self._generation

        if self._pending is None:
            self._pending = asyncio.ensure_future(self._populate(self._epoch))
            self._emit(CacheState.POPULATING)

        return await asyncio.shield(self._pending)

    async def _populate(self, epoch: int) -> CacheGeneration:
        logger.debug("Populating template cache")
        try:
            generation = await asyncio.to_thread(self._loader)
        except Exception as exc:
            if epoch == self._epoch:
                self._pending = None
                self._emit(CacheState.ABSENT, f"load failed: {exc}")
            raise

        if epoch != self._epoch:
            logger.debug("Discarding cache generation loaded before invalidation")
            return generation

        self._pending = None
        self._generation = generation
        self._emit(CacheState.POPULATED)
        logger.info("Template cache populated")
        return generation

    def invalidate(self, reason: str = "") -> None:
        """Drop the live generation and any population in flight."""
        self._epoch += 1
        self._generation = None
        self._pending = None
        suffix = f" ({reason})" if reason else ""
        logger.info(f"Cache invalidated{suffix} - will reload on next request")
        self._emit(CacheState.ABSENT, reason)
