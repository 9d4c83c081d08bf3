from __future__ import annotations

import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager
from functools import partial
from typing import Any, AsyncIterator, Mapping

import uvicorn
from fastapi import FastAPI, WebSocket
from fastapi.responses import Response
from fastapi.staticfiles import StaticFiles

from ..cache import CacheController, CacheEvent, CacheState, load_generation
from ..rendering.converter import Converter, MarkdownConverter
from ..rendering.engine import conversion_attributes
from ..settings import Settings, get_settings
from .livereload import CLIENT_PATH, CLIENT_SCRIPT, SOCKET_PATH, LiveReloadHub
from .router import PreviewRouter
from .watcher import ChangeKind, FileChange, SourceWatcher

logger = logging.getLogger(__name__)

TEMPLATES = "templates"
STYLES = "styles"
CONTENT = "content"

TEMPLATE_PATTERNS = ("*.html", "*.py")
STYLE_PATTERNS = ("*.css",)


class PreviewServer:
    """Wires the cache controller, router, watchers and live reload together."""

    def __init__(
        self,
        settings: Settings,
        *,
        converter: Converter | None = None,
        attributes: Mapping[str, Any] | None = None,
    ) -> None:
        self.settings = settings
        self.hub = LiveReloadHub()
        self.controller = CacheController(
            partial(
                load_generation,
                settings.source_root,
                settings.model_path,
                strict_templates=settings.strict_templates,
                lenient_model=True,
            )
        )
        self.controller.subscribe(self._on_cache_event)
        self.router = PreviewRouter(
            settings,
            self.controller,
            converter or MarkdownConverter(),
            attributes=attributes or conversion_attributes(settings.diagram_server_url),
        )
        self._watcher: SourceWatcher | None = None
        self._rebuild: asyncio.Task[None] | None = None

    def _on_cache_event(self, event: CacheEvent) -> None:
        if event.state is CacheState.ABSENT and event.reason.startswith("changed"):
            self.hub.full_reload()

    def handle_change(self, change: FileChange) -> None:
        """React to one watched file event; runs on the event loop."""
        path = change.path
        logger.info(f"{change.group.capitalize()} {change.kind.value}: {path}")

        if change.group == TEMPLATES:
            self.controller.invalidate(f"changed {path.name}")
            return

        if change.group == STYLES:
            # Handled by the static style layer; only tell browsers to refresh links.
            self.hub.css_update(path.name)
            return

        if path.name == self.settings.model_file:
            self.controller.invalidate(f"changed {path.name}")
            return

        if path.suffix == self.settings.content_suffix and change.kind is not ChangeKind.REMOVED:
            if self.settings.rebuild_on_change:
                self.spawn_rebuild()
        self.hub.full_reload()

    def spawn_rebuild(self) -> None:
        if self._rebuild is not None and not self._rebuild.done():
            logger.debug("Rebuild already running, skipping")
            return
        self._rebuild = asyncio.ensure_future(self._run_rebuild())
        self._rebuild.add_done_callback(self._rebuild_done)

    @staticmethod
    def _rebuild_done(task: asyncio.Task[None]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Preview pages rebuild could not run: {exc}")

    async def cancel_rebuild(self) -> None:
        """Stop a rebuild still running, terminating its subprocess."""
        task = self._rebuild
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("Rebuild cancelled")

    async def _run_rebuild(self) -> None:
        logger.info("Content changed - rebuilding preview pages...")
        process = await asyncio.create_subprocess_exec(
            sys.executable,
            "-m",
            "uipreview",
            "build",
            "--no-bundle",
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            env={**os.environ, **self.settings.as_env()},
        )
        try:
            if process.stdout is not None:
                async for line in process.stdout:
                    logger.info(f"Build: {line.decode('utf-8', 'replace').rstrip()}")
            code = await process.wait()
        except asyncio.CancelledError:
            if process.returncode is None:
                process.terminate()
                await process.wait()
            raise
        if code == 0:
            logger.info("Preview pages rebuild completed successfully")
        else:
            logger.error(f"Preview pages rebuild failed with exit code {code}")

    def start_watching(self) -> None:
        settings = self.settings
        watcher = SourceWatcher(asyncio.get_running_loop(), self.handle_change)
        for name in ("layouts", "partials", "helpers"):
            watcher.schedule(TEMPLATES, settings.source_root / name, TEMPLATE_PATTERNS)
        watcher.schedule(STYLES, settings.source_root / "css", STYLE_PATTERNS)
        watcher.schedule(
            CONTENT,
            settings.content_root,
            (f"*{settings.content_suffix}", settings.model_file),
        )
        watcher.start()
        self._watcher = watcher

    def stop_watching(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    @asynccontextmanager
    async def lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        if self.settings.watch_sources:
            self.start_watching()
        try:
            yield
        finally:
            self.stop_watching()
            await self.cancel_rebuild()


def create_app(
    settings: Settings | None = None,
    *,
    converter: Converter | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    server = PreviewServer(settings, converter=converter)

    app = FastAPI(title="UI Preview", version="0.1.0", lifespan=server.lifespan)
    app.state.preview = server
    app.middleware("http")(server.router.dispatch)

    @app.get(CLIENT_PATH, include_in_schema=False)
    async def livereload_client() -> Response:
        return Response(CLIENT_SCRIPT, media_type="application/javascript")

    @app.websocket(SOCKET_PATH)
    async def livereload_socket(websocket: WebSocket) -> None:
        await server.hub.serve(websocket)

    app.mount("/css", StaticFiles(directory=settings.source_root / "css", check_dir=False), name="css")
    app.mount("/js", StaticFiles(directory=settings.source_root / "js", check_dir=False), name="js")
    app.mount("/", StaticFiles(directory=settings.output_root, check_dir=False), name="public")
    return app


def main(host: str | None = None, port: int | None = None) -> None:
    settings = get_settings()
    uvicorn.run(
        "uipreview.server.app:create_app",
        factory=True,
        host=host or settings.bind_host,
        port=port or settings.bind_port,
        reload=False,
        workers=1,
    )


__all__ = ["PreviewServer", "create_app", "main"]
