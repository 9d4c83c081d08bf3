"""On-demand page rendering middleware for the development server."""

from __future__ import annotations

import asyncio
import html
import logging
import re
from pathlib import Path
from typing import Any, Awaitable, Callable, Mapping

from fastapi import Request, Response
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

from ..cache import CacheController
from ..rendering.converter import Converter
from ..rendering.engine import NOT_FOUND_PAGE, dev_paths, render_page
from ..settings import UI_DIR_NAME, Settings
from .livereload import CLIENT_TAG

logger = logging.getLogger(__name__)

ASSET_PREFIX = f"/{UI_DIR_NAME}/"
INDEX_PATH = "/index.html"

ASSET_CONTENT_TYPES = {
    ".js": "application/javascript",
    ".woff2": "font/woff2",
    ".woff": "font/woff",
    ".svg": "image/svg+xml",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"

_STYLESHEET_REF = re.compile(r'href="(?:\./)?_/css/main\.css"')
_SCRIPT_REF = re.compile(r'src="(?:\./)?_/js/main\.js"')
_HEAD_CLOSE = re.compile(r"</head>", re.IGNORECASE)

ERROR_PAGE = """
<h1>Error generating page</h1>
<pre>{message}</pre>
<p>Check that the templates and the UI model are valid.</p>
"""

NOT_FOUND_BODY = """
<h1>Preview page not found</h1>
<p>Page <code>{path}</code> does not exist in {content_root}/</p>
"""

CallNext = Callable[[Request], Awaitable[Response]]


def asset_content_type(path: str) -> str:
    return ASSET_CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def rewrite_dev_links(text: str) -> str:
    """Point the built stylesheet and script references at the live sources."""
    text = _STYLESHEET_REF.sub('href="/css/site.css"', text)
    return _SCRIPT_REF.sub('src="/js/main.js"', text)


def inject_client(text: str, tag: str = CLIENT_TAG) -> str:
    """Insert ``tag`` right before the first closing head marker."""
    return _HEAD_CLOSE.sub(lambda _: f"{tag}\n</head>", text, count=1)


def _within(root: Path, path: Path) -> bool:
    return path.resolve().is_relative_to(root.resolve())


class PreviewRouter:
    """Serves preview pages and compiled assets, passing everything else on."""

    def __init__(
        self,
        settings: Settings,
        controller: CacheController,
        converter: Converter,
        *,
        attributes: Mapping[str, Any] | None = None,
    ) -> None:
        self._settings = settings
        self._controller = controller
        self._converter = converter
        self._attributes = attributes

    async def dispatch(self, request: Request, call_next: CallNext) -> Response:
        if request.method not in ("GET", "HEAD"):
            return await call_next(request)

        path = request.url.path

        if path.startswith(ASSET_PREFIX):
            # Stylesheets stay with the live style layer.
            if path.endswith(".css"):
                return await call_next(request)
            return self._serve_asset(path)

        if path in ("/", ""):
            return RedirectResponse(INDEX_PATH, status_code=302)

        if not path.endswith(".html"):
            return await call_next(request)

        page_name = path[1:-len(".html")]
        content_path = self._settings.content_root / f"{page_name}{self._settings.content_suffix}"
        if not _within(self._settings.content_root, content_path):
            return self._not_found(path)

        if page_name in self._settings.preview_pages and (
            page_name == NOT_FOUND_PAGE or content_path.is_file()
        ):
            return await self._render(path, content_path)

        if content_path.is_file():
            return await call_next(request)

        return self._not_found(path)

    def _serve_asset(self, path: str) -> Response:
        ui_root = self._settings.ui_root
        asset_path = ui_root / path[len(ASSET_PREFIX):]
        if _within(ui_root, asset_path) and asset_path.is_file():
            try:
                content = asset_path.read_bytes()
            except OSError as exc:
                logger.error(f"Error serving asset {path}: {exc}")
            else:
                return Response(content, media_type=asset_content_type(path))
        return PlainTextResponse(f"Asset not found: {path}", status_code=404)

    async def _render(self, path: str, content_path: Path) -> Response:
        try:
            generation = await self._controller.acquire()
            page = await asyncio.to_thread(
                render_page,
                content_path,
                generation,
                self._converter,
                dev_paths(self._settings.image_dir),
                attributes=self._attributes,
            )
        except Exception as exc:
            logger.exception(f"Error generating {path}")
            return HTMLResponse(
                ERROR_PAGE.format(message=html.escape(str(exc))), status_code=500
            )

        return HTMLResponse(inject_client(rewrite_dev_links(page.html)))

    def _not_found(self, path: str) -> Response:
        body = NOT_FOUND_BODY.format(
            path=html.escape(path), content_root=html.escape(str(self._settings.content_root))
        )
        return HTMLResponse(body, status_code=404)
