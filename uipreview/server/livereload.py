"""Live-reload channel between the development server and open browsers."""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)

SOCKET_PATH = "/__livereload"
CLIENT_PATH = "/__livereload/client.js"
CLIENT_TAG = f'<script type="module" src="{CLIENT_PATH}"></script>'

CLIENT_SCRIPT = """\
(() => {
  const scheme = location.protocol === 'https:' ? 'wss' : 'ws'
  const connect = () => {
    const socket = new WebSocket(`${scheme}://${location.host}%(socket_path)s`)
    socket.onmessage = (event) => {
      const message = JSON.parse(event.data)
      if (message.type === 'full-reload') {
        location.reload()
      } else if (message.type === 'css-update') {
        document.querySelectorAll('link[rel="stylesheet"]').forEach((link) => {
          const url = new URL(link.href)
          url.searchParams.set('t', Date.now())
          link.href = url.toString()
        })
      }
    }
    socket.onclose = () => setTimeout(connect, 1000)
  }
  connect()
})()
""" % {"socket_path": SOCKET_PATH}


class LiveReloadHub:
    """Tracks connected browsers and pushes reload messages to them."""

    def __init__(self) -> None:
        self._clients: set[WebSocket] = set()
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def client_count(self) -> int:
        return len(self._clients)

    async def serve(self, websocket: WebSocket) -> None:
        await websocket.accept()
        self._clients.add(websocket)
        logger.debug(f"Live-reload client connected (total: {len(self._clients)})")
        try:
            while True:
                await websocket.receive_text()
        except WebSocketDisconnect:
            pass
        finally:
            self._clients.discard(websocket)
            logger.debug(f"Live-reload client disconnected (total: {len(self._clients)})")

    async def broadcast(self, message: dict[str, Any]) -> None:
        for client in list(self._clients):
            try:
                await client.send_json(message)
            except (WebSocketDisconnect, RuntimeError) as exc:
                logger.debug(f"Dropping live-reload client: {exc}")
                self._clients.discard(client)

    def notify(self, message: dict[str, Any]) -> None:
        """Schedule a broadcast without waiting for it."""
        task = asyncio.ensure_future(self.broadcast(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def full_reload(self) -> None:
        self.notify({"type": "full-reload"})

    def css_update(self, path: str) -> None:
        self.notify({"type": "css-update", "path": path})
