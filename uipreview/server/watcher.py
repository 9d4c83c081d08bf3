"""File-system watching bridged onto the asyncio event loop."""

from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Sequence

from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class ChangeKind(str, enum.Enum):
    ADDED = "add"
    CHANGED = "change"
    REMOVED = "remove"


@dataclass(frozen=True)
class FileChange:
    group: str
    kind: ChangeKind
    path: Path


ChangeCallback = Callable[[FileChange], None]


class _GroupHandler(PatternMatchingEventHandler):
    def __init__(self, group: str, patterns: Sequence[str], emit: ChangeCallback) -> None:
        super().__init__(
            patterns=list(patterns),
            ignore_patterns=["*~"],
            ignore_directories=True,
        )
        self._group = group
        self._emit = emit

    def _forward(self, kind: ChangeKind, path: str) -> None:
        self._emit(FileChange(group=self._group, kind=kind, path=Path(path)))

    def on_created(self, event: FileSystemEvent) -> None:
        self._forward(ChangeKind.ADDED, event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        self._forward(ChangeKind.CHANGED, event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        self._forward(ChangeKind.REMOVED, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._forward(ChangeKind.REMOVED, event.src_path)
        self._forward(ChangeKind.ADDED, event.dest_path)


class SourceWatcher:
    """Runs watchdog observers and delivers changes on the event loop.

    Observer threads only enqueue callbacks with ``call_soon_threadsafe``;
    ``on_change`` always runs on the loop thread and is never awaited.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, on_change: ChangeCallback) -> None:
        self._loop = loop
        self._on_change = on_change
        self._observer = Observer()
        self._watched: list[tuple[str, Path]] = []

    def schedule(self, group: str, root: Path, patterns: Sequence[str]) -> None:
        if not root.is_dir():
            logger.debug(f"Not watching missing directory {root}")
            return
        handler = _GroupHandler(group, patterns, self._deliver)
        self._observer.schedule(handler, str(root), recursive=True)
        self._watched.append((group, root))
        logger.info(f"Watching {root}/ for {group} changes")

    def _deliver(self, change: FileChange) -> None:
        self._loop.call_soon_threadsafe(self._on_change, change)

    def start(self) -> None:
        self._observer.start()

    def stop(self) -> None:
        self._observer.stop()
        if self._observer.is_alive():
            self._observer.join()
        logger.debug(f"Released {len(self._watched)} watch(es)")
