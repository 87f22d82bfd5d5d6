"""Directory watchers emitting normalised add/remove events."""

from __future__ import annotations

import asyncio
import os
from fnmatch import fnmatch
from pathlib import Path
from typing import AsyncIterator, Callable, Optional, Sequence, Set

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.api import BaseObserver

from ..logging import get_logger
from ..models import EventKind, WatchEvent

_RELEVANT_EVENTS = {"created", "deleted", "modified", "moved"}
_STOP = object()


class WatchError(RuntimeError):
    """Raised when a directory cannot be watched."""


class _EventForwarder(FileSystemEventHandler):
    """Hands watchdog callbacks from the observer thread to the event loop."""

    def __init__(self, watcher: "DirectoryWatcher", loop: asyncio.AbstractEventLoop) -> None:
        super().__init__()
        self._watcher = watcher
        self._loop = loop

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory or event.event_type not in _RELEVANT_EVENTS:
            return
        src = os.fsdecode(event.src_path)
        dest = os.fsdecode(event.dest_path) if event.event_type == "moved" else None
        try:
            self._loop.call_soon_threadsafe(self._watcher.handle_fs_event, event.event_type, src, dest)
        except RuntimeError:
            # Loop already closed during shutdown.
            self._watcher.logger.debug("Dropping %s for %s after loop shutdown", event.event_type, src)


class DirectoryWatcher:
    """Watches one directory, non-recursively, for files matching ``patterns``.

    Raw observer notifications are normalised on the event-loop thread: a
    path produces exactly one ``added`` until it is reported ``removed``,
    and ``removed`` is only emitted for paths previously reported added.
    """

    def __init__(
        self,
        directory: Path,
        patterns: Sequence[str],
        *,
        name: str = "watcher",
        include_modified: bool = False,
        observer_factory: Callable[[], BaseObserver] | None = None,
    ) -> None:
        self.directory = directory.expanduser().resolve()
        self.patterns = tuple(patterns)
        self.name = name
        self.include_modified = include_modified
        self.logger = get_logger(f"watch.{name}")
        self._observer_factory = observer_factory or Observer
        self._observer: Optional[BaseObserver] = None
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._known: Set[Path] = set()
        self._running = False

    @property
    def known(self) -> Set[Path]:
        return set(self._known)

    @property
    def running(self) -> bool:
        return self._running

    def matches(self, path: Path) -> bool:
        return any(fnmatch(path.name, pattern) for pattern in self.patterns)

    def start(self) -> None:
        """Schedule the observer and report files already present.

        Must be called from within the running event loop. Raises
        ``WatchError`` if the directory is missing or cannot be watched.
        """
        if self._running:
            return
        loop = asyncio.get_running_loop()
        directory = self.directory
        if not directory.is_dir():
            raise WatchError(f"Cannot watch {directory}: not a directory")

        observer = self._observer_factory()
        try:
            observer.schedule(_EventForwarder(self, loop), str(directory), recursive=False)
            observer.start()
        except OSError as exc:
            raise WatchError(f"Cannot watch {directory}: {exc}") from exc
        self._observer = observer
        self._running = True
        self.logger.info("Watching %s for %s", directory, ", ".join(self.patterns))

        # Scan after the observer is live so nothing created in between is missed;
        # duplicates from the observer are absorbed by the known set.
        for entry in sorted(directory.iterdir()):
            if entry.is_file():
                self.handle_fs_event("created", str(entry))

    def stop(self) -> None:
        """Stop the observer and end the event stream."""
        if not self._running:
            return
        self._running = False
        observer = self._observer
        self._observer = None
        if observer is not None:
            observer.stop()
            observer.join(timeout=5)
        self._queue.put_nowait(_STOP)
        self.logger.info("Stopped watching %s", self.directory)

    async def events(self) -> AsyncIterator[WatchEvent]:
        """Yield normalised events in the order they were observed."""
        while True:
            item = await self._queue.get()
            if item is _STOP:
                return
            assert isinstance(item, WatchEvent)
            yield item

    def handle_fs_event(self, event_type: str, src_path: str, dest_path: Optional[str] = None) -> None:
        """Normalise one raw notification; runs on the event-loop thread."""
        if event_type == "moved":
            self.handle_fs_event("deleted", src_path)
            if dest_path is not None:
                self.handle_fs_event("created", dest_path)
            return

        path = Path(src_path)
        if path.parent != self.directory or not self.matches(path):
            return

        if event_type == "created":
            if path in self._known:
                return
            self._known.add(path)
            self._emit(WatchEvent(EventKind.ADDED, path))
        elif event_type == "deleted":
            if path not in self._known:
                return
            self._known.discard(path)
            self._emit(WatchEvent(EventKind.REMOVED, path))
        elif event_type == "modified":
            if self.include_modified and path in self._known:
                self._emit(WatchEvent(EventKind.MODIFIED, path))

    def _emit(self, event: WatchEvent) -> None:
        self.logger.debug("%s %s", event.kind.value, event.path)
        self._queue.put_nowait(event)


__all__ = ["DirectoryWatcher", "WatchError"]
