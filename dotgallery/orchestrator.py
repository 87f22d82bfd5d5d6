"""Wires the watch/render/sync chains together for one gallery run."""

from __future__ import annotations

import asyncio
import shutil
from pathlib import Path
from typing import List, Optional, Set

from .config import GalleryConfig
from .fanout import NotificationFanout
from .logging import get_logger
from .models import RegistryEntry
from .registry import ArtifactRegistry
from .render import GraphRenderer, RenderPipeline
from .watch import DirectoryWatcher


def prepare_output_dir(path: Path) -> None:
    """Wipe and recreate the artifact directory so disk and registry start empty."""
    if path.exists():
        shutil.rmtree(path)
    path.mkdir(parents=True)


class GalleryOrchestrator:
    """Owns the watchers, pipeline, registry and fanout of one running gallery.

    Two independent chains run as tasks on the event loop:

    * source watcher -> render pipeline (writes files only)
    * page watcher -> registry -> fanout

    They are coupled only through the output directory, so pages placed there
    by any other means are picked up as well.
    """

    def __init__(
        self,
        config: GalleryConfig,
        *,
        renderer: GraphRenderer | None = None,
        fanout: NotificationFanout | None = None,
    ) -> None:
        config.validate()
        self.config = config
        self.logger = get_logger("orchestrator")
        self.renderer = renderer or GraphRenderer(
            config.renderer.executable,
            format=config.renderer.format,
            command=config.renderer.command,
        )
        self.pipeline = RenderPipeline(
            config.output_dir,
            self.renderer,
            config.template_path,
            image_suffix=config.renderer.image_suffix,
            rerender_on_modify=config.watch.rerender_on_modify,
        )
        self.registry = ArtifactRegistry(config.output_dir)
        self.fanout = fanout or NotificationFanout(send_timeout=config.server.send_timeout)
        self.source_watcher: Optional[DirectoryWatcher] = None
        self.page_watcher: Optional[DirectoryWatcher] = None
        self._tasks: List[asyncio.Task[None]] = []
        self._broadcasts: Set[asyncio.Task[None]] = set()

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def snapshot(self) -> List[RegistryEntry]:
        return self.registry.snapshot()

    async def start(self) -> None:
        """Prepare the output directory and start both chains.

        Raises ``WatchError`` if either directory cannot be watched.
        """
        if self.running:
            return
        config = self.config
        prepare_output_dir(config.output_dir)

        self.page_watcher = DirectoryWatcher(
            config.output_dir,
            config.watch.page_patterns,
            name="pages",
        )
        self.source_watcher = DirectoryWatcher(
            config.source_dir,
            config.watch.description_patterns,
            name="sources",
            include_modified=config.watch.rerender_on_modify,
        )
        self.page_watcher.start()
        try:
            self.source_watcher.start()
        except Exception:
            self.page_watcher.stop()
            raise

        self._tasks = [
            asyncio.create_task(self._consume_sources(self.source_watcher)),
            asyncio.create_task(self._consume_pages(self.page_watcher)),
        ]
        self.logger.info("Watching graphs in %s", config.source_dir)

    async def stop(self) -> None:
        """Stop watching, cancel outstanding renders and end both chains."""
        if not self.running:
            return
        for watcher in (self.source_watcher, self.page_watcher):
            if watcher is not None:
                watcher.stop()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        # Queued broadcasts get one step to count their signal before being cancelled.
        await asyncio.sleep(0)
        for broadcast in list(self._broadcasts):
            broadcast.cancel()
        await asyncio.gather(*self._broadcasts, return_exceptions=True)
        self._broadcasts.clear()
        await self.pipeline.close()
        self.logger.info("Gallery stopped")

    async def _consume_sources(self, watcher: DirectoryWatcher) -> None:
        async for event in watcher.events():
            try:
                self.pipeline.submit(event)
            except Exception:
                self.logger.exception("Failed to schedule %s", event.path)

    async def _consume_pages(self, watcher: DirectoryWatcher) -> None:
        async for event in watcher.events():
            try:
                changed = self.registry.apply(event)
            except Exception:
                self.logger.exception("Failed to apply %s for %s", event.kind.value, event.path)
                continue
            if changed:
                self._signal_viewers()

    def _signal_viewers(self) -> None:
        # A viewer stuck until its send timeout must not hold up later registry updates.
        broadcast = asyncio.create_task(self.fanout.broadcast())
        self._broadcasts.add(broadcast)
        broadcast.add_done_callback(self._broadcasts.discard)


__all__ = ["GalleryOrchestrator", "prepare_output_dir"]
