"""Render pipeline: turns description-file events into artifact pairs on disk."""

from __future__ import annotations

import asyncio
import functools
from pathlib import Path
from typing import Dict, Optional, Set

from ..logging import get_logger
from ..models import (
    IMAGE_SUFFIX,
    ArtifactPair,
    ArtifactState,
    DescriptionFile,
    EventKind,
    WatchEvent,
    artifact_pair_for,
)
from .renderer import GraphRenderer, RenderResult

PLACEHOLDER = "{{ svg_file_path }}"


def render_page(template: str, image_name: str) -> str:
    """Substitute the image file name into the wrapper-page template."""
    return template.replace(PLACEHOLDER, image_name, 1)


class RenderPipeline:
    """Produces and destroys the image + wrapper page for each description file.

    Every submitted event becomes its own task. Tasks for the same base name
    run strictly in submission order; tasks for different names interleave
    at the renderer and file I/O suspension points. The pipeline only writes
    files and never touches the registry.
    """

    def __init__(
        self,
        output_dir: Path,
        renderer: GraphRenderer,
        template_path: Path,
        *,
        image_suffix: str = IMAGE_SUFFIX,
        rerender_on_modify: bool = True,
    ) -> None:
        self.output_dir = output_dir
        self.renderer = renderer
        self.template_path = template_path
        self.image_suffix = image_suffix
        self.rerender_on_modify = rerender_on_modify
        self.logger = get_logger("render.pipeline")
        self._states: Dict[str, ArtifactState] = {}
        self._generations: Dict[str, int] = {}
        self._tails: Dict[str, asyncio.Task[None]] = {}
        self._renders: Dict[str, asyncio.Task[RenderResult]] = {}
        self._tasks: Set[asyncio.Task[None]] = set()

    def pair_for(self, description: DescriptionFile | Path | str) -> ArtifactPair:
        return artifact_pair_for(description, self.output_dir, image_suffix=self.image_suffix)

    def state(self, name: str) -> ArtifactState:
        """Return the lifecycle state for a description file (by name or stem)."""
        return self._states.get(Path(name).stem, ArtifactState.ABSENT)

    def submit(self, event: WatchEvent) -> Optional[asyncio.Task[None]]:
        """Schedule processing of one event; must be called from the event loop."""
        if event.kind is EventKind.MODIFIED and not self.rerender_on_modify:
            self.logger.debug("Ignoring modification of %s", event.name)
            return None

        stem = event.path.stem
        generation = self._generations.get(stem, 0) + 1
        self._generations[stem] = generation
        if event.kind is not EventKind.ADDED:
            self._cancel_render(stem)

        previous = self._tails.get(stem)
        task = asyncio.create_task(self._run(event, generation, previous))
        self._tails[stem] = task
        self._tasks.add(task)
        task.add_done_callback(functools.partial(self._forget, stem))
        return task

    async def join(self) -> None:
        """Wait until every submitted event has been processed."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self) -> None:
        """Cancel outstanding work; used on shutdown."""
        for render in list(self._renders.values()):
            render.cancel()
        for task in list(self._tasks):
            task.cancel()
        await self.join()

    async def render_description(self, path: Path) -> Optional[RenderResult]:
        """Render one description file immediately, outside the event stream."""
        return await self._render_pair(DescriptionFile(path), None)

    # ------------------------------------------------------------------
    # Internal helpers

    def _forget(self, stem: str, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if self._tails.get(stem) is task:
            del self._tails[stem]

    def _cancel_render(self, stem: str) -> None:
        render = self._renders.get(stem)
        if render is not None and not render.done():
            self.logger.info("Cancelling in-flight render of %s", stem)
            render.cancel()

    def _superseded(self, stem: str, generation: Optional[int]) -> bool:
        return generation is not None and self._generations.get(stem) != generation

    async def _run(
        self,
        event: WatchEvent,
        generation: int,
        previous: Optional[asyncio.Task[None]],
    ) -> None:
        if previous is not None:
            await asyncio.wait({previous})
        try:
            if event.kind is EventKind.REMOVED:
                self._remove_pair(DescriptionFile(event.path))
            else:
                await self._render_pair(DescriptionFile(event.path), generation)
        except Exception:
            self.logger.exception("Failed to process %s event for %s", event.kind.value, event.name)

    async def _render_pair(
        self, description: DescriptionFile, generation: Optional[int]
    ) -> Optional[RenderResult]:
        stem = description.stem
        if self._superseded(stem, generation):
            self.logger.debug("Skipping superseded render of %s", description.path.name)
            return None

        pair = self.pair_for(description)
        self._states[stem] = ArtifactState.RENDERING
        self.logger.info("Rendering %s", description.path)

        render = asyncio.create_task(self.renderer.render(description.path, pair.image_path))
        self._renders[stem] = render
        try:
            await self._write_page(pair)
            await asyncio.wait({render})
        finally:
            if self._renders.get(stem) is render:
                del self._renders[stem]

        result: Optional[RenderResult] = None
        if render.cancelled():
            self.logger.info("Render of %s was cancelled", description.path.name)
        elif render.exception() is not None:
            self.logger.error(
                "Renderer raised for %s", description.path.name, exc_info=render.exception()
            )
        else:
            result = render.result()

        if not self._superseded(stem, generation):
            self._states[stem] = ArtifactState.RENDERED
        return result

    async def _write_page(self, pair: ArtifactPair) -> None:
        try:
            template = await asyncio.to_thread(self.template_path.read_text, encoding="utf-8")
        except (OSError, UnicodeError) as exc:
            self.logger.error("Could not read template %s: %s", self.template_path, exc)
            return

        content = render_page(template, pair.image_name)
        temp_path = pair.page_path.with_name(f".{pair.page_name}.tmp")
        try:
            await asyncio.to_thread(temp_path.write_text, content, encoding="utf-8")
            await asyncio.to_thread(temp_path.replace, pair.page_path)
        except OSError as exc:
            self.logger.error("Could not write %s: %s", pair.page_path, exc)
            temp_path.unlink(missing_ok=True)
            return
        self.logger.info("%s has been saved", pair.page_path)

    def _remove_pair(self, description: DescriptionFile) -> None:
        pair = self.pair_for(description)
        for path in (pair.image_path, pair.page_path):
            try:
                path.unlink(missing_ok=True)
            except OSError as exc:
                self.logger.error("Could not remove %s: %s", path, exc)
            else:
                self.logger.debug("Removed %s", path)
        self._states.pop(description.stem, None)
        self.logger.info("Removed artifacts for %s", description.path.name)


__all__ = ["PLACEHOLDER", "RenderPipeline", "render_page"]
