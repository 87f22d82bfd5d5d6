"""End-to-end tests for the watch/render/sync chains."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import List

import pytest

from dotgallery.config import ConfigError, GalleryConfig
from dotgallery.fanout import NotificationFanout
from dotgallery.orchestrator import GalleryOrchestrator, prepare_output_dir
from dotgallery.watch import WatchError
from tests._fixtures.gallery import FakeRenderer, wait_for


def _snapshot(orchestrator: GalleryOrchestrator) -> List[str]:
    return [entry.path for entry in orchestrator.snapshot()]


def test_prepare_output_dir_wipes_stale_artifacts(tmp_path: Path) -> None:
    output = tmp_path / "svg"
    output.mkdir()
    (output / "stale.html").write_text("old", encoding="utf-8")

    prepare_output_dir(output)

    assert output.is_dir()
    assert list(output.iterdir()) == []


def test_output_dir_must_not_alias_sources(tmp_path: Path, fake_renderer: FakeRenderer) -> None:
    config = GalleryConfig(source_dir=tmp_path / "dots", output_dir=tmp_path)

    with pytest.raises(ConfigError):
        GalleryOrchestrator(config, renderer=fake_renderer.renderer())


def test_gallery_follows_description_files(
    gallery_config: GalleryConfig, fake_renderer: FakeRenderer
) -> None:
    source = gallery_config.source_dir
    output = gallery_config.output_dir
    orchestrator = GalleryOrchestrator(gallery_config, renderer=fake_renderer.renderer())

    async def scenario() -> None:
        await orchestrator.start()
        try:
            (source / "a.dot").write_text("digraph { a }", encoding="utf-8")
            await wait_for(lambda: _snapshot(orchestrator) == ["a.html"])

            (source / "b.dot").write_text("digraph { b }", encoding="utf-8")
            await wait_for(lambda: _snapshot(orchestrator) == ["a.html", "b.html"])

            (source / "a.dot").unlink()
            await wait_for(lambda: _snapshot(orchestrator) == ["b.html"])
            await wait_for(lambda: not (output / "a.svg").exists())

            (source / "a.dot").write_text("digraph { a }", encoding="utf-8")
            await wait_for(lambda: _snapshot(orchestrator) == ["b.html", "a.html"])
            await orchestrator.pipeline.join()
        finally:
            await orchestrator.stop()

    asyncio.run(scenario())

    assert (output / "a.svg").exists()
    assert 'src="a.svg"' in (output / "a.html").read_text(encoding="utf-8")
    assert orchestrator.fanout.signals_sent == 4
    assert orchestrator.running is False


def test_existing_descriptions_are_rendered_at_start(
    gallery_config: GalleryConfig, fake_renderer: FakeRenderer
) -> None:
    (gallery_config.source_dir / "startup.dot").write_text("digraph {}", encoding="utf-8")
    gallery_config.output_dir.mkdir(parents=True)
    (gallery_config.output_dir / "leftover.html").write_text("stale", encoding="utf-8")
    orchestrator = GalleryOrchestrator(gallery_config, renderer=fake_renderer.renderer())

    async def scenario() -> None:
        await orchestrator.start()
        try:
            await wait_for(lambda: _snapshot(orchestrator) == ["startup.html"])
        finally:
            await orchestrator.stop()

    asyncio.run(scenario())

    assert not (gallery_config.output_dir / "leftover.html").exists()


def test_pages_placed_by_other_means_are_registered(
    gallery_config: GalleryConfig, fake_renderer: FakeRenderer
) -> None:
    orchestrator = GalleryOrchestrator(gallery_config, renderer=fake_renderer.renderer())

    async def scenario() -> None:
        await orchestrator.start()
        try:
            (gallery_config.output_dir / "manual.html").write_text("<p>hi</p>", encoding="utf-8")
            await wait_for(lambda: _snapshot(orchestrator) == ["manual.html"])
        finally:
            await orchestrator.stop()

    asyncio.run(scenario())

    assert fake_renderer.calls == []


def test_refresh_signalled_only_for_registry_changes(
    gallery_config: GalleryConfig, fake_renderer: FakeRenderer
) -> None:
    orchestrator = GalleryOrchestrator(gallery_config, renderer=fake_renderer.renderer())
    output = gallery_config.output_dir

    async def scenario() -> None:
        await orchestrator.start()
        try:
            watcher = orchestrator.page_watcher
            assert watcher is not None
            watcher.handle_fs_event("created", str(output / "x.html"))
            watcher.handle_fs_event("created", str(output / "x.html"))
            watcher.handle_fs_event("deleted", str(output / "y.html"))
            watcher.handle_fs_event("deleted", str(output / "x.html"))
            await wait_for(lambda: orchestrator.fanout.signals_sent >= 2)
            await asyncio.sleep(0.1)
        finally:
            await orchestrator.stop()

    asyncio.run(scenario())

    assert orchestrator.fanout.signals_sent == 2
    assert _snapshot(orchestrator) == []


def test_missing_source_directory_is_fatal(tmp_path: Path, fake_renderer: FakeRenderer) -> None:
    config = GalleryConfig(source_dir=tmp_path / "missing", output_dir=tmp_path / "out")
    orchestrator = GalleryOrchestrator(config, renderer=fake_renderer.renderer())

    async def scenario() -> None:
        await orchestrator.start()

    with pytest.raises(WatchError):
        asyncio.run(scenario())

    assert orchestrator.page_watcher is not None
    assert orchestrator.page_watcher.running is False
    assert orchestrator.running is False


class _StuckViewer:
    def __init__(self) -> None:
        self.attempts = 0

    async def send_refresh(self) -> None:
        self.attempts += 1
        await asyncio.sleep(3600)


def test_stuck_viewer_does_not_delay_registry_updates(
    gallery_config: GalleryConfig, fake_renderer: FakeRenderer
) -> None:
    fanout = NotificationFanout(send_timeout=60.0)
    viewer = _StuckViewer()
    fanout.subscribe(viewer)
    orchestrator = GalleryOrchestrator(
        gallery_config, renderer=fake_renderer.renderer(), fanout=fanout
    )
    output = gallery_config.output_dir

    async def scenario() -> None:
        await orchestrator.start()
        try:
            watcher = orchestrator.page_watcher
            assert watcher is not None
            watcher.handle_fs_event("created", str(output / "first.html"))
            await wait_for(lambda: viewer.attempts == 1, timeout=2)
            watcher.handle_fs_event("created", str(output / "second.html"))
            await wait_for(
                lambda: _snapshot(orchestrator) == ["first.html", "second.html"], timeout=2
            )
        finally:
            await asyncio.wait_for(orchestrator.stop(), timeout=5)

    asyncio.run(scenario())

    assert fanout.signals_sent == 2
    assert fanout.connection_count == 1
