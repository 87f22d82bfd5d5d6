"""Tests for the external renderer adapter."""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path

import pytest

from dotgallery.render import GraphRenderer, RenderRequest

_COPY = "import shutil, sys; shutil.copyfile(sys.argv[1], sys.argv[2])"


def _python_renderer(script: str) -> GraphRenderer:
    return GraphRenderer(
        sys.executable,
        command=["{executable}", "-c", script, "{source}", "{target}"],
    )


def test_request_builds_graphviz_arguments(tmp_path: Path) -> None:
    request = RenderRequest(
        source=tmp_path / "a.dot",
        target=tmp_path / "a.svg",
        executable="dot",
        format="svg",
        command=GraphRenderer().command,
    )

    assert request.argv() == ["dot", "-Tsvg", str(tmp_path / "a.dot"), "-o", str(tmp_path / "a.svg")]


def test_render_runs_configured_command(tmp_path: Path) -> None:
    source = tmp_path / "a.dot"
    source.write_text("digraph { a -> b }", encoding="utf-8")
    target = tmp_path / "a.svg"

    result = asyncio.run(_python_renderer(_COPY).render(source, target))

    assert result.success is True
    assert target.read_text(encoding="utf-8") == "digraph { a -> b }"


def test_render_reports_missing_executable(tmp_path: Path) -> None:
    renderer = GraphRenderer("dotgallery-no-such-renderer")

    result = asyncio.run(renderer.render(tmp_path / "a.dot", tmp_path / "a.svg"))

    assert result.success is False
    assert "Unable to locate" in result.message
    assert not (tmp_path / "a.svg").exists()


def test_render_reports_non_zero_exit(tmp_path: Path) -> None:
    renderer = _python_renderer("import sys; sys.stderr.write('syntax error'); sys.exit(3)")

    result = asyncio.run(renderer.render(tmp_path / "a.dot", tmp_path / "a.svg"))

    assert result.success is False
    assert "code 3" in result.message
    assert "syntax error" in result.message


def test_cancelling_render_stops_the_process(tmp_path: Path) -> None:
    renderer = _python_renderer("import time; time.sleep(30)")

    async def scenario() -> None:
        task = asyncio.create_task(renderer.render(tmp_path / "a.dot", tmp_path / "a.svg"))
        await asyncio.sleep(0.2)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

    asyncio.run(scenario())
