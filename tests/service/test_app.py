"""Tests for the FastAPI service mode."""

from __future__ import annotations

import time
from pathlib import Path
from typing import Callable, Iterator

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from dotgallery.config import GalleryConfig
from dotgallery.orchestrator import GalleryOrchestrator
from dotgallery.service import create_app
from dotgallery.service.app import GraphInfo, create_template_environment, render_index, serve_app
from dotgallery.watch import WatchError
from tests._fixtures.gallery import FakeRenderer


def _poll(predicate: Callable[[], bool], timeout: float = 10.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("condition not met before timeout")
        time.sleep(0.05)


@pytest.fixture
def orchestrator(gallery_config: GalleryConfig, fake_renderer: FakeRenderer) -> GalleryOrchestrator:
    return GalleryOrchestrator(gallery_config, renderer=fake_renderer.renderer())


@pytest.fixture
def client(orchestrator: GalleryOrchestrator) -> Iterator[TestClient]:
    app = create_app(lambda: orchestrator)
    with TestClient(app) as test_client:
        yield test_client


def _graph_names(client: TestClient) -> list[str]:
    response = client.get("/api/graphs")
    assert response.status_code == 200
    return [graph["name"] for graph in response.json()["graphs"]]


def test_health_endpoint(client: TestClient) -> None:
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_graph_list_starts_empty(client: TestClient) -> None:
    assert _graph_names(client) == []
    response = client.get("/")
    assert response.status_code == 200
    assert "Waiting for graph files" in response.text


def test_new_description_appears_in_snapshot_and_static_files(
    client: TestClient, gallery_config: GalleryConfig
) -> None:
    (gallery_config.source_dir / "pipeline.dot").write_text("digraph {}", encoding="utf-8")

    _poll(lambda: _graph_names(client) == ["pipeline"])

    graphs = client.get("/api/graphs").json()["graphs"]
    assert graphs == [
        {"name": "pipeline", "page": "/svg/pipeline.html", "image": "/svg/pipeline.svg"}
    ]
    page = client.get("/svg/pipeline.html")
    assert page.status_code == 200
    assert "pipeline.svg" in page.text
    _poll(lambda: client.get("/svg/pipeline.svg").status_code == 200)
    assert 'href="/svg/pipeline.html"' in client.get("/").text


def test_websocket_receives_refresh_signals(
    client: TestClient, orchestrator: GalleryOrchestrator, gallery_config: GalleryConfig
) -> None:
    with client.websocket_connect("/ws") as websocket:
        assert websocket.receive_text() == "refresh"
        assert orchestrator.fanout.connection_count == 1

        (gallery_config.source_dir / "live.dot").write_text("digraph {}", encoding="utf-8")

        assert websocket.receive_text() == "refresh"
        assert _graph_names(client) == ["live"]


def test_render_index_escapes_names() -> None:
    page = render_index([GraphInfo(name="<b>", page="/svg/<b>.html", image="/svg/<b>.svg")])

    assert "&lt;b&gt;" in page
    assert "<b>" not in page.split("<script>")[0].split("<ul")[1]


def test_render_index_lists_graphs_in_order() -> None:
    graphs = [
        GraphInfo(name="b", page="/svg/b.html", image="/svg/b.svg"),
        GraphInfo(name="a", page="/svg/a.html", image="/svg/a.svg"),
    ]

    page = render_index(graphs, create_template_environment())

    assert page.index('href="/svg/b.html"') < page.index('href="/svg/a.html"')
    assert "Waiting for graph files" not in page.split("<script>")[0]
    assert 'fetch("/api/graphs")' in page


def _broken_app(tmp_path: Path, fake_renderer: FakeRenderer) -> FastAPI:
    config = GalleryConfig(source_dir=tmp_path / "missing", output_dir=tmp_path / "out")
    return create_app(lambda: GalleryOrchestrator(config, renderer=fake_renderer.renderer()))


def test_startup_failure_is_kept_on_app_state(tmp_path: Path, fake_renderer: FakeRenderer) -> None:
    app = _broken_app(tmp_path, fake_renderer)

    with pytest.raises(Exception):
        with TestClient(app):
            pass

    assert isinstance(app.state.startup_error, WatchError)


def test_serve_app_reraises_startup_failure(tmp_path: Path, fake_renderer: FakeRenderer) -> None:
    app = _broken_app(tmp_path, fake_renderer)

    with pytest.raises(WatchError):
        serve_app(app, host="127.0.0.1", port=0)
