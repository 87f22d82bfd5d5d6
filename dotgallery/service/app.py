"""FastAPI application entrypoint for the gallery service."""

from __future__ import annotations

from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Callable, List

import uvicorn
from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.responses import HTMLResponse
from fastapi.staticfiles import StaticFiles
from jinja2 import Environment, PackageLoader, select_autoescape
from pydantic import BaseModel

from ..config import GalleryConfig
from ..logging import get_logger
from ..models import RegistryEntry
from ..orchestrator import GalleryOrchestrator
from ..watch import WatchError

ARTIFACT_MOUNT = "/svg"
API_PATH = "/api/graphs"
WS_PATH = "/ws"
INDEX_TEMPLATE = "index.html"

logger = get_logger("service")


class GraphInfo(BaseModel):
    name: str
    page: str
    image: str


class GraphListResponse(BaseModel):
    graphs: List[GraphInfo]


class HealthResponse(BaseModel):
    status: str


class WebSocketViewer:
    """Viewer connection backed by a websocket; refresh is a bare text frame."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def send_refresh(self) -> None:
        await self.websocket.send_text("refresh")


def _graph_info(entry: RegistryEntry, image_suffix: str) -> GraphInfo:
    return GraphInfo(
        name=entry.stem,
        page=f"{ARTIFACT_MOUNT}/{entry.path}",
        image=f"{ARTIFACT_MOUNT}/{Path(entry.path).with_suffix(image_suffix).as_posix()}",
    )


def create_template_environment() -> Environment:
    """Jinja environment over the packaged templates with HTML autoescaping."""
    return Environment(
        loader=PackageLoader("dotgallery", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
        trim_blocks=True,
        lstrip_blocks=True,
    )


def render_index(graphs: List[GraphInfo], environment: Environment | None = None) -> str:
    """Render the gallery page with the current snapshot in display order."""
    environment = environment or create_template_environment()
    template = environment.get_template(INDEX_TEMPLATE)
    return template.render(graphs=graphs, api_path=API_PATH, ws_path=WS_PATH)


def create_app(orchestrator_factory: Callable[[], GalleryOrchestrator]) -> FastAPI:
    """Create the FastAPI application serving one gallery."""

    orchestrator = orchestrator_factory()
    config: GalleryConfig = orchestrator.config
    image_suffix = config.renderer.image_suffix
    templates = create_template_environment()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        try:
            await orchestrator.start()
        except WatchError as exc:
            # uvicorn swallows lifespan errors; serve_app re-raises it.
            app.state.startup_error = exc
            raise
        try:
            yield
        finally:
            await orchestrator.stop()

    app = FastAPI(title="Pipeline Graph Gallery", version="0.1.0", lifespan=lifespan)
    app.state.orchestrator = orchestrator
    app.state.startup_error = None

    def current_graphs() -> List[GraphInfo]:
        return [_graph_info(entry, image_suffix) for entry in orchestrator.snapshot()]

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/", response_class=HTMLResponse)
    async def index() -> HTMLResponse:
        return HTMLResponse(render_index(current_graphs(), templates))

    @app.get(API_PATH, response_model=GraphListResponse)
    async def list_graphs() -> GraphListResponse:
        return GraphListResponse(graphs=current_graphs())

    @app.websocket(WS_PATH)
    async def refresh_channel(websocket: WebSocket) -> None:
        await websocket.accept()
        viewer = WebSocketViewer(websocket)
        orchestrator.fanout.subscribe(viewer)
        try:
            # Viewers may have missed changes while disconnected; make them re-sync.
            await viewer.send_refresh()
            while True:
                message = await websocket.receive_text()
                logger.debug("Message received: %s", message)
        except WebSocketDisconnect:
            pass
        finally:
            orchestrator.fanout.unsubscribe(viewer)

    app.mount(
        ARTIFACT_MOUNT,
        StaticFiles(directory=str(config.output_dir), check_dir=False),
        name="artifacts",
    )

    return app


def serve_app(app: FastAPI, *, host: str, port: int) -> None:
    """Run ``app`` under uvicorn, re-raising a watch failure from startup."""
    server = uvicorn.Server(uvicorn.Config(app, host=host, port=port))
    server.run()
    startup_error = getattr(app.state, "startup_error", None)
    if startup_error is not None:
        raise startup_error


def run_service(config: GalleryConfig) -> None:  # pragma: no cover - integration path
    """Serve the gallery until interrupted."""
    app = create_app(lambda: GalleryOrchestrator(config))
    logger.info("Browse to http://%s:%d", config.server.address, config.server.port)
    serve_app(app, host=config.server.address, port=config.server.port)


__all__ = [
    "GraphInfo",
    "GraphListResponse",
    "WebSocketViewer",
    "create_app",
    "create_template_environment",
    "render_index",
    "run_service",
    "serve_app",
]
