"""Rendering of description files into image and wrapper-page artifacts."""

from .pipeline import PLACEHOLDER, RenderPipeline, render_page
from .renderer import GraphRenderer, RenderError, RenderRequest, RenderResult

__all__ = [
    "GraphRenderer",
    "PLACEHOLDER",
    "RenderError",
    "RenderPipeline",
    "RenderRequest",
    "RenderResult",
    "render_page",
]
