from __future__ import annotations

from pathlib import Path

import pytest

from dotgallery.config import GalleryConfig
from tests._fixtures.gallery import FakeRenderer, make_config


@pytest.fixture
def fake_renderer() -> FakeRenderer:
    """Provide a renderer stand-in that writes SVG files without Graphviz."""
    return FakeRenderer()


@pytest.fixture
def gallery_config(tmp_path: Path) -> GalleryConfig:
    """Provide a config rooted at the pytest tmp_path with an existing source dir."""
    return make_config(tmp_path)
