"""Core data models shared across dotgallery components."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

IMAGE_SUFFIX = ".svg"
PAGE_SUFFIX = ".html"


class EventKind(str, Enum):
    """Normalised file-system change reported by a watcher."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"


@dataclass(frozen=True)
class WatchEvent:
    """One normalised change for a single file in a watched directory."""

    kind: EventKind
    path: Path

    @property
    def name(self) -> str:
        return self.path.name


@dataclass(frozen=True)
class DescriptionFile:
    """A graph description produced by an external process."""

    path: Path

    @property
    def stem(self) -> str:
        return self.path.stem


@dataclass(frozen=True)
class ArtifactPair:
    """Rendered image and wrapper page for one description file."""

    stem: str
    image_path: Path
    page_path: Path

    @property
    def image_name(self) -> str:
        return self.image_path.name

    @property
    def page_name(self) -> str:
        return self.page_path.name


@dataclass(frozen=True)
class RegistryEntry:
    """A wrapper page currently visible to viewers, relative to the output directory."""

    path: str

    @property
    def stem(self) -> str:
        return Path(self.path).stem


class ArtifactState(str, Enum):
    """Lifecycle of an artifact pair as driven by the render pipeline."""

    ABSENT = "absent"
    RENDERING = "rendering"
    RENDERED = "rendered"


def artifact_pair_for(
    description: DescriptionFile | Path | str,
    output_dir: Path,
    *,
    image_suffix: str = IMAGE_SUFFIX,
) -> ArtifactPair:
    """Derive the artifact pair paths from a description file's base name.

    The result depends only on the stem, so a removal event can be
    correlated with the pair to delete without any extra bookkeeping.
    """
    if isinstance(description, DescriptionFile):
        stem = description.stem
    else:
        stem = Path(description).stem
    return ArtifactPair(
        stem=stem,
        image_path=output_dir / f"{stem}{image_suffix}",
        page_path=output_dir / f"{stem}{PAGE_SUFFIX}",
    )


__all__ = [
    "ArtifactPair",
    "ArtifactState",
    "DescriptionFile",
    "EventKind",
    "IMAGE_SUFFIX",
    "PAGE_SUFFIX",
    "RegistryEntry",
    "WatchEvent",
    "artifact_pair_for",
]
