"""Ordered registry of the wrapper pages currently visible to viewers."""

from __future__ import annotations

from pathlib import Path
from typing import List

from .logging import get_logger
from .models import EventKind, RegistryEntry, WatchEvent


class ArtifactRegistry:
    """Single source of truth for which graphs are shown, in display order.

    Entries are appended on first sight and removed in place; duplicate adds
    and removals of unknown pages are no-ops. ``apply`` is the only mutator
    and must be fed events in the order the page watcher observed them.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser().resolve()
        self._entries: List[RegistryEntry] = []
        self.logger = get_logger("registry")

    def relative(self, path: Path) -> str:
        try:
            return path.relative_to(self.root).as_posix()
        except ValueError:
            return path.name

    def apply(self, event: WatchEvent) -> bool:
        """Apply one watcher event; return True if the visible content changed."""
        entry = RegistryEntry(self.relative(event.path))
        if event.kind is EventKind.ADDED:
            if entry in self._entries:
                return False
            self._entries.append(entry)
            self.logger.info("Registered %s", entry.path)
            return True
        if event.kind is EventKind.REMOVED:
            if entry not in self._entries:
                return False
            self._entries.remove(entry)
            self.logger.info("Unregistered %s", entry.path)
            return True
        return False

    def snapshot(self) -> List[RegistryEntry]:
        """Return the current entries in display order."""
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        return any(entry.path == path for entry in self._entries)


__all__ = ["ArtifactRegistry"]
