"""File-system watchers for description files and wrapper pages."""

from .watcher import DirectoryWatcher, WatchError

__all__ = ["DirectoryWatcher", "WatchError"]
