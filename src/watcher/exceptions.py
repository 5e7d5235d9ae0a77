"""Custom exceptions for the directory watcher package."""

from pathlib import Path


class WatcherError(Exception):
    """Base exception for all watcher errors."""
    pass


class WatchRootDeletedError(WatcherError):
    """The directory at the root of a watch was deleted."""

    def __init__(self, root: Path):
        super().__init__(f"watch root '{root}' has been deleted")
        self.root = root
