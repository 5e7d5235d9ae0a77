"""Configuration for the directory watcher package."""

import fnmatch
from dataclasses import dataclass, field
from pathlib import Path
from typing import List

# sizeof(struct inotify_event) + NAME_MAX + 1 is enough to hold any single event
MIN_READ_SIZE = 16 + 255 + 1


@dataclass
class WatcherConfig:
    """
    Configuration options for the directory watcher.

    Attributes:
        ignore_patterns: Glob patterns matched against entry names. Matching
            entries never reach the event callback and are never recursed into.
        poll_interval: Seconds between cancellation checks while waiting for
            new events (only used when the watch is cancellable)
        read_buffer_size: Number of bytes requested from the kernel per read
    """
    ignore_patterns: List[str] = field(default_factory=lambda: [
        "*.git*",
        ".hg",
        ".svn",
        "*.swp",
        "*.swo",
        "*~",
    ])
    poll_interval: float = 1.0
    read_buffer_size: int = MIN_READ_SIZE * 10

    def __post_init__(self):
        if self.read_buffer_size < MIN_READ_SIZE:
            raise ValueError(
                f"read_buffer_size must be at least {MIN_READ_SIZE}: {self.read_buffer_size}"
            )
        if self.poll_interval <= 0:
            raise ValueError(f"poll_interval must be positive: {self.poll_interval}")

    def should_ignore(self, path: Path) -> bool:
        """
        Check if a path should be ignored based on its name.

        Args:
            path: Path to check

        Returns:
            True if the path should be ignored
        """
        name = path.name
        for pattern in self.ignore_patterns:
            if fnmatch.fnmatch(name, pattern):
                return True
        return False
