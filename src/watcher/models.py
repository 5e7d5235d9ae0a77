"""Data models for the directory watcher package."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class EventType(Enum):
    """Types of events delivered to a watch callback."""
    CREATE = "create"
    DELETE = "delete"
    MODIFY = "modify"


@dataclass(frozen=True)
class WatchEvent:
    """
    A filesystem change under a watched directory.

    Attributes:
        event_type: The type of event (CREATE, DELETE, MODIFY)
        path: Full path of the affected file or directory
        is_directory: Whether the affected path is a directory
    """
    event_type: EventType
    path: Path
    is_directory: bool = False

    def __str__(self) -> str:
        suffix = "/" if self.is_directory else ""
        return f'{self.event_type.name.capitalize()} "{self.path}{suffix}"'

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "event_type": self.event_type.value,
            "path": str(self.path),
            "is_directory": self.is_directory,
        }
