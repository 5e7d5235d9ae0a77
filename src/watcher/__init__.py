"""
Directory Watcher Package

Watches a directory tree through Linux inotify and reports every create,
delete and modify under it to a callback.

Features:
- Race-free recursive watch establishment (watch first, then scan)
- Duplicate directory-create suppression
- Explicit decoding of kernel event records, including records split across reads
- Cooperative cancellation at a bounded poll interval
- Version-control and editor temp-file filtering
"""

from .models import EventType, WatchEvent

from .config import WatcherConfig

from .exceptions import WatcherError, WatchRootDeletedError

from .inotify import Inotify, InotifyRecord, InotifyDecodeError, decode_record, decode_records
from .fs_watcher import DirectoryWatcher, EventCallback, watch


__all__ = [
    # Models
    "EventType",
    "WatchEvent",
    # Config
    "WatcherConfig",
    # Exceptions
    "WatcherError",
    "WatchRootDeletedError",
    "InotifyDecodeError",
    # Components
    "Inotify",
    "InotifyRecord",
    "decode_record",
    "decode_records",
    "DirectoryWatcher",
    "EventCallback",
    "watch",
]

__version__ = "0.1.0"
