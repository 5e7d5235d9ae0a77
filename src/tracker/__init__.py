"""
Time Tracker Package

Turns filesystem activity under watched directories into ticks, and ticks into
intervals of continuous activity.

Features:
- Capped set of watches, least recently written evicted first
- At most one tick per watch per flush period
- Interval queries with per-label timelines and an end gap up to "now"
- REST API on a unix socket, with a matching client
"""

from .models import Interval, IntervalReport, TickRow, WatchInfo, WatchRow

from .config import TrackerConfig

from .clock import Clock, SystemClock, TestingClock

from .exceptions import (
    TrackerError,
    ValidationError,
    AlreadyWatchedError,
    StoreError,
    SyncFailedError,
)

from .interval import IntervalCollector, collect_intervals
from .store import TrackerStore, open_store
from .recorder import PendingFlag, TickRecorder
from .synchronizer import LiveWatch, SyncResult, WatchSynchronizer
from .service import TrackerService
from .client import HTTPError, TrackerClient
from .api_server import TrackerAPIService, create_app, prepare_socket


__all__ = [
    # Models
    "Interval",
    "IntervalReport",
    "TickRow",
    "WatchInfo",
    "WatchRow",
    # Config
    "TrackerConfig",
    # Clocks
    "Clock",
    "SystemClock",
    "TestingClock",
    # Exceptions
    "TrackerError",
    "ValidationError",
    "AlreadyWatchedError",
    "StoreError",
    "SyncFailedError",
    "HTTPError",
    # Components
    "IntervalCollector",
    "collect_intervals",
    "TrackerStore",
    "open_store",
    "PendingFlag",
    "TickRecorder",
    "LiveWatch",
    "SyncResult",
    "WatchSynchronizer",
    "TrackerService",
    "TrackerClient",
    "TrackerAPIService",
    "create_app",
    "prepare_socket",
]

__version__ = "0.1.0"
