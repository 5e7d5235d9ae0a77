"""
Tracker service: the operations exposed to API callers.
"""

import logging
import os
import time
from typing import Callable, List, Optional

from src.watcher import watch

from .clock import Clock, SystemClock
from .config import TrackerConfig
from .exceptions import SyncFailedError, TrackerError
from .interval import collect_intervals
from .models import IntervalReport, WatchInfo
from .store import TrackerStore, open_store
from .synchronizer import WatchFunction, WatchSynchronizer

logger = logging.getLogger(__name__)


class TrackerService:
    """
    Owns the store and the watch synchronizer.

    All public methods are safe to call from request-handling threads.
    """

    def __init__(
        self,
        config: Optional[TrackerConfig] = None,
        clock: Optional[Clock] = None,
        store: Optional[TrackerStore] = None,
        watch_fn: WatchFunction = watch,
        on_fatal: Optional[Callable[[SyncFailedError], None]] = None,
    ):
        """
        Initialize the service.

        Args:
            config: Tracker configuration
            clock: Clock used for ticks and "now" (defaults to the system clock)
            store: An already-open store; opened from config.db_path on start()
                when omitted
            watch_fn: Blocking function that watches one directory tree
            on_fatal: Called when watch reconciliation fails for good
        """
        self.config = config or TrackerConfig()
        self.clock = clock or SystemClock()
        self.store = store
        self.watch_fn = watch_fn
        self.on_fatal = on_fatal
        self.synchronizer: Optional[WatchSynchronizer] = None
        self._started_at: Optional[float] = None

    def start(self, run_sync_loop: bool = True) -> None:
        """
        Open the store and start reconciling watches.

        Raises:
            StoreError: If the store cannot be opened
        """
        if self.synchronizer is not None:
            return
        if self.store is None:
            os.makedirs(self.config.data_dir, exist_ok=True)
            self.store = open_store(
                self.config.db_path,
                attempts=self.config.store_open_attempts,
                backoff=self.config.store_open_backoff,
            )
        self.synchronizer = WatchSynchronizer(
            self.store,
            self.clock,
            self.config,
            watch_fn=self.watch_fn,
            on_fatal=self.on_fatal,
        )
        if run_sync_loop:
            self.synchronizer.start()
        self._started_at = time.monotonic()
        logger.info(f"Tracker service started (db={self.config.db_path})")

    def stop(self) -> None:
        """Cancel every live watch and close the store."""
        if self.synchronizer is not None:
            self.synchronizer.stop()
            self.synchronizer = None
        if self.store is not None:
            self.store.close()
            self.store = None
        self._started_at = None
        logger.info("Tracker service stopped")

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

    def uptime(self) -> float:
        """Seconds since start(), or 0 if not running."""
        if self._started_at is None:
            return 0.0
        return time.monotonic() - self._started_at

    def start_watch(self, dir: str, label: str) -> None:
        """
        Add a desired watch and reconcile immediately.

        The new watch gets last_write = now, so it is not the first one
        evicted when the cap is exceeded.

        Raises:
            AlreadyWatchedError: If dir is, contains, or is inside an existing watch
        """
        self._require_running()
        self.store.add_watch(dir, label, self.clock.now())
        logger.info(f"Added watch on {dir} [{label}]")
        self.synchronizer.sync()

    def get_watches(self) -> List[WatchInfo]:
        """Return the live watches, sorted by directory."""
        self._require_running()
        last_writes = {row.dir: row.last_write for row in self.store.list_watches()}
        return [
            WatchInfo(dir=live.dir, label=live.label, last_write=last_writes.get(live.dir, 0))
            for live in self.synchronizer.live_watches()
        ]

    def record_tick(self, label: str) -> None:
        """Record a tick at the current time (ignored if one already exists)."""
        self._require_running()
        self.store.insert_tick_if_absent(self.clock.now(), label)

    def get_intervals(self, start: int, end: int) -> IntervalReport:
        """
        Return the activity intervals inside [start, end].

        Ticks up to one gap outside the window are read, so that intervals
        crossing the window's edges are found and clipped instead of cut short.
        """
        self._require_running()
        gap = self.config.max_event_gap
        ticks = self.store.list_ticks(start - gap, end + gap)
        return collect_intervals(ticks, start, end, gap, self.clock.now())

    def clear(self) -> None:
        """Delete every tick and desired watch, and cancel the live watches."""
        self._require_running()
        self.store.clear()
        self.synchronizer.sync()
        logger.warning("Cleared all ticks and watches")

    def _require_running(self) -> None:
        if self.store is None or self.synchronizer is None:
            raise TrackerError("tracker service is not running")

