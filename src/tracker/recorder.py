"""Periodic conversion of filesystem activity into ticks."""

import logging
import threading
import time

from src.watcher import WatchEvent

from .clock import Clock
from .exceptions import StoreError
from .store import TrackerStore

logger = logging.getLogger(__name__)


class PendingFlag:
    """A boolean that is set by producers and atomically tested-and-cleared by a consumer."""

    def __init__(self):
        self._lock = threading.Lock()
        self._set = False

    def set(self) -> None:
        with self._lock:
            self._set = True

    def test_and_clear(self) -> bool:
        with self._lock:
            was_set = self._set
            self._set = False
            return was_set


class TickRecorder:
    """
    Records at most one tick per flush period for a single watch.

    Filesystem events only raise the pending flag; the recorder thread flushes
    the flag into the store every `interval` seconds. A burst of thousands of
    events therefore costs one write.
    """

    def __init__(
        self,
        dir: str,
        label: str,
        store: TrackerStore,
        clock: Clock,
        stop_event: threading.Event,
        interval: float = 3.0,
        quiet_period: float = 10.0,
    ):
        """
        Initialize the recorder.

        Args:
            dir: Watched directory whose last write time is updated
            label: Label recorded with every tick
            store: Store receiving ticks
            clock: Source of tick timestamps
            stop_event: When set, run() returns
            interval: Seconds between flushes
            quiet_period: Seconds after creation during which activity is not
                logged
        """
        self.dir = dir
        self.label = label
        self.store = store
        self.clock = clock
        self.stop_event = stop_event
        self.interval = interval
        self.quiet_period = quiet_period
        self.pending = PendingFlag()
        self._started_at = time.monotonic()

    def on_event(self, event: WatchEvent) -> None:
        """Watcher callback: mark that something happened."""
        self.pending.set()
        if time.monotonic() - self._started_at >= self.quiet_period:
            logger.info(f"[{self.label}] {event}")

    def flush(self) -> bool:
        """
        Write a tick if any event arrived since the last flush.

        Returns:
            True if a tick was written. No tick is written once the watch has
            been removed from the store.
        """
        if not self.pending.test_and_clear():
            return False
        now = self.clock.now()
        try:
            recorded = self.store.record_watch_tick(self.dir, self.label, now)
        except StoreError as e:
            logger.error(f"Failed to record tick for {self.dir}: {e}")
            return False
        if not recorded:
            logger.debug(f"Dropped tick for {self.dir}: watch no longer exists")
            return False
        logger.debug(f"Recorded tick {now} for {self.dir}")
        return True

    def run(self) -> None:
        """Flush every `interval` seconds until the stop event is set."""
        logger.debug(f"Tick recorder started for {self.dir}, interval={self.interval}s")
        while not self.stop_event.wait(timeout=self.interval):
            self.flush()
        logger.debug(f"Tick recorder stopped for {self.dir}")
