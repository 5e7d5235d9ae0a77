"""Reconciliation of live directory watches with the desired watches in the store."""

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

from src.watcher import WatcherConfig, watch

from .clock import Clock
from .config import TrackerConfig
from .exceptions import SyncFailedError
from .recorder import TickRecorder
from .store import TrackerStore

logger = logging.getLogger(__name__)

WatchFunction = Callable[..., None]


@dataclass
class SyncResult:
    """Directories whose live watch was created or removed by one sync."""
    created: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created or self.removed)


class LiveWatch:
    """
    A running watch: one thread watching the directory tree and one recording
    ticks for it. Both stop when the watch is cancelled or the watcher fails.
    """

    def __init__(
        self,
        dir: str,
        label: str,
        store: TrackerStore,
        clock: Clock,
        config: TrackerConfig,
        on_exit: Callable[["LiveWatch"], None],
        watch_fn: WatchFunction = watch,
    ):
        self.dir = dir
        self.label = label
        self.stop_event = threading.Event()
        self.recorder = TickRecorder(
            dir,
            label,
            store,
            clock,
            self.stop_event,
            interval=config.tick_sync_interval,
            quiet_period=config.quiet_period,
        )
        self._watcher_config: WatcherConfig = config.watcher
        self._on_exit = on_exit
        self._watch_fn = watch_fn
        self._threads: List[threading.Thread] = []

    def start(self) -> None:
        self._threads = [
            threading.Thread(
                target=self._run_watcher, name=f"Watch[{self.dir}]", daemon=True
            ),
            threading.Thread(
                target=self.recorder.run, name=f"Recorder[{self.dir}]", daemon=True
            ),
        ]
        for thread in self._threads:
            thread.start()

    def cancel(self) -> None:
        self.stop_event.set()

    def join(self, timeout: Optional[float] = None) -> None:
        for thread in self._threads:
            if thread is not threading.current_thread():
                thread.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return not self.stop_event.is_set()

    def _run_watcher(self) -> None:
        logger.info(f"Started watching {self.dir} [{self.label}]")
        try:
            self._watch_fn(
                self.dir,
                self.recorder.on_event,
                cancel=self.stop_event,
                config=self._watcher_config,
            )
        except Exception as e:
            logger.warning(f"Watch on {self.dir} failed: {e}")
        else:
            logger.info(f"Stopped watching {self.dir}")
        finally:
            self.stop_event.set()
            self._on_exit(self)


class WatchSynchronizer:
    """
    Keeps the set of live watches equal to the desired watches in the store.

    Each sync first evicts the least recently written watches over the cap,
    then diffs the remaining rows against the live watches (both sorted by
    directory) and starts or cancels watches to match. A watch whose watcher
    exits on its own is dropped from the live set, so the next sync restarts
    it if its row still exists.
    """

    def __init__(
        self,
        store: TrackerStore,
        clock: Clock,
        config: Optional[TrackerConfig] = None,
        watch_fn: WatchFunction = watch,
        on_fatal: Optional[Callable[[SyncFailedError], None]] = None,
    ):
        """
        Initialize the synchronizer.

        Args:
            store: Store holding the desired watches
            clock: Clock handed to every tick recorder
            config: Tracker configuration
            watch_fn: Blocking function that watches one directory tree
            on_fatal: Called from the sync thread when reconciliation has
                failed `config.max_sync_failures` times in a row
        """
        self.store = store
        self.clock = clock
        self.config = config or TrackerConfig()
        self.watch_fn = watch_fn
        self.on_fatal = on_fatal

        self._live: Dict[str, LiveWatch] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def sync(self) -> SyncResult:
        """
        Run one reconciliation.

        Raises:
            StoreError: If the desired watches cannot be read
        """
        desired = self.store.evict_and_list_watches(self.config.max_watches)
        result = SyncResult()

        with self._lock:
            live = sorted(self._live)
            i = j = 0
            while i < len(live) or j < len(desired):
                if j == len(desired) or (i < len(live) and live[i] < desired[j].dir):
                    self._remove(live[i])
                    result.removed.append(live[i])
                    i += 1
                elif i == len(live) or desired[j].dir < live[i]:
                    self._create(desired[j].dir, desired[j].label)
                    result.created.append(desired[j].dir)
                    j += 1
                else:
                    i += 1
                    j += 1

        if result.changed:
            logger.info(
                f"Synced watches: {len(result.created)} created, "
                f"{len(result.removed)} removed, {len(desired)} desired"
            )
        return result

    def live_watches(self) -> List[LiveWatch]:
        """Return the live watches, sorted by directory."""
        with self._lock:
            return [self._live[d] for d in sorted(self._live)]

    def start(self) -> None:
        """Start the periodic sync loop in a background thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="WatchSync", daemon=True)
        self._thread.start()

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the sync loop and cancel every live watch."""
        self._stop_event.set()
        if self._thread is not None and self._thread is not threading.current_thread():
            self._thread.join(timeout=timeout)
        self._thread = None
        self.stop_all(timeout=timeout)

    def stop_all(self, timeout: Optional[float] = 5.0) -> None:
        """Cancel every live watch and wait for their threads."""
        with self._lock:
            stopping = list(self._live.values())
            self._live.clear()
        for live in stopping:
            live.cancel()
        for live in stopping:
            live.join(timeout=timeout)

    def _run(self) -> None:
        interval = self.config.watch_sync_interval
        logger.debug(f"Watch sync loop started, interval={interval}s")
        failures = 0

        while not self._stop_event.is_set():
            try:
                self.sync()
                failures = 0
            except Exception as e:
                failures += 1
                logger.error(
                    f"Watch sync failed ({failures}/{self.config.max_sync_failures}): {e}"
                )
                if failures >= self.config.max_sync_failures:
                    error = SyncFailedError(
                        f"watch sync failed {failures} times in a row: {e}"
                    )
                    logger.critical(str(error))
                    if self.on_fatal is not None:
                        self.on_fatal(error)
                    return
            self._stop_event.wait(timeout=interval)

        logger.debug("Watch sync loop stopped")

    def _create(self, dir: str, label: str) -> None:
        live = LiveWatch(
            dir,
            label,
            self.store,
            self.clock,
            self.config,
            on_exit=self._on_watch_exit,
            watch_fn=self.watch_fn,
        )
        self._live[dir] = live
        live.start()

    def _remove(self, dir: str) -> None:
        live = self._live.pop(dir)
        live.cancel()
        logger.info(f"Cancelled watch on {dir}")

    def _on_watch_exit(self, live: LiveWatch) -> None:
        with self._lock:
            if self._live.get(live.dir) is live:
                del self._live[live.dir]
