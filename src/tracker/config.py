"""Configuration for the time tracker daemon."""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from src.watcher import WatcherConfig

MINUTE = 60


@dataclass
class TrackerConfig:
    """
    Configuration options for the tracker daemon.

    Attributes:
        data_dir: Directory holding the database and the API socket
        max_watches: Maximum number of directories watched at once
        tick_sync_interval: Seconds between a watch's tick flushes
        watch_sync_interval: Seconds between watch reconciliations
        max_event_gap: Maximum seconds between two ticks of the same interval
        quiet_period: Seconds after a watch starts during which its activity
            is not logged (the initial scan reports every existing file)
        max_sync_failures: Consecutive failed reconciliations that are fatal
        store_open_attempts: Attempts to open the database at startup
        store_open_backoff: Initial delay between those attempts, doubled
            after each failure
        watcher: Configuration handed to every directory watcher
    """
    data_dir: Path = field(default_factory=lambda: Path.home() / ".time-tracker")
    max_watches: int = 4
    tick_sync_interval: float = 3.0
    watch_sync_interval: float = 3.0
    max_event_gap: int = 23 * MINUTE
    quiet_period: float = 10.0
    max_sync_failures: int = 3
    store_open_attempts: int = 5
    store_open_backoff: float = 1.0
    watcher: WatcherConfig = field(default_factory=WatcherConfig)

    def __post_init__(self):
        self.data_dir = Path(self.data_dir)
        if self.max_watches < 1:
            raise ValueError(f"max_watches must be at least 1: {self.max_watches}")
        if self.max_event_gap < 0:
            raise ValueError(f"max_event_gap must not be negative: {self.max_event_gap}")
        if self.store_open_attempts < 1:
            raise ValueError(
                f"store_open_attempts must be at least 1: {self.store_open_attempts}"
            )

    @property
    def db_path(self) -> Path:
        return self.data_dir / "db"

    @property
    def socket_path(self) -> Path:
        return self.data_dir / "sock"

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None, **overrides) -> "TrackerConfig":
        """
        Build a config from environment variables (and an optional .env file).

        Recognized variables: TIME_TRACKER_DIR, TIME_TRACKER_MAX_WATCHES,
        TIME_TRACKER_MAX_EVENT_GAP. Keyword arguments take precedence.
        """
        if env_file is not None:
            load_dotenv(env_file)
        else:
            load_dotenv()

        values = {}
        if os.environ.get("TIME_TRACKER_DIR"):
            values["data_dir"] = Path(os.environ["TIME_TRACKER_DIR"]).expanduser()
        if os.environ.get("TIME_TRACKER_MAX_WATCHES"):
            values["max_watches"] = int(os.environ["TIME_TRACKER_MAX_WATCHES"])
        if os.environ.get("TIME_TRACKER_MAX_EVENT_GAP"):
            values["max_event_gap"] = int(os.environ["TIME_TRACKER_MAX_EVENT_GAP"])
        values.update(overrides)
        return cls(**values)
