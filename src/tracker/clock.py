"""Injectable clocks, so tests can control the time ticks are recorded at."""

import threading
import time
from abc import ABC, abstractmethod


class Clock(ABC):
    """Source of the current time in whole unix seconds."""

    @abstractmethod
    def now(self) -> int:
        pass


class SystemClock(Clock):
    """Reports the current wall-clock time."""

    def now(self) -> int:
        return int(time.time())


class TestingClock(Clock):
    """A settable clock for tests. Safe to advance from any thread."""

    __test__ = False  # not a pytest test class

    def __init__(self, start: int = 0):
        self._now = start
        self._lock = threading.Lock()

    def now(self) -> int:
        with self._lock:
            return self._now

    def set(self, to: int) -> None:
        with self._lock:
            self._now = to

    def advance(self, seconds: int) -> int:
        with self._lock:
            self._now += seconds
            return self._now
