"""Shared test doubles and polling helpers."""

import threading
import time
from pathlib import Path

from src.watcher.models import EventType, WatchEvent


def wait_for(predicate, timeout=3.0):
    deadline = time.time() + timeout
    while time.time() < deadline:
        if predicate():
            return True
        time.sleep(0.02)
    return predicate()


class FakeWatch:
    """Stands in for the inotify watcher: blocks until cancelled."""

    def __init__(self):
        self.callbacks = {}
        self.started = []
        self.fail = {}
        self._lock = threading.Lock()

    def __call__(self, root, on_event, cancel=None, config=None):
        with self._lock:
            self.callbacks[root] = on_event
            self.started.append(root)
        while not cancel.wait(timeout=0.01):
            error = self.fail.pop(root, None)
            if error is not None:
                raise error

    def emit(self, root, name="file.txt"):
        self.callbacks[root](WatchEvent(EventType.MODIFY, Path(root) / name))
