"""Recursive directory watcher built on inotify."""

import errno
import logging
import os
import select
import stat
import threading
from pathlib import Path
from typing import Callable, Dict, Optional, Union

from .config import WatcherConfig
from .exceptions import WatcherError, WatchRootDeletedError
from .inotify import (
    IN_CREATE,
    IN_DELETE,
    IN_IGNORED,
    IN_MODIFY,
    IN_MOVED_FROM,
    IN_MOVED_TO,
    IN_Q_OVERFLOW,
    Inotify,
    InotifyRecord,
    decode_records,
)
from .models import EventType, WatchEvent

logger = logging.getLogger(__name__)

EventCallback = Callable[[WatchEvent], None]


def _classify(mask: int) -> Optional[EventType]:
    """Map a raw inotify mask to the event type delivered to callbacks."""
    if mask & (IN_CREATE | IN_MOVED_TO):
        return EventType.CREATE
    if mask & (IN_DELETE | IN_MOVED_FROM):
        return EventType.DELETE
    if mask & IN_MODIFY:
        return EventType.MODIFY
    return None


class DirectoryWatcher:
    """
    Watches every directory under a root and reports changes to a callback.

    The watcher is *not* a concurrent data structure. It reads from its inotify
    descriptor until new events arrive, and does not read again until those
    events have been fully processed, including the recursive scan of any new
    subdirectory. Because a directory's watch is registered before its children
    are listed, anything created during the scan is reported either by the scan
    or by the kernel; duplicate directory creates are dropped using the set of
    already-watched directories.
    """

    def __init__(
        self,
        root: Union[str, Path],
        callback: EventCallback,
        config: Optional[WatcherConfig] = None,
        cancel: Optional[threading.Event] = None,
    ):
        """
        Initialize the watcher.

        Args:
            root: Directory to watch
            callback: Called synchronously, in order, for every event under root
            config: Watcher configuration
            cancel: When set, run() returns within one poll interval
        """
        self.root = Path(os.path.abspath(root))
        self.callback = callback
        self.config = config or WatcherConfig()
        self.cancel = cancel
        self._inotify: Optional[Inotify] = None
        self._wd_to_path: Dict[int, Path] = {}
        self._path_to_wd: Dict[Path, int] = {}

    def run(self) -> None:
        """
        Watch until cancelled (returns None) or until an error occurs.

        Raises:
            WatchRootDeletedError: If the root directory is deleted
            WatcherError: On any unrecoverable OS-level error
            Exception: Anything raised by the callback, unchanged
        """
        try:
            info = os.stat(self.root)
        except OSError as e:
            raise WatcherError(f"could not stat watch target '{self.root}': {e}") from e
        if not stat.S_ISDIR(info.st_mode):
            raise WatcherError(f"watch target is not a directory: {self.root}")

        try:
            inotify = Inotify()
        except OSError as e:
            raise WatcherError(f"could not create inotify instance: {e}") from e

        with inotify:
            self._inotify = inotify
            try:
                # Sets up watches on the whole existing tree (and may call the
                # callback many times) but never reports the root itself
                self._add(self.root)
                self._loop()
            finally:
                self._inotify = None
                self._wd_to_path.clear()
                self._path_to_wd.clear()

    def watched_directories(self):
        """Return the set of directories that currently have a kernel watch."""
        return set(self._path_to_wd)

    def _loop(self) -> None:
        poller = select.poll()
        poller.register(self._inotify.fileno(), select.POLLIN | select.POLLPRI)
        timeout_ms = None
        if self.cancel is not None:
            timeout_ms = int(self.config.poll_interval * 1000)

        buf = bytearray()
        while self.cancel is None or not self.cancel.is_set():
            try:
                ready = poller.poll(timeout_ms)
            except OSError as e:
                raise WatcherError(f"poll() error: {e}") from e
            if not ready:
                continue

            try:
                data = self._inotify.read(self.config.read_buffer_size)
            except OSError as e:
                raise WatcherError(f"error reading inotify descriptor: {e}") from e
            buf += data

            records, consumed = decode_records(buf)
            del buf[:consumed]
            for record in records:
                self._dispatch(record)

    def _dispatch(self, record: InotifyRecord) -> None:
        if record.has(IN_Q_OVERFLOW):
            raise WatcherError(f"inotify event queue overflowed while watching '{self.root}'")

        parent = self._wd_to_path.get(record.wd)
        if parent is None:
            raise WatcherError(f"event for unrecognized watch descriptor {record.wd}")
        path = parent / record.name if record.name else parent

        if record.has(IN_IGNORED):
            self._forget_descriptor(record.wd)
            if path == self.root:
                raise WatchRootDeletedError(self.root)
            # The parent's watch reports the matching DELETE
            return

        event_type = _classify(record.mask)
        if event_type is None:
            return
        if self.config.should_ignore(path):
            return
        self._apply(WatchEvent(event_type, path, record.is_directory))

    def _apply(self, event: WatchEvent) -> None:
        if event.event_type is EventType.MODIFY:
            self.callback(event)
            return

        if event.event_type is EventType.DELETE:
            self._unwatch(event.path)
            self.callback(event)
            return

        # A directory and its child created in quick succession: the child can
        # be found both by the parent's scan and by the parent's kernel watch
        if event.path in self._path_to_wd:
            return

        self.callback(event)
        if event.is_directory:
            self._add(event.path)

    def _add(self, path: Path) -> None:
        """Watch `path`, then report and recurse into everything already in it."""
        try:
            wd = self._inotify.add_watch(str(path))
        except OSError as e:
            if self._is_benign(e, path):
                return
            raise WatcherError(f"could not add watch on '{path}': {e}") from e

        previous = self._wd_to_path.get(wd)
        if previous is not None and previous != path:
            self._path_to_wd.pop(previous, None)
        self._wd_to_path[wd] = path
        self._path_to_wd[path] = wd
        logger.debug(f"Watching {path} (wd={wd})")

        try:
            with os.scandir(path) as it:
                entries = list(it)
        except OSError as e:
            if self._is_benign(e, path):
                return
            raise WatcherError(f"could not read contents of directory '{path}': {e}") from e

        for entry in entries:
            child = path / entry.name
            if self.config.should_ignore(child):
                continue
            try:
                is_dir = entry.is_dir(follow_symlinks=False)
            except OSError as e:
                if self._is_benign(e, child):
                    continue
                raise WatcherError(f"could not stat '{child}': {e}") from e
            self._apply(WatchEvent(EventType.CREATE, child, is_dir))

    def _unwatch(self, path: Path) -> None:
        """Drop the watches on `path` and everything below it."""
        stale = [p for p in self._path_to_wd if p == path or path in p.parents]
        for p in stale:
            wd = self._path_to_wd.pop(p)
            try:
                self._inotify.rm_watch(wd)
            except OSError as e:
                # EINVAL: the kernel already removed the watch
                if e.errno != errno.EINVAL:
                    raise WatcherError(f"could not remove watch on '{p}': {e}") from e

    def _forget_descriptor(self, wd: int) -> None:
        path = self._wd_to_path.pop(wd, None)
        if path is not None and self._path_to_wd.get(path) == wd:
            del self._path_to_wd[path]

    def _is_benign(self, error: OSError, path: Path) -> bool:
        """A missing non-root path raced with a delete whose event will follow."""
        return isinstance(error, FileNotFoundError) and path != self.root


def watch(
    root: Union[str, Path],
    on_event: EventCallback,
    cancel: Optional[threading.Event] = None,
    config: Optional[WatcherConfig] = None,
) -> None:
    """
    Watch every directory under `root`, calling `on_event` with each change.

    Blocks until `cancel` is set or an error occurs. See DirectoryWatcher.run.
    """
    DirectoryWatcher(root, on_event, config=config, cancel=cancel).run()
