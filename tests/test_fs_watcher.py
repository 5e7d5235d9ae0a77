"""Tests for the recursive directory watcher (uses real inotify)."""

import shutil
import threading
import time
from pathlib import Path

import pytest

from src.watcher.config import WatcherConfig
from src.watcher.exceptions import WatcherError, WatchRootDeletedError
from src.watcher.fs_watcher import DirectoryWatcher, watch
from src.watcher.models import EventType, WatchEvent

from tests.fakes import wait_for


class RunningWatcher:
    """Runs a DirectoryWatcher on a background thread and records its events."""

    def __init__(self, root: Path, callback=None):
        self.events = []
        self.error = None
        self.cancel = threading.Event()
        self._lock = threading.Lock()
        self._callback = callback
        self.watcher = DirectoryWatcher(
            root,
            self._on_event,
            config=WatcherConfig(poll_interval=0.05),
            cancel=self.cancel,
        )
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _on_event(self, event: WatchEvent):
        with self._lock:
            self.events.append(event)
        if self._callback:
            self._callback(event)

    def _run(self):
        try:
            self.watcher.run()
        except Exception as e:
            self.error = e

    def start(self):
        self.thread.start()
        # The initial scan runs before the first poll
        time.sleep(0.2)
        return self

    def stop(self):
        self.cancel.set()
        self.thread.join(timeout=2.0)

    def snapshot(self):
        with self._lock:
            return list(self.events)

    def has(self, event_type, path):
        return any(e.event_type is event_type and e.path == path for e in self.snapshot())

    def count(self, event_type, path):
        return sum(1 for e in self.snapshot() if e.event_type is event_type and e.path == path)


@pytest.fixture
def root(tmp_path):
    path = tmp_path / "root"
    path.mkdir()
    return path


class TestInitialScan:
    """Tests for the scan that runs when a watch starts."""

    def test_reports_existing_tree(self, root):
        (root / "a").mkdir()
        (root / "a" / "b").mkdir()
        (root / "a" / "b" / "file.txt").write_text("x")
        (root / "top.txt").write_text("x")

        running = RunningWatcher(root).start()
        try:
            events = running.snapshot()
            created = {e.path for e in events if e.event_type is EventType.CREATE}
            assert created == {
                root / "a",
                root / "a" / "b",
                root / "a" / "b" / "file.txt",
                root / "top.txt",
            }
            assert running.watcher.watched_directories() == {
                root,
                root / "a",
                root / "a" / "b",
            }
        finally:
            running.stop()

    def test_root_itself_not_reported(self, root):
        running = RunningWatcher(root).start()
        try:
            assert all(e.path != root for e in running.snapshot())
        finally:
            running.stop()

    def test_directories_flagged(self, root):
        (root / "dir").mkdir()
        (root / "file").write_text("x")

        running = RunningWatcher(root).start()
        try:
            by_path = {e.path: e for e in running.snapshot()}
            assert by_path[root / "dir"].is_directory
            assert not by_path[root / "file"].is_directory
        finally:
            running.stop()

    def test_ignored_entries_not_scanned(self, root):
        (root / ".git").mkdir()
        (root / ".git" / "HEAD").write_text("ref")
        (root / "notes.txt.swp").write_text("x")
        (root / "kept.txt").write_text("x")

        running = RunningWatcher(root).start()
        try:
            paths = {e.path for e in running.snapshot()}
            assert paths == {root / "kept.txt"}
            assert root / ".git" not in running.watcher.watched_directories()
        finally:
            running.stop()


class TestEvents:
    """Tests for events reported after the watch is established."""

    def test_file_create_modify_delete(self, root):
        running = RunningWatcher(root).start()
        try:
            target = root / "test.txt"
            target.write_text("hello")
            assert wait_for(lambda: running.has(EventType.CREATE, target))
            assert wait_for(lambda: running.has(EventType.MODIFY, target))

            target.unlink()
            assert wait_for(lambda: running.has(EventType.DELETE, target))
        finally:
            running.stop()
        assert running.error is None

    def test_new_subdirectory_is_watched(self, root):
        running = RunningWatcher(root).start()
        try:
            sub = root / "sub"
            sub.mkdir()
            assert wait_for(lambda: sub in running.watcher.watched_directories())

            (sub / "deep.txt").write_text("x")
            assert wait_for(lambda: running.has(EventType.CREATE, sub / "deep.txt"))
        finally:
            running.stop()

    def test_directory_and_child_reported_once(self, root):
        running = RunningWatcher(root).start()
        try:
            parent = root / "parent"
            child = parent / "child"
            grandchild = child / "grandchild"
            grandchild.mkdir(parents=True)

            assert wait_for(lambda: running.has(EventType.CREATE, grandchild))
            time.sleep(0.2)
            assert running.count(EventType.CREATE, parent) == 1
            assert running.count(EventType.CREATE, child) == 1
            assert running.count(EventType.CREATE, grandchild) == 1
        finally:
            running.stop()

    def test_subdirectory_delete_is_ordinary_event(self, root):
        sub = root / "sub"
        sub.mkdir()
        (sub / "f.txt").write_text("x")

        running = RunningWatcher(root).start()
        try:
            shutil.rmtree(sub)
            assert wait_for(lambda: running.has(EventType.DELETE, sub))
            assert wait_for(lambda: sub not in running.watcher.watched_directories())
            assert running.error is None
            assert running.thread.is_alive()
        finally:
            running.stop()

    def test_moved_in_is_create_and_moved_out_is_delete(self, root, tmp_path):
        outside = tmp_path / "outside.txt"
        outside.write_text("x")

        running = RunningWatcher(root).start()
        try:
            inside = root / "inside.txt"
            outside.rename(inside)
            assert wait_for(lambda: running.has(EventType.CREATE, inside))

            inside.rename(tmp_path / "gone.txt")
            assert wait_for(lambda: running.has(EventType.DELETE, inside))
        finally:
            running.stop()

    def test_ignored_names_filtered(self, root):
        running = RunningWatcher(root).start()
        try:
            (root / "file.swp").write_text("x")
            (root / "real.txt").write_text("x")
            assert wait_for(lambda: running.has(EventType.CREATE, root / "real.txt"))
            assert not running.has(EventType.CREATE, root / "file.swp")
        finally:
            running.stop()


class TestLifecycle:
    """Tests for starting, cancelling and failing."""

    def test_cancel_returns(self, root):
        running = RunningWatcher(root).start()
        running.stop()

        assert not running.thread.is_alive()
        assert running.error is None
        assert running.watcher.watched_directories() == set()

    def test_root_deletion_raises(self, root):
        (root / "sub").mkdir()
        running = RunningWatcher(root).start()

        shutil.rmtree(root)
        running.thread.join(timeout=3.0)

        assert isinstance(running.error, WatchRootDeletedError)
        assert running.error.root == root

    def test_missing_root(self, tmp_path):
        with pytest.raises(WatcherError):
            watch(tmp_path / "missing", lambda e: None)

    def test_root_is_file(self, tmp_path):
        target = tmp_path / "file.txt"
        target.write_text("x")

        with pytest.raises(WatcherError, match="not a directory"):
            watch(target, lambda e: None)

    def test_callback_error_propagates(self, root):
        (root / "existing.txt").write_text("x")

        def explode(event):
            raise RuntimeError("callback failed")

        with pytest.raises(RuntimeError, match="callback failed"):
            watch(root, explode, cancel=threading.Event())

    def test_relative_root_made_absolute(self, root, monkeypatch):
        monkeypatch.chdir(root.parent)

        watcher = DirectoryWatcher("root", lambda e: None)

        assert watcher.root.is_absolute()
        assert watcher.root.samefile(root)
