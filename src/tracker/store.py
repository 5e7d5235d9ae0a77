"""
SQLite-backed store for watches and ticks.
"""

import logging
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from .exceptions import AlreadyWatchedError, StoreError
from .models import TickRow, WatchRow

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """Many concurrent readers or one exclusive writer."""

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writing = False

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writing:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writing or self._readers:
                self._cond.wait()
            self._writing = True
        try:
            yield
        finally:
            with self._cond:
                self._writing = False
                self._cond.notify_all()


def _is_nested(a: str, b: str) -> bool:
    """True if a and b are the same directory or one contains the other."""
    path_a, path_b = Path(a), Path(b)
    return path_a == path_b or path_a in path_b.parents or path_b in path_a.parents


class TrackerStore:
    """
    Durable store for the desired watch set and the recorded ticks.

    Features:
    - Thread-local connections (WAL mode)
    - Reads run concurrently, writes are exclusive
    - Tick + last-write updates applied atomically
    """

    def __init__(self, db_path: Path):
        """
        Open (and if needed create) the store.

        Args:
            db_path: Path to the SQLite database file
        """
        self.db_path = Path(db_path)
        self._lock = ReadWriteLock()
        self._local = threading.local()
        self._connections: List[sqlite3.Connection] = []
        self._connections_lock = threading.Lock()
        self._closed = False

        self._init_db()

    def _get_connection(self) -> sqlite3.Connection:
        """Get a thread-local database connection."""
        conn = getattr(self._local, "conn", None)
        if conn is None:
            try:
                conn = sqlite3.connect(
                    str(self.db_path),
                    check_same_thread=False,
                    isolation_level=None,  # Autocommit mode
                )
                conn.execute("PRAGMA journal_mode=WAL")
                conn.execute("PRAGMA synchronous=NORMAL")
            except sqlite3.Error as e:
                raise StoreError(f"could not open database at {self.db_path}: {e}") from e
            self._local.conn = conn
            with self._connections_lock:
                self._connections.append(conn)
        return conn

    def _init_db(self) -> None:
        """Initialize the database schema."""
        with self._write() as conn:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS ticks (
                    time INTEGER PRIMARY KEY ASC,
                    label TEXT NOT NULL
                );
                CREATE TABLE IF NOT EXISTS watches (
                    dir TEXT PRIMARY KEY,
                    label TEXT NOT NULL,
                    last_write INTEGER NOT NULL
                );
                CREATE INDEX IF NOT EXISTS idx_watches_last_write
                ON watches(last_write);
            """)

    @contextmanager
    def _read(self) -> Iterator[sqlite3.Connection]:
        self._check_closed()
        with self._lock.read_locked():
            try:
                yield self._get_connection()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    @contextmanager
    def _write(self) -> Iterator[sqlite3.Connection]:
        self._check_closed()
        with self._lock.write_locked():
            try:
                yield self._get_connection()
            except sqlite3.Error as e:
                raise StoreError(str(e)) from e

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Write-locked transaction, rolled back if anything in it fails."""
        with self._write() as conn:
            conn.execute("BEGIN")
            try:
                yield conn
                conn.execute("COMMIT")
            except Exception:
                conn.execute("ROLLBACK")
                raise

    def _check_closed(self) -> None:
        if self._closed:
            raise StoreError("Store is closed")

    # Ticks

    def insert_tick_if_absent(self, t: int, label: str) -> None:
        """Record a tick at `t`; a tick already recorded at `t` wins."""
        with self._write() as conn:
            self._insert_tick(conn, t, label)

    def update_last_write(self, dir: str, t: int) -> None:
        """Set the last write time of the watch on `dir`."""
        with self._write() as conn:
            self._update_last_write(conn, dir, t)

    def record_watch_tick(self, dir: str, label: str, t: int) -> bool:
        """
        Record a tick for a watch and update its last write time atomically.

        Several watches may try to record a tick for the same second (e.g.
        right after startup, when every watch scans its tree), so the tick
        insert ignores conflicts. If either write fails, neither is applied.

        Returns:
            False if the watch no longer exists, in which case nothing is written
        """
        with self._transaction() as conn:
            if self._update_last_write(conn, dir, t) == 0:
                return False
            self._insert_tick(conn, t, label)
            return True

    def list_ticks(self, start: int, end: int) -> List[TickRow]:
        """Return ticks with start <= time <= end, ordered by time."""
        with self._read() as conn:
            cursor = conn.execute(
                "SELECT time, label FROM ticks WHERE time BETWEEN ? AND ? ORDER BY time ASC",
                (start, end),
            )
            return [TickRow(time=row[0], label=row[1]) for row in cursor.fetchall()]

    def _insert_tick(self, conn: sqlite3.Connection, t: int, label: str) -> None:
        conn.execute("INSERT OR IGNORE INTO ticks (time, label) VALUES (?, ?)", (t, label))

    def _update_last_write(self, conn: sqlite3.Connection, dir: str, t: int) -> int:
        return conn.execute("UPDATE watches SET last_write = ? WHERE dir = ?", (t, dir)).rowcount

    # Watches

    def list_watches(self) -> List[WatchRow]:
        """Return every desired watch, ordered by dir."""
        with self._read() as conn:
            return self._list_watches(conn)

    def get_watch(self, dir: str) -> Optional[WatchRow]:
        with self._read() as conn:
            row = conn.execute(
                "SELECT dir, label, last_write FROM watches WHERE dir = ?", (dir,)
            ).fetchone()
        if row is None:
            return None
        return WatchRow(dir=row[0], label=row[1], last_write=row[2])

    def upsert_watch(self, dir: str, label: str, last_write: int) -> None:
        """Insert a watch, or replace the label and last write of an existing one."""
        with self._write() as conn:
            conn.execute(
                "INSERT INTO watches (dir, label, last_write) VALUES (?, ?, ?) "
                "ON CONFLICT(dir) DO UPDATE SET label = excluded.label, "
                "last_write = excluded.last_write",
                (dir, label, last_write),
            )

    def add_watch(self, dir: str, label: str, last_write: int) -> None:
        """
        Insert a new watch unless it would nest with an existing one.

        The check and the insert happen under one write lock, so two concurrent
        requests for overlapping directories cannot both succeed.

        Raises:
            AlreadyWatchedError: If `dir` equals, contains, or is inside an
                existing watch
        """
        with self._write() as conn:
            for existing in self._list_watches(conn):
                if _is_nested(dir, existing.dir):
                    raise AlreadyWatchedError(existing=existing.dir, requested=dir)
            conn.execute(
                "INSERT INTO watches (dir, label, last_write) VALUES (?, ?, ?)",
                (dir, label, last_write),
            )

    def evict_oldest_watches(self, max_count: int) -> int:
        """
        Delete the least recently written watches beyond `max_count`.

        Returns:
            Number of watches deleted
        """
        with self._write() as conn:
            return self._evict(conn, max_count)

    def evict_and_list_watches(self, max_count: int) -> List[WatchRow]:
        """Evict down to `max_count` and return the remaining watches, ordered by dir."""
        with self._write() as conn:
            self._evict(conn, max_count)
            return self._list_watches(conn)

    def _evict(self, conn: sqlite3.Connection, max_count: int) -> int:
        cursor = conn.execute(
            """
            DELETE FROM watches WHERE dir IN (
                SELECT dir FROM watches
                ORDER BY last_write ASC, dir ASC
                LIMIT MAX(0, (SELECT COUNT(*) FROM watches) - ?)
            )
            """,
            (max_count,),
        )
        if cursor.rowcount > 0:
            logger.info(f"Evicted {cursor.rowcount} watch(es) over the limit of {max_count}")
        return cursor.rowcount

    def _list_watches(self, conn: sqlite3.Connection) -> List[WatchRow]:
        cursor = conn.execute("SELECT dir, label, last_write FROM watches ORDER BY dir ASC")
        return [
            WatchRow(dir=row[0], label=row[1], last_write=row[2])
            for row in cursor.fetchall()
        ]

    def clear(self) -> None:
        """Delete every tick and every watch."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM ticks")
            conn.execute("DELETE FROM watches")

    def close(self) -> None:
        """Close the store and release resources."""
        if self._closed:
            return

        self._closed = True
        with self._connections_lock:
            for conn in self._connections:
                conn.close()
            self._connections.clear()
        self._local = threading.local()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False


def open_store(db_path: Path, attempts: int = 5, backoff: float = 1.0) -> TrackerStore:
    """
    Open the store, retrying with exponential backoff.

    Raises:
        StoreError: If the store still cannot be opened after `attempts` tries
    """
    delay = backoff
    for attempt in range(1, attempts + 1):
        try:
            return TrackerStore(db_path)
        except StoreError as e:
            if attempt == attempts:
                raise
            logger.warning(
                f"Waiting for database at {db_path} (attempt {attempt}/{attempts}): {e}"
            )
            time.sleep(delay)
            delay *= 2
    raise StoreError(f"could not open database at {db_path}")
