"""
Thin inotify handle and binary decoder for kernel event records.

The libc entry points and mask constants are taken from watchdog's inotify
module. Records are read from the inotify file descriptor as raw bytes and
decoded here explicitly:

    struct inotify_event {
        int      wd;
        uint32_t mask;
        uint32_t cookie;
        uint32_t len;
        char     name[len];   /* null-terminated, null-padded */
    };
"""

import ctypes
import os
import struct
from dataclasses import dataclass
from typing import List, Optional, Tuple

from watchdog.observers.inotify_c import (
    InotifyConstants,
    inotify_add_watch,
    inotify_init,
    inotify_rm_watch,
)

from .exceptions import WatcherError

HEADER = struct.Struct("=iIII")

# NAME_MAX plus the terminator, rounded up for the kernel's alignment padding
MAX_NAME_LEN = 256 + HEADER.size

IN_CREATE = InotifyConstants.IN_CREATE
IN_DELETE = InotifyConstants.IN_DELETE
IN_MODIFY = InotifyConstants.IN_MODIFY
IN_MOVED_FROM = InotifyConstants.IN_MOVED_FROM
IN_MOVED_TO = InotifyConstants.IN_MOVED_TO
IN_IGNORED = InotifyConstants.IN_IGNORED
IN_ISDIR = InotifyConstants.IN_ISDIR
IN_Q_OVERFLOW = InotifyConstants.IN_Q_OVERFLOW

WATCH_MASK = (
    IN_CREATE | IN_DELETE | IN_MODIFY | IN_MOVED_FROM | IN_MOVED_TO | IN_IGNORED
)


class InotifyDecodeError(WatcherError):
    """A kernel event record could not be decoded."""
    pass


@dataclass(frozen=True)
class InotifyRecord:
    """One decoded inotify event record."""
    wd: int
    mask: int
    cookie: int
    name: str

    @property
    def is_directory(self) -> bool:
        return bool(self.mask & IN_ISDIR)

    def has(self, flag: int) -> bool:
        return bool(self.mask & flag)


def decode_record(buf: bytes, offset: int = 0) -> Optional[Tuple[int, InotifyRecord]]:
    """
    Decode a single record starting at `offset`.

    Args:
        buf: Buffer holding raw bytes read from an inotify descriptor
        offset: Position of the record's header in `buf`

    Returns:
        (consumed, record) where `consumed` is the number of bytes the record
        occupies, or None if `buf` does not yet hold the whole record

    Raises:
        InotifyDecodeError: If the header declares an impossible name length
    """
    remaining = len(buf) - offset
    if remaining < HEADER.size:
        return None

    wd, mask, cookie, name_len = HEADER.unpack_from(buf, offset)
    if name_len > MAX_NAME_LEN:
        raise InotifyDecodeError(
            f"event for watch descriptor {wd} declares a {name_len}-byte name"
        )
    if name_len > remaining - HEADER.size:
        return None

    name_start = offset + HEADER.size
    raw_name = bytes(buf[name_start:name_start + name_len]).rstrip(b"\0")
    record = InotifyRecord(
        wd=wd,
        mask=mask,
        cookie=cookie,
        name=os.fsdecode(raw_name),
    )
    return HEADER.size + name_len, record


def decode_records(buf: bytes) -> Tuple[List[InotifyRecord], int]:
    """
    Decode every complete record at the front of `buf`.

    Returns:
        (records, consumed). Bytes after `consumed` belong to a partial record
        and must be kept for the next read.
    """
    records = []
    consumed = 0
    while True:
        decoded = decode_record(buf, consumed)
        if decoded is None:
            break
        size, record = decoded
        records.append(record)
        consumed += size
    return records, consumed


def _raise_errno(message: str, path: Optional[str] = None) -> None:
    err = ctypes.get_errno()
    raise OSError(err, f"{message}: {os.strerror(err)}", path)


class Inotify:
    """An inotify instance (one kernel file descriptor and its watches)."""

    def __init__(self):
        fd = inotify_init()
        if fd == -1:
            _raise_errno("inotify_init failed")
        self._fd = fd

    def fileno(self) -> int:
        return self._fd

    def add_watch(self, path: str, mask: int = WATCH_MASK) -> int:
        """
        Register a watch on `path` and return its watch descriptor.

        Raises:
            OSError: With the errno reported by the kernel (FileNotFoundError
                if `path` no longer exists)
        """
        wd = inotify_add_watch(self._fd, os.fsencode(path), mask)
        if wd == -1:
            _raise_errno("inotify_add_watch failed", path)
        return wd

    def rm_watch(self, wd: int) -> None:
        if inotify_rm_watch(self._fd, wd) == -1:
            _raise_errno(f"inotify_rm_watch failed for descriptor {wd}")

    def read(self, size: int) -> bytes:
        return os.read(self._fd, size)

    def close(self) -> None:
        if self._fd >= 0:
            os.close(self._fd)
            self._fd = -1

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
