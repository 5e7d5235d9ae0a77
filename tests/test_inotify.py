"""Tests for the inotify record decoder."""

import os
import struct

import pytest

from src.watcher.inotify import (
    HEADER,
    IN_CREATE,
    IN_ISDIR,
    IN_MODIFY,
    Inotify,
    InotifyDecodeError,
    decode_record,
    decode_records,
)


def _record(wd, mask, name=b"", cookie=0, pad_to=16):
    """Build a raw record the way the kernel lays it out (null-padded name)."""
    if name:
        padded = len(name) + 1
        padded += (-padded) % pad_to
        name = name + b"\0" * (padded - len(name))
    return struct.pack("=iIII", wd, mask, cookie, len(name)) + name


class TestDecodeRecord:
    """Tests for decode_record."""

    def test_header_size(self):
        assert HEADER.size == 16

    def test_decode_without_name(self):
        buf = _record(3, IN_MODIFY)

        consumed, record = decode_record(buf)

        assert consumed == 16
        assert record.wd == 3
        assert record.mask == IN_MODIFY
        assert record.name == ""

    def test_decode_strips_padding(self):
        buf = _record(1, IN_CREATE | IN_ISDIR, b"subdir")

        consumed, record = decode_record(buf)

        assert consumed == len(buf)
        assert record.name == "subdir"
        assert record.is_directory
        assert record.has(IN_CREATE)
        assert not record.has(IN_MODIFY)

    def test_decode_at_offset(self):
        buf = _record(1, IN_MODIFY, b"a.txt") + _record(2, IN_CREATE, b"b.txt")
        first_size, _ = decode_record(buf)

        _, record = decode_record(buf, first_size)

        assert record.wd == 2
        assert record.name == "b.txt"

    def test_partial_header_returns_none(self):
        buf = _record(1, IN_MODIFY, b"file")

        assert decode_record(buf[:10]) is None

    def test_partial_name_returns_none(self):
        buf = _record(1, IN_MODIFY, b"file")

        assert decode_record(buf[:20]) is None

    def test_impossible_name_length_raises(self):
        buf = struct.pack("=iIII", 1, IN_MODIFY, 0, 100000)

        with pytest.raises(InotifyDecodeError):
            decode_record(buf)

    def test_non_utf8_name(self):
        buf = _record(1, IN_CREATE, b"caf\xe9")

        _, record = decode_record(buf)

        assert os.fsencode(record.name) == b"caf\xe9"


class TestDecodeRecords:
    """Tests for decode_records."""

    def test_decode_many(self):
        buf = b"".join(_record(1, IN_MODIFY, f"f{i}".encode()) for i in range(5))

        records, consumed = decode_records(buf)

        assert [r.name for r in records] == ["f0", "f1", "f2", "f3", "f4"]
        assert consumed == len(buf)

    def test_keeps_trailing_partial_record(self):
        complete = _record(1, IN_MODIFY, b"done")
        partial = _record(1, IN_MODIFY, b"split")
        buf = bytearray(complete + partial[:7])

        records, consumed = decode_records(buf)

        assert [r.name for r in records] == ["done"]
        assert consumed == len(complete)

        # The rest of the record arrives with the next read
        del buf[:consumed]
        buf += partial[7:]
        records, consumed = decode_records(buf)
        assert [r.name for r in records] == ["split"]
        assert consumed == len(buf)

    def test_empty_buffer(self):
        assert decode_records(b"") == ([], 0)


class TestInotify:
    """Tests for the Inotify handle against the real kernel."""

    def test_add_watch_and_read(self, tmp_path):
        with Inotify() as inotify:
            wd = inotify.add_watch(str(tmp_path))
            (tmp_path / "new.txt").write_text("x")

            records, _ = decode_records(inotify.read(4096))

        assert any(r.wd == wd and r.name == "new.txt" and r.has(IN_CREATE) for r in records)

    def test_add_watch_missing_path(self, tmp_path):
        with Inotify() as inotify:
            with pytest.raises(FileNotFoundError):
                inotify.add_watch(str(tmp_path / "missing"))

    def test_close_is_idempotent(self):
        inotify = Inotify()
        inotify.close()
        inotify.close()
        assert inotify.fileno() == -1
