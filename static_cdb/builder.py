# ==================================================
# static_cdb/builder.py
# ==================================================
from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import BinaryIO, Iterable

from .const import *
from .errors import (BuilderFinished, CDBError, CDBIOError, FileTooLarge,
                     KeyTooLarge, ValueTooLarge)
from .hashing import bucket_of, cdb_hash
from .layout import build_slot_table, encode_header, pack_record_header

log = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".tmp"


def _as_bytes(data, what: str) -> bytes:
    if isinstance(data, bytes):
        return data
    if isinstance(data, (bytearray, memoryview)):
        return bytes(data)
    raise TypeError(f"{what} must be bytes-like, not {type(data).__name__}")


class CDBBuilder:
    """
    Two-pass cdb maker over a seekable binary sink.

    Records are streamed straight to the sink; (hash, position) pairs are
    kept per bucket until ``finish()`` writes the 256 slot tables and then
    seeks back to fill in the header. Short writes are retried; a failed
    write leaves the builder broken, so a partial file is never finished.
    """

    def __init__(self, sink: BinaryIO):
        self.sink = sink
        self._buckets: list[list[tuple[int, int]]] | None = [[] for _ in range(BUCKETS)]
        self.count = 0
        self._error: str | None = None
        try:
            sink.seek(0)
            self._write(b"\0" * HEADER_SIZE)  # placeholder header
        except OSError as e:
            raise CDBIOError(f"cannot reserve header: {e}") from e
        self.pos = HEADER_SIZE

    # ------------------------------------------------------------------
    @property
    def finished(self) -> bool:
        return self._buckets is None

    def _check_open(self):
        if self._error is not None:
            raise CDBIOError(f"builder is broken by an earlier failure: {self._error}")
        if self._buckets is None:
            raise BuilderFinished("builder already finished")

    def _write(self, data: bytes):
        view = memoryview(data)
        while view:
            n = self.sink.write(view)
            if not n:
                raise OSError(f"sink accepted no bytes ({len(view)} pending)")
            view = view[n:]

    # ------------------------------------------------------------------
    def put(self, key, value):
        """Append one record. Duplicate keys are kept in call order."""
        self._check_open()
        key = _as_bytes(key, "key")
        value = _as_bytes(value, "value")
        if len(key) >= MAX_UINT32:
            raise KeyTooLarge(f"key of {len(key)} bytes")
        if len(value) >= MAX_UINT32:
            raise ValueTooLarge(f"value of {len(value)} bytes")
        end = self.pos + RECORD_HDR_SIZE + len(key) + len(value)
        if end > MAX_FILE_SIZE:
            raise FileTooLarge(f"record would end at {end}")

        try:
            self._write(pack_record_header(len(key), len(value)))
            self._write(key)
            self._write(value)
        except OSError as e:
            self._error = str(e)
            raise CDBIOError(f"write failed at {self.pos}: {e}") from e

        h = cdb_hash(key)
        self._buckets[bucket_of(h)].append((h, self.pos))
        self.pos = end
        self.count += 1

    def put_all(self, items: Iterable[tuple[bytes, bytes]]):
        put = self.put
        for key, value in items:
            put(key, value)

    # ------------------------------------------------------------------
    def finish(self) -> int:
        """Write the slot tables and the header. Returns the file size."""
        self._check_open()
        buckets, self._buckets = self._buckets, None

        total_slots = sum(2 * len(entries) for entries in buckets)
        if self.pos + total_slots * SLOT_SIZE > MAX_FILE_SIZE:
            raise FileTooLarge(f"{total_slots} slots do not fit after {self.pos}")

        header = []
        try:
            for entries in buckets:
                # empty buckets point at the current position with no slots
                header.append((self.pos, 2 * len(entries)))
                if not entries:
                    continue
                table = build_slot_table(entries)
                self._write(table.tobytes())
                self.pos += table.shape[0] * SLOT_SIZE

            self.sink.flush()
            self.sink.seek(0)
            self._write(encode_header(header))
            self.sink.flush()
        except OSError as e:
            self._error = str(e)
            raise CDBIOError(f"cannot finish cdb: {e}") from e

        log.debug("finished cdb: %d records, %d slots, %d bytes, %d empty buckets",
                  self.count, total_slots, self.pos,
                  sum(1 for entries in buckets if not entries))
        return self.pos


class CDBWriter:
    """
    Build a cdb in ``<path><suffix>`` and rename it over ``path`` once
    finished. An unfinished writer removes its temporary file on close.

        with CDBWriter("data.cdb") as w:
            w.put(b"one", b"Hello")
    """

    def __init__(self, path: str | os.PathLike, suffix: str = DEFAULT_SUFFIX):
        self.path = Path(path)
        self.tmp_path = self.path.with_name(self.path.name + suffix)
        try:
            self.file = open(self.tmp_path, "wb")
        except OSError as e:
            raise CDBIOError(f"cannot create {self.tmp_path}: {e}") from e
        try:
            self.builder = CDBBuilder(self.file)
        except CDBIOError:
            self._discard()
            raise
        self.done = False

    # ------------------------------------------------------------------
    def put(self, key, value):
        self.builder.put(key, value)

    def put_all(self, items):
        self.builder.put_all(items)

    def set_permissions(self, mode: int):
        """chmod the temporary file; must happen before ``finish()``."""
        if self.done or self.builder.finished:
            raise BuilderFinished("writer already finished")
        os.chmod(self.tmp_path, mode)

    def finish(self) -> int:
        try:
            size = self.builder.finish()
            self.file.close()
            os.replace(self.tmp_path, self.path)
        except CDBError:
            self._discard()
            raise
        except OSError as e:
            self._discard()
            raise CDBIOError(f"cannot commit {self.path}: {e}") from e
        self.done = True
        log.debug("wrote %s (%d bytes)", self.path, size)
        return size

    # ------------------------------------------------------------------
    def _discard(self):
        self.file.close()
        try:
            os.unlink(self.tmp_path)
        except FileNotFoundError:
            pass

    def close(self):
        """Abort an unfinished build, removing the temporary file."""
        if self.done:
            return
        if self.file.closed and not self.tmp_path.exists():
            return
        log.warning("discarding unfinished cdb %s", self.tmp_path)
        self._discard()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None and not self.done:
            self.finish()
        else:
            self.close()
