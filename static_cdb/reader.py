# ==================================================
# static_cdb/reader.py
# ==================================================
"""
Read-only access to a finished cdb file.

A reader never mutates shared state after ``__init__``: lookups and scans
keep their cursor in local variables, so one reader can serve any number of
threads as long as the underlying buffer allows concurrent reads (mmap and
bytes both do).
"""
from __future__ import annotations

import logging
import mmap
import os
from typing import BinaryIO, Iterator, Optional

from .const import *
from .errors import CDBError, CDBIOError, CorruptFile, MalformedHeader
from .hashing import bucket_of, cdb_hash, start_slot
from .layout import (decode_header, is_empty_slot, read_record,
                     unpack_record_header, unpack_slot)

log = logging.getLogger(__name__)


class CDBReader:
    """
    Usage:
        with CDBReader.open("data.cdb") as cdb:
            cdb.get(b"one")             # first value or None
            list(cdb.get_all(b"one"))   # every value, insertion order
            for key, value in cdb.iter():
                ...
    """

    def __init__(self, buf, *, _file: BinaryIO | None = None):
        self._buf = buf
        self._file = _file
        self.size = len(buf)
        self._len: int | None = None
        self.closed = False
        if self.size < HEADER_SIZE:
            raise MalformedHeader(f"file of {self.size} bytes has no room for a header")
        if self.size > MAX_FILE_SIZE:
            raise MalformedHeader(f"file of {self.size} bytes exceeds 32-bit offsets")
        self.header = decode_header(buf)
        self._validate_header()
        # the first slot table starts right after the last record
        self.records_end = self.header[0][0]
        log.debug("opened cdb: %d bytes, %d slots", self.size, sum(self.bucket_sizes()))

    # ------------------------------------------------------------------
    @classmethod
    def open(cls, path: str | os.PathLike, use_mmap: bool = True) -> "CDBReader":
        try:
            f = open(path, "rb")
        except OSError as e:
            raise CDBIOError(f"cannot open {path}: {e}") from e
        if not use_mmap:
            with f:
                try:
                    data = f.read()
                except OSError as e:
                    raise CDBIOError(f"cannot read {path}: {e}") from e
            return cls(data)
        try:
            size = os.fstat(f.fileno()).st_size
            if size < HEADER_SIZE:
                raise MalformedHeader(f"{path}: {size} bytes is shorter than the header")
            mm = mmap.mmap(f.fileno(), 0, access=mmap.ACCESS_READ)
        except OSError as e:
            f.close()
            raise CDBIOError(f"cannot read {path}: {e}") from e
        except CDBError:
            f.close()
            raise
        try:
            return cls(mm, _file=f)
        except CDBError:
            mm.close()
            f.close()
            raise

    @classmethod
    def from_file(cls, f: BinaryIO) -> "CDBReader":
        """Load a whole cdb from an open binary file object."""
        try:
            f.seek(0)
            data = f.read()
        except OSError as e:
            raise CDBIOError(f"cannot read cdb: {e}") from e
        return cls(data)

    def close(self):
        self.closed = True
        if isinstance(self._buf, mmap.mmap):
            self._buf.close()
        if self._file is not None:
            self._file.close()
            self._file = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # ------------------------------------------------------------------
    def _validate_header(self):
        first = self.header[0][0]
        if first < HEADER_SIZE:
            raise MalformedHeader(f"records end at {first}, inside the header")
        for bucket, (offset, slots) in enumerate(self.header):
            if offset < first:
                raise MalformedHeader(
                    f"bucket {bucket} table at {offset} overlaps the records")
            if offset + slots * SLOT_SIZE > self.size:
                raise MalformedHeader(
                    f"bucket {bucket} table {offset}+{slots} slots runs past "
                    f"{self.size} bytes")

    def _check_open(self):
        if self.closed:
            raise CDBIOError("cdb reader is closed")

    def bucket_sizes(self) -> list[int]:
        return [slots for _, slots in self.header]

    def _record_at(self, pos: int) -> tuple[bytes, bytes, int]:
        self._check_open()
        if pos < HEADER_SIZE:
            raise CorruptFile(f"slot points at {pos}, inside the header")
        return read_record(self._buf, pos, self.records_end)

    # ------------------------------------------------------------------
    def _probe(self, key: bytes) -> Iterator[int]:
        """Yield the position of every record stored under ``key``."""
        self._check_open()
        key = bytes(key)
        h = cdb_hash(key)
        offset, slots = self.header[bucket_of(h)]
        if not slots:
            return
        buf, end = self._buf, self.records_end
        i = start_slot(h, slots)
        for _ in range(slots):
            stored, pos = unpack_slot(buf, offset, i)
            if is_empty_slot(stored, pos):
                return
            if stored == h:
                if pos < HEADER_SIZE:
                    raise CorruptFile(f"slot points at {pos}, inside the header")
                klen, _ = unpack_record_header(buf, pos, end)
                k_off = pos + RECORD_HDR_SIZE
                if klen == len(key) and buf[k_off:k_off + klen] == key:
                    yield pos
            i += 1
            if i == slots:
                i = 0

    def _value_at(self, pos: int) -> bytes:
        return self._record_at(pos)[1]

    def get(self, key, default: Optional[bytes] = None) -> Optional[bytes]:
        """First value stored under ``key``, or ``default``."""
        for pos in self._probe(key):
            return self._value_at(pos)
        return default

    def get_all(self, key) -> Iterator[bytes]:
        """Every value stored under ``key``, in insertion order."""
        for pos in self._probe(key):
            yield self._value_at(pos)

    find = get_all

    # ------------------------------------------------------------------
    def iter(self) -> Iterator[tuple[bytes, bytes]]:
        """All records in storage order. Does not touch the hash tables."""
        self._check_open()
        pos, end = HEADER_SIZE, self.records_end
        while pos < end:
            self._check_open()
            key, value, pos = read_record(self._buf, pos, end)
            yield key, value

    items = iter

    def keys(self) -> Iterator[bytes]:
        for key, _ in self.iter():
            yield key

    def values(self) -> Iterator[bytes]:
        for _, value in self.iter():
            yield value

    def iter_slots(self) -> Iterator[tuple[int, int, int, int]]:
        """(bucket, slot, hash, position) for every occupied slot, bucket order."""
        for bucket, (offset, slots) in enumerate(self.header):
            self._check_open()
            for i in range(slots):
                h, pos = unpack_slot(self._buf, offset, i)
                if not is_empty_slot(h, pos):
                    yield bucket, i, h, pos

    # ------------------------------------------------------------------
    def __contains__(self, key) -> bool:
        for _ in self._probe(key):
            return True
        return False

    def __getitem__(self, key) -> bytes:
        for pos in self._probe(key):
            return self._value_at(pos)
        raise KeyError(key)

    def __iter__(self) -> Iterator[bytes]:
        return self.keys()

    def __len__(self) -> int:
        if self._len is None:
            self._len = sum(1 for _ in self.iter())
        return self._len
