# ==================================================
# static_cdb/layout.py
# ==================================================
"""
Byte layout of a cdb file.

    [ header: 256 x (table offset, slot count) ]   2048 bytes at offset 0
    [ records: (klen, vlen) key value ... ]        insertion order
    [ slot tables: bucket 0 .. bucket 255 ]        (hash, position) pairs

Single fields go through ``struct``; whole tables (the header and one
bucket's slots) are numpy ``<u4`` arrays of shape (n, 2).
"""
import struct

import numpy as np

from .const import (BUCKETS, EMPTY_SLOT, HEADER_SIZE, PAIR_FMT,
                    RECORD_HDR_SIZE, SLOT_SIZE)
from .errors import MalformedHeader, MalformedRecord
from .hashing import start_slot

_pair = struct.Struct(PAIR_FMT)
U32 = np.dtype("<u4")


# ── single fields ─────────────────────────────────────────────
def pack_record_header(klen: int, vlen: int) -> bytes:
    return _pair.pack(klen, vlen)


def unpack_record_header(buf, pos: int, end: int) -> tuple[int, int]:
    """
    Decode the (klen, vlen) prefix of the record at ``pos``.

    ``end`` is the first byte past the readable record area; a record whose
    prefix or body would cross it raises MalformedRecord.
    """
    if pos + RECORD_HDR_SIZE > end:
        raise MalformedRecord(f"record header at {pos} runs past {end}")
    klen, vlen = _pair.unpack_from(buf, pos)
    if pos + RECORD_HDR_SIZE + klen + vlen > end:
        raise MalformedRecord(
            f"record at {pos} declares {klen}+{vlen} bytes, past {end}")
    return klen, vlen


def read_record(buf, pos: int, end: int) -> tuple[bytes, bytes, int]:
    """Return (key, value, next_pos) for the record at ``pos``."""
    klen, vlen = unpack_record_header(buf, pos, end)
    k_off = pos + RECORD_HDR_SIZE
    v_off = k_off + klen
    return bytes(buf[k_off:v_off]), bytes(buf[v_off:v_off + vlen]), v_off + vlen


# ── header table ──────────────────────────────────────────────
def encode_header(entries) -> bytes:
    """``entries``: 256 (offset, slots) pairs in bucket order."""
    table = np.asarray(entries, dtype=U32).reshape(BUCKETS, 2)
    return table.tobytes()


def decode_header(raw) -> list[tuple[int, int]]:
    if len(raw) < HEADER_SIZE:
        raise MalformedHeader(f"header needs {HEADER_SIZE} bytes, got {len(raw)}")
    table = np.frombuffer(bytes(raw[:HEADER_SIZE]), dtype=U32).reshape(BUCKETS, 2)
    return [(int(off), int(n)) for off, n in table.tolist()]


# ── slot tables ───────────────────────────────────────────────
def build_slot_table(entries) -> np.ndarray:
    """
    Place (hash, position) pairs into a table of ``2 * len(entries)`` slots
    by linear probing from ``(hash >> 8) % slots``. Entries are placed in
    the order given, so same-key records keep insertion order along the
    probe run.
    """
    slots = 2 * len(entries)
    table = np.zeros((slots, 2), dtype=U32)
    for h, pos in entries:
        i = start_slot(h, slots)
        # slots >= 2n, so a free slot always exists
        while table[i, 1] != 0:
            i += 1
            if i == slots:
                i = 0
        table[i, 0] = h
        table[i, 1] = pos
    return table


def unpack_slot(buf, table_offset: int, index: int) -> tuple[int, int]:
    return _pair.unpack_from(buf, table_offset + index * SLOT_SIZE)


def is_empty_slot(h: int, pos: int) -> bool:
    return (h, pos) == EMPTY_SLOT

