# ==================================================
# static_cdb/hashing.py
# ==================================================
from .const import HASH_SEED, MAX_UINT32, BUCKETS


def cdb_hash(key: bytes) -> int:
    """D. J. Bernstein's cdb hash: ``h = (h * 33) ^ byte`` truncated to 32 bits."""
    h = HASH_SEED
    for b in bytes(key):
        h = (((h << 5) + h) & MAX_UINT32) ^ b
    return h


def bucket_of(h: int) -> int:
    return h % BUCKETS


def start_slot(h: int, slots: int) -> int:
    """First slot probed for hash ``h`` in a table of ``slots`` entries."""
    return (h >> 8) % slots
