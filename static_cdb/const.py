# ==================================================
# static_cdb/const.py
# ==================================================
HASH_SEED = 5381          # initial accumulator of the cdb hash
BUCKETS = 256             # hash & 0xff selects the bucket

PAIR_FMT = "<II"          # every on-disk field is a little-endian uint32 pair
PAIR_SIZE = 8

RECORD_HDR_FMT = PAIR_FMT  # key length, value length
RECORD_HDR_SIZE = PAIR_SIZE
HEADER_ENTRY_FMT = PAIR_FMT  # slot table offset, slot count
HEADER_ENTRY_SIZE = PAIR_SIZE
SLOT_FMT = PAIR_FMT       # stored hash, record position (0, 0 = empty)
SLOT_SIZE = PAIR_SIZE

HEADER_SIZE = BUCKETS * HEADER_ENTRY_SIZE  # 2048 bytes at offset 0
MAX_UINT32 = 0xFFFFFFFF
MAX_FILE_SIZE = MAX_UINT32  # positions are uint32
EMPTY_SLOT = (0, 0)
