# ==================================================
# examples/build_store.py
# ==================================================
"""
Build a cdb file from ``key<TAB>value`` lines (or cdbmake records).

    python -m static_cdb.examples.build_store data.cdb pairs.tsv
    printf '+3,5:one->Hello\n\n' | python -m static_cdb.examples.build_store --cdbmake data.cdb
"""
import argparse, logging, os, sys
from typing import BinaryIO, Iterator

from static_cdb import CDBError, CDBWriter

TMP_SUFFIX = os.getenv("STATIC_CDB_TMP_SUFFIX", ".tmp")


def read_tsv(f: BinaryIO) -> Iterator[tuple[bytes, bytes]]:
    for lineno, raw in enumerate(f, 1):
        line = raw.rstrip(b"\r\n")
        if not line:
            continue
        key, sep, value = line.partition(b"\t")
        if not sep:
            raise ValueError(f"line {lineno}: missing TAB separator")
        yield key, value


def _read_number(f: BinaryIO, stop: bytes) -> int:
    digits = b""
    while True:
        c = f.read(1)
        if c == stop:
            break
        if not c.isdigit():
            raise ValueError(f"bad cdbmake length byte {c!r}")
        digits += c
    if not digits:
        raise ValueError("empty cdbmake length")
    return int(digits)


def _expect(f: BinaryIO, token: bytes):
    got = f.read(len(token))
    if got != token:
        raise ValueError(f"expected {token!r} in cdbmake input, got {got!r}")


def read_cdbmake(f: BinaryIO) -> Iterator[tuple[bytes, bytes]]:
    """``+klen,dlen:key->data`` records, one per line, ended by a blank line."""
    while True:
        c = f.read(1)
        if c in (b"\n", b""):
            return
        if c != b"+":
            raise ValueError(f"cdbmake record must start with '+', got {c!r}")
        klen = _read_number(f, b",")
        dlen = _read_number(f, b":")
        key = f.read(klen)
        _expect(f, b"->")
        data = f.read(dlen)
        if len(key) != klen or len(data) != dlen:
            raise ValueError("truncated cdbmake record")
        _expect(f, b"\n")
        yield key, data


def main(argv=None) -> int:
    p = argparse.ArgumentParser(description="build a constant database")
    p.add_argument("store", help="path to cdb file")
    p.add_argument("input", nargs="?", default="-", help="input file (default stdin)")
    p.add_argument("--cdbmake", action="store_true", help="input is in cdbmake format")
    p.add_argument("--suffix", default=TMP_SUFFIX, help="temporary file suffix")
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    reader = read_cdbmake if args.cdbmake else read_tsv
    src = None
    try:
        src = sys.stdin.buffer if args.input == "-" else open(args.input, "rb")
        with CDBWriter(args.store, suffix=args.suffix) as w:
            w.put_all(reader(src))
            count = w.builder.count
    except (CDBError, ValueError, OSError) as e:
        print(f"build_store: {e}", file=sys.stderr)
        return 1
    finally:
        if src is not None and src is not sys.stdin.buffer:
            src.close()

    print(f"wrote {count} records to {args.store}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
