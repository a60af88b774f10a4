# ==================================================
# examples/dump_store.py
# ==================================================
"""Print the records of a cdb file (or its bucket statistics)."""
import argparse, logging, os, sys

from static_cdb import CDBError, CDBReader

ENCODING = os.getenv("STATIC_CDB_ENCODING", "utf-8")
WIDTH = 40


def show(data: bytes, encoding: str = ENCODING, cut_nul: bool = False) -> str:
    if cut_nul:
        data = data.split(b"\0", 1)[0]
    try:
        return data.decode(encoding)
    except UnicodeDecodeError:
        return repr(data)


def dump(cdb: CDBReader, out, encoding: str = ENCODING):
    print(f"  {'key':>{WIDTH}} = value", file=out)
    print(f"{'':->{WIDTH + 2}} - {'':->{WIDTH}}", file=out)
    for key, value in cdb.iter():
        print(f"  {show(key, encoding):>{WIDTH}} = {show(value, encoding, cut_nul=True)}",
              file=out)


def stats(cdb: CDBReader, out):
    sizes = cdb.bucket_sizes()
    used = [n for n in sizes if n]
    print(f"records: {len(cdb)}", file=out)
    print(f"slots:   {sum(sizes)}", file=out)
    print(f"buckets: {len(used)} used, {len(sizes) - len(used)} empty", file=out)
    for bucket, n in enumerate(sizes):
        if n:
            print(f"  {bucket:3d} {n}", file=out)


def main(argv=None, out=None) -> int:
    out = out or sys.stdout
    p = argparse.ArgumentParser(description="dump a constant database")
    p.add_argument("store", help="path to cdb file")
    p.add_argument("--stats", action="store_true", help="print bucket slot counts")
    p.add_argument("--get", metavar="KEY", help="print every value stored under KEY")
    p.add_argument("--encoding", default=ENCODING)
    p.add_argument("-v", "--verbose", action="store_true")
    args = p.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG)

    try:
        with CDBReader.open(args.store) as cdb:
            if args.get is not None:
                found = 0
                for value in cdb.get_all(args.get.encode(args.encoding)):
                    print(show(value, args.encoding), file=out)
                    found += 1
                return 0 if found else 1
            if args.stats:
                stats(cdb, out)
            else:
                dump(cdb, out, args.encoding)
    except CDBError as e:
        print(f"dump_store: {e}", file=sys.stderr)
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
