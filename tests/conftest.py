import io

import pytest

from static_cdb import CDBBuilder, CDBReader, CDBWriter


def build_bytes(pairs) -> bytes:
    sink = io.BytesIO()
    builder = CDBBuilder(sink)
    builder.put_all(pairs)
    builder.finish()
    return sink.getvalue()


@pytest.fixture
def make_cdb(tmp_path):
    """Write ``pairs`` to a cdb file under tmp_path and return its path."""
    def make(pairs, name="test.cdb"):
        path = tmp_path / name
        with CDBWriter(path) as w:
            w.put_all(pairs)
        return path
    return make


@pytest.fixture
def open_cdb(make_cdb):
    """Build ``pairs`` and return an open mmap-backed reader."""
    readers = []

    def open_(pairs):
        reader = CDBReader.open(make_cdb(pairs))
        readers.append(reader)
        return reader

    yield open_
    for reader in readers:
        reader.close()
