"""
Builder and atomic writer tests.
"""

import io
import os
import stat
from collections import Counter

import pytest

from static_cdb import (BuilderFinished, CDBBuilder, CDBIOError, CDBReader,
                        CDBWriter, FileTooLarge, KeyTooLarge, ValueTooLarge,
                        cdb_hash)
from static_cdb.const import BUCKETS, HEADER_SIZE


class _FailingSink(io.BytesIO):
    """Accepts ``limit`` bytes, then fails every write."""

    def __init__(self, limit):
        super().__init__()
        self.limit = limit

    def write(self, data):
        if self.tell() + len(data) > self.limit:
            raise OSError("disk full")
        return super().write(data)


class _FailOnceSink:
    """Wraps a sink and fails only its ``fail_at``-th write call."""

    def __init__(self, inner, fail_at):
        self.inner = inner
        self.fail_at = fail_at
        self.calls = 0

    def write(self, data):
        self.calls += 1
        if self.calls == self.fail_at:
            self.inner.write(bytes(data[:1]))
            raise OSError("transient failure")
        return self.inner.write(data)

    def seek(self, *args):
        return self.inner.seek(*args)

    def flush(self):
        return self.inner.flush()


class _ShortSink(io.BytesIO):
    """Accepts at most ``chunk`` bytes per write call."""

    def __init__(self, chunk):
        super().__init__()
        self.chunk = chunk

    def write(self, data):
        return super().write(bytes(data[:self.chunk]))


class _StalledSink(io.BytesIO):
    """Takes the header, then accepts nothing."""

    def write(self, data):
        if self.tell() >= HEADER_SIZE:
            return 0
        return super().write(data)


class _HugeKey(bytes):
    """A key that reports a length the 32-bit field cannot hold."""

    def __len__(self):
        return 2**32


# =============================================================================
# CDBBuilder
# =============================================================================

class TestBuilder:

    def test_reserves_header(self):
        sink = io.BytesIO()
        CDBBuilder(sink)
        assert sink.getvalue() == b"\0" * HEADER_SIZE

    def test_put_writes_records_immediately(self):
        sink = io.BytesIO()
        b = CDBBuilder(sink)
        b.put(b"k", b"vv")
        assert sink.getvalue()[HEADER_SIZE:] == b"\x01\0\0\0\x02\0\0\0kvv"
        assert b.pos == HEADER_SIZE + 11
        assert b.count == 1

    def test_finish_returns_size(self):
        sink = io.BytesIO()
        b = CDBBuilder(sink)
        b.put(b"one", b"Hello")
        size = b.finish()
        assert size == len(sink.getvalue()) == HEADER_SIZE + 16 + 16

    def test_slot_counts_double_bucket_sizes(self):
        pairs = [(f"key-{i % 700}".encode(), f"{i}".encode()) for i in range(1000)]
        sink = io.BytesIO()
        b = CDBBuilder(sink)
        b.put_all(pairs)
        b.finish()

        per_bucket = Counter(cdb_hash(k) & 0xFF for k, _ in pairs)
        sizes = CDBReader(sink.getvalue()).bucket_sizes()
        assert len(sizes) == BUCKETS
        for bucket, n in enumerate(sizes):
            assert n == 2 * per_bucket.get(bucket, 0)
        assert sum(sizes) == 2 * len(pairs)

    def test_accepts_bytes_like(self):
        sink = io.BytesIO()
        b = CDBBuilder(sink)
        b.put(bytearray(b"k"), memoryview(b"v"))
        b.finish()
        assert CDBReader(sink.getvalue()).get(b"k") == b"v"

    def test_rejects_str(self):
        b = CDBBuilder(io.BytesIO())
        with pytest.raises(TypeError):
            b.put("key", b"v")
        with pytest.raises(TypeError):
            b.put(b"key", "v")

    def test_cannot_reuse(self):
        b = CDBBuilder(io.BytesIO())
        b.finish()
        assert b.finished
        with pytest.raises(BuilderFinished):
            b.put(b"k", b"v")
        with pytest.raises(BuilderFinished):
            b.finish()

    def test_empty_key_and_value(self):
        sink = io.BytesIO()
        b = CDBBuilder(sink)
        b.put(b"", b"")
        b.put(b"", b"x")
        b.finish()
        cdb = CDBReader(sink.getvalue())
        assert list(cdb.get_all(b"")) == [b"", b"x"]


class TestBuilderLimits:

    def test_key_too_large(self):
        b = CDBBuilder(io.BytesIO())
        with pytest.raises(KeyTooLarge):
            b.put(_HugeKey(b"k"), b"v")

    def test_value_too_large(self):
        b = CDBBuilder(io.BytesIO())
        with pytest.raises(ValueTooLarge):
            b.put(b"k", _HugeKey(b"v"))

    def test_file_too_large(self):
        b = CDBBuilder(io.BytesIO())
        b.pos = 2**32 - 10
        with pytest.raises(FileTooLarge):
            b.put(b"key", b"value")

    def test_limits_are_value_errors(self):
        b = CDBBuilder(io.BytesIO())
        with pytest.raises(ValueError):
            b.put(_HugeKey(b"k"), b"v")


class TestBuilderIO:

    def test_header_write_fails(self):
        with pytest.raises(CDBIOError):
            CDBBuilder(_FailingSink(10))

    def test_put_write_fails(self):
        b = CDBBuilder(_FailingSink(HEADER_SIZE + 4))
        with pytest.raises(CDBIOError) as info:
            b.put(b"key", b"value")
        assert isinstance(info.value, OSError)

    def test_finish_write_fails(self):
        b = CDBBuilder(_FailingSink(HEADER_SIZE + 20))
        b.put(b"key", b"value")
        with pytest.raises(CDBIOError):
            b.finish()

    def test_failed_put_breaks_builder(self):
        inner = io.BytesIO()
        # header is call 1, then 3 calls per record; fail the key of record 2
        b = CDBBuilder(_FailOnceSink(inner, fail_at=6))
        b.put(b"a", b"1")
        with pytest.raises(CDBIOError):
            b.put(b"b", b"2")
        with pytest.raises(CDBIOError):
            b.put(b"c", b"3")
        with pytest.raises(CDBIOError):
            b.finish()

    def test_failed_finish_breaks_builder(self):
        b = CDBBuilder(_FailingSink(HEADER_SIZE + 20))
        b.put(b"key", b"value")
        with pytest.raises(CDBIOError):
            b.finish()
        with pytest.raises(CDBIOError):
            b.finish()

    def test_short_writes_are_completed(self):
        sink = _ShortSink(3)
        b = CDBBuilder(sink)
        b.put_all([(b"one", b"Hello"), (b"two", b"Goodbye")])
        b.finish()
        cdb = CDBReader(sink.getvalue())
        assert list(cdb.iter()) == [(b"one", b"Hello"), (b"two", b"Goodbye")]
        assert cdb.get(b"two") == b"Goodbye"

    def test_stalled_sink(self):
        b = CDBBuilder(_StalledSink())
        with pytest.raises(CDBIOError):
            b.put(b"k", b"v")
        with pytest.raises(CDBIOError):
            b.finish()

    def test_unseekable_sink(self):
        r, w = os.pipe()
        os.close(r)
        with open(w, "wb", buffering=0) as f:
            with pytest.raises(CDBIOError):
                CDBBuilder(f)


# =============================================================================
# CDBWriter
# =============================================================================

class TestWriter:

    def test_renames_on_finish(self, tmp_path):
        path = tmp_path / "data.cdb"
        w = CDBWriter(path)
        assert w.tmp_path == tmp_path / "data.cdb.tmp"
        w.put(b"one", b"Hello")
        assert w.tmp_path.exists()
        assert not path.exists()
        w.finish()
        assert path.exists()
        assert not w.tmp_path.exists()
        with CDBReader.open(path) as cdb:
            assert cdb.get(b"one") == b"Hello"

    def test_custom_suffix(self, tmp_path):
        w = CDBWriter(tmp_path / "data.cdb", suffix=".building")
        assert w.tmp_path.name == "data.cdb.building"
        w.close()

    def test_close_discards(self, tmp_path):
        path = tmp_path / "data.cdb"
        w = CDBWriter(path)
        w.put(b"one", b"Hello")
        w.close()
        assert not w.tmp_path.exists()
        assert not path.exists()

    def test_context_manager_finishes(self, tmp_path):
        path = tmp_path / "data.cdb"
        with CDBWriter(path) as w:
            w.put(b"one", b"Hello")
        assert w.done
        assert path.exists()

    def test_context_manager_aborts_on_error(self, tmp_path):
        path = tmp_path / "data.cdb"
        with pytest.raises(RuntimeError):
            with CDBWriter(path) as w:
                w.put(b"one", b"Hello")
                raise RuntimeError("boom")
        assert not path.exists()
        assert not w.tmp_path.exists()

    def test_replaces_existing_file(self, tmp_path):
        path = tmp_path / "data.cdb"
        path.write_bytes(b"old contents")
        with CDBWriter(path) as w:
            w.put(b"k", b"new")
        with CDBReader.open(path) as cdb:
            assert cdb[b"k"] == b"new"

    def test_set_permissions(self, tmp_path):
        path = tmp_path / "data.cdb"
        with CDBWriter(path) as w:
            w.set_permissions(0o640)
        assert stat.S_IMODE(os.stat(path).st_mode) == 0o640

    def test_set_permissions_after_finish(self, tmp_path):
        w = CDBWriter(tmp_path / "data.cdb")
        w.finish()
        with pytest.raises(BuilderFinished):
            w.set_permissions(0o600)

    def test_failed_put_is_never_committed(self, tmp_path):
        path = tmp_path / "data.cdb"
        w = CDBWriter(path)
        w.builder.sink = _FailOnceSink(w.file, fail_at=1)
        with pytest.raises(CDBIOError):
            w.put(b"a", b"1")
        with pytest.raises(CDBIOError):
            w.put(b"b", b"2")
        with pytest.raises(CDBIOError):
            w.finish()
        assert not path.exists()
        assert not w.tmp_path.exists()

    def test_missing_directory(self, tmp_path):
        with pytest.raises(CDBIOError):
            CDBWriter(tmp_path / "nope" / "data.cdb")
