"""Tests for ZipWriter."""

import gc
import io
import logging
import os
import zipfile
from datetime import datetime

import pytest

from zipcodec import (
    CompressionLevel,
    ZipCompressionError,
    ZipFormatError,
    ZipIOError,
    ZipReader,
    ZipStateError,
    ZipUnsupportedFeature,
    ZipWriter,
    create_writer,
)
from zipcodec.constants import COMP_DEFLATE, COMP_STORED, FLAG_UTF8, MAX_CD_OFFSET
from zipcodec.utils import posix_arcname


class FailingSink:
    """Binary sink that raises OSError once more than fail_after bytes are written."""

    def __init__(self, fail_after: int):
        self.fail_after = fail_after
        self.buffer = io.BytesIO()
        self.closed = False

    def write(self, data):
        if self.buffer.tell() + len(data) > self.fail_after:
            raise OSError("No space left on device")
        return self.buffer.write(data)

    def flush(self):
        pass


class TestCreate:
    def test_in_memory(self):
        w = create_writer()
        w.add_entry("a.txt", b"alpha")
        w.finalize()
        with ZipReader(w.getvalue()) as z:
            assert z.extract("a.txt") == b"alpha"

    def test_file_path(self, tmp_path):
        path = tmp_path / "out.zip"
        with ZipWriter(path) as w:
            w.add_entry("a.txt", b"alpha")
        assert w.closed
        with ZipReader(path.read_bytes()) as z:
            assert z.extract("a.txt") == b"alpha"

    def test_str_path(self, tmp_path):
        path = str(tmp_path / "out.zip")
        with ZipWriter(path) as w:
            w.add_entry("a.txt", b"alpha")
        assert zipfile.ZipFile(path).read("a.txt") == b"alpha"

    def test_truncates_existing_file(self, tmp_path):
        path = tmp_path / "out.zip"
        path.write_bytes(b"old content " * 1000)
        with ZipWriter(path) as w:
            w.add_entry("a.txt", b"alpha")
        with ZipReader(path.read_bytes()) as z:
            assert z.list() == ["a.txt"]
            assert z.base_offset == 0

    def test_unopenable_path(self, tmp_path):
        with pytest.raises(ZipIOError, match="Cannot open"):
            ZipWriter(tmp_path / "missing-dir" / "out.zip")

    def test_borrowed_file_object_is_not_closed(self):
        sink = io.BytesIO()
        with ZipWriter(sink) as w:
            w.add_entry("a.txt", b"alpha")
        assert not sink.closed
        with ZipReader(sink.getvalue()) as z:
            assert z.extract("a.txt") == b"alpha"

    def test_file_object_with_prefix(self):
        sink = io.BytesIO()
        sink.write(b"header bytes before the archive\n")
        with ZipWriter(sink) as w:
            w.add_entry("a.txt", b"alpha")
        with ZipReader(sink.getvalue()) as z:
            assert z.base_offset == len(b"header bytes before the archive\n")
            assert z.extract("a.txt") == b"alpha"

    def test_rejects_non_writable_object(self):
        with pytest.raises(ZipIOError, match="write"):
            ZipWriter(object())

    def test_unknown_mode(self):
        with pytest.raises(ZipFormatError, match="Unsupported mode"):
            ZipWriter(None, mode="x")

    def test_comment_too_long(self):
        with pytest.raises(ZipFormatError, match="comment too long"):
            ZipWriter(comment=b"x" * 70000)

    def test_comment_containing_trailer_reads_back(self):
        comment = b"PK\x05\x06" + b"\x00" * 18
        with ZipWriter(comment=comment) as w:
            w.add_entry("a.txt", b"1")
        with ZipReader(w.getvalue()) as z:
            assert z.list() == ["a.txt"]
            assert z.extract("a.txt") == b"1"

    def test_offsets_at_limit_need_zip64(self):
        w = ZipWriter()
        # Stand in for 4 GiB already written
        w._offset = MAX_CD_OFFSET
        with pytest.raises(ZipUnsupportedFeature, match="offset"):
            w.add_entry("a.txt", b"alpha")
        with pytest.raises(ZipUnsupportedFeature, match="Central directory offset"):
            w.finalize()
        assert w.closed
        assert w.entry_count == 0


class TestAddEntry:
    def test_compressible_data_is_deflated(self, text_payload):
        with ZipWriter() as w:
            w.add_entry("t.txt", text_payload)
        with ZipReader(w.getvalue()) as z:
            entry = z.locate("t.txt")
            assert entry.compression_method == COMP_DEFLATE
            assert entry.compressed_size < entry.uncompressed_size

    def test_incompressible_data_is_stored(self, random_payload):
        with ZipWriter() as w:
            w.add_entry("r.bin", random_payload, CompressionLevel.BEST)
        with ZipReader(w.getvalue()) as z:
            entry = z.locate("r.bin")
            assert entry.compression_method == COMP_STORED
            assert entry.compressed_size == len(random_payload)

    def test_stored_level(self, text_payload):
        with ZipWriter() as w:
            w.add_entry("t.txt", text_payload, CompressionLevel.STORED)
            w.add_entry("n.txt", text_payload, None)
        with ZipReader(w.getvalue()) as z:
            assert z.locate("t.txt").compression_method == COMP_STORED
            assert z.locate("n.txt").compression_method == COMP_STORED

    def test_accepts_bytes_like_data(self):
        with ZipWriter() as w:
            w.add_entry("a", bytearray(b"abc"))
            w.add_entry("b", memoryview(b"def"))
        with ZipReader(w.getvalue()) as z:
            assert z.extract("a") == b"abc"
            assert z.extract("b") == b"def"

    def test_date_time(self):
        with ZipWriter() as w:
            w.add_entry("a", b"1", date_time=datetime(2001, 2, 3, 4, 5, 6))
            w.add_entry("b", b"2", date_time=datetime(2001, 2, 3, 4, 5, 6).timestamp())
        with ZipReader(w.getvalue()) as z:
            expected = datetime(2001, 2, 3, 4, 5, 6).timestamp()
            assert z.modified_time("a") == expected
            assert z.modified_time("b") == expected

    def test_default_date_time_is_now(self):
        before = datetime.now().timestamp()
        with ZipWriter() as w:
            w.add_entry("a", b"1")
        with ZipReader(w.getvalue()) as z:
            assert abs(z.modified_time("a") - before) <= 4

    def test_utf8_name_is_flagged(self):
        with ZipWriter() as w:
            w.add_entry("données/é.txt", b"x")
            w.add_entry("plain.txt", b"y")
        with ZipReader(w.getvalue()) as z:
            assert z.locate("données/é.txt").flags & FLAG_UTF8
            assert not z.locate("plain.txt").flags & FLAG_UTF8
        assert zipfile.ZipFile(io.BytesIO(w.getvalue())).namelist()[0] == "données/é.txt"

    def test_bytes_name_is_literal(self):
        with ZipWriter() as w:
            w.add_entry(b"raw\xff.bin", b"x")
        with ZipReader(w.getvalue()) as z:
            assert z.extract(b"raw\xff.bin") == b"x"

    def test_backslashes_are_kept(self):
        with ZipWriter() as w:
            w.add_entry("dir\\file.txt", b"x")
        with ZipReader(w.getvalue()) as z:
            assert z.exists("dir\\file.txt")
            assert not z.exists("dir/file.txt")

    @pytest.mark.parametrize("name", ["", "a\x00b", "x" * 70000])
    def test_invalid_names(self, name):
        w = ZipWriter()
        with pytest.raises(ZipFormatError):
            w.add_entry(name, b"data")
        w.close()

    def test_invalid_level(self):
        w = ZipWriter()
        with pytest.raises(ZipCompressionError):
            w.add_entry("a", b"data", 12)
        w.close()

    def test_duplicate_names_are_logged(self, caplog):
        with caplog.at_level(logging.WARNING, logger="zipcodec"):
            with ZipWriter() as w:
                w.add_entry("a.txt", b"1")
                w.add_entry("a.txt", b"2")
        assert "Duplicate entry name" in caplog.text
        assert w.entry_count == 2

    def test_add_directory(self):
        with ZipWriter() as w:
            w.add_directory("dir")
            w.add_directory(b"raw/")
        with ZipReader(w.getvalue()) as z:
            assert z.list() == ["dir/", "raw/"]
            assert z.locate("dir/").is_dir
            assert z.extract("dir/") == b""


class TestAddFile:
    def test_add_file(self, tmp_path, text_payload):
        src = tmp_path / "source.txt"
        src.write_bytes(text_payload)
        with ZipWriter() as w:
            w.add_file(src, "docs/source.txt")
        with ZipReader(w.getvalue()) as z:
            assert z.extract("docs/source.txt") == text_payload
            assert abs(z.modified_time("docs/source.txt") - os.stat(src).st_mtime) <= 2

    def test_default_name(self, tmp_path):
        src = tmp_path / "source.txt"
        src.write_bytes(b"content")
        with ZipWriter() as w:
            w.add_file(src)
        with ZipReader(w.getvalue()) as z:
            assert z.extract(posix_arcname(src)) == b"content"
            assert not z.list()[0].startswith("/")

    def test_directory_source(self, tmp_path):
        (tmp_path / "sub").mkdir()
        with ZipWriter() as w:
            w.add_file(tmp_path / "sub", "sub")
        with ZipReader(w.getvalue()) as z:
            assert z.locate("sub/").is_dir

    def test_missing_source(self, tmp_path):
        w = ZipWriter()
        with pytest.raises(ZipIOError, match="Error reading file"):
            w.add_file(tmp_path / "nope.txt", "nope.txt")
        w.close()


class TestLifecycle:
    def test_empty_archive(self):
        w = ZipWriter()
        w.finalize()
        data = w.getvalue()
        assert data == b"PK\x05\x06" + b"\x00" * 18
        with ZipReader(data) as z:
            assert len(z) == 0
            assert z.locate("anything") is None

    def test_add_after_finalize(self):
        w = ZipWriter()
        w.finalize()
        assert w.finalized
        with pytest.raises(ZipStateError):
            w.add_entry("a", b"1")

    def test_finalize_twice(self):
        w = ZipWriter()
        w.finalize()
        with pytest.raises(ZipStateError, match="already finalized"):
            w.finalize()

    def test_close_after_finalize_is_noop(self):
        w = ZipWriter()
        w.add_entry("a", b"1")
        w.finalize()
        w.close()
        w.close()

    def test_getvalue_before_finalize(self):
        w = ZipWriter()
        with pytest.raises(ZipStateError):
            w.getvalue()
        w.close()

    def test_getvalue_for_file_sink(self, tmp_path):
        with ZipWriter(tmp_path / "a.zip") as w:
            pass
        with pytest.raises(ZipStateError):
            w.getvalue()

    def test_context_exit_on_error_still_finalizes(self, tmp_path):
        path = tmp_path / "partial.zip"
        with pytest.raises(RuntimeError):
            with ZipWriter(path) as w:
                w.add_entry("a.txt", b"1")
                raise RuntimeError("boom")
        with ZipReader(path.read_bytes()) as z:
            assert z.list() == ["a.txt"]

    def test_unfinalized_sink_is_not_an_archive(self):
        sink = io.BytesIO()
        w = ZipWriter(sink)
        w.add_entry("a.txt", b"1")
        with pytest.raises(ZipFormatError):
            ZipReader(sink.getvalue())
        w.close()
        with ZipReader(sink.getvalue()) as z:
            assert z.list() == ["a.txt"]

    def test_collected_writer_is_finalized(self, tmp_path):
        path = tmp_path / "dropped.zip"
        w = ZipWriter(path)
        w.add_entry("a.txt", b"1")
        w.add_entry("b.txt", b"2")
        with pytest.warns(ResourceWarning):
            del w
            gc.collect()
        with ZipReader(path.read_bytes()) as z:
            assert z.list() == ["a.txt", "b.txt"]

    def test_write_failure(self):
        sink = FailingSink(fail_after=60)
        w = ZipWriter(sink)
        w.add_entry("a.txt", b"1")
        with pytest.raises(ZipIOError, match="No space left"):
            w.add_entry("b.txt", b"x" * 100, CompressionLevel.STORED)
        with pytest.raises(ZipStateError, match="failed write"):
            w.add_entry("c.txt", b"3")
        # Released without a directory: the partial archive stays invalid
        w.close()
        assert w.closed
        with pytest.raises(ZipFormatError):
            ZipReader(sink.buffer.getvalue())

    def test_finalize_failure_propagates_from_close(self):
        sink = FailingSink(fail_after=45)
        w = ZipWriter(sink)
        w.add_entry("a.txt", b"1")
        with pytest.raises(ZipIOError):
            w.close()
        assert w.closed


class TestAppend:
    def test_append_to_path(self, tmp_path):
        path = tmp_path / "a.zip"
        with ZipWriter(path, comment=b"original") as w:
            w.add_entry("a.txt", b"1")
        with ZipWriter(path, mode="a") as w:
            assert w.entry_count == 1
            w.add_entry("b.txt", b"2")
        with ZipReader(path.read_bytes()) as z:
            assert z.list() == ["a.txt", "b.txt"]
            assert z.extract("a.txt") == b"1"
            assert z.extract("b.txt") == b"2"
            assert z.comment == b"original"
        assert zipfile.ZipFile(path).testzip() is None

    def test_append_replaces_comment(self, tmp_path):
        path = tmp_path / "a.zip"
        with ZipWriter(path, comment=b"original") as w:
            w.add_entry("a.txt", b"1")
        with ZipWriter(path, mode="a", comment=b"updated"):
            pass
        with ZipReader(path.read_bytes()) as z:
            assert z.comment == b"updated"
            assert z.list() == ["a.txt"]

    def test_append_creates_missing_file(self, tmp_path):
        path = tmp_path / "new.zip"
        with ZipWriter(path, mode="a") as w:
            w.add_entry("a.txt", b"1")
        with ZipReader(path.read_bytes()) as z:
            assert z.list() == ["a.txt"]

    def test_append_to_stdlib_archive(self, tmp_path, text_payload):
        path = tmp_path / "std.zip"
        with zipfile.ZipFile(path, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            zf.writestr("std.txt", text_payload)
        with ZipWriter(path, mode="a") as w:
            w.add_entry("ours.txt", text_payload, CompressionLevel.BEST)
        with zipfile.ZipFile(path) as zf:
            assert zf.namelist() == ["std.txt", "ours.txt"]
            assert zf.read("ours.txt") == text_payload
        with ZipReader(path.read_bytes()) as z:
            assert z.extract("std.txt") == text_payload

    def test_append_to_file_object_with_prefix(self, make_archive):
        prefix = b"stub" * 10
        sink = io.BytesIO(prefix + make_archive([("a.txt", b"1")]))
        with ZipWriter(sink, mode="a") as w:
            w.add_entry("b.txt", b"2")
        with ZipReader(sink.getvalue()) as z:
            assert z.base_offset == len(prefix)
            assert z.extract("a.txt") == b"1"
            assert z.extract("b.txt") == b"2"

    def test_append_to_non_archive(self, tmp_path):
        path = tmp_path / "text.txt"
        path.write_bytes(b"not an archive at all, only text" * 4)
        with pytest.raises(ZipFormatError):
            ZipWriter(path, mode="a")
        assert path.read_bytes() == b"not an archive at all, only text" * 4

    def test_append_requires_readable_object(self):
        class WriteOnly:
            def write(self, data):
                return len(data)

        with pytest.raises(ZipIOError, match="readable"):
            ZipWriter(WriteOnly(), mode="a")
