"""
Copyright 2025 DNAi inc.

Licensed under the Apache License, Version 2.0 (the "License");
you may not use this file except in compliance with the License.
You may obtain a copy of the License at

    http://www.apache.org/licenses/LICENSE-2.0

Unless required by applicable law or agreed to in writing, software
distributed under the License is distributed on an "AS IS" BASIS,
WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
See the License for the specific language governing permissions and
limitations under the License.
"""

"""
ZIP archive writer implementation.

This module provides the ZipWriter class for creating archives, or
appending to existing ones, on disk or in memory.
"""

import io
import logging
import os
import warnings
from datetime import datetime
from typing import BinaryIO, Optional, Union

from . import codec
from .codec import CompressionLevel
from .constants import (
    COMP_DEFLATE,
    COMP_STORED,
    DIR_ATTRS_DEFAULT,
    FILE_ATTRS_DEFAULT,
    FLAG_UTF8,
    MAX_CD_OFFSET,
    MAX_CD_SIZE,
    MAX_COMMENT_LENGTH,
    MAX_ENTRIES,
    MAX_FILE_SIZE,
    MAX_NAME_LENGTH,
    VERSION_DEFLATE,
    VERSION_MADE_BY_DEFAULT,
    VERSION_STORED,
)
from .errors import ZipFormatError, ZipIOError, ZipStateError, ZipUnsupportedFeature
from .reader import ZipReader
from .structures import CentralDirectoryHeader, EndOfCentralDirectory, LocalFileHeader
from .utils import PathLike, crc32, encode_name, posix_arcname, timestamp_to_dos_datetime

LOGGER = logging.getLogger(__name__)

DateTimeLike = Union[datetime, float, int]


class ZipWriter:
    """Writer for ZIP archives.

    Entries are written to the sink as they are added; the central
    directory is kept in memory and written by :meth:`finalize`. Until then
    the sink does not hold a valid archive.

    The sink is one of:
    - ``None``: an in-memory buffer owned by the writer, see :meth:`getvalue`
    - a path (``str`` or PathLike): opened, and closed on finalize
    - a binary file object: written from its current position, never closed

    A writer is not thread-safe: the write cursor and the directory are
    shared, so concurrent ``add_entry`` calls must be serialized by the
    caller.

    Example:
        with ZipWriter("archive.zip") as z:
            z.add_entry("hello.txt", b"Hello, World!")
            z.add_file("/path/to/doc.pdf", "doc.pdf")
    """

    def __init__(
        self,
        file: Union[str, os.PathLike, BinaryIO, None] = None,
        mode: str = "w",
        *,
        comment: Optional[bytes] = None,
    ):
        """Initialize ZipWriter bound to a sink.

        Args:
            file: Destination, see the class docstring.
            mode: "w" to create or truncate, "a" to add entries to an
                existing archive (a missing or empty sink starts a new one).
            comment: Archive comment written in the trailer. In "a" mode the
                existing comment is kept unless one is given.

        Raises:
            ZipFormatError: If the mode is unknown, the comment is too long,
                or in "a" mode the existing data is not a ZIP archive.
            ZipIOError: If the sink cannot be opened.
        """
        if mode not in ("w", "a"):
            raise ZipFormatError(f"Unsupported mode: {mode} (only 'w' and 'a' are supported)")

        self._file: Optional[BinaryIO] = None
        self._should_close = False
        self._in_memory = False
        self._directory: list[CentralDirectoryHeader] = []
        self._names: set[bytes] = set()
        self._offset = 0
        self._comment = b""
        self._finalized = False
        self._failed = False
        self._value: Optional[bytes] = None

        if comment is not None:
            self.comment = comment

        if file is None:
            self._file = io.BytesIO()
            self._should_close = True
            self._in_memory = True
        elif isinstance(file, (str, bytes, os.PathLike)):
            self._file = self._open_path(file, mode)
            self._should_close = True
        else:
            # Validate file-like object has required methods
            if not hasattr(file, "write"):
                raise ZipIOError("File-like object must have a write() method")
            if mode == "a" and not (hasattr(file, "read") and hasattr(file, "seek")):
                raise ZipIOError("Appending requires a readable and seekable file object")
            self._file = file

        if mode == "a":
            try:
                self._load_existing(keep_comment=comment is None)
            except Exception:
                self._release()
                raise

    @staticmethod
    def _open_path(path: Union[str, bytes, os.PathLike], mode: str) -> BinaryIO:
        try:
            if mode == "a":
                return open(path, "r+b" if os.path.exists(path) else "w+b")
            return open(path, "wb")
        except OSError as e:
            raise ZipIOError(f"Cannot open {os.fsdecode(path)!r} for writing: {e}") from e

    def _load_existing(self, keep_comment: bool) -> None:
        """Load the directory of the archive already in the sink and position the cursor over it.

        The old central directory is truncated away; new entries are written
        in its place and the full directory is rewritten on finalize.
        """
        try:
            self._file.seek(0)
            existing = self._file.read()
        except (OSError, ValueError) as e:
            raise ZipIOError(f"Cannot read existing archive: {e}") from e

        if not existing:
            return

        with ZipReader(existing) as reader:
            for entry in reader.entries:
                self._directory.append(entry.header)
                self._names.add(entry.name)
            if keep_comment:
                self._comment = reader.comment
            self._offset = reader.directory_offset
            cd_start = reader.base_offset + reader.directory_offset

        try:
            self._file.seek(cd_start)
            self._file.truncate()
        except (OSError, ValueError) as e:
            raise ZipIOError(f"Cannot truncate existing central directory: {e}") from e

        LOGGER.debug(
            "Appending to archive with %d entries, central directory was at %d",
            len(self._directory), self._offset,
        )

    @property
    def comment(self) -> bytes:
        return self._comment

    @comment.setter
    def comment(self, value: bytes) -> None:
        value = bytes(value)
        if len(value) > MAX_COMMENT_LENGTH:
            raise ZipFormatError(f"Archive comment too long: {len(value)} bytes (max {MAX_COMMENT_LENGTH})")
        self._comment = value

    @property
    def finalized(self) -> bool:
        return self._finalized

    @property
    def entry_count(self) -> int:
        return len(self._directory)

    def _check_writable(self) -> None:
        if self._finalized:
            raise ZipStateError("Archive is finalized")
        if self._failed:
            raise ZipStateError("Archive is unusable after a failed write")
        if self._file is None:
            raise ZipStateError("Archive is closed")

    def _write(self, data: bytes) -> None:
        """Write to the sink at the cursor, wrapping sink failures in ZipIOError."""
        try:
            written = self._file.write(data)
        except (OSError, ValueError) as e:
            self._failed = True
            raise ZipIOError(f"Write operation failed at offset {self._offset}: {e}") from e

        # Raw streams may report a short write
        if written is not None and written != len(data):
            self._failed = True
            raise ZipIOError(
                f"Write operation failed: expected to write {len(data)} bytes, wrote {written} bytes"
            )
        self._offset += len(data)

    def _flush(self) -> None:
        flush = getattr(self._file, "flush", None)
        if flush is None:
            return
        try:
            flush()
        except (OSError, ValueError) as e:
            self._failed = True
            raise ZipIOError(f"Flushing archive failed: {e}") from e

    @staticmethod
    def _compress_data(data: bytes, level: int) -> tuple[int, bytes]:
        """Pick the compression method for an entry and produce its payload.

        Data is stored when the level is STORED or deflating does not make
        it smaller.

        Returns:
            Tuple of (compression method, payload).
        """
        if level == CompressionLevel.STORED:
            return COMP_STORED, data

        compressed = codec.deflate(data, level)
        if len(compressed) >= len(data):
            return COMP_STORED, data
        return COMP_DEFLATE, compressed

    @staticmethod
    def _validate_name(name: bytes) -> None:
        if not name:
            raise ZipFormatError("Entry name cannot be empty")
        if len(name) > MAX_NAME_LENGTH:
            raise ZipFormatError(f"Entry name too long: {len(name)} bytes (max {MAX_NAME_LENGTH})")
        if b"\x00" in name:
            raise ZipFormatError("Entry name cannot contain null bytes")

    def _add(
        self,
        path: PathLike,
        data: bytes,
        level: int,
        date_time: Optional[DateTimeLike],
        external_attrs: int,
    ) -> None:
        self._check_writable()

        name, utf8 = encode_name(path)
        self._validate_name(name)
        level = codec.coerce_level(level)
        data = bytes(data)

        # Saturated fields mark ZIP64 records, so each limit itself is out of reach
        if len(self._directory) >= MAX_ENTRIES:
            raise ZipUnsupportedFeature(f"Too many entries: ZIP64 would be required past {MAX_ENTRIES}")
        if len(data) >= MAX_FILE_SIZE:
            raise ZipUnsupportedFeature(f"Entry too large: {len(data)} bytes needs ZIP64")
        local_header_offset = self._offset
        if local_header_offset >= MAX_CD_OFFSET:
            raise ZipUnsupportedFeature(f"Archive too large: offset {local_header_offset} needs ZIP64")

        if name in self._names:
            LOGGER.warning("Duplicate entry name %r; lookups resolve to the first one", name)

        entry_crc32 = crc32(data)
        compression_method, payload = self._compress_data(data, level)

        if date_time is None:
            date_time = datetime.now()
        elif not isinstance(date_time, datetime):
            date_time = datetime.fromtimestamp(date_time)
        mod_date, mod_time = timestamp_to_dos_datetime(date_time)

        flags = FLAG_UTF8 if utf8 else 0
        version = VERSION_DEFLATE if compression_method == COMP_DEFLATE else VERSION_STORED

        local_header = LocalFileHeader(
            version=version,
            flags=flags,
            compression_method=compression_method,
            mod_time=mod_time,
            mod_date=mod_date,
            crc32=entry_crc32,
            compressed_size=len(payload),
            uncompressed_size=len(data),
            filename=name,
        )
        self._write(local_header.pack())
        self._write(payload)

        self._directory.append(
            CentralDirectoryHeader(
                version_made_by=VERSION_MADE_BY_DEFAULT,
                version=version,
                flags=flags,
                compression_method=compression_method,
                mod_time=mod_time,
                mod_date=mod_date,
                crc32=entry_crc32,
                compressed_size=len(payload),
                uncompressed_size=len(data),
                local_header_offset=local_header_offset,
                filename=name,
                external_attrs=external_attrs,
            )
        )
        self._names.add(name)

        LOGGER.debug(
            "Added entry %r at offset %d: %s, %d -> %d bytes",
            name, local_header_offset,
            "deflate" if compression_method == COMP_DEFLATE else "stored",
            len(data), len(payload),
        )

    def add_entry(
        self,
        path: PathLike,
        data: bytes,
        level: Union[CompressionLevel, int, None] = CompressionLevel.DEFAULT,
        date_time: Optional[DateTimeLike] = None,
    ) -> None:
        """Add an entry from bytes data.

        Args:
            path: Entry name (path within the archive), stored literally.
                Non-ASCII ``str`` names are written as UTF-8 and flagged.
            data: Entry content.
            level: Compression level; STORED (or None) stores the data.
            date_time: Modification time as datetime or POSIX timestamp;
                defaults to now.

        Raises:
            ZipStateError: If the archive is finalized or a previous write failed.
            ZipFormatError: If the entry name is invalid.
            ZipCompressionError: If the level is invalid.
            ZipUnsupportedFeature: If ZIP64 would be required.
            ZipIOError: If writing to the sink fails.
        """
        self._add(path, data, level, date_time, FILE_ATTRS_DEFAULT)

    def add_directory(self, path: PathLike, date_time: Optional[DateTimeLike] = None) -> None:
        """Add an empty directory entry. A trailing slash is appended if missing."""
        if isinstance(path, str):
            path = path if path.endswith("/") else path + "/"
        else:
            path = bytes(path)
            path = path if path.endswith(b"/") else path + b"/"
        self._add(path, b"", CompressionLevel.STORED, date_time, DIR_ATTRS_DEFAULT)

    def add_file(
        self,
        source_path: Union[str, os.PathLike],
        path: Optional[PathLike] = None,
        level: Union[CompressionLevel, int, None] = CompressionLevel.DEFAULT,
    ) -> None:
        """Add an entry from a file on disk.

        Args:
            source_path: Path to the source file. Directories become
                directory entries.
            path: Entry name; defaults to ``source_path`` with forward
                slashes and no drive or leading slash.
            level: Compression level.

        Raises:
            ZipIOError: If the source file cannot be read.
        """
        self._check_writable()
        if path is None:
            path = posix_arcname(source_path)

        try:
            stat = os.stat(source_path)
            if os.path.isdir(source_path):
                self.add_directory(path, date_time=stat.st_mtime)
                return
            with open(source_path, "rb") as f:
                data = f.read()
        except OSError as e:
            raise ZipIOError(f"Error reading file {os.fspath(source_path)!r}: {e}") from e

        self._add(path, data, level, stat.st_mtime, FILE_ATTRS_DEFAULT)

    def _write_central_directory(self) -> tuple[int, int]:
        """Write the central directory and the End of Central Directory record.

        Returns:
            Tuple of (cd_offset, cd_size).
        """
        cd_offset = self._offset
        if cd_offset >= MAX_CD_OFFSET:
            raise ZipUnsupportedFeature(f"Central directory offset {cd_offset} needs ZIP64")

        for header in self._directory:
            self._write(header.pack())

        cd_size = self._offset - cd_offset
        if cd_size >= MAX_CD_SIZE:
            raise ZipUnsupportedFeature(f"Central directory size {cd_size} needs ZIP64")

        num_entries = len(self._directory)
        eocd = EndOfCentralDirectory(
            cd_records_on_disk=num_entries,
            cd_records_total=num_entries,
            cd_size=cd_size,
            cd_offset=cd_offset,
            comment=self._comment,
        )
        self._write(eocd.pack())
        return cd_offset, cd_size

    def finalize(self) -> None:
        """Write the central directory and trailer, then release the sink.

        The sink is released even when writing fails. Afterwards the writer
        accepts no more entries.

        Raises:
            ZipStateError: If the archive is already finalized or a
                previous write failed.
            ZipIOError: If writing, flushing or closing the sink fails.
        """
        if self._finalized:
            raise ZipStateError("Archive is already finalized")
        if self._file is None:
            raise ZipStateError("Archive is closed")

        self._finalized = True
        try:
            if self._failed:
                raise ZipStateError("Cannot finalize an archive after a failed write")
            cd_offset, cd_size = self._write_central_directory()
            self._flush()
            LOGGER.debug(
                "Finalized archive: %d entries, central directory at %d (%d bytes)",
                len(self._directory), cd_offset, cd_size,
            )
        finally:
            self._release()

    def _release(self) -> None:
        """Release the sink, closing it if the writer opened it."""
        if self._file is None:
            return

        sink, self._file = self._file, None
        if self._in_memory:
            self._value = sink.getvalue()
        if self._should_close:
            try:
                sink.close()
            except OSError as e:
                raise ZipIOError(f"Closing archive failed: {e}") from e

    def getvalue(self) -> bytes:
        """Return the archive built by an in-memory writer.

        Raises:
            ZipStateError: If the writer has no in-memory sink or is not finalized.
        """
        if not self._in_memory:
            raise ZipStateError("Archive is not written to memory")
        if not self._finalized or self._value is None:
            raise ZipStateError("Archive is not finalized")
        return self._value

    @property
    def closed(self) -> bool:
        return self._file is None

    def close(self) -> None:
        """Finalize the archive if needed, then release the sink.

        Errors from the implicit finalize propagate. A writer whose sink
        failed is released without writing a directory, leaving a
        recognizably incomplete archive.
        """
        if self._file is None:
            return

        try:
            if not self._finalized and not self._failed:
                self.finalize()
        finally:
            self._release()

    def __enter__(self) -> "ZipWriter":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()

    def __del__(self) -> None:
        if getattr(self, "_file", None) is None:
            return

        warnings.warn(
            f"ZipWriter with {len(self._directory)} entries was not closed; finalizing it now",
            ResourceWarning,
            source=self,
        )
        LOGGER.warning("Finalizing unclosed ZipWriter with %d entries", len(self._directory))
        # Errors here reach sys.unraisablehook
        self.close()


def create_writer(
    destination: Union[str, os.PathLike, BinaryIO, None] = None,
    mode: str = "w",
    *,
    comment: Optional[bytes] = None,
) -> ZipWriter:
    """Create a writer bound to a file path, a binary file object, or memory (None)."""
    return ZipWriter(destination, mode, comment=comment)
