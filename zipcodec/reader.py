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
ZIP archive reader implementation.

This module provides the ZipReader class for reading archives that are
already resident in memory.
"""

import logging
import os
from typing import Iterator, Optional, Union

from . import codec
from .constants import (
    CENTRAL_DIR_MAGIC,
    COMP_DEFLATE,
    COMP_STORED,
    EOCD_SEARCH_LIMIT,
    END_OF_CENTRAL_DIR_MAGIC,
    END_OF_CENTRAL_DIR_SIZE,
    MAX_ENTRY_COUNT,
    MAX_FILE_SIZE,
    ZIP64_EXTRA_FIELD_TAG,
)
from .errors import (
    ZipCompressionError,
    ZipCorruptDataError,
    ZipCrcError,
    ZipFormatError,
    ZipStateError,
    ZipUnsupportedFeature,
)
from .structures import (
    EndOfCentralDirectory,
    ZipEntry,
    has_zip64_locator,
    iter_extra_fields,
    parse_central_directory_header,
    parse_eocd,
    parse_local_file_header,
)
from .utils import PathLike, crc32, lookup_key, read_exact

LOGGER = logging.getLogger(__name__)


class ZipReader:
    """Reader for ZIP archives held in memory.

    The reader parses the central directory once, at construction, and
    never modifies it afterwards. All queries only read the image and the
    index, so one reader may serve ``locate``, ``exists``,
    ``modified_time`` and ``extract`` calls from several threads at once.

    Immutable ``bytes`` are borrowed without a copy. Mutable buffers
    (``bytearray``, writable ``memoryview``) are copied when the reader is
    built, so later changes by the caller cannot affect it.

    Example:
        with ZipReader(data) as z:
            print(z.list())
            text = z.extract("file.txt", as_text=True)
    """

    def __init__(self, data: Union[bytes, bytearray, memoryview]):
        """Initialize ZipReader with an archive image.

        Args:
            data: The complete archive as a bytes-like object.

        Raises:
            ZipFormatError: If the image is not a valid ZIP archive.
            ZipUnsupportedFeature: If the archive is ZIP64 or spans several disks.
        """
        view = memoryview(data)
        if not view.readonly or not view.c_contiguous:
            view = memoryview(view.tobytes())
        self._buf: Optional[memoryview] = view.cast("B")

        self._entries: tuple[ZipEntry, ...] = ()
        self._index: dict[bytes, ZipEntry] = {}
        self._eocd: Optional[EndOfCentralDirectory] = None
        self._base_offset: int = 0

        try:
            self._parse_archive()
        except Exception:
            self.close()
            raise

    @classmethod
    def from_file(cls, path: Union[str, os.PathLike]) -> "ZipReader":
        """Read an archive file into memory and open it."""
        with open(path, "rb") as f:
            return cls(f.read())

    def _find_eocd(self, buf: memoryview) -> tuple[int, EndOfCentralDirectory]:
        """Find and parse the End of Central Directory record.

        Scans backward from the end of the image for the EOCD signature.
        The EOCD can be followed by up to 65535 bytes of comment, and the
        comment itself may contain the signature (even a whole fake
        record). Candidates whose comment ends exactly at the end of the
        image are preferred, and among those the earliest one whose
        central directory fits in front of it wins, since any later
        candidate lies inside its comment.

        Returns:
            Tuple of (EOCD offset, EndOfCentralDirectory).

        Raises:
            ZipFormatError: If no EOCD can be found.
        """
        size = len(buf)
        if size < END_OF_CENTRAL_DIR_SIZE:
            raise ZipFormatError(
                f"Data too short to be a ZIP archive: {size} bytes "
                f"(minimum {END_OF_CENTRAL_DIR_SIZE})"
            )

        window_start = max(0, size - EOCD_SEARCH_LIMIT)
        window = bytes(buf[window_start:])

        exact = []
        trailing = []
        pos = window.rfind(END_OF_CENTRAL_DIR_MAGIC)
        while pos != -1:
            offset = window_start + pos
            if offset + END_OF_CENTRAL_DIR_SIZE <= size:
                try:
                    eocd = parse_eocd(buf, offset)
                except ZipFormatError:
                    eocd = None
                if eocd is not None:
                    if offset + eocd.size == size:
                        exact.append((offset, eocd))
                    else:
                        trailing.append((offset, eocd))
            pos = window.rfind(END_OF_CENTRAL_DIR_MAGIC, 0, pos)

        # Both lists run from the end of the image backward
        fitting = [c for c in exact if self._directory_fits(buf, *c)]
        if fitting:
            return fitting[-1]

        fitting = [c for c in trailing if self._directory_fits(buf, *c)]
        if fitting:
            found = fitting[0]
        elif exact:
            # Let directory parsing report what is wrong with it
            return exact[0]
        elif trailing:
            found = trailing[0]
        else:
            raise ZipFormatError("End of Central Directory record not found")

        LOGGER.debug("EOCD at offset %d is followed by %d stray bytes",
                     found[0], size - found[0] - found[1].size)
        return found

    @staticmethod
    def _directory_fits(buf: memoryview, offset: int, eocd: EndOfCentralDirectory) -> bool:
        """Check that a candidate EOCD describes a directory ending right before it."""
        if eocd.cd_offset + eocd.cd_size > offset:
            return False
        if eocd.cd_records_total == 0:
            return eocd.cd_size == 0
        return bytes(buf[offset - eocd.cd_size : offset - eocd.cd_size + 4]) == CENTRAL_DIR_MAGIC

    def _parse_central_directory(self, buf: memoryview, eocd_offset: int, eocd: EndOfCentralDirectory) -> None:
        """Parse the central directory and build the entry index.

        Raises:
            ZipFormatError: If the central directory cannot be parsed.
        """
        if eocd.disk_num != 0 or eocd.cd_disk != 0 or eocd.cd_records_on_disk != eocd.cd_records_total:
            raise ZipUnsupportedFeature(
                f"Multi-disk archives are not supported (disk {eocd.disk_num}, "
                f"directory on disk {eocd.cd_disk})"
            )
        if has_zip64_locator(buf, eocd_offset) or eocd.is_zip64_marker:
            raise ZipUnsupportedFeature("ZIP64 archives are not supported")

        num_entries = eocd.cd_records_total
        if num_entries > MAX_ENTRY_COUNT:
            raise ZipFormatError(f"Entry count too large: {num_entries} (max {MAX_ENTRY_COUNT})")

        cd_end = eocd.cd_offset + eocd.cd_size
        if cd_end > eocd_offset:
            raise ZipFormatError(
                f"Central directory extends beyond its trailer: offset {eocd.cd_offset}, "
                f"size {eocd.cd_size} (trailer at {eocd_offset})"
            )

        # Data prepended to the archive (an SFX stub, for example) shifts every
        # recorded offset by the same amount
        self._base_offset = eocd_offset - cd_end
        cd_start = self._base_offset + eocd.cd_offset

        entries = []
        pos = cd_start
        for _ in range(num_entries):
            if pos >= eocd_offset:
                break
            header = parse_central_directory_header(buf, pos)
            pos += header.size
            if pos > eocd_offset:
                raise ZipFormatError(
                    f"Central directory record at offset {pos - header.size} overruns the directory"
                )

            if (
                header.compressed_size == MAX_FILE_SIZE
                or header.uncompressed_size == MAX_FILE_SIZE
                or header.local_header_offset == MAX_FILE_SIZE
            ) and any(tag == ZIP64_EXTRA_FIELD_TAG for tag, _ in iter_extra_fields(header.extra)):
                raise ZipUnsupportedFeature(
                    f"Entry {header.filename!r} requires ZIP64 extensions"
                )

            entry = ZipEntry.from_central_header(header, self._base_offset)
            entries.append(entry)
            # First occurrence in directory order wins
            self._index.setdefault(entry.name, entry)

        # Detect corrupted central directories where parsing might stop early
        if len(entries) != num_entries:
            raise ZipFormatError(
                f"Entry count mismatch: expected {num_entries} entries, parsed {len(entries)} entries"
            )

        self._entries = tuple(entries)

    def _parse_archive(self) -> None:
        """Parse the entire archive structure."""
        buf = self._buf
        eocd_offset, self._eocd = self._find_eocd(buf)
        self._parse_central_directory(buf, eocd_offset, self._eocd)
        LOGGER.debug(
            "Opened archive: %d entries, %d byte comment, base offset %d",
            len(self._entries), len(self._eocd.comment), self._base_offset,
        )

    def _image(self) -> memoryview:
        buf = self._buf
        if buf is None:
            raise ZipStateError("Archive is closed")
        return buf

    def _read_payload(self, buf: memoryview, entry: ZipEntry) -> memoryview:
        """Return a view of an entry's compressed bytes.

        The sizes come from the central directory, which stays correct for
        entries written with a data descriptor.
        """
        header = parse_local_file_header(buf, entry.local_header_offset)
        data_offset = entry.local_header_offset + header.size
        try:
            return read_exact(buf, data_offset, entry.compressed_size)
        except ZipFormatError as e:
            raise ZipFormatError(
                f"Compressed data extends beyond archive for entry {entry.filename!r}: "
                f"position {data_offset}, size {entry.compressed_size} (archive size: {len(buf)})"
            ) from e

    def _decompress_entry(self, entry: ZipEntry) -> bytes:
        """Decompress an entry's data and validate it against the stored CRC32.

        Raises:
            ZipUnsupportedFeature: If the entry is encrypted.
            ZipCompressionError: If the compression method is not supported.
            ZipCorruptDataError: If the compressed stream cannot be decoded.
            ZipCrcError: If CRC32 validation fails.
        """
        buf = self._image()

        if entry.is_encrypted:
            raise ZipUnsupportedFeature(f"Entry {entry.filename!r} is encrypted (encryption not supported)")

        payload = self._read_payload(buf, entry)

        if entry.compression_method == COMP_STORED:
            if entry.compressed_size != entry.uncompressed_size:
                raise ZipCorruptDataError(
                    f"Stored entry {entry.filename!r} has compressed size {entry.compressed_size} "
                    f"but uncompressed size {entry.uncompressed_size}"
                )
            data = bytes(payload)
        elif entry.compression_method == COMP_DEFLATE:
            try:
                data = codec.inflate(payload, entry.uncompressed_size)
            except ZipCompressionError as e:
                raise ZipCorruptDataError(f"Entry {entry.filename!r} is corrupt: {e}") from e
        else:
            raise ZipCompressionError(
                f"Unsupported compression method for entry {entry.filename!r}: "
                f"{entry.compression_method} ({entry.method_name})"
            )

        actual_crc = crc32(data)
        if actual_crc != entry.crc32:
            raise ZipCrcError(
                f"CRC32 mismatch for entry {entry.filename!r}: "
                f"expected 0x{entry.crc32:08X}, got 0x{actual_crc:08X}"
            )
        return data

    def locate(self, path: PathLike) -> Optional[ZipEntry]:
        """Get metadata for a specific entry.

        Args:
            path: Entry name. Matching is byte-for-byte against the stored
                name (``str`` is UTF-8 encoded first); separators and case
                are not normalized.

        Returns:
            The first matching ZipEntry in directory order, None if absent.
        """
        self._image()
        return self._index.get(lookup_key(path))

    def exists(self, path: PathLike) -> bool:
        return self.locate(path) is not None

    def modified_time(self, path: PathLike) -> Optional[float]:
        """Return an entry's modification time as a POSIX timestamp, or None if absent."""
        entry = self.locate(path)
        if entry is None:
            return None
        return entry.timestamp

    def extract(
        self, path: PathLike, as_text: bool = False, encoding: str = "utf-8"
    ) -> Union[bytes, str, None]:
        """Extract the full content of an entry.

        Args:
            path: Entry name, matched as by :meth:`locate`.
            as_text: Decode the content with ``encoding`` and return ``str``.
            encoding: Text encoding used when ``as_text`` is set.

        Returns:
            The entry content, or None if no entry has this path.

        Raises:
            ZipFormatError: If the entry's local header or payload is damaged.
            ZipUnsupportedFeature: If the entry is encrypted.
            ZipCompressionError: If the compression method is not supported.
            ZipCrcError: If the content fails its integrity check.
            UnicodeDecodeError: If ``as_text`` is set and the content does not decode.
        """
        entry = self.locate(path)
        if entry is None:
            return None

        data = self._decompress_entry(entry)
        if as_text:
            return data.decode(encoding)
        return data

    def verify(self) -> list[str]:
        """Extract every entry and return the names of those that fail.

        Format errors in the central directory are raised at construction,
        so only per-entry failures are collected here.
        """
        failed = []
        for entry in self.entries:
            try:
                self._decompress_entry(entry)
            except (ZipFormatError, ZipCompressionError, ZipCrcError) as e:
                LOGGER.debug("Entry %r failed verification: %s", entry.filename, e)
                failed.append(entry.filename)
        return failed

    def list(self) -> list[str]:
        """List all entry names in the archive, in directory order.

        Returns:
            List of entry names (files and directories).
        """
        return [entry.filename for entry in self.entries]

    @property
    def entries(self) -> tuple[ZipEntry, ...]:
        self._image()
        return self._entries

    @property
    def comment(self) -> bytes:
        self._image()
        return self._eocd.comment

    @property
    def directory_offset(self) -> int:
        """Offset of the central directory as recorded in the trailer."""
        self._image()
        return self._eocd.cd_offset

    @property
    def base_offset(self) -> int:
        """Number of bytes of foreign data preceding the archive in the image."""
        return self._base_offset

    @property
    def closed(self) -> bool:
        return self._buf is None

    def __contains__(self, path: PathLike) -> bool:
        return self.exists(path)

    def __iter__(self) -> Iterator[ZipEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def close(self) -> None:
        """Release the archive image.

        Readers hold no uncommitted state, so closing never fails.
        """
        if self._buf is None:
            return

        self._buf.release()
        self._buf = None
        self._index = {}
        self._entries = ()

    def __enter__(self) -> "ZipReader":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()


def open_reader(data: Union[bytes, bytearray, memoryview]) -> ZipReader:
    """Open an in-memory archive for reading."""
    return ZipReader(data)
