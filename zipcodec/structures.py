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
ZIP structure definitions with parse and pack functions.

This module defines dataclasses for the records of a classic ZIP archive
(local file headers, central directory headers, the end of central
directory record) and the entry metadata exposed to callers. Parsing works
on an in-memory image by absolute offset, so it needs no shared file
position and can run from several threads at once.
"""

import struct
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterator, Optional

from .constants import (
    CENTRAL_DIR_HEADER,
    CENTRAL_DIR_HEADER_SIZE,
    COMP_DEFLATE,
    COMP_STORED,
    END_OF_CENTRAL_DIR,
    END_OF_CENTRAL_DIR_SIZE,
    EXTRA_FIELD_HEADER_SIZE,
    FLAG_ENCRYPTED,
    FLAG_STRONG_ENCRYPTION,
    LOCAL_FILE_HEADER,
    LOCAL_FILE_HEADER_SIZE,
    MAX_CD_OFFSET,
    MAX_CD_SIZE,
    METHOD_NAMES,
    ZIP64_END_OF_CENTRAL_DIR,
    ZIP64_END_OF_CENTRAL_DIR_LOCATOR,
    ZIP64_END_OF_CENTRAL_DIR_SIZE,
    ZIP64_LOCATOR_SIZE,
)
from .errors import ZipFormatError
from .utils import decode_name, dos_datetime_to_timestamp, read_exact, unpack_at

_LOCAL_FILE_HEADER = struct.Struct("<IHHHHHIIIHH")
_CENTRAL_DIR_HEADER = struct.Struct("<IHHHHHHIIIHHHHHII")
_END_OF_CENTRAL_DIR = struct.Struct("<IHHHHIIH")
_ZIP64_LOCATOR = struct.Struct("<IIQI")
_SIGNATURE = struct.Struct("<I")
_EXTRA_FIELD_HEADER = struct.Struct("<HH")


@dataclass
class LocalFileHeader:
    """Local file header structure.

    This header appears before each entry's compressed data in the archive.
    """

    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    filename: bytes
    extra: bytes = b""

    @property
    def size(self) -> int:
        """Total header size including the variable-length fields."""
        return LOCAL_FILE_HEADER_SIZE + len(self.filename) + len(self.extra)

    @property
    def date_time(self) -> datetime:
        """Get modification date/time as datetime object."""
        return dos_datetime_to_timestamp(self.mod_date, self.mod_time)

    def pack(self) -> bytes:
        return _LOCAL_FILE_HEADER.pack(
            LOCAL_FILE_HEADER,
            self.version,
            self.flags,
            self.compression_method,
            self.mod_time,
            self.mod_date,
            self.crc32,
            self.compressed_size,
            self.uncompressed_size,
            len(self.filename),
            len(self.extra),
        ) + self.filename + self.extra


@dataclass
class CentralDirectoryHeader:
    """Central directory header structure.

    This header appears in the central directory and contains information
    about an entry, including a pointer to its local file header.
    """

    version_made_by: int
    version: int
    flags: int
    compression_method: int
    mod_time: int
    mod_date: int
    crc32: int
    compressed_size: int
    uncompressed_size: int
    local_header_offset: int
    filename: bytes
    extra: bytes = b""
    comment: bytes = b""
    disk_num: int = 0
    internal_attrs: int = 0
    external_attrs: int = 0

    @property
    def size(self) -> int:
        return CENTRAL_DIR_HEADER_SIZE + len(self.filename) + len(self.extra) + len(self.comment)

    @property
    def date_time(self) -> datetime:
        """Get modification date/time as datetime object."""
        return dos_datetime_to_timestamp(self.mod_date, self.mod_time)

    def pack(self) -> bytes:
        return _CENTRAL_DIR_HEADER.pack(
            CENTRAL_DIR_HEADER,
            self.version_made_by,
            self.version,
            self.flags,
            self.compression_method,
            self.mod_time,
            self.mod_date,
            self.crc32,
            self.compressed_size,
            self.uncompressed_size,
            len(self.filename),
            len(self.extra),
            len(self.comment),
            self.disk_num,
            self.internal_attrs,
            self.external_attrs,
            self.local_header_offset,
        ) + self.filename + self.extra + self.comment


@dataclass
class EndOfCentralDirectory:
    """End of Central Directory record.

    This record marks the end of the central directory and contains
    information needed to locate the central directory.
    """

    cd_records_on_disk: int
    cd_records_total: int
    cd_size: int
    cd_offset: int
    comment: bytes = b""
    disk_num: int = 0
    cd_disk: int = 0

    @property
    def size(self) -> int:
        return END_OF_CENTRAL_DIR_SIZE + len(self.comment)

    @property
    def is_zip64_marker(self) -> bool:
        """Whether a 32-bit field is saturated, deferring to a ZIP64 record.

        A saturated entry count alone is not conclusive: a classic archive
        may hold exactly 65535 entries.
        """
        return self.cd_size == MAX_CD_SIZE or self.cd_offset == MAX_CD_OFFSET

    def pack(self) -> bytes:
        return _END_OF_CENTRAL_DIR.pack(
            END_OF_CENTRAL_DIR,
            self.disk_num,
            self.cd_disk,
            self.cd_records_on_disk,
            self.cd_records_total,
            self.cd_size,
            self.cd_offset,
            len(self.comment),
        ) + self.comment


@dataclass(frozen=True)
class ZipEntry:
    """ZIP entry metadata.

    This class represents a file or directory entry in an archive as
    described by its central directory record. ``local_header_offset`` is
    the absolute position of the local header in the image the entry was
    read from.
    """

    name: bytes
    filename: str
    is_dir: bool
    compressed_size: int
    uncompressed_size: int
    crc32: int
    compression_method: int
    flags: int
    mod_time: int
    mod_date: int
    local_header_offset: int
    external_attrs: int = 0
    extra_field: bytes = b""
    comment: bytes = b""
    header: Optional[CentralDirectoryHeader] = field(default=None, repr=False, compare=False)

    @classmethod
    def from_central_header(cls, header: CentralDirectoryHeader, base_offset: int = 0) -> "ZipEntry":
        filename = decode_name(header.filename, header.flags)

        # Trailing slash, or the MS-DOS directory attribute bit
        is_dir = header.filename.endswith(b"/") or bool(header.external_attrs & 0x10)

        return cls(
            name=header.filename,
            filename=filename,
            is_dir=is_dir,
            compressed_size=header.compressed_size,
            uncompressed_size=header.uncompressed_size,
            crc32=header.crc32,
            compression_method=header.compression_method,
            flags=header.flags,
            mod_time=header.mod_time,
            mod_date=header.mod_date,
            local_header_offset=header.local_header_offset + base_offset,
            external_attrs=header.external_attrs,
            extra_field=header.extra,
            comment=header.comment,
            header=header,
        )

    @property
    def date_time(self) -> datetime:
        return dos_datetime_to_timestamp(self.mod_date, self.mod_time)

    @property
    def timestamp(self) -> float:
        """Modification time as a POSIX timestamp, reading the DOS time as local time."""
        return self.date_time.timestamp()

    @property
    def is_encrypted(self) -> bool:
        return bool(self.flags & (FLAG_ENCRYPTED | FLAG_STRONG_ENCRYPTION))

    @property
    def method_name(self) -> str:
        return METHOD_NAMES.get(self.compression_method, f"method-{self.compression_method}")

    @property
    def is_supported_method(self) -> bool:
        return self.compression_method in (COMP_STORED, COMP_DEFLATE)


def parse_local_file_header(buf: memoryview, offset: int) -> LocalFileHeader:
    """Parse a local file header at an absolute offset.

    Args:
        buf: Archive image.
        offset: Offset of the header's signature.

    Returns:
        LocalFileHeader object.

    Raises:
        ZipFormatError: If the signature is invalid or the image is truncated.
    """
    (
        signature,
        version,
        flags,
        compression_method,
        mod_time,
        mod_date,
        crc,
        compressed_size,
        uncompressed_size,
        filename_len,
        extra_len,
    ) = unpack_at(_LOCAL_FILE_HEADER, buf, offset, "local file header")

    if signature != LOCAL_FILE_HEADER:
        raise ZipFormatError(
            f"Invalid local file header signature at offset {offset}: 0x{signature:08X}, "
            f"expected 0x{LOCAL_FILE_HEADER:08X}"
        )

    pos = offset + LOCAL_FILE_HEADER_SIZE
    filename = bytes(read_exact(buf, pos, filename_len))
    extra = bytes(read_exact(buf, pos + filename_len, extra_len))

    return LocalFileHeader(
        version=version,
        flags=flags,
        compression_method=compression_method,
        mod_time=mod_time,
        mod_date=mod_date,
        crc32=crc,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        filename=filename,
        extra=extra,
    )


def parse_central_directory_header(buf: memoryview, offset: int) -> CentralDirectoryHeader:
    """Parse a central directory header at an absolute offset.

    Args:
        buf: Archive image.
        offset: Offset of the header's signature.

    Returns:
        CentralDirectoryHeader object. Its ``size`` gives the offset of the
        next record.

    Raises:
        ZipFormatError: If the signature is invalid or the image is truncated.
    """
    (
        signature,
        version_made_by,
        version,
        flags,
        compression_method,
        mod_time,
        mod_date,
        crc,
        compressed_size,
        uncompressed_size,
        filename_len,
        extra_len,
        comment_len,
        disk_num,
        internal_attrs,
        external_attrs,
        local_header_offset,
    ) = unpack_at(_CENTRAL_DIR_HEADER, buf, offset, "central directory header")

    if signature != CENTRAL_DIR_HEADER:
        raise ZipFormatError(
            f"Invalid central directory header signature at offset {offset}: 0x{signature:08X}, "
            f"expected 0x{CENTRAL_DIR_HEADER:08X}"
        )

    pos = offset + CENTRAL_DIR_HEADER_SIZE
    filename = bytes(read_exact(buf, pos, filename_len))
    pos += filename_len
    extra = bytes(read_exact(buf, pos, extra_len))
    pos += extra_len
    comment = bytes(read_exact(buf, pos, comment_len))

    return CentralDirectoryHeader(
        version_made_by=version_made_by,
        version=version,
        flags=flags,
        compression_method=compression_method,
        mod_time=mod_time,
        mod_date=mod_date,
        crc32=crc,
        compressed_size=compressed_size,
        uncompressed_size=uncompressed_size,
        local_header_offset=local_header_offset,
        filename=filename,
        extra=extra,
        comment=comment,
        disk_num=disk_num,
        internal_attrs=internal_attrs,
        external_attrs=external_attrs,
    )


def parse_eocd(buf: memoryview, offset: int) -> EndOfCentralDirectory:
    """Parse an End of Central Directory record at an absolute offset.

    Raises:
        ZipFormatError: If the signature is invalid or the comment runs past the image.
    """
    (
        signature,
        disk_num,
        cd_disk,
        cd_records_on_disk,
        cd_records_total,
        cd_size,
        cd_offset,
        comment_len,
    ) = unpack_at(_END_OF_CENTRAL_DIR, buf, offset, "end of central directory record")

    if signature != END_OF_CENTRAL_DIR:
        raise ZipFormatError(
            f"Invalid EOCD signature: 0x{signature:08X}, "
            f"expected 0x{END_OF_CENTRAL_DIR:08X}"
        )

    comment = bytes(read_exact(buf, offset + END_OF_CENTRAL_DIR_SIZE, comment_len))

    return EndOfCentralDirectory(
        cd_records_on_disk=cd_records_on_disk,
        cd_records_total=cd_records_total,
        cd_size=cd_size,
        cd_offset=cd_offset,
        comment=comment,
        disk_num=disk_num,
        cd_disk=cd_disk,
    )


def has_zip64_locator(buf: memoryview, eocd_offset: int) -> bool:
    """Check whether a ZIP64 end of central directory locator precedes the EOCD.

    A locator signature alone can be the tail of an entry name or payload,
    so the ZIP64 trailer it points at must carry its own signature too.
    The trailer is looked for at the recorded offset and directly in
    front of the locator, which covers archives with leading data.
    """
    locator_offset = eocd_offset - ZIP64_LOCATOR_SIZE
    if locator_offset < 0:
        return False
    signature, _, record_offset, _ = _ZIP64_LOCATOR.unpack_from(buf, locator_offset)
    if signature != ZIP64_END_OF_CENTRAL_DIR_LOCATOR:
        return False

    for candidate in (record_offset, locator_offset - ZIP64_END_OF_CENTRAL_DIR_SIZE):
        if 0 <= candidate <= locator_offset - _SIGNATURE.size:
            if _SIGNATURE.unpack_from(buf, candidate)[0] == ZIP64_END_OF_CENTRAL_DIR:
                return True
    return False


def iter_extra_fields(extra: bytes) -> Iterator[tuple[int, bytes]]:
    """Walk the length-prefixed blocks of an extra field.

    Yields (tag, data) pairs. A trailing block that is shorter than its
    header or overruns the field (alignment padding written by some tools)
    ends the walk without an error.
    """
    pos = 0
    while pos + EXTRA_FIELD_HEADER_SIZE <= len(extra):
        tag, size = _EXTRA_FIELD_HEADER.unpack_from(extra, pos)
        pos += EXTRA_FIELD_HEADER_SIZE
        if pos + size > len(extra):
            break
        yield tag, extra[pos : pos + size]
        pos += size
