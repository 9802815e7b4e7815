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
Utility functions for the ZIP codec.

This module provides helpers for CRC32 calculation, DOS date/time
conversion, entry name handling and bounds-checked access to in-memory
archive images.
"""

import os
import struct
import zlib
from datetime import datetime
from typing import Union

from .constants import FLAG_UTF8
from .errors import ZipFormatError

PathLike = Union[str, bytes]


def crc32(data: bytes) -> int:
    """Calculate CRC32 checksum for data.

    Args:
        data: Bytes to calculate CRC32 for.

    Returns:
        CRC32 value as unsigned 32-bit integer.
    """
    return zlib.crc32(data) & 0xFFFFFFFF


def dos_datetime_to_timestamp(dos_date: int, dos_time: int) -> datetime:
    """Convert DOS date and time to Python datetime.

    DOS date format (16 bits):
        Bits 0-4: Day (1-31)
        Bits 5-8: Month (1-12)
        Bits 9-15: Year - 1980 (0-127, so 1980-2107)

    DOS time format (16 bits):
        Bits 0-4: Second / 2 (0-29, so 0-58 seconds in 2-second increments)
        Bits 5-10: Minute (0-59)
        Bits 11-15: Hour (0-23)

    Args:
        dos_date: DOS date value (16-bit unsigned integer).
        dos_time: DOS time value (16-bit unsigned integer).

    Returns:
        Naive datetime object representing the DOS date/time. Out of range
        fields (zeroed headers written by some tools) map to 1980-01-01.
    """
    day = dos_date & 0x1F
    month = (dos_date >> 5) & 0x0F
    year = ((dos_date >> 9) & 0x7F) + 1980

    second = (dos_time & 0x1F) * 2
    minute = (dos_time >> 5) & 0x3F
    hour = (dos_time >> 11) & 0x1F

    try:
        return datetime(year, month, day, hour, minute, min(second, 59))
    except ValueError:
        return datetime(1980, 1, 1, 0, 0, 0)


def timestamp_to_dos_datetime(dt: datetime) -> tuple[int, int]:
    """Convert Python datetime to DOS date and time.

    Years outside 1980-2107 are clamped to the representable range and
    seconds are truncated to the 2-second DOS resolution.

    Args:
        dt: datetime object to convert.

    Returns:
        Tuple of (dos_date, dos_time) as 16-bit unsigned integers.
    """
    if dt.year < 1980:
        # 1980-01-01 00:00:00
        return (1 | (1 << 5), 0)
    if dt.year > 2107:
        dt = datetime(2107, 12, 31, 23, 59, 58)

    dos_date = dt.day | (dt.month << 5) | ((dt.year - 1980) << 9)
    dos_time = (dt.second // 2) | (dt.minute << 5) | (dt.hour << 11)

    return (dos_date & 0xFFFF, dos_time & 0xFFFF)


def encode_name(name: PathLike) -> tuple[bytes, bool]:
    """Encode an entry name for storage.

    Args:
        name: Entry name as ``str`` or raw ``bytes``.

    Returns:
        Tuple of (name bytes, needs UTF-8 flag). Raw bytes and pure ASCII
        names do not set the flag.
    """
    if isinstance(name, (bytes, bytearray, memoryview)):
        return bytes(name), False
    if isinstance(name, str):
        encoded = name.encode("utf-8")
        return encoded, not name.isascii()
    raise TypeError(f"Entry name must be str or bytes, not {type(name).__name__}")


def lookup_key(name: PathLike) -> bytes:
    """Return the byte string a path is matched against in the directory index.

    No separator or case normalization is performed.
    """
    if isinstance(name, str):
        return name.encode("utf-8")
    return bytes(name)


def decode_name(raw: bytes, flags: int) -> str:
    """Decode a stored entry name for display.

    Names with the UTF-8 flag are decoded as UTF-8, all others as CP437,
    the historical ZIP code page.
    """
    if flags & FLAG_UTF8:
        return raw.decode("utf-8", errors="replace")
    return raw.decode("cp437")


def posix_arcname(path: Union[str, os.PathLike]) -> str:
    """Turn a filesystem path into an archive name with forward slashes and no drive or root."""
    name = os.fspath(path)
    name = os.path.splitdrive(name)[1].replace(os.sep, "/")
    if os.altsep:
        name = name.replace(os.altsep, "/")
    return name.lstrip("/")


def read_exact(buf: memoryview, offset: int, size: int) -> memoryview:
    """Return exactly 'size' bytes of the image starting at 'offset'.

    Args:
        buf: Archive image.
        offset: Absolute offset of the first byte.
        size: Number of bytes wanted.

    Returns:
        A view of exactly 'size' bytes; no data is copied.

    Raises:
        ZipFormatError: If the range falls outside the image.
    """
    if offset < 0 or size < 0:
        raise ZipFormatError(f"Invalid read range: offset {offset}, size {size}")

    end = offset + size
    if end > len(buf):
        raise ZipFormatError(
            f"Unexpected end of data: expected {size} bytes at offset {offset}, "
            f"got {max(0, len(buf) - offset)}"
        )
    return buf[offset:end]


def unpack_at(fmt: struct.Struct, buf: memoryview, offset: int, what: str) -> tuple:
    """Unpack a fixed-size record at 'offset', raising ZipFormatError when truncated."""
    if offset < 0 or offset + fmt.size > len(buf):
        raise ZipFormatError(
            f"Truncated {what} at offset {offset}: need {fmt.size} bytes, "
            f"image has {len(buf)}"
        )
    return fmt.unpack_from(buf, offset)
