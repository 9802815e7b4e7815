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
Debugging utilities for the ZIP codec.

This module provides tools for analyzing and debugging archive images.
"""

import struct
from typing import Optional

from .constants import (
    CENTRAL_DIR_HEADER,
    DATA_DESCRIPTOR,
    END_OF_CENTRAL_DIR,
    LOCAL_FILE_HEADER,
)
from .errors import ZipError
from .structures import parse_central_directory_header, parse_eocd, parse_local_file_header

_SIGNATURE = struct.Struct("<I")


def hex_dump(data: bytes, offset: int = 0, length: Optional[int] = None) -> str:
    """Create a hex dump of binary data.

    Args:
        data: Binary data to dump.
        offset: Starting offset for display.
        length: Maximum length to dump (None for all).

    Returns:
        Formatted hex dump string.
    """
    if length is not None:
        data = data[:length]

    lines = []
    for i in range(0, len(data), 16):
        chunk = data[i : i + 16]
        hex_part = " ".join(f"{b:02X}" for b in chunk)
        ascii_part = "".join(chr(b) if 32 <= b < 127 else "." for b in chunk)
        lines.append(f"{offset + i:08X}  {hex_part:<48}  {ascii_part}")

    return "\n".join(lines)


def scan_structures(data: bytes) -> dict[str, list[int]]:
    """Scan an image front to back for ZIP records.

    Records that parse are skipped over as a whole; anything else advances
    one byte at a time, so damaged archives still yield partial results.

    Returns:
        Offsets keyed by "local", "central", "eocd" and "descriptor".
    """
    buf = memoryview(data)
    found: dict[str, list[int]] = {"local": [], "central": [], "eocd": [], "descriptor": []}

    offset = 0
    while offset + _SIGNATURE.size <= len(buf):
        sig = _SIGNATURE.unpack_from(buf, offset)[0]
        try:
            if sig == LOCAL_FILE_HEADER:
                header = parse_local_file_header(buf, offset)
                found["local"].append(offset)
                offset += header.size + header.compressed_size
                continue
            if sig == CENTRAL_DIR_HEADER:
                header = parse_central_directory_header(buf, offset)
                found["central"].append(offset)
                offset += header.size
                continue
            if sig == END_OF_CENTRAL_DIR:
                eocd = parse_eocd(buf, offset)
                found["eocd"].append(offset)
                offset += eocd.size
                continue
            if sig == DATA_DESCRIPTOR:
                found["descriptor"].append(offset)
        except ZipError:
            pass
        offset += 1

    return found


def dump_zip_structure(data: bytes, limit: int = 10) -> str:
    """Describe the record layout of an archive image.

    Args:
        data: Archive image.
        limit: Maximum number of offsets listed per record type.

    Returns:
        Formatted string describing the archive structure.
    """
    found = scan_structures(data)

    output = [f"ZIP image: {len(data)} bytes", "=" * 80]

    output.append(f"\nLocal File Headers: {len(found['local'])}")
    for i, off in enumerate(found["local"][:limit]):
        output.append(f"  [{i}] Offset: 0x{off:08X}")

    output.append(f"\nCentral Directory Headers: {len(found['central'])}")
    for i, off in enumerate(found["central"][:limit]):
        output.append(f"  [{i}] Offset: 0x{off:08X}")

    if found["descriptor"]:
        output.append(f"\nData Descriptors: {len(found['descriptor'])}")

    if found["eocd"]:
        eocd_offset = found["eocd"][-1]
        output.append(f"\nEnd of Central Directory: 0x{eocd_offset:08X}")
        output.append(hex_dump(data[eocd_offset:], eocd_offset, 22))
    else:
        output.append("\nEnd of Central Directory: not found")

    return "\n".join(output)


def verify_zip_structure(data: bytes) -> tuple[bool, list[str]]:
    """Verify that an archive opens and every entry extracts cleanly.

    Args:
        data: Archive image.

    Returns:
        Tuple of (is_valid, list_of_errors).
    """
    from .reader import ZipReader

    errors = []
    try:
        reader = ZipReader(data)
    except ZipError as e:
        return False, [f"Error opening archive: {e}"]

    with reader:
        # Decode entries directly: lookups by name only reach the first of duplicates
        for entry in reader.entries:
            try:
                reader._decompress_entry(entry)
            except ZipError as e:
                errors.append(f"Error reading {entry.filename}: {e}")

    return len(errors) == 0, errors
