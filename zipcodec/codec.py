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
Raw DEFLATE codec shared by the reader and the writer.

Streams carry no zlib or gzip wrapper (negative window bits), as required
inside ZIP entries. Every call builds its own compressor or decompressor,
so the functions hold no shared state and can run concurrently.
"""

import zlib
from enum import IntEnum
from typing import Optional, Union

from .errors import ZipCompressionError

RAW_WBITS = -zlib.MAX_WBITS


class CompressionLevel(IntEnum):
    """Compression levels trading speed for ratio.

    Plain integers 0-9 are accepted wherever a level is expected.
    """

    STORED = 0
    FAST = 1
    DEFAULT = 6
    BEST = 9


def coerce_level(level: Union[CompressionLevel, int, None]) -> int:
    """Validate a compression level and return it as an int.

    ``None`` means :attr:`CompressionLevel.STORED`.

    Raises:
        ZipCompressionError: If the level is outside 0-9.
    """
    if level is None:
        return CompressionLevel.STORED
    if isinstance(level, bool) or not isinstance(level, int):
        raise ZipCompressionError(f"Invalid compression level: {level!r}")
    if not CompressionLevel.STORED <= level <= CompressionLevel.BEST:
        raise ZipCompressionError(f"Invalid compression level: {level} (must be 0-9)")
    return int(level)


def deflate(data: bytes, level: Union[CompressionLevel, int] = CompressionLevel.DEFAULT) -> bytes:
    """Compress data into a raw DEFLATE stream.

    Level 0 still produces a valid DEFLATE stream made of stored blocks;
    choosing the Stored ZIP method instead is the writer's decision.

    Args:
        data: Data to compress.
        level: Compression level (0-9).

    Returns:
        Compressed data as bytes.

    Raises:
        ZipCompressionError: If the level is invalid or compression fails.
    """
    level = coerce_level(level)
    try:
        compressor = zlib.compressobj(level, zlib.DEFLATED, RAW_WBITS)
        return compressor.compress(data) + compressor.flush()
    except zlib.error as e:
        raise ZipCompressionError(f"Deflate compression failed: {e}") from e


def inflate(data: bytes, expected_size: Optional[int] = None) -> bytes:
    """Decompress a raw DEFLATE stream.

    Args:
        data: Complete compressed stream.
        expected_size: Exact decompressed size, if known. Output is capped
            just past this size so a damaged stream cannot expand without
            bound.

    Returns:
        Decompressed data as bytes.

    Raises:
        ZipCompressionError: If the stream is malformed or truncated, is
            followed by trailing data, or decompresses to a size other
            than expected_size.
    """
    decompressor = zlib.decompressobj(RAW_WBITS)
    try:
        if expected_size is None:
            result = decompressor.decompress(data)
        else:
            # One byte of headroom makes an overlong stream detectable
            result = decompressor.decompress(data, expected_size + 1)
    except zlib.error as e:
        raise ZipCompressionError(f"Deflate decompression failed: {e}") from e

    if expected_size is not None and len(result) > expected_size:
        raise ZipCompressionError(
            f"Deflate stream expands beyond the expected {expected_size} bytes"
        )
    if not decompressor.eof:
        raise ZipCompressionError("Deflate stream is truncated")
    if decompressor.unused_data:
        raise ZipCompressionError(
            f"Extra data after compressed stream: {len(decompressor.unused_data)} bytes"
        )
    if expected_size is not None and len(result) != expected_size:
        raise ZipCompressionError(
            f"Size mismatch: expected {expected_size} bytes, inflated {len(result)}"
        )
    return result
