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
Exception classes raised by the ZIP codec.

Looking up a path that is not in an archive is never an error; every class
here signals malformed input, corrupt data, an I/O fault or API misuse.
"""


class ZipError(Exception):
    """Base exception class for all ZIP-related errors."""

    pass


class ZipFormatError(ZipError):
    """Raised when an archive has an invalid format or structure.

    This exception is raised when:
    - The end of central directory record cannot be found
    - Directory offsets or counts are inconsistent with the image
    - A record is truncated or carries a wrong signature
    - An entry name is not acceptable for writing
    """

    pass


class ZipUnsupportedFeature(ZipFormatError):
    """Raised when an archive uses a feature this codec does not implement.

    This covers encryption, multi-disk (spanned) archives and ZIP64
    extensions.
    """

    pass


class ZipCrcError(ZipError):
    """Raised when the content of an entry fails its integrity check.

    The CRC32 computed over the decompressed data does not match the CRC32
    stored in the central directory.
    """

    pass


class ZipCompressionError(ZipError):
    """Raised when compression or decompression fails.

    This exception is raised when:
    - The compression method of an entry is not supported
    - A compressed stream is malformed or truncated
    - An invalid compression level is requested
    """

    pass


class ZipCorruptDataError(ZipCrcError, ZipCompressionError):
    """Raised when the payload of a supported entry cannot be decoded.

    A damaged DEFLATE stream is both a codec failure and an integrity
    failure, so it can be caught as either.
    """

    pass


class ZipIOError(ZipError):
    """Raised when the archive sink cannot be opened, written or closed."""

    pass


class ZipStateError(ZipError):
    """Raised when a reader or writer is used outside its lifecycle.

    Examples are adding entries to a finalized writer, finalizing twice, or
    querying a closed reader.
    """

    pass
