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
zipcodec - ZIP archive codec.

Reads entries from ZIP images held in memory and writes or appends entries
to ZIP archives on disk or in memory, using only Python standard library
modules.
"""

import logging

from .codec import CompressionLevel, deflate, inflate
from .errors import (
    ZipCompressionError,
    ZipCorruptDataError,
    ZipCrcError,
    ZipError,
    ZipFormatError,
    ZipIOError,
    ZipStateError,
    ZipUnsupportedFeature,
)
from .reader import ZipReader, open_reader
from .structures import ZipEntry
from .writer import ZipWriter, create_writer

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "CompressionLevel",
    "ZipCompressionError",
    "ZipCorruptDataError",
    "ZipCrcError",
    "ZipEntry",
    "ZipError",
    "ZipFormatError",
    "ZipIOError",
    "ZipReader",
    "ZipStateError",
    "ZipUnsupportedFeature",
    "ZipWriter",
    "create_writer",
    "deflate",
    "inflate",
    "open_reader",
]

__version__ = "0.1.0"
