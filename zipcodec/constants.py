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
ZIP format constants: record signatures, compression methods, flags, versions and limits.
"""

# Record signatures (little-endian magic numbers)
LOCAL_FILE_HEADER = 0x04034B50  # "PK\x03\x04"
CENTRAL_DIR_HEADER = 0x02014B50  # "PK\x01\x02"
END_OF_CENTRAL_DIR = 0x06054B50  # "PK\x05\x06"
ZIP64_END_OF_CENTRAL_DIR = 0x06064B50  # "PK\x06\x06"
ZIP64_END_OF_CENTRAL_DIR_LOCATOR = 0x07064B50  # "PK\x06\x07"
DATA_DESCRIPTOR = 0x08074B50  # "PK\x07\x08"

CENTRAL_DIR_MAGIC = b"PK\x01\x02"
END_OF_CENTRAL_DIR_MAGIC = b"PK\x05\x06"

# Compression methods
COMP_STORED = 0
COMP_DEFLATE = 8

METHOD_NAMES = {
    COMP_STORED: "stored",
    COMP_DEFLATE: "deflate",
    12: "bzip2",
    14: "lzma",
    93: "zstd",
}

# General purpose bit flags
FLAG_ENCRYPTED = 0x0001
FLAG_DATA_DESCRIPTOR = 0x0008
FLAG_STRONG_ENCRYPTION = 0x0040
FLAG_UTF8 = 0x0800

# Version needed to extract
VERSION_STORED = 10
VERSION_DEFLATE = 20

# Made by: Unix (high byte 3), APPNOTE 2.0 (low byte 20)
VERSION_MADE_BY_DEFAULT = (3 << 8) | VERSION_DEFLATE

# External attributes (Unix mode in the high 16 bits, MS-DOS directory bit in the low byte)
FILE_ATTRS_DEFAULT = 0o100644 << 16
DIR_ATTRS_DEFAULT = (0o040755 << 16) | 0x10

# Classic ZIP limits (anything beyond needs ZIP64)
MAX_FILE_SIZE = 0xFFFFFFFF
MAX_ENTRIES = 0xFFFF
MAX_CD_SIZE = 0xFFFFFFFF
MAX_CD_OFFSET = 0xFFFFFFFF
MAX_NAME_LENGTH = 0xFFFF
MAX_COMMENT_LENGTH = 0xFFFF

# ZIP64 extended information extra field tag
ZIP64_EXTRA_FIELD_TAG = 0x0001

# Fixed record sizes
LOCAL_FILE_HEADER_SIZE = 30
CENTRAL_DIR_HEADER_SIZE = 46
END_OF_CENTRAL_DIR_SIZE = 22
ZIP64_END_OF_CENTRAL_DIR_SIZE = 56
ZIP64_LOCATOR_SIZE = 20
EXTRA_FIELD_HEADER_SIZE = 4

# The EOCD comment is at most 65535 bytes, so the trailer starts within this many bytes of the end
EOCD_SEARCH_LIMIT = END_OF_CENTRAL_DIR_SIZE + MAX_COMMENT_LENGTH

# Sanity bound on the directory entry count reported by an archive
MAX_ENTRY_COUNT = MAX_ENTRIES
