import random

import pytest

from zipcodec import CompressionLevel, ZipWriter


def build_archive(entries, level=CompressionLevel.DEFAULT, comment=None):
    """Write (path, data) pairs to an in-memory archive and return its bytes."""
    with ZipWriter(comment=comment) as z:
        for path, data in entries:
            z.add_entry(path, data, level)
    return z.getvalue()


@pytest.fixture
def text_payload() -> bytes:
    return b"".join(f"line {i}: the quick brown fox jumps over the lazy dog\n".encode() for i in range(500))


@pytest.fixture
def random_payload() -> bytes:
    return random.Random(1234).randbytes(4096)


@pytest.fixture
def sample_archive(text_payload, random_payload) -> bytes:
    return build_archive(
        [
            ("readme.txt", b"Hello, World!"),
            ("docs/big.txt", text_payload),
            ("bin/noise.bin", random_payload),
            ("empty.txt", b""),
        ]
    )


@pytest.fixture
def make_archive():
    return build_archive
