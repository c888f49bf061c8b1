"""Tests for checksum helpers."""

import hashlib
import io

import pytest

from common.checksum import (
    HashingReader,
    IncrementalChecksumCalculator,
    checksum_of_async_pieces,
    iter_pieces,
    verified_stream,
)


async def _pieces(*items):
    for item in items:
        yield item


def test_incremental_matches_whole():
    calculator = IncrementalChecksumCalculator()
    calculator.update(b"abc")
    calculator.update(b"def")
    assert calculator.finalize() == hashlib.sha256(b"abcdef").hexdigest()
    assert calculator.bytes_seen == 6


def test_incremental_rejects_update_after_finalize():
    calculator = IncrementalChecksumCalculator()
    calculator.finalize()
    with pytest.raises(ValueError):
        calculator.update(b"late")


def test_hashing_reader_counts_and_hashes():
    data = b"x" * 200_000
    reader = HashingReader(io.BytesIO(data))
    copied = b"".join(iter_pieces(reader, 65536))
    assert copied == data
    assert reader.bytes_read == len(data)
    assert reader.hexdigest() == hashlib.sha256(data).hexdigest()


def test_iter_pieces_bounds_piece_size():
    pieces = list(iter_pieces(io.BytesIO(b"a" * 10), 4))
    assert [len(p) for p in pieces] == [4, 4, 2]


@pytest.mark.asyncio
async def test_checksum_of_async_pieces():
    assert await checksum_of_async_pieces(_pieces(b"ab", b"cd")) == hashlib.sha256(b"abcd").hexdigest()


@pytest.mark.asyncio
async def test_verified_stream_passes_matching_bytes():
    mismatches = []
    stream = verified_stream(_pieces(b"ab", b"cd"), hashlib.sha256(b"abcd").hexdigest(), mismatches.append)
    assert b"".join([p async for p in stream]) == b"abcd"
    assert mismatches == []


@pytest.mark.asyncio
async def test_verified_stream_reports_mismatch_after_last_piece():
    def on_mismatch(actual):
        raise RuntimeError(actual)

    stream = verified_stream(_pieces(b"ab", b"cd"), hashlib.sha256(b"other").hexdigest(), on_mismatch)
    received = []
    with pytest.raises(RuntimeError) as exc_info:
        async for piece in stream:
            received.append(piece)
    assert received == [b"ab", b"cd"]
    assert str(exc_info.value) == hashlib.sha256(b"abcd").hexdigest()
