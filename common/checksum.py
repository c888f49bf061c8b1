"""SHA-256 checksum helpers, including hashing readers for streamed bytes."""

import hashlib
from typing import AsyncIterable, AsyncIterator, BinaryIO, Iterator

from common.constants import STREAM_PIECE_SIZE_BYTES


class IncrementalChecksumCalculator:
    """
    Calculate SHA-256 checksum incrementally for streaming data.

    Usage:
        calculator = IncrementalChecksumCalculator()
        calculator.update(piece1)
        calculator.update(piece2)
        final_checksum = calculator.finalize()
    """

    def __init__(self):
        self._hasher = hashlib.sha256()
        self._finalized = False
        self.bytes_seen = 0

    def update(self, data: bytes) -> None:
        if self._finalized:
            raise ValueError("Cannot update after finalization")
        self._hasher.update(data)
        self.bytes_seen += len(data)

    def finalize(self) -> str:
        self._finalized = True
        return self._hasher.hexdigest()


class HashingReader:
    """
    File-like wrapper that hashes and counts every byte read through it.

    Used so the checksum of persisted bytes is computed while they are being
    copied, without buffering the whole payload.
    """

    def __init__(self, source: BinaryIO):
        self._source = source
        self._calculator = IncrementalChecksumCalculator()

    def read(self, size: int = -1) -> bytes:
        data = self._source.read(size)
        if data:
            self._calculator.update(data)
        return data

    @property
    def bytes_read(self) -> int:
        return self._calculator.bytes_seen

    def hexdigest(self) -> str:
        return self._calculator.finalize()


def iter_pieces(source: BinaryIO, piece_size: int = STREAM_PIECE_SIZE_BYTES) -> Iterator[bytes]:
    """Yield a file-like object's content in bounded pieces."""
    while True:
        piece = source.read(piece_size)
        if not piece:
            break
        yield piece


async def checksum_of_async_pieces(pieces: AsyncIterable[bytes]) -> str:
    """Compute the SHA-256 of an async stream of byte pieces."""
    calculator = IncrementalChecksumCalculator()
    async for piece in pieces:
        calculator.update(piece)
    return calculator.finalize()


async def verified_stream(
    pieces: AsyncIterable[bytes],
    expected: str,
    on_mismatch,
) -> AsyncIterator[bytes]:
    """
    Pass pieces through while hashing them; call ``on_mismatch(actual)`` once
    the stream is exhausted if the digest differs from ``expected``.

    ``on_mismatch`` is expected to raise.
    """
    calculator = IncrementalChecksumCalculator()
    async for piece in pieces:
        calculator.update(piece)
        yield piece
    actual = calculator.finalize()
    if actual != expected:
        on_mismatch(actual)
