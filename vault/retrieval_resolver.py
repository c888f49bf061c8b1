"""Picks the tier that serves a file's bytes, falling back when a tier fails."""

from typing import AsyncIterator, Iterator, Union

from common.checksum import verified_stream
from common.logging_config import get_logger
from vault.exceptions import (
    AllTiersUnavailableError,
    ChecksumMismatchError,
    NotFoundError,
    StorageIOError,
    TransferError,
)
from vault.repositories import ReplicationRepository, StoredFileRepository
from vault.storage import TieredStore
from vault.types import ResolvedFile, SourceHint, StoredFile, SyncStatus, Tier

logger = get_logger(__name__)


async def _iterate_async(pieces: Iterator[bytes]) -> AsyncIterator[bytes]:
    try:
        for piece in pieces:
            yield piece
    finally:
        pieces.close()


class RetrievalResolver:
    """
    Resolves a file id and a source hint to a byte stream.

    Only reads: read tracking and any other side effect belongs to the caller.
    Streams are checksum-verified as they are consumed; a mismatch raises
    ``ChecksumMismatchError`` once the last piece has been read.
    """

    def __init__(self, store: TieredStore):
        self.store = store

    async def resolve(
        self,
        file_id: str,
        source_hint: Union[SourceHint, str] = SourceHint.AUTO,
    ) -> ResolvedFile:
        """
        Open a stream for ``file_id``.

        Args:
            file_id: File to read
            source_hint: ``auto`` (local, then remote if SYNCED), ``local`` or ``remote``

        Returns:
            ResolvedFile naming the tier that served the bytes

        Raises:
            NotFoundError: If the file does not exist or the hinted tier cannot serve it
            AllTiersUnavailableError: If ``auto`` finds neither tier usable
        """
        hint = SourceHint(source_hint)
        stored = StoredFileRepository.get_by_id(file_id)
        if stored is None:
            raise NotFoundError(f"File {file_id} not found")

        if hint == SourceHint.LOCAL:
            return self._resolved(stored, self._open_local(stored), Tier.LOCAL)

        if hint == SourceHint.REMOTE:
            return self._resolved(stored, await self._open_remote(stored), Tier.REMOTE)

        try:
            return self._resolved(stored, self._open_local(stored), Tier.LOCAL)
        except (NotFoundError, StorageIOError) as local_error:
            logger.warning(f"Local tier cannot serve {file_id}, trying remote: {local_error}")
            try:
                stream = await self._open_remote(stored)
            except (NotFoundError, TransferError) as remote_error:
                raise AllTiersUnavailableError(
                    f"File {file_id} unavailable: local ({local_error}); remote ({remote_error})"
                ) from remote_error

        logger.info(f"Serving {file_id} from remote tier after local fallback")
        return self._resolved(stored, stream, Tier.REMOTE)

    def _open_local(self, stored: StoredFile) -> AsyncIterator[bytes]:
        size = self.store.local_size(stored.file_id)
        if size is None:
            raise NotFoundError(f"File {stored.file_id} not found on local tier")
        if size != stored.primary_size_bytes:
            raise NotFoundError(
                f"Local copy of {stored.file_id} is {size} bytes, expected {stored.primary_size_bytes}"
            )
        pieces = self.store.read_local(stored.file_id)
        return self._verify(_iterate_async(pieces), stored, Tier.LOCAL)

    async def _open_remote(self, stored: StoredFile) -> AsyncIterator[bytes]:
        record = ReplicationRepository.get(stored.file_id)
        if record is None or record.status != SyncStatus.SYNCED:
            raise NotFoundError(f"File {stored.file_id} is not synced to the remote tier")
        if not await self.store.exists_remote(stored.file_id):
            raise NotFoundError(f"File {stored.file_id} not found on remote tier")
        return self._verify(self.store.read_remote(stored.file_id), stored, Tier.REMOTE)

    @staticmethod
    def _verify(pieces: AsyncIterator[bytes], stored: StoredFile, tier: Tier) -> AsyncIterator[bytes]:
        def on_mismatch(actual: str):
            logger.error(
                f"Checksum mismatch reading {stored.file_id} from {tier.value} tier: "
                f"expected {stored.checksum}, got {actual}"
            )
            raise ChecksumMismatchError(f"{tier.value} copy of {stored.file_id} is corrupt")

        return verified_stream(pieces, stored.checksum, on_mismatch)

    @staticmethod
    def _resolved(stored: StoredFile, stream: AsyncIterator[bytes], tier: Tier) -> ResolvedFile:
        return ResolvedFile(
            file_id=stored.file_id,
            stream=stream,
            source_used=tier,
            original_name=stored.original_name,
            mime_type=stored.primary_mime_type,
            size_bytes=stored.primary_size_bytes,
            checksum=stored.checksum,
        )
