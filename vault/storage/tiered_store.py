"""Facade over the local and remote tiers for a logical file id."""

from typing import AsyncIterator, BinaryIO, Iterable, Iterator, Optional

from common.logging_config import get_logger
from vault.exceptions import NotFoundError, SyncDisabledError
from vault.storage.local_tier import ORIGINAL_VARIANT, LocalTier
from vault.storage.remote_tier import RemoteTier

logger = get_logger(__name__)


class TieredStore:
    """
    Owns every stored byte. Local writes happen on the upload path; remote
    writes are issued only by the sync queue.
    """

    def __init__(self, local: LocalTier, remote: Optional[RemoteTier] = None):
        self.local = local
        self.remote = remote

    @property
    def remote_enabled(self) -> bool:
        return self.remote is not None

    def write_local(self, file_id: str, source: BinaryIO, variant: Optional[str] = None) -> int:
        return self.local.write(file_id, source, variant)

    def read_local(self, file_id: str, variant: Optional[str] = None) -> Iterator[bytes]:
        return self.local.open_stream(file_id, variant)

    def local_size(self, file_id: str) -> Optional[int]:
        return self.local.size(file_id)

    def delete_local(self, file_id: str) -> None:
        """Remove both variants; used to undo an upload that did not commit."""
        self.local.delete(file_id)
        self.local.delete(file_id, ORIGINAL_VARIANT)

    async def write_remote(self, file_id: str, pieces: Iterable[bytes], size: int, checksum: str) -> None:
        if self.remote is None:
            raise SyncDisabledError("No remote tier is configured")
        await self.remote.write(file_id, pieces, size, checksum)

    def read_remote(self, file_id: str) -> AsyncIterator[bytes]:
        if self.remote is None:
            raise NotFoundError(f"File {file_id} not found: no remote tier configured")
        return self.remote.read(file_id)

    async def exists_remote(self, file_id: str) -> bool:
        if self.remote is None:
            return False
        return await self.remote.exists(file_id)

    async def close(self) -> None:
        if self.remote is not None:
            await self.remote.close()
