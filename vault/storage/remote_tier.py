"""Remote tier interface and the mounted-directory backend."""

import asyncio
import errno
import os
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import AsyncIterator, BinaryIO, Iterable, Optional, Union

from common.checksum import iter_pieces
from common.constants import STREAM_PIECE_SIZE_BYTES
from common.logging_config import get_logger
from vault import config
from vault.exceptions import (
    NotFoundError,
    RemoteRejectedError,
    RemoteUnreachableError,
)
from vault.storage.local_tier import validate_object_id

logger = get_logger(__name__)


async def _in_thread(func, *args):
    """
    Run a blocking call in the default executor.

    On cancellation the thread is waited for before CancelledError propagates,
    so the caller never leaves work running behind it.
    """
    future = asyncio.get_running_loop().run_in_executor(None, func, *args)
    try:
        return await asyncio.shield(future)
    except asyncio.CancelledError:
        await asyncio.wait([future])
        if future.exception() is not None:
            logger.warning(f"Blocking call failed after cancellation: {future.exception()}")
        raise


class RemoteTier(ABC):
    """
    Secondary store receiving replicated bytes.

    Writes are only ever issued by the sync queue, never on the upload path.
    Implementations raise ``TransferTimeoutError``, ``RemoteUnreachableError``
    or ``RemoteRejectedError`` for failed writes.
    """

    @abstractmethod
    async def write(self, file_id: str, pieces: Iterable[bytes], size: int, checksum: str) -> None:
        ...

    @abstractmethod
    def read(self, file_id: str) -> AsyncIterator[bytes]:
        """Stream an object's bytes; raises NotFoundError if absent."""

    @abstractmethod
    async def exists(self, file_id: str) -> bool:
        ...

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


class DirectoryRemoteTier(RemoteTier):
    """
    Remote tier on a mounted volume (NFS, SMB, an rsync target).

    The root must already exist: a missing mount point means the remote is
    unreachable, not that it should be created locally.
    """

    def __init__(self, root: Union[str, Path, None] = None):
        self.root = Path(root if root is not None else config.REMOTE_STORAGE_PATH)

    def path_for(self, file_id: str) -> Path:
        validate_object_id(file_id)
        return self.root / file_id[:2] / f"{file_id}.bin"

    async def write(self, file_id: str, pieces: Iterable[bytes], size: int, checksum: str) -> None:
        """
        Copy pieces into a temporary file and rename it into place.

        Each blocking step runs in a worker thread. If the caller is cancelled
        (transfer timeout) the step in flight is allowed to return before the
        temporary file is removed and the cancellation propagates, so no write
        for ``file_id`` outlives this call.
        """
        if not self.root.is_dir():
            raise RemoteUnreachableError(f"Remote volume {self.root} is not mounted")

        target = self.path_for(file_id)
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        written = 0
        published = False
        handle = None
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            handle = open(tmp_path, 'wb')
            for piece in pieces:
                await _in_thread(self._write_piece, handle, piece)
                written += len(piece)
            await _in_thread(self._flush, handle)
            handle.close()
            if written != size:
                raise RemoteRejectedError(f"Size mismatch for {file_id}: expected {size}, wrote {written}")
            os.replace(tmp_path, target)
            published = True
        except OSError as e:
            if e.errno == errno.ENOSPC:
                raise RemoteRejectedError(f"Remote volume full while writing {file_id}") from e
            raise RemoteUnreachableError(f"Remote write failed for {file_id}: {e}") from e
        finally:
            if handle is not None and not handle.closed:
                handle.close()
            if not published:
                tmp_path.unlink(missing_ok=True)

        logger.info(f"Wrote {written} bytes to remote volume [file_id={file_id}]")

    def _write_piece(self, handle: BinaryIO, piece: bytes) -> None:
        handle.write(piece)

    def _flush(self, handle: BinaryIO) -> None:
        handle.flush()
        os.fsync(handle.fileno())

    async def read(self, file_id: str) -> AsyncIterator[bytes]:
        path = self.path_for(file_id)
        try:
            handle = open(path, 'rb')
        except FileNotFoundError as e:
            raise NotFoundError(f"File {file_id} not found on remote tier") from e
        except OSError as e:
            raise RemoteUnreachableError(f"Cannot read {file_id} from remote volume: {e}") from e

        with handle:
            for piece in iter_pieces(handle, STREAM_PIECE_SIZE_BYTES):
                yield piece
                await asyncio.sleep(0)

    async def exists(self, file_id: str) -> bool:
        return self.path_for(file_id).is_file()

    async def ping(self) -> bool:
        return self.root.is_dir()


def create_remote_tier(backend: Optional[str] = None) -> Optional[RemoteTier]:
    """
    Build the configured remote tier.

    Args:
        backend: ``grpc``, ``directory`` or ``none``; defaults to VAULT_REMOTE_BACKEND

    Returns:
        RemoteTier instance, or None when replication is disabled
    """
    backend = (backend or config.REMOTE_BACKEND).lower()
    if backend == "grpc":
        from vault.storage.replica_client import GrpcRemoteTier
        return GrpcRemoteTier(config.REPLICA_TARGET)
    if backend == "directory":
        return DirectoryRemoteTier(config.REMOTE_STORAGE_PATH)
    if backend in ("none", ""):
        return None
    raise ValueError(f"Unknown remote backend: {backend}")
