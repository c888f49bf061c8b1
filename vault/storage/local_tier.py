"""Manages primary file bytes on local disk: atomic writes and streamed reads."""

import errno
import os
import re
import shutil
import uuid
from pathlib import Path
from typing import BinaryIO, Iterator, Optional, Union

from common.checksum import iter_pieces
from common.constants import STREAM_PIECE_SIZE_BYTES
from common.logging_config import get_logger
from vault import config
from vault.exceptions import NotFoundError, StorageFullError, StorageIOError

logger = get_logger(__name__)

_FILE_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]*$')

ORIGINAL_VARIANT = "original"


def validate_object_id(file_id: str) -> str:
    """Reject ids that could escape the storage root."""
    if not file_id or not _FILE_ID_PATTERN.match(file_id):
        raise NotFoundError(f"Invalid file id: {file_id!r}")
    return file_id


class LocalTier:
    """
    Filesystem-backed tier. Objects live at ``<root>/<id[:2]>/<id>.bin``;
    the retained original of an optimized image at ``<id>.original.bin``.
    """

    def __init__(
        self,
        root: Union[str, Path, None] = None,
        min_free_bytes: Optional[int] = None,
    ):
        self.root = Path(root if root is not None else config.LOCAL_STORAGE_PATH)
        self.min_free_bytes = min_free_bytes if min_free_bytes is not None else config.LOCAL_MIN_FREE_BYTES

    def path_for(self, file_id: str, variant: Optional[str] = None) -> Path:
        validate_object_id(file_id)
        suffix = f".{variant}.bin" if variant else ".bin"
        return self.root / file_id[:2] / f"{file_id}{suffix}"

    def write(self, file_id: str, source: BinaryIO, variant: Optional[str] = None) -> int:
        """
        Stream ``source`` to disk and make it visible atomically.

        Args:
            file_id: Logical file id
            source: Readable binary file object positioned at the start
            variant: Optional variant name (e.g. ``original``)

        Returns:
            Number of bytes written

        Raises:
            StorageFullError: If the disk is full or below the free-space floor
            StorageIOError: If the write fails for any other reason
        """
        target = self.path_for(file_id, variant)
        tmp_path = target.with_name(f".{target.name}.{uuid.uuid4().hex}.tmp")
        written = 0

        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            self._check_free_space()
            with open(tmp_path, 'wb') as handle:
                for piece in iter_pieces(source, STREAM_PIECE_SIZE_BYTES):
                    handle.write(piece)
                    written += len(piece)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_path, target)
        except StorageFullError:
            raise
        except OSError as e:
            self._discard(tmp_path)
            if e.errno == errno.ENOSPC:
                raise StorageFullError(f"Local tier full while writing {file_id}") from e
            logger.error(f"Local write failed [file_id={file_id}]: {e}", exc_info=True)
            raise StorageIOError(f"Local write failed for {file_id}: {e}") from e

        logger.debug(f"Wrote {written} bytes to local tier [file_id={file_id}] [variant={variant or 'primary'}]")
        return written

    def open_stream(
        self,
        file_id: str,
        variant: Optional[str] = None,
        piece_size: int = STREAM_PIECE_SIZE_BYTES,
    ) -> Iterator[bytes]:
        """
        Open an object for streaming.

        The file is opened before returning, so a missing object raises here
        rather than on first iteration.

        Raises:
            NotFoundError: If the object does not exist
            StorageIOError: If the object cannot be opened
        """
        path = self.path_for(file_id, variant)
        try:
            handle = open(path, 'rb')
        except FileNotFoundError as e:
            raise NotFoundError(f"File {file_id} not found on local tier") from e
        except OSError as e:
            raise StorageIOError(f"Cannot open {file_id} on local tier: {e}") from e
        return self._stream_handle(handle, piece_size)

    @staticmethod
    def _stream_handle(handle: BinaryIO, piece_size: int) -> Iterator[bytes]:
        with handle:
            yield from iter_pieces(handle, piece_size)

    def exists(self, file_id: str, variant: Optional[str] = None) -> bool:
        return self.path_for(file_id, variant).is_file()

    def size(self, file_id: str, variant: Optional[str] = None) -> Optional[int]:
        path = self.path_for(file_id, variant)
        if path.is_file():
            return path.stat().st_size
        return None

    def delete(self, file_id: str, variant: Optional[str] = None) -> bool:
        path = self.path_for(file_id, variant)
        if path.exists():
            path.unlink()
            return True
        return False

    def _check_free_space(self) -> None:
        if self.min_free_bytes <= 0:
            return
        free = shutil.disk_usage(self.root).free
        if free < self.min_free_bytes:
            raise StorageFullError(
                f"Local tier has {free} bytes free, below the {self.min_free_bytes} byte floor"
            )

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary file {path}: {e}")
