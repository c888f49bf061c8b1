"""Manages replicated blob files on disk: streamed writes with checksum verification."""

import json
import os
import re
import uuid
from dataclasses import dataclass
from pathlib import Path
from typing import Iterator, Optional, Union

from common.checksum import IncrementalChecksumCalculator, iter_pieces
from common.constants import DEFAULT_REPLICA_STORAGE_PATH, STREAM_PIECE_SIZE_BYTES

BLOBS_DIR = Path(os.environ.get("REPLICA_STORAGE_PATH", DEFAULT_REPLICA_STORAGE_PATH))

_BLOB_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_-]*$')


class BlobVerificationError(Exception):
    """Raised when received bytes do not match the announced size or checksum."""


@dataclass
class BlobInfo:
    file_id: str
    size: int
    checksum: str


class BlobWriter:
    """
    Receives a blob piece by piece into a temporary file.

    Nothing becomes visible until ``commit`` has verified size and checksum.
    """

    def __init__(self, storage: 'BlobStorage', file_id: str):
        self._storage = storage
        self.file_id = file_id
        self._target = storage.get_blob_path(file_id)
        self._tmp_path = self._target.with_name(f".{self._target.name}.{uuid.uuid4().hex}.tmp")
        self._target.parent.mkdir(parents=True, exist_ok=True)
        self._handle = open(self._tmp_path, 'wb')
        self._calculator = IncrementalChecksumCalculator()

    def write(self, data: bytes) -> None:
        self._handle.write(data)
        self._calculator.update(data)

    @property
    def bytes_written(self) -> int:
        return self._calculator.bytes_seen

    def commit(self, expected_size: int, expected_checksum: str) -> BlobInfo:
        """
        Verify and atomically publish the blob.

        Raises:
            BlobVerificationError: If size or checksum differ from the announced values
            OSError: If flushing or renaming fails
        """
        try:
            self._handle.flush()
            os.fsync(self._handle.fileno())
            self._handle.close()

            computed = self._calculator.finalize()
            if computed != expected_checksum:
                raise BlobVerificationError(
                    f"Checksum mismatch for {self.file_id}: expected {expected_checksum}, got {computed}"
                )
            if self.bytes_written != expected_size:
                raise BlobVerificationError(
                    f"Size mismatch for {self.file_id}: expected {expected_size}, got {self.bytes_written}"
                )

            info = BlobInfo(file_id=self.file_id, size=self.bytes_written, checksum=computed)
            os.replace(self._tmp_path, self._target)
            self._storage.write_meta(info)
            return info
        except Exception:
            self.abort()
            raise

    def abort(self) -> None:
        if not self._handle.closed:
            self._handle.close()
        self._tmp_path.unlink(missing_ok=True)


class BlobStorage:
    """
    Blob files live at ``<root>/<id[:2]>/<id>.blob`` with a ``.meta.json``
    sidecar recording size and checksum.
    """

    def __init__(self, root: Union[str, Path, None] = None):
        self.root = Path(root) if root is not None else BLOBS_DIR

    def ensure_directory(self) -> None:
        self.root.mkdir(parents=True, exist_ok=True)

    def get_blob_path(self, file_id: str) -> Path:
        if not file_id or not _BLOB_ID_PATTERN.match(file_id):
            raise ValueError(f"Invalid blob id: {file_id!r}")
        return self.root / file_id[:2] / f"{file_id}.blob"

    def get_meta_path(self, file_id: str) -> Path:
        return self.get_blob_path(file_id).with_suffix(".meta.json")

    def begin_write(self, file_id: str) -> BlobWriter:
        return BlobWriter(self, file_id)

    def write_meta(self, info: BlobInfo) -> None:
        meta_path = self.get_meta_path(info.file_id)
        tmp_path = meta_path.with_name(f".{meta_path.name}.tmp")
        tmp_path.write_text(json.dumps({"size": info.size, "checksum": info.checksum}))
        os.replace(tmp_path, meta_path)

    def stat(self, file_id: str) -> Optional[BlobInfo]:
        """
        Size and checksum of a stored blob, or None if it does not exist.
        """
        blob_path = self.get_blob_path(file_id)
        meta_path = self.get_meta_path(file_id)
        if not blob_path.is_file() or not meta_path.is_file():
            return None
        meta = json.loads(meta_path.read_text())
        return BlobInfo(file_id=file_id, size=meta["size"], checksum=meta["checksum"])

    def exists(self, file_id: str) -> bool:
        return self.stat(file_id) is not None

    def read_streaming(self, file_id: str, piece_size: int = STREAM_PIECE_SIZE_BYTES) -> Iterator[bytes]:
        """
        Stream blob data in pieces.

        Raises:
            FileNotFoundError: If the blob does not exist
        """
        with open(self.get_blob_path(file_id), 'rb') as f:
            yield from iter_pieces(f, piece_size)

    def delete(self, file_id: str) -> bool:
        blob_path = self.get_blob_path(file_id)
        self.get_meta_path(file_id).unlink(missing_ok=True)
        if blob_path.exists():
            blob_path.unlink()
            return True
        return False
