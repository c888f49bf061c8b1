"""Upload service: content processing, local persistence and enqueueing."""

from typing import BinaryIO, List, Optional, Tuple, Union

from common.logging_config import get_logger
from vault import config
from vault.content_processor import ContentProcessor, ProcessedFile
from vault.database import get_db_connection
from vault.exceptions import NotFoundError, TooManyFilesError
from vault.repositories import ReplicationRepository, StoredFileRepository
from vault.storage import TieredStore
from vault.storage.local_tier import ORIGINAL_VARIANT
from vault.types import ReplicationRecord, StoredFile, SyncPriority
from vault.utils import generate_file_id, utc_now

logger = get_logger(__name__)

UploadSource = Union[bytes, BinaryIO]


class UploadService:
    def __init__(
        self,
        store: TieredStore,
        processor: Optional[ContentProcessor] = None,
        max_files: Optional[int] = None,
    ):
        self.store = store
        self.processor = processor or ContentProcessor()
        self.max_files = max_files if max_files is not None else config.MAX_FILES_PER_UPLOAD

    def upload(
        self,
        source: UploadSource,
        name: str,
        mime_type: str,
        priority: SyncPriority = SyncPriority.NORMAL,
    ) -> StoredFile:
        """
        Process and durably store one file, then enqueue it for replication.

        The StoredFile row and its PENDING ReplicationRecord are committed in
        one transaction only after the local write succeeded; if the commit
        fails the local bytes are removed again.

        Raises:
            InvalidTypeError: If the type is not allowed
            PayloadTooLargeError: If the file exceeds the size ceiling
            StorageFullError: If the local tier is full
            StorageIOError: If the local write fails
        """
        processed = self.processor.process(source, name, mime_type)
        try:
            file_id = generate_file_id(processed.checksum)
            self._write_local(file_id, processed)
            try:
                stored = self._commit(file_id, processed, priority)
            except Exception:
                self.store.delete_local(file_id)
                raise
        finally:
            processed.close()

        logger.info(
            f"Stored file {stored.file_id} ({stored.original_name}, "
            f"{stored.primary_size_bytes} bytes) with {priority.value} replication priority"
        )
        return stored

    def upload_many(
        self,
        files: List[Tuple[UploadSource, str, str]],
        priority: SyncPriority = SyncPriority.NORMAL,
    ) -> List[StoredFile]:
        """
        Store several files from one request; nothing is kept if any of them fails.

        Args:
            files: ``(source, name, mime_type)`` tuples
            priority: Replication priority for every file

        Raises:
            TooManyFilesError: If more files than allowed were sent
        """
        if len(files) > self.max_files:
            raise TooManyFilesError(f"At most {self.max_files} files per upload, got {len(files)}")

        stored_files: List[StoredFile] = []
        try:
            for source, name, mime_type in files:
                stored_files.append(self.upload(source, name, mime_type, priority))
        except Exception:
            for stored in stored_files:
                self._rollback(stored.file_id)
            raise
        return stored_files

    def get_file(self, file_id: str) -> Tuple[StoredFile, Optional[ReplicationRecord]]:
        stored = StoredFileRepository.get_by_id(file_id)
        if stored is None:
            raise NotFoundError(f"File {file_id} not found")
        return stored, ReplicationRepository.get(file_id)

    def delete(self, file_id: str) -> None:
        """Soft delete: the file stops resolving and replicating, bytes stay in place."""
        if not StoredFileRepository.soft_delete(file_id):
            raise NotFoundError(f"File {file_id} not found")

    def _write_local(self, file_id: str, processed: ProcessedFile) -> None:
        try:
            self.store.write_local(file_id, processed.primary)
            if processed.original is not None:
                self.store.write_local(file_id, processed.original, ORIGINAL_VARIANT)
        except Exception:
            self.store.delete_local(file_id)
            raise

    def _commit(self, file_id: str, processed: ProcessedFile, priority: SyncPriority) -> StoredFile:
        optimization = processed.optimization
        stored = StoredFile(
            file_id=file_id,
            checksum=processed.checksum,
            original_name=processed.original_name,
            mime_type=processed.mime_type,
            size_bytes=processed.size_bytes,
            is_image=processed.is_image,
            created_at=utc_now(),
            has_optimized_variant=optimization is not None,
            optimized_size_bytes=optimization.size_bytes if optimization else None,
            optimized_format=optimization.format if optimization else None,
            compression_ratio=optimization.compression_ratio if optimization else None,
            has_original_variant=processed.original is not None,
        )

        with get_db_connection() as conn:
            try:
                StoredFileRepository.create(stored, conn=conn)
                ReplicationRepository.create(file_id, priority, conn=conn)
                conn.commit()
            except Exception:
                conn.rollback()
                raise
        return stored

    def _rollback(self, file_id: str) -> None:
        logger.warning(f"Rolling back upload of {file_id}")
        StoredFileRepository.delete(file_id)
        self.store.delete_local(file_id)
