"""StoredFile repository for database operations."""

import sqlite3
from typing import Optional

from common.logging_config import get_logger
from vault.database import use_connection
from vault.types import StoredFile
from vault.utils import from_iso, to_iso, utc_now

logger = get_logger(__name__)


def _row_to_stored_file(row: sqlite3.Row) -> StoredFile:
    return StoredFile(
        file_id=row["file_id"],
        checksum=row["checksum"],
        original_name=row["original_name"],
        mime_type=row["mime_type"],
        size_bytes=row["size_bytes"],
        is_image=bool(row["is_image"]),
        created_at=from_iso(row["created_at"]),
        has_optimized_variant=bool(row["has_optimized_variant"]),
        optimized_size_bytes=row["optimized_size_bytes"],
        optimized_format=row["optimized_format"],
        compression_ratio=row["compression_ratio"],
        has_original_variant=bool(row["has_original_variant"]),
        is_deleted=bool(row["is_deleted"]),
        deleted_at=from_iso(row["deleted_at"]),
    )


class StoredFileRepository:
    @staticmethod
    def create(stored_file: StoredFile, conn=None) -> StoredFile:
        logger.debug(f"Creating stored file [file_id={stored_file.file_id}]")
        with use_connection(conn) as db:
            db.execute(
                """
                INSERT INTO stored_files (
                    file_id, checksum, original_name, mime_type, size_bytes, is_image,
                    has_optimized_variant, optimized_size_bytes, optimized_format,
                    compression_ratio, has_original_variant, is_deleted, created_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?)
                """,
                (
                    stored_file.file_id,
                    stored_file.checksum,
                    stored_file.original_name,
                    stored_file.mime_type,
                    stored_file.size_bytes,
                    int(stored_file.is_image),
                    int(stored_file.has_optimized_variant),
                    stored_file.optimized_size_bytes,
                    stored_file.optimized_format,
                    stored_file.compression_ratio,
                    int(stored_file.has_original_variant),
                    to_iso(stored_file.created_at),
                )
            )
        return stored_file

    @staticmethod
    def get_by_id(file_id: str, include_deleted: bool = False) -> Optional[StoredFile]:
        with use_connection() as db:
            row = db.execute(
                "SELECT * FROM stored_files WHERE file_id = ?",
                (file_id,)
            ).fetchone()

        if row is None:
            return None
        stored_file = _row_to_stored_file(row)
        if stored_file.is_deleted and not include_deleted:
            return None
        return stored_file

    @staticmethod
    def soft_delete(file_id: str) -> bool:
        with use_connection() as db:
            cursor = db.execute(
                "UPDATE stored_files SET is_deleted = 1, deleted_at = ? WHERE file_id = ? AND is_deleted = 0",
                (to_iso(utc_now()), file_id)
            )
            deleted = cursor.rowcount == 1

        if deleted:
            logger.info(f"Soft-deleted stored file [file_id={file_id}]")
        return deleted

    @staticmethod
    def delete(file_id: str, conn=None) -> None:
        """Remove the row and its replication record; only used to undo an uncommitted upload."""
        with use_connection(conn) as db:
            db.execute("DELETE FROM stored_files WHERE file_id = ?", (file_id,))
        logger.info(f"Deleted stored file row [file_id={file_id}]")
