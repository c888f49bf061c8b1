"""Pydantic schemas for file endpoints."""

from typing import List, Optional

from pydantic import BaseModel

from vault.types import ReplicationRecord, StoredFile, SyncPriority, SyncStatus
from vault.utils import to_iso


class ReplicationRecordResponse(BaseModel):
    """Replication state of one file."""
    file_id: str
    status: SyncStatus
    priority: SyncPriority
    attempts: int
    last_error: Optional[str] = None
    created_at: str
    updated_at: str
    next_attempt_at: Optional[str] = None
    synced_at: Optional[str] = None

    @classmethod
    def from_record(cls, record: ReplicationRecord) -> "ReplicationRecordResponse":
        return cls(
            file_id=record.file_id,
            status=record.status,
            priority=record.priority,
            attempts=record.attempts,
            last_error=record.last_error,
            created_at=to_iso(record.created_at),
            updated_at=to_iso(record.updated_at),
            next_attempt_at=to_iso(record.next_attempt_at),
            synced_at=to_iso(record.synced_at),
        )


class StoredFileResponse(BaseModel):
    """Metadata of a stored file."""
    file_id: str
    checksum: str
    original_name: str
    mime_type: str
    size_bytes: int
    is_image: bool
    created_at: str
    has_optimized_variant: bool
    optimized_size_bytes: Optional[int] = None
    optimized_format: Optional[str] = None
    compression_ratio: Optional[int] = None
    has_original_variant: bool

    @classmethod
    def from_stored_file(cls, stored: StoredFile) -> "StoredFileResponse":
        return cls(
            file_id=stored.file_id,
            checksum=stored.checksum,
            original_name=stored.original_name,
            mime_type=stored.mime_type,
            size_bytes=stored.size_bytes,
            is_image=stored.is_image,
            created_at=to_iso(stored.created_at),
            has_optimized_variant=stored.has_optimized_variant,
            optimized_size_bytes=stored.optimized_size_bytes,
            optimized_format=stored.optimized_format,
            compression_ratio=stored.compression_ratio,
            has_original_variant=stored.has_original_variant,
        )


class UploadResponse(BaseModel):
    """Response model for file upload."""
    files: List[StoredFileResponse]


class FileDetailResponse(BaseModel):
    """Response model for file metadata lookups."""
    file: StoredFileResponse
    replication: Optional[ReplicationRecordResponse] = None


class DeleteFileResponse(BaseModel):
    file_id: str
    deleted: bool
