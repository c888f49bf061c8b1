"""Pydantic schemas for the replication queue endpoints."""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from vault.exceptions import ErrorKind
from vault.schemas.files import ReplicationRecordResponse
from vault.sync.queue_manager import BatchResult, IntegrityResult, QueueStatus, SyncResult
from vault.types import SyncPriority, SyncStatus


class ProcessBatchRequest(BaseModel):
    """Request model for processing one queue batch."""
    batch_size: Optional[int] = Field(default=None, ge=1)
    priority_first: bool = True
    max_retries: Optional[int] = Field(default=None, ge=1)
    include_failed: bool = False


class ForceSyncRequest(BaseModel):
    """Request model for replicating a single file now."""
    force_priority: Optional[SyncPriority] = None
    reset_retries: bool = False
    update_priority: bool = True


class SetPriorityRequest(BaseModel):
    priority: SyncPriority


class ResetRetriesRequest(BaseModel):
    """Omit ``file_ids`` to reset every FAILED record."""
    file_ids: Optional[List[str]] = None


class ResetRetriesResponse(BaseModel):
    reset_count: int


class SyncResultResponse(BaseModel):
    file_id: str
    success: bool
    status: SyncStatus
    attempts: int
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None

    @classmethod
    def from_result(cls, result: SyncResult) -> "SyncResultResponse":
        return cls(
            file_id=result.file_id,
            success=result.success,
            status=result.status,
            attempts=result.attempts,
            error=result.error,
            error_kind=result.error_kind,
        )


class BatchResultResponse(BaseModel):
    """Response model for a processed batch."""
    processed: int
    successful: int
    failed: int
    results: List[SyncResultResponse]

    @classmethod
    def from_result(cls, result: BatchResult) -> "BatchResultResponse":
        return cls(
            processed=result.processed,
            successful=result.successful,
            failed=result.failed,
            results=[SyncResultResponse.from_result(item) for item in result.results],
        )


class QueueStatusResponse(BaseModel):
    """Response model for the queue status report."""
    counts_by_status: Dict[str, int]
    outstanding_by_priority: Dict[str, int]
    oldest_pending_age_seconds: Optional[float] = None
    total_size_by_status: Dict[str, int]
    average_attempts_by_status: Dict[str, float]
    failed: List[ReplicationRecordResponse]

    @classmethod
    def from_status(cls, queue_status: QueueStatus) -> "QueueStatusResponse":
        return cls(
            counts_by_status=queue_status.counts_by_status,
            outstanding_by_priority=queue_status.outstanding_by_priority,
            oldest_pending_age_seconds=queue_status.oldest_pending_age_seconds,
            total_size_by_status=queue_status.total_size_by_status,
            average_attempts_by_status=queue_status.average_attempts_by_status,
            failed=[ReplicationRecordResponse.from_record(record) for record in queue_status.failed],
        )


class IntegrityResultResponse(BaseModel):
    """Response model for a remote integrity check."""
    file_id: str
    verified: bool
    status: SyncStatus
    expected_checksum: str
    remote_checksum: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def from_result(cls, result: IntegrityResult) -> "IntegrityResultResponse":
        return cls(
            file_id=result.file_id,
            verified=result.verified,
            status=result.status,
            expected_checksum=result.expected_checksum,
            remote_checksum=result.remote_checksum,
            reason=result.reason,
        )
