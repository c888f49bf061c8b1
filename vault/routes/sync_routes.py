"""Administrative routes for the replication queue."""

from typing import Optional

from fastapi import APIRouter, Depends

from vault.schemas.files import ReplicationRecordResponse
from vault.schemas.sync import (
    BatchResultResponse,
    ForceSyncRequest,
    IntegrityResultResponse,
    ProcessBatchRequest,
    QueueStatusResponse,
    ResetRetriesRequest,
    ResetRetriesResponse,
    SetPriorityRequest,
    SyncResultResponse,
)
from vault.service_locator import get_queue_manager
from vault.sync.queue_manager import SyncQueueManager

router = APIRouter(prefix="/sync", tags=["Sync"])


@router.get("/queue", response_model=QueueStatusResponse)
async def get_queue_status(manager: SyncQueueManager = Depends(get_queue_manager)):
    """
    Report the replication queue: counts by status and priority, the age
    of the oldest PENDING record and the FAILED records with their last error.
    """
    return QueueStatusResponse.from_status(manager.get_queue_status())


@router.post("/queue/process", response_model=BatchResultResponse)
async def process_queue(
    request: Optional[ProcessBatchRequest] = None,
    manager: SyncQueueManager = Depends(get_queue_manager),
):
    """
    Process one batch of the replication queue.

    Raises:
        - 503: No remote tier configured
    """
    request = request or ProcessBatchRequest()
    result = await manager.process_batch(
        batch_size=request.batch_size,
        priority_first=request.priority_first,
        max_retries=request.max_retries,
        include_failed=request.include_failed,
    )
    return BatchResultResponse.from_result(result)


@router.post("/files/{file_id}", response_model=SyncResultResponse)
async def force_file_sync(
    file_id: str,
    request: Optional[ForceSyncRequest] = None,
    manager: SyncQueueManager = Depends(get_queue_manager),
):
    """
    Replicate a single file immediately.

    Raises:
        - 404: File not found
        - 409: File is already being replicated
        - 503: No remote tier configured
    """
    request = request or ForceSyncRequest()
    result = await manager.force_file_sync(
        file_id,
        force_priority=request.force_priority,
        reset_retries=request.reset_retries,
        update_priority=request.update_priority,
    )
    return SyncResultResponse.from_result(result)


@router.post("/files/{file_id}/verify", response_model=IntegrityResultResponse)
async def verify_remote_integrity(file_id: str, manager: SyncQueueManager = Depends(get_queue_manager)):
    """
    Re-verify the remote copy of a synced file against its stored checksum.

    A missing or corrupt copy sends the file back to the queue (PENDING).

    Raises:
        - 404: File not found
        - 502/504: Remote tier unreachable or too slow
        - 503: No remote tier configured
    """
    result = await manager.verify_remote_integrity(file_id)
    return IntegrityResultResponse.from_result(result)


@router.put("/files/{file_id}/priority", response_model=ReplicationRecordResponse)
async def set_priority(
    file_id: str,
    request: SetPriorityRequest,
    manager: SyncQueueManager = Depends(get_queue_manager),
):
    record = manager.set_priority(file_id, request.priority)
    return ReplicationRecordResponse.from_record(record)


@router.post("/retries/reset", response_model=ResetRetriesResponse)
async def reset_retries(
    request: Optional[ResetRetriesRequest] = None,
    manager: SyncQueueManager = Depends(get_queue_manager),
):
    request = request or ResetRetriesRequest()
    return ResetRetriesResponse(reset_count=manager.reset_retries(request.file_ids))
