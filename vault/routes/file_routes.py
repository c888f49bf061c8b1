"""File API routes: upload, metadata, download and soft delete."""

import asyncio
from typing import List
from urllib.parse import quote

from fastapi import APIRouter, BackgroundTasks, Depends, File, Form, Query, UploadFile, status
from fastapi.responses import StreamingResponse

from common.logging_config import get_logger
from vault import config
from vault.retrieval_resolver import RetrievalResolver
from vault.schemas.files import (
    DeleteFileResponse,
    FileDetailResponse,
    ReplicationRecordResponse,
    StoredFileResponse,
    UploadResponse,
)
from vault.service_locator import get_queue_manager, get_retrieval_resolver, get_upload_service
from vault.services.upload_service import UploadService
from vault.sync.queue_manager import SyncQueueManager
from vault.types import SourceHint, SyncPriority

logger = get_logger(__name__)

router = APIRouter(prefix="/files", tags=["Files"])


async def _auto_sync(manager: SyncQueueManager, file_ids: List[str]) -> None:
    for file_id in file_ids:
        try:
            await manager.sync_file(file_id)
        except Exception as e:
            logger.error(f"Auto sync of {file_id} failed: {e}", exc_info=True)


@router.post("", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_files(
    background_tasks: BackgroundTasks,
    files: List[UploadFile] = File(...),
    priority: SyncPriority = Form(SyncPriority.NORMAL),
    upload_service: UploadService = Depends(get_upload_service),
    queue_manager: SyncQueueManager = Depends(get_queue_manager),
):
    """
    Upload one or more files.

    Parameters:
        - files: Files to upload (multipart/form-data)
        - priority: Replication priority (LOW, NORMAL, HIGH)

    Returns:
        - files: Metadata of every stored file

    Raises:
        - 400: Disallowed type or too many files
        - 413: File too large
        - 507: Local storage full
    """
    batch = [
        (upload.file, upload.filename or "", upload.content_type or "application/octet-stream")
        for upload in files
    ]
    stored_files = await asyncio.to_thread(upload_service.upload_many, batch, priority)

    if config.AUTO_SYNC_ON_UPLOAD and queue_manager.store.remote_enabled:
        background_tasks.add_task(_auto_sync, queue_manager, [stored.file_id for stored in stored_files])

    return UploadResponse(files=[StoredFileResponse.from_stored_file(stored) for stored in stored_files])


@router.get("/{file_id}", response_model=FileDetailResponse)
async def get_file(file_id: str, upload_service: UploadService = Depends(get_upload_service)):
    stored, record = upload_service.get_file(file_id)
    return FileDetailResponse(
        file=StoredFileResponse.from_stored_file(stored),
        replication=ReplicationRecordResponse.from_record(record) if record else None,
    )


@router.get("/{file_id}/download")
async def download_file(
    file_id: str,
    source: SourceHint = Query(SourceHint.AUTO, description="auto, local or remote"),
    resolver: RetrievalResolver = Depends(get_retrieval_resolver),
):
    """
    Download a file's primary bytes.

    The tier that served the bytes is reported in ``X-Source-Used``.

    Raises:
        - 404: File not found, or the requested tier cannot serve it
        - 503: Neither tier can serve the file
    """
    resolved = await resolver.resolve(file_id, source)

    return StreamingResponse(
        resolved.stream,
        media_type=resolved.mime_type,
        headers={
            "Content-Disposition": f"attachment; filename*=UTF-8''{quote(resolved.original_name)}",
            "Content-Length": str(resolved.size_bytes),
            "X-Source-Used": resolved.source_used.value,
            "X-Checksum-SHA256": resolved.checksum,
        }
    )


@router.delete("/{file_id}", response_model=DeleteFileResponse)
async def delete_file(file_id: str, upload_service: UploadService = Depends(get_upload_service)):
    upload_service.delete(file_id)
    return DeleteFileResponse(file_id=file_id, deleted=True)
