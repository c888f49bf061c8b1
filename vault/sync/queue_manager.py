"""Sync queue manager: drives ReplicationRecords from PENDING to SYNCED."""

import asyncio
from contextlib import closing
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Dict, List, Optional

from common.checksum import checksum_of_async_pieces
from common.logging_config import get_logger
from vault import config
from vault.exceptions import (
    ChecksumMismatchError,
    ErrorKind,
    NotFoundError,
    SyncDisabledError,
    SyncInProgressError,
    TransferTimeoutError,
    VaultError,
)
from vault.repositories import ReplicationRepository, StoredFileRepository
from vault.storage import TieredStore
from vault.types import ReplicationRecord, SyncPriority, SyncStatus
from vault.utils import utc_now

logger = get_logger(__name__)


@dataclass
class SyncResult:
    file_id: str
    success: bool
    status: SyncStatus
    attempts: int
    error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None


@dataclass
class BatchResult:
    processed: int = 0
    successful: int = 0
    failed: int = 0
    results: List[SyncResult] = field(default_factory=list)


@dataclass
class IntegrityResult:
    file_id: str
    verified: bool
    status: SyncStatus
    expected_checksum: str
    remote_checksum: Optional[str] = None
    reason: Optional[str] = None


@dataclass
class QueueStatus:
    counts_by_status: Dict[str, int]
    outstanding_by_priority: Dict[str, int]
    oldest_pending_age_seconds: Optional[float]
    failed: List[ReplicationRecord]
    total_size_by_status: Dict[str, int]
    average_attempts_by_status: Dict[str, float]


class SyncQueueManager:
    """
    Selects eligible ReplicationRecords, replicates them to the remote tier
    and records the outcome.

    Every transfer is preceded by an atomic claim (status -> IN_PROGRESS), so
    at most one attempt per file is in flight no matter how many batches or
    force-syncs run concurrently.
    """

    def __init__(
        self,
        store: TieredStore,
        max_retries: Optional[int] = None,
        transfer_timeout: Optional[float] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
    ):
        self.store = store
        self.max_retries = max_retries if max_retries is not None else config.SYNC_MAX_RETRIES
        self.transfer_timeout = transfer_timeout if transfer_timeout is not None else config.SYNC_TRANSFER_TIMEOUT_SECONDS
        self.backoff_base = backoff_base if backoff_base is not None else config.SYNC_BACKOFF_BASE_SECONDS
        self.backoff_max = backoff_max if backoff_max is not None else config.SYNC_BACKOFF_MAX_SECONDS

    def _require_remote(self) -> None:
        if not self.store.remote_enabled:
            raise SyncDisabledError("Replication is disabled: no remote tier configured")

    async def process_batch(
        self,
        batch_size: Optional[int] = None,
        priority_first: bool = True,
        max_retries: Optional[int] = None,
        include_failed: bool = False,
    ) -> BatchResult:
        """
        Replicate up to ``batch_size`` eligible records concurrently.

        Args:
            batch_size: Maximum records to dispatch in this call
            priority_first: Order HIGH > NORMAL > LOW before oldest-updated
            max_retries: Attempt ceiling for eligibility and the FAILED transition
            include_failed: Also consider FAILED records still under the ceiling

        Returns:
            BatchResult with per-file outcomes
        """
        self._require_remote()
        batch_size = batch_size if batch_size is not None else config.SYNC_BATCH_SIZE
        max_retries = max_retries if max_retries is not None else self.max_retries

        from_statuses = [SyncStatus.PENDING]
        if include_failed:
            from_statuses.append(SyncStatus.FAILED)

        candidates = ReplicationRepository.select_candidates(
            limit=batch_size,
            priority_first=priority_first,
            max_retries=max_retries,
            include_failed=include_failed,
        )

        claimed = [
            record for record in candidates
            if ReplicationRepository.claim(
                record.file_id, from_statuses, max_retries=max_retries, respect_backoff=True
            )
        ]

        result = BatchResult()
        if not claimed:
            logger.debug("Sync batch found no eligible records")
            return result

        logger.info(f"Sync batch dispatching {len(claimed)} of {len(candidates)} candidate(s)")
        outcomes = await asyncio.gather(
            *(self._replicate(record, max_retries) for record in claimed)
        )

        for outcome in outcomes:
            result.processed += 1
            if outcome.success:
                result.successful += 1
            else:
                result.failed += 1
            result.results.append(outcome)

        logger.info(
            f"Sync batch complete: processed={result.processed} "
            f"successful={result.successful} failed={result.failed}"
        )
        return result

    async def force_file_sync(
        self,
        file_id: str,
        force_priority: Optional[SyncPriority] = None,
        reset_retries: bool = False,
        update_priority: bool = True,
    ) -> SyncResult:
        """
        Replicate a single file now, outside batch selection.

        Backoff and the attempt ceiling are ignored; a SYNCED file is
        replicated again. A record already IN_PROGRESS is never touched.

        Raises:
            NotFoundError: If the file or its record does not exist
            SyncInProgressError: If a transfer for the file is already running
            SyncDisabledError: If no remote tier is configured
        """
        self._require_remote()

        if StoredFileRepository.get_by_id(file_id) is None:
            raise NotFoundError(f"File {file_id} not found")
        record = ReplicationRepository.get(file_id)
        if record is None:
            raise NotFoundError(f"No replication record for {file_id}")
        if record.status == SyncStatus.IN_PROGRESS:
            raise SyncInProgressError(f"File {file_id} is already being replicated")

        if reset_retries:
            ReplicationRepository.reset_retries([file_id])
        if force_priority is not None and update_priority:
            ReplicationRepository.set_priority(file_id, force_priority)

        claimed = ReplicationRepository.claim(
            file_id,
            [SyncStatus.PENDING, SyncStatus.FAILED, SyncStatus.SYNCED],
        )
        if not claimed:
            raise SyncInProgressError(f"File {file_id} is already being replicated")

        logger.info(f"Force sync started [file_id={file_id}]")
        return await self._replicate(ReplicationRepository.get(file_id), self.max_retries)

    async def sync_file(self, file_id: str) -> Optional[SyncResult]:
        """
        Replicate one PENDING file if it is eligible right now.

        Returns None when the record is not claimable (already synced, in
        flight elsewhere, exhausted, or waiting out its backoff).
        """
        self._require_remote()
        record = ReplicationRepository.get(file_id)
        if record is None:
            raise NotFoundError(f"No replication record for {file_id}")

        if not ReplicationRepository.claim(
            file_id, [SyncStatus.PENDING], max_retries=self.max_retries, respect_backoff=True
        ):
            logger.debug(f"Skipping sync of {file_id}: not eligible ({record.status.value})")
            return None
        return await self._replicate(record, self.max_retries)

    async def _replicate(self, record: ReplicationRecord, max_retries: int) -> SyncResult:
        file_id = record.file_id
        try:
            stored = StoredFileRepository.get_by_id(file_id, include_deleted=True)
            if stored is None:
                raise NotFoundError(f"File {file_id} not found")

            with closing(self.store.read_local(file_id)) as pieces:
                await asyncio.wait_for(
                    self.store.write_remote(file_id, pieces, stored.primary_size_bytes, stored.checksum),
                    timeout=self.transfer_timeout,
                )

            remote_checksum = await asyncio.wait_for(
                checksum_of_async_pieces(self.store.read_remote(file_id)),
                timeout=self.transfer_timeout,
            )
            if remote_checksum != stored.checksum:
                raise ChecksumMismatchError(
                    f"Remote checksum {remote_checksum} does not match {stored.checksum}"
                )
        except asyncio.TimeoutError:
            error = TransferTimeoutError(f"Transfer exceeded {self.transfer_timeout}s")
            return self._fail(record, error, max_retries)
        except VaultError as e:
            return self._fail(record, e, max_retries)
        except Exception as e:
            logger.error(f"Unexpected replication error [file_id={file_id}]: {e}", exc_info=True)
            return self._fail(record, e, max_retries)

        if not ReplicationRepository.record_success(file_id):
            current = ReplicationRepository.get(file_id)
            message = "claim released before the transfer completed"
            logger.warning(f"Replication claim lost [file_id={file_id}]: {message}")
            return SyncResult(
                file_id=file_id,
                success=False,
                status=current.status if current else SyncStatus.PENDING,
                attempts=current.attempts if current else record.attempts,
                error=f"{ErrorKind.SYNC_IN_PROGRESS.value}: {message}",
                error_kind=ErrorKind.SYNC_IN_PROGRESS,
            )

        return SyncResult(
            file_id=file_id,
            success=True,
            status=SyncStatus.SYNCED,
            attempts=record.attempts,
        )

    def _fail(self, record: ReplicationRecord, error: Exception, max_retries: int) -> SyncResult:
        kind = error.kind if isinstance(error, VaultError) else ErrorKind.IO_ERROR
        message = f"{kind.value}: {error}"
        updated = ReplicationRepository.record_failure(
            record.file_id,
            message,
            max_retries,
            next_attempt_at=utc_now() + self.backoff_delay(record.attempts + 1),
        )
        return SyncResult(
            file_id=record.file_id,
            success=False,
            status=updated.status if updated else SyncStatus.FAILED,
            attempts=updated.attempts if updated else record.attempts + 1,
            error=message,
            error_kind=kind,
        )

    def backoff_delay(self, attempts: int) -> timedelta:
        """Exponential delay before a record that has failed ``attempts`` times is retried."""
        if attempts <= 0 or self.backoff_base <= 0:
            return timedelta(0)
        seconds = min(self.backoff_base * (2 ** (attempts - 1)), self.backoff_max)
        return timedelta(seconds=seconds)

    def get_queue_status(self, failed_limit: int = 100) -> QueueStatus:
        summary = ReplicationRepository.status_summary()
        counts = {status.value: 0 for status in SyncStatus}
        sizes = {status.value: 0 for status in SyncStatus}
        averages = {status.value: 0.0 for status in SyncStatus}
        for status, entry in summary.items():
            counts[status] = entry["count"]
            sizes[status] = entry["total_size"]
            averages[status] = entry["avg_attempts"]

        by_priority = {priority.value: 0 for priority in SyncPriority}
        by_priority.update(ReplicationRepository.outstanding_by_priority())

        oldest = ReplicationRepository.oldest_pending_created_at()
        oldest_age = (utc_now() - oldest).total_seconds() if oldest else None

        return QueueStatus(
            counts_by_status=counts,
            outstanding_by_priority=by_priority,
            oldest_pending_age_seconds=oldest_age,
            failed=ReplicationRepository.list_failed(failed_limit),
            total_size_by_status=sizes,
            average_attempts_by_status=averages,
        )

    def reset_retries(self, file_ids: Optional[List[str]] = None) -> int:
        return ReplicationRepository.reset_retries(file_ids)

    def set_priority(self, file_id: str, priority: SyncPriority) -> ReplicationRecord:
        if not ReplicationRepository.set_priority(file_id, priority):
            raise NotFoundError(f"No replication record for {file_id}")
        logger.info(f"Replication priority changed [file_id={file_id}] -> {priority.value}")
        return ReplicationRepository.get(file_id)

    def recover_stale_transfers(self, lease_seconds: Optional[float] = None) -> int:
        """Release IN_PROGRESS claims left behind by a crashed worker, counting an attempt each."""
        lease = lease_seconds if lease_seconds is not None else config.SYNC_LEASE_SECONDS
        return ReplicationRepository.release_stale(utc_now() - timedelta(seconds=lease), self.max_retries)

    async def verify_remote_integrity(self, file_id: str) -> IntegrityResult:
        """
        Re-hash the remote copy of a SYNCED file and compare it with the
        stored checksum.

        A missing or corrupt copy sends the record back to PENDING so the
        queue replicates it again. Records that are not SYNCED are reported
        as unverified and left alone.

        Raises:
            NotFoundError: If the file or its record does not exist
            TransferError: If the remote tier cannot be read
            SyncDisabledError: If no remote tier is configured
        """
        self._require_remote()
        stored = StoredFileRepository.get_by_id(file_id)
        if stored is None:
            raise NotFoundError(f"File {file_id} not found")
        record = ReplicationRepository.get(file_id)
        if record is None:
            raise NotFoundError(f"No replication record for {file_id}")

        if record.status != SyncStatus.SYNCED:
            return IntegrityResult(
                file_id=file_id,
                verified=False,
                status=record.status,
                expected_checksum=stored.checksum,
                reason=f"File is not synced ({record.status.value})",
            )

        try:
            remote_checksum = await asyncio.wait_for(
                checksum_of_async_pieces(self.store.read_remote(file_id)),
                timeout=self.transfer_timeout,
            )
        except asyncio.TimeoutError as e:
            raise TransferTimeoutError(f"Verification read exceeded {self.transfer_timeout}s") from e
        except NotFoundError:
            remote_checksum = None

        if remote_checksum == stored.checksum:
            logger.info(f"Remote copy verified [file_id={file_id}]")
            return IntegrityResult(
                file_id=file_id,
                verified=True,
                status=SyncStatus.SYNCED,
                expected_checksum=stored.checksum,
                remote_checksum=remote_checksum,
            )

        if remote_checksum is None:
            reason = f"{ErrorKind.NOT_FOUND.value}: remote copy is missing"
        else:
            reason = (
                f"{ErrorKind.CHECKSUM_MISMATCH.value}: remote checksum {remote_checksum} "
                f"does not match {stored.checksum}"
            )
        ReplicationRepository.mark_unsynced(file_id, reason)
        current = ReplicationRepository.get(file_id)
        return IntegrityResult(
            file_id=file_id,
            verified=False,
            status=current.status,
            expected_checksum=stored.checksum,
            remote_checksum=remote_checksum,
            reason=reason,
        )
