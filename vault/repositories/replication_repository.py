"""ReplicationRecord repository: queue selection and status compare-and-set."""

import sqlite3
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from common.logging_config import get_logger
from vault.database import use_connection
from vault.types import ReplicationRecord, SyncPriority, SyncStatus
from vault.utils import from_iso, to_iso, utc_now

logger = get_logger(__name__)

PRIORITY_ORDER_SQL = (
    "CASE r.priority WHEN 'HIGH' THEN 2 WHEN 'NORMAL' THEN 1 ELSE 0 END DESC"
)


def _row_to_record(row: sqlite3.Row) -> ReplicationRecord:
    return ReplicationRecord(
        file_id=row["file_id"],
        status=SyncStatus(row["status"]),
        priority=SyncPriority(row["priority"]),
        attempts=row["attempts"],
        last_error=row["last_error"],
        created_at=from_iso(row["created_at"]),
        updated_at=from_iso(row["updated_at"]),
        next_attempt_at=from_iso(row["next_attempt_at"]),
        synced_at=from_iso(row["synced_at"]),
    )


def _placeholders(values: Sequence) -> str:
    return ", ".join("?" for _ in values)


class ReplicationRepository:
    @staticmethod
    def create(file_id: str, priority: SyncPriority = SyncPriority.NORMAL, conn=None) -> ReplicationRecord:
        now = utc_now()
        with use_connection(conn) as db:
            db.execute(
                """
                INSERT INTO replication_records (file_id, status, priority, attempts, created_at, updated_at)
                VALUES (?, ?, ?, 0, ?, ?)
                """,
                (file_id, SyncStatus.PENDING.value, priority.value, to_iso(now), to_iso(now))
            )
        logger.debug(f"Enqueued replication record [file_id={file_id}] [priority={priority.value}]")
        return ReplicationRecord(
            file_id=file_id,
            status=SyncStatus.PENDING,
            priority=priority,
            attempts=0,
            last_error=None,
            created_at=now,
            updated_at=now,
        )

    @staticmethod
    def get(file_id: str) -> Optional[ReplicationRecord]:
        with use_connection() as db:
            row = db.execute(
                "SELECT * FROM replication_records WHERE file_id = ?",
                (file_id,)
            ).fetchone()
        return _row_to_record(row) if row else None

    @staticmethod
    def select_candidates(
        limit: int,
        priority_first: bool,
        max_retries: int,
        include_failed: bool = False,
        now: Optional[datetime] = None,
    ) -> List[ReplicationRecord]:
        """
        Eligible records in dispatch order: priority (optional), then oldest
        ``updated_at`` first. Records still waiting out their backoff and
        records of soft-deleted files are skipped.
        """
        now = now or utc_now()
        statuses = [SyncStatus.PENDING.value]
        if include_failed:
            statuses.append(SyncStatus.FAILED.value)

        order_by = "r.updated_at ASC, r.created_at ASC, r.file_id ASC"
        if priority_first:
            order_by = f"{PRIORITY_ORDER_SQL}, {order_by}"

        with use_connection() as db:
            rows = db.execute(
                f"""
                SELECT r.* FROM replication_records r
                JOIN stored_files f ON f.file_id = r.file_id
                WHERE r.status IN ({_placeholders(statuses)})
                  AND r.attempts < ?
                  AND f.is_deleted = 0
                  AND (r.next_attempt_at IS NULL OR r.next_attempt_at <= ?)
                ORDER BY {order_by}
                LIMIT ?
                """,
                (*statuses, max_retries, to_iso(now), limit)
            ).fetchall()
        return [_row_to_record(row) for row in rows]

    @staticmethod
    def claim(
        file_id: str,
        from_statuses: Iterable[SyncStatus],
        max_retries: Optional[int] = None,
        respect_backoff: bool = False,
    ) -> bool:
        """
        Atomically move a record to IN_PROGRESS if it is still in one of
        ``from_statuses``. Returns False when another worker got there first.
        """
        statuses = [status.value for status in from_statuses]
        now = to_iso(utc_now())
        conditions = [f"status IN ({_placeholders(statuses)})"]
        params: list = [SyncStatus.IN_PROGRESS.value, now, file_id, *statuses]

        if max_retries is not None:
            conditions.append("attempts < ?")
            params.append(max_retries)
        if respect_backoff:
            conditions.append("(next_attempt_at IS NULL OR next_attempt_at <= ?)")
            params.append(now)

        with use_connection() as db:
            cursor = db.execute(
                f"""
                UPDATE replication_records SET status = ?, updated_at = ?
                WHERE file_id = ? AND {' AND '.join(conditions)}
                """,
                params
            )
            claimed = cursor.rowcount == 1

        if claimed:
            logger.info(f"Replication claimed [file_id={file_id}] -> IN_PROGRESS")
        return claimed

    @staticmethod
    def record_success(file_id: str) -> bool:
        now = to_iso(utc_now())
        with use_connection() as db:
            cursor = db.execute(
                """
                UPDATE replication_records
                SET status = ?, last_error = NULL, next_attempt_at = NULL, synced_at = ?, updated_at = ?
                WHERE file_id = ? AND status = ?
                """,
                (SyncStatus.SYNCED.value, now, now, file_id, SyncStatus.IN_PROGRESS.value)
            )
            updated = cursor.rowcount == 1

        if updated:
            logger.info(f"Replication succeeded [file_id={file_id}] -> SYNCED")
        return updated

    @staticmethod
    def record_failure(
        file_id: str,
        error: str,
        max_retries: int,
        next_attempt_at: Optional[datetime] = None,
    ) -> Optional[ReplicationRecord]:
        """
        Count a failed attempt: back to PENDING while ``attempts + 1 < max_retries``,
        otherwise FAILED.
        """
        with use_connection() as db:
            db.execute(
                """
                UPDATE replication_records
                SET attempts = attempts + 1,
                    last_error = ?,
                    updated_at = ?,
                    status = CASE WHEN attempts + 1 >= ? THEN ? ELSE ? END,
                    next_attempt_at = CASE WHEN attempts + 1 >= ? THEN NULL ELSE ? END
                WHERE file_id = ? AND status = ?
                """,
                (
                    error,
                    to_iso(utc_now()),
                    max_retries, SyncStatus.FAILED.value, SyncStatus.PENDING.value,
                    max_retries, to_iso(next_attempt_at),
                    file_id, SyncStatus.IN_PROGRESS.value,
                )
            )
            row = db.execute(
                "SELECT * FROM replication_records WHERE file_id = ?",
                (file_id,)
            ).fetchone()

        record = _row_to_record(row) if row else None
        if record is not None:
            logger.warning(
                f"Replication attempt failed [file_id={file_id}] -> {record.status.value} "
                f"(attempts={record.attempts}/{max_retries}): {error}"
            )
        return record

    @staticmethod
    def reset_retries(file_ids: Optional[List[str]] = None) -> int:
        """
        Zero the attempt counter. FAILED records return to PENDING.
        Without ``file_ids`` every FAILED record is reset.
        """
        now = to_iso(utc_now())
        params: list = [SyncStatus.FAILED.value, SyncStatus.PENDING.value, now]

        if file_ids is None:
            where = "status = ?"
            params.append(SyncStatus.FAILED.value)
        else:
            if not file_ids:
                return 0
            where = f"status IN (?, ?) AND file_id IN ({_placeholders(file_ids)})"
            params.extend([SyncStatus.PENDING.value, SyncStatus.FAILED.value, *file_ids])

        with use_connection() as db:
            cursor = db.execute(
                f"""
                UPDATE replication_records
                SET attempts = 0, last_error = NULL, next_attempt_at = NULL,
                    status = CASE WHEN status = ? THEN ? ELSE status END,
                    updated_at = ?
                WHERE {where}
                """,
                params
            )
            count = cursor.rowcount

        logger.info(f"Reset retries on {count} replication record(s)")
        return count

    @staticmethod
    def set_priority(file_id: str, priority: SyncPriority) -> bool:
        # status and updated_at are left alone so queue age is preserved
        with use_connection() as db:
            cursor = db.execute(
                "UPDATE replication_records SET priority = ? WHERE file_id = ?",
                (priority.value, file_id)
            )
            return cursor.rowcount == 1

    @staticmethod
    def release_stale(older_than: datetime, max_retries: int) -> int:
        """
        Return IN_PROGRESS records whose lease expired to the queue.

        An expired lease counts as a failed attempt, so a file whose transfer
        keeps killing its worker still ends up FAILED.
        """
        with use_connection() as db:
            cursor = db.execute(
                """
                UPDATE replication_records
                SET attempts = attempts + 1,
                    last_error = ?,
                    updated_at = ?,
                    status = CASE WHEN attempts + 1 >= ? THEN ? ELSE ? END
                WHERE status = ? AND updated_at < ?
                """,
                (
                    "transfer lease expired",
                    to_iso(utc_now()),
                    max_retries, SyncStatus.FAILED.value, SyncStatus.PENDING.value,
                    SyncStatus.IN_PROGRESS.value,
                    to_iso(older_than),
                )
            )
            count = cursor.rowcount

        if count:
            logger.warning(f"Released {count} stale IN_PROGRESS replication record(s)")
        return count

    @staticmethod
    def mark_unsynced(file_id: str, error: str) -> bool:
        """
        Send a SYNCED record back to PENDING after its remote copy failed
        verification. The attempt counter starts over for the new transfer.
        """
        with use_connection() as db:
            cursor = db.execute(
                """
                UPDATE replication_records
                SET status = ?, attempts = 0, last_error = ?, next_attempt_at = NULL,
                    synced_at = NULL, updated_at = ?
                WHERE file_id = ? AND status = ?
                """,
                (SyncStatus.PENDING.value, error, to_iso(utc_now()), file_id, SyncStatus.SYNCED.value)
            )
            updated = cursor.rowcount == 1

        if updated:
            logger.warning(f"Remote copy failed verification [file_id={file_id}] SYNCED -> PENDING: {error}")
        return updated

    @staticmethod
    def status_summary() -> Dict[str, dict]:
        with use_connection() as db:
            rows = db.execute(
                """
                SELECT r.status AS status, COUNT(*) AS count,
                       COALESCE(SUM(COALESCE(f.optimized_size_bytes, f.size_bytes)), 0) AS total_size,
                       AVG(r.attempts) AS avg_attempts
                FROM replication_records r
                JOIN stored_files f ON f.file_id = r.file_id
                WHERE f.is_deleted = 0
                GROUP BY r.status
                """
            ).fetchall()
        return {
            row["status"]: {
                "count": row["count"],
                "total_size": row["total_size"],
                "avg_attempts": float(row["avg_attempts"] or 0.0),
            }
            for row in rows
        }

    @staticmethod
    def outstanding_by_priority() -> Dict[str, int]:
        """Counts of not-yet-synced records per priority."""
        with use_connection() as db:
            rows = db.execute(
                """
                SELECT r.priority AS priority, COUNT(*) AS count
                FROM replication_records r
                JOIN stored_files f ON f.file_id = r.file_id
                WHERE f.is_deleted = 0 AND r.status != ?
                GROUP BY r.priority
                """,
                (SyncStatus.SYNCED.value,)
            ).fetchall()
        return {row["priority"]: row["count"] for row in rows}

    @staticmethod
    def oldest_pending_created_at() -> Optional[datetime]:
        with use_connection() as db:
            row = db.execute(
                """
                SELECT MIN(r.created_at) AS oldest
                FROM replication_records r
                JOIN stored_files f ON f.file_id = r.file_id
                WHERE f.is_deleted = 0 AND r.status = ?
                """,
                (SyncStatus.PENDING.value,)
            ).fetchone()
        return from_iso(row["oldest"]) if row else None

    @staticmethod
    def list_failed(limit: int = 100) -> List[ReplicationRecord]:
        with use_connection() as db:
            rows = db.execute(
                """
                SELECT r.* FROM replication_records r
                JOIN stored_files f ON f.file_id = r.file_id
                WHERE f.is_deleted = 0 AND r.status = ?
                ORDER BY r.updated_at DESC
                LIMIT ?
                """,
                (SyncStatus.FAILED.value, limit)
            ).fetchall()
        return [_row_to_record(row) for row in rows]
