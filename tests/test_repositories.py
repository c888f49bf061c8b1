"""Integration tests for database repositories."""

import sqlite3
from dataclasses import replace
from datetime import timedelta

import pytest

from vault.database import get_db_connection, use_connection
from vault.repositories import ReplicationRepository, StoredFileRepository
from vault.types import StoredFile, SyncPriority, SyncStatus
from vault.utils import generate_file_id, to_iso, utc_now


def make_stored_file(file_id: str, size: int = 10) -> StoredFile:
    return StoredFile(
        file_id=file_id,
        checksum="c" * 64,
        original_name=f"{file_id}.txt",
        mime_type="text/plain",
        size_bytes=size,
        is_image=False,
        created_at=utc_now(),
    )


def enqueue(file_id: str, priority: SyncPriority = SyncPriority.NORMAL, size: int = 10):
    StoredFileRepository.create(make_stored_file(file_id, size))
    return ReplicationRepository.create(file_id, priority)


def set_updated_at(file_id: str, delta_seconds: float):
    with get_db_connection() as conn:
        conn.execute(
            "UPDATE replication_records SET updated_at = ? WHERE file_id = ?",
            (to_iso(utc_now() + timedelta(seconds=delta_seconds)), file_id)
        )
        conn.commit()


class TestDatabaseHelpers:
    def test_use_connection_rolls_back_on_error(self, test_db):
        with pytest.raises(RuntimeError):
            with use_connection() as conn:
                StoredFileRepository.create(make_stored_file("file-a"), conn=conn)
                raise RuntimeError("boom")
        assert StoredFileRepository.get_by_id("file-a") is None

    def test_replication_record_requires_stored_file(self, test_db):
        with pytest.raises(sqlite3.IntegrityError):
            ReplicationRepository.create("ghost")


class TestStoredFileRepository:
    @pytest.mark.parametrize("optimized_format, expected", [
        ("jpg", "image/jpeg"),
        ("jpeg", "image/jpeg"),
        ("webp", "image/webp"),
        ("png", "image/png"),
    ])
    def test_primary_mime_type_of_optimized_variant(self, optimized_format, expected):
        stored = replace(
            make_stored_file("file-a"),
            mime_type="image/tiff",
            is_image=True,
            has_optimized_variant=True,
            optimized_size_bytes=5,
            optimized_format=optimized_format,
        )
        assert stored.primary_mime_type == expected
        assert stored.primary_size_bytes == 5

    def test_create_and_get(self, test_db):
        file_id = generate_file_id("ab" * 32)
        StoredFileRepository.create(make_stored_file(file_id, size=42))

        stored = StoredFileRepository.get_by_id(file_id)
        assert stored.file_id == file_id
        assert stored.size_bytes == 42
        assert stored.primary_size_bytes == 42
        assert stored.is_deleted is False

    def test_generated_id_is_content_addressed(self):
        checksum = "0123456789abcdef" * 4
        first = generate_file_id(checksum)
        second = generate_file_id(checksum)
        assert first.startswith(checksum[:32] + "-")
        assert first != second

    def test_soft_delete_hides_file(self, test_db):
        enqueue("file-a")
        assert StoredFileRepository.soft_delete("file-a") is True
        assert StoredFileRepository.soft_delete("file-a") is False
        assert StoredFileRepository.get_by_id("file-a") is None
        hidden = StoredFileRepository.get_by_id("file-a", include_deleted=True)
        assert hidden.is_deleted is True
        assert hidden.deleted_at is not None

    def test_hard_delete_cascades_to_record(self, test_db):
        enqueue("file-a")
        StoredFileRepository.delete("file-a")
        assert ReplicationRepository.get("file-a") is None


class TestReplicationRepository:
    def test_new_record_is_pending(self, test_db):
        record = enqueue("file-a", SyncPriority.HIGH)
        assert record.status == SyncStatus.PENDING
        assert record.attempts == 0
        assert ReplicationRepository.get("file-a").priority == SyncPriority.HIGH

    def test_select_candidates_priority_then_age(self, test_db):
        enqueue("low-old", SyncPriority.LOW)
        enqueue("normal-new", SyncPriority.NORMAL)
        enqueue("high-new", SyncPriority.HIGH)
        enqueue("normal-old", SyncPriority.NORMAL)
        set_updated_at("low-old", -300)
        set_updated_at("normal-old", -200)

        ordered = ReplicationRepository.select_candidates(10, priority_first=True, max_retries=3)
        assert [r.file_id for r in ordered] == ["high-new", "normal-old", "normal-new", "low-old"]

        by_age = ReplicationRepository.select_candidates(10, priority_first=False, max_retries=3)
        assert [r.file_id for r in by_age][:2] == ["low-old", "normal-old"]

    def test_select_candidates_skips_deleted_and_backoff(self, test_db):
        enqueue("deleted")
        enqueue("waiting")
        enqueue("ready")
        StoredFileRepository.soft_delete("deleted")
        ReplicationRepository.claim("waiting", [SyncStatus.PENDING])
        ReplicationRepository.record_failure(
            "waiting", "down", max_retries=3, next_attempt_at=utc_now() + timedelta(hours=1)
        )

        selected = ReplicationRepository.select_candidates(10, priority_first=True, max_retries=3)
        assert [r.file_id for r in selected] == ["ready"]

    def test_claim_is_compare_and_set(self, test_db):
        enqueue("file-a")
        assert ReplicationRepository.claim("file-a", [SyncStatus.PENDING]) is True
        assert ReplicationRepository.claim("file-a", [SyncStatus.PENDING]) is False
        assert ReplicationRepository.get("file-a").status == SyncStatus.IN_PROGRESS

    def test_claim_respects_attempt_ceiling(self, test_db):
        enqueue("file-a")
        with get_db_connection() as conn:
            conn.execute("UPDATE replication_records SET attempts = 3 WHERE file_id = 'file-a'")
            conn.commit()
        assert ReplicationRepository.claim("file-a", [SyncStatus.PENDING], max_retries=3) is False
        assert ReplicationRepository.claim("file-a", [SyncStatus.PENDING]) is True

    def test_failure_arc_ends_in_failed(self, test_db):
        enqueue("file-a")
        statuses = []
        for _ in range(3):
            assert ReplicationRepository.claim("file-a", [SyncStatus.PENDING], max_retries=3)
            record = ReplicationRepository.record_failure("file-a", "REMOTE_UNREACHABLE: down", max_retries=3)
            statuses.append((record.status, record.attempts))

        assert statuses == [
            (SyncStatus.PENDING, 1),
            (SyncStatus.PENDING, 2),
            (SyncStatus.FAILED, 3),
        ]
        assert ReplicationRepository.get("file-a").last_error == "REMOTE_UNREACHABLE: down"

    def test_record_failure_ignores_records_not_in_progress(self, test_db):
        enqueue("file-a")
        record = ReplicationRepository.record_failure("file-a", "late", max_retries=3)
        assert record.status == SyncStatus.PENDING
        assert record.attempts == 0

    def test_success_keeps_attempts(self, test_db):
        enqueue("file-a")
        ReplicationRepository.claim("file-a", [SyncStatus.PENDING])
        ReplicationRepository.record_failure("file-a", "down", max_retries=3)
        ReplicationRepository.claim("file-a", [SyncStatus.PENDING])
        assert ReplicationRepository.record_success("file-a") is True

        record = ReplicationRepository.get("file-a")
        assert record.status == SyncStatus.SYNCED
        assert record.attempts == 1
        assert record.last_error is None
        assert record.synced_at is not None

    def test_reset_retries_returns_failed_to_pending(self, test_db):
        enqueue("file-a")
        enqueue("file-b")
        for _ in range(2):
            ReplicationRepository.claim("file-a", [SyncStatus.PENDING])
            ReplicationRepository.record_failure("file-a", "down", max_retries=2)
        assert ReplicationRepository.get("file-a").status == SyncStatus.FAILED

        assert ReplicationRepository.reset_retries() == 1
        record = ReplicationRepository.get("file-a")
        assert record.status == SyncStatus.PENDING
        assert record.attempts == 0
        assert record.last_error is None

    def test_reset_retries_by_id_leaves_synced_alone(self, test_db):
        enqueue("file-a")
        ReplicationRepository.claim("file-a", [SyncStatus.PENDING])
        ReplicationRepository.record_success("file-a")
        assert ReplicationRepository.reset_retries(["file-a"]) == 0
        assert ReplicationRepository.reset_retries([]) == 0
        assert ReplicationRepository.get("file-a").status == SyncStatus.SYNCED

    def test_set_priority_keeps_status(self, test_db):
        enqueue("file-a")
        assert ReplicationRepository.set_priority("file-a", SyncPriority.HIGH) is True
        assert ReplicationRepository.set_priority("missing", SyncPriority.HIGH) is False
        record = ReplicationRepository.get("file-a")
        assert record.priority == SyncPriority.HIGH
        assert record.status == SyncStatus.PENDING

    def test_release_stale(self, test_db):
        enqueue("file-a")
        enqueue("file-b")
        ReplicationRepository.claim("file-a", [SyncStatus.PENDING])
        ReplicationRepository.claim("file-b", [SyncStatus.PENDING])
        set_updated_at("file-a", -3600)

        assert ReplicationRepository.release_stale(utc_now() - timedelta(minutes=15), max_retries=3) == 1
        record = ReplicationRepository.get("file-a")
        assert record.status == SyncStatus.PENDING
        assert record.attempts == 1
        assert record.last_error == "transfer lease expired"
        assert ReplicationRepository.get("file-b").status == SyncStatus.IN_PROGRESS

    def test_repeated_lease_expiry_ends_in_failed(self, test_db):
        enqueue("file-a")
        for _ in range(2):
            assert ReplicationRepository.claim("file-a", [SyncStatus.PENDING], max_retries=2)
            set_updated_at("file-a", -3600)
            ReplicationRepository.release_stale(utc_now() - timedelta(minutes=15), max_retries=2)

        record = ReplicationRepository.get("file-a")
        assert record.status == SyncStatus.FAILED
        assert record.attempts == 2
        assert ReplicationRepository.claim("file-a", [SyncStatus.PENDING], max_retries=2) is False

    def test_mark_unsynced_only_touches_synced_records(self, test_db):
        enqueue("file-a")
        assert ReplicationRepository.mark_unsynced("file-a", "CHECKSUM_MISMATCH: bad") is False

        ReplicationRepository.claim("file-a", [SyncStatus.PENDING])
        ReplicationRepository.record_failure("file-a", "REMOTE_UNREACHABLE: down", max_retries=3)
        ReplicationRepository.claim("file-a", [SyncStatus.PENDING])
        ReplicationRepository.record_success("file-a")

        assert ReplicationRepository.mark_unsynced("file-a", "CHECKSUM_MISMATCH: bad") is True
        record = ReplicationRepository.get("file-a")
        assert record.status == SyncStatus.PENDING
        assert record.attempts == 0
        assert record.synced_at is None
        assert record.last_error == "CHECKSUM_MISMATCH: bad"

    def test_status_summary(self, test_db):
        enqueue("file-a", size=100)
        enqueue("file-b", size=50)
        ReplicationRepository.claim("file-b", [SyncStatus.PENDING])
        ReplicationRepository.record_success("file-b")

        summary = ReplicationRepository.status_summary()
        assert summary["PENDING"]["count"] == 1
        assert summary["PENDING"]["total_size"] == 100
        assert summary["SYNCED"]["count"] == 1
        assert ReplicationRepository.outstanding_by_priority() == {"NORMAL": 1}
        assert ReplicationRepository.oldest_pending_created_at() is not None
