"""Tests for tier selection and fallback in the retrieval resolver."""

import pytest

from vault.exceptions import AllTiersUnavailableError, ChecksumMismatchError, NotFoundError
from vault.repositories import ReplicationRepository
from vault.retrieval_resolver import RetrievalResolver
from vault.types import SourceHint, SyncStatus, Tier

BODY = b"contract scan " * 1000


async def read_all(resolved) -> bytes:
    return b"".join([piece async for piece in resolved.stream])


@pytest.fixture
def resolver(store):
    return RetrievalResolver(store)


@pytest.fixture
def stored(upload_service):
    return upload_service.upload(BODY, "scan.pdf", "application/pdf")


class TestAutoHint:
    @pytest.mark.asyncio
    async def test_prefers_local(self, resolver, stored):
        resolved = await resolver.resolve(stored.file_id)

        assert resolved.source_used == Tier.LOCAL
        assert resolved.mime_type == "application/pdf"
        assert resolved.size_bytes == len(BODY)
        assert resolved.checksum == stored.checksum
        assert await read_all(resolved) == BODY

    @pytest.mark.asyncio
    async def test_falls_back_to_remote_when_synced(self, resolver, stored, store, queue_manager):
        await queue_manager.process_batch()
        store.delete_local(stored.file_id)

        resolved = await resolver.resolve(stored.file_id, "auto")

        assert resolved.source_used == Tier.REMOTE
        assert await read_all(resolved) == BODY

    @pytest.mark.asyncio
    async def test_no_fallback_when_not_synced(self, resolver, stored, store):
        store.delete_local(stored.file_id)
        assert ReplicationRepository.get(stored.file_id).status == SyncStatus.PENDING

        with pytest.raises(AllTiersUnavailableError):
            await resolver.resolve(stored.file_id, SourceHint.AUTO)

    @pytest.mark.asyncio
    async def test_truncated_local_copy_triggers_fallback(self, resolver, stored, store, queue_manager):
        await queue_manager.process_batch()
        path = store.local.path_for(stored.file_id)
        path.write_bytes(BODY[:100])

        resolved = await resolver.resolve(stored.file_id)

        assert resolved.source_used == Tier.REMOTE

    @pytest.mark.asyncio
    async def test_synced_but_missing_remotely(self, resolver, stored, store, queue_manager, remote_tier):
        await queue_manager.process_batch()
        store.delete_local(stored.file_id)
        remote_tier.blobs.clear()

        with pytest.raises(AllTiersUnavailableError):
            await resolver.resolve(stored.file_id)


class TestExplicitHints:
    @pytest.mark.asyncio
    async def test_local_hint_never_falls_back(self, resolver, stored, store, queue_manager):
        await queue_manager.process_batch()
        store.delete_local(stored.file_id)

        with pytest.raises(NotFoundError):
            await resolver.resolve(stored.file_id, SourceHint.LOCAL)

    @pytest.mark.asyncio
    async def test_remote_hint_requires_synced(self, resolver, stored):
        with pytest.raises(NotFoundError):
            await resolver.resolve(stored.file_id, SourceHint.REMOTE)

    @pytest.mark.asyncio
    async def test_remote_hint_reads_remote(self, resolver, stored, queue_manager):
        await queue_manager.process_batch()

        resolved = await resolver.resolve(stored.file_id, "remote")

        assert resolved.source_used == Tier.REMOTE
        assert await read_all(resolved) == BODY

    @pytest.mark.asyncio
    async def test_corrupt_remote_copy_is_detected(self, resolver, stored, queue_manager, remote_tier):
        await queue_manager.process_batch()
        remote_tier.blobs[stored.file_id] = BODY[:-1] + b"X"

        resolved = await resolver.resolve(stored.file_id, SourceHint.REMOTE)
        with pytest.raises(ChecksumMismatchError):
            await read_all(resolved)


class TestMissingFiles:
    @pytest.mark.asyncio
    async def test_unknown_id(self, resolver, test_db):
        with pytest.raises(NotFoundError):
            await resolver.resolve("no-such-file")

    @pytest.mark.asyncio
    async def test_soft_deleted_file(self, resolver, stored, upload_service):
        upload_service.delete(stored.file_id)
        with pytest.raises(NotFoundError):
            await resolver.resolve(stored.file_id)

    @pytest.mark.asyncio
    async def test_invalid_hint(self, resolver, stored):
        with pytest.raises(ValueError):
            await resolver.resolve(stored.file_id, "tape")
