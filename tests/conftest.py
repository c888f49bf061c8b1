"""Shared pytest fixtures for all tests."""

import asyncio
import io
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest
from PIL import Image

from vault.content_processor import ContentProcessor, ImageOptimizationOptions
from vault.database import init_database
from vault.exceptions import NotFoundError
from vault.services.upload_service import UploadService
from vault.storage import LocalTier, RemoteTier, TieredStore
from vault.sync.queue_manager import SyncQueueManager


class FakeRemoteTier(RemoteTier):
    """
    In-memory remote tier. Can be told to fail, stall or corrupt writes and
    records how many writes per file were in flight at once.
    """

    def __init__(self):
        self.blobs: Dict[str, bytes] = {}
        self.fail_with: Optional[type] = None
        self.write_delay = 0.0
        self.corrupt = False
        self.write_calls: List[str] = []
        self._active: Dict[str, int] = {}
        self.max_concurrent_per_file = 0

    async def write(self, file_id, pieces, size, checksum):
        self.write_calls.append(file_id)
        self._active[file_id] = self._active.get(file_id, 0) + 1
        self.max_concurrent_per_file = max(self.max_concurrent_per_file, self._active[file_id])
        try:
            await asyncio.sleep(self.write_delay)
            if self.fail_with is not None:
                raise self.fail_with("simulated remote failure")
            data = b"".join(pieces)
            if self.corrupt:
                data = data + b"\x00"
            self.blobs[file_id] = data
        finally:
            self._active[file_id] -= 1

    async def read(self, file_id):
        if file_id not in self.blobs:
            raise NotFoundError(f"{file_id} not on fake remote")
        data = self.blobs[file_id]
        for start in range(0, len(data), 4096):
            yield data[start:start + 4096]

    async def exists(self, file_id):
        return file_id in self.blobs


@pytest.fixture
def test_db(monkeypatch):
    """
    Create a temporary test database for each test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "test.db"
        monkeypatch.setattr("vault.database.DATABASE_PATH", str(db_path))
        monkeypatch.setattr("vault.config.DATABASE_PATH", str(db_path))
        init_database()
        yield db_path


@pytest.fixture
def local_tier(tmp_path):
    return LocalTier(tmp_path / "local", min_free_bytes=0)


@pytest.fixture
def remote_tier():
    return FakeRemoteTier()


@pytest.fixture
def store(local_tier, remote_tier):
    return TieredStore(local_tier, remote_tier)


@pytest.fixture
def processor():
    """Processor with image optimization switched off."""
    return ContentProcessor(
        allowed_extensions=[".txt", ".pdf", ".jpg", ".jpeg", ".png", ".csv"],
        max_size_bytes=1024 * 1024,
        image_options=ImageOptimizationOptions(enabled=False),
    )


@pytest.fixture
def upload_service(test_db, store, processor):
    return UploadService(store, processor=processor, max_files=3)


@pytest.fixture
def queue_manager(test_db, store):
    return SyncQueueManager(store, max_retries=3, transfer_timeout=5.0, backoff_base=0, backoff_max=0)


@pytest.fixture
def jpeg_bytes():
    """A 2000x1500 JPEG generated in memory."""
    image = Image.new("RGB", (2000, 1500), (200, 120, 40))
    buffer = io.BytesIO()
    image.save(buffer, format="JPEG", quality=95)
    return buffer.getvalue()
