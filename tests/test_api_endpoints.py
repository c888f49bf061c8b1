"""Tests for the vault HTTP API."""

import pytest
from fastapi.testclient import TestClient

from vault import service_locator
from vault.main import ERROR_STATUS_CODES, app
from vault.exceptions import ErrorKind, RemoteUnreachableError
from vault.repositories import ReplicationRepository
from vault.sync.queue_manager import SyncQueueManager
from vault.types import SyncStatus


@pytest.fixture
def client(test_db, store):
    """Create FastAPI test client wired to temporary tiers."""
    service_locator.set_tiered_store(store)
    service_locator.set_queue_manager(SyncQueueManager(store, max_retries=3, backoff_base=0, backoff_max=0))
    yield TestClient(app)
    service_locator.set_tiered_store(None)


def upload(client, name="report.txt", body=b"report body", mime="text/plain", **data):
    return client.post("/files", files=[("files", (name, body, mime))], data=data)


def test_root_endpoint(client):
    response = client.get('/')
    assert response.status_code == 200
    assert response.json()['status'] == 'running'


def test_health_endpoint(client):
    assert client.get('/health').json() == {"status": "healthy", "service": "vault"}


def test_ready_endpoint(client):
    response = client.get('/ready')
    assert response.status_code == 200
    assert response.json()["database"] == "ok"


def test_every_error_kind_has_a_status():
    assert set(ERROR_STATUS_CODES) == set(ErrorKind)


def test_upload_and_metadata(client):
    response = upload(client, priority="HIGH")
    assert response.status_code == 201
    assert "X-Request-ID" in response.headers
    stored = response.json()["files"][0]
    assert stored["original_name"] == "report.txt"
    assert stored["size_bytes"] == len(b"report body")

    detail = client.get(f"/files/{stored['file_id']}").json()
    assert detail["file"]["checksum"] == stored["checksum"]
    assert detail["replication"]["status"] == "PENDING"
    assert detail["replication"]["priority"] == "HIGH"


def test_upload_multiple_files(client):
    response = client.post("/files", files=[
        ("files", ("a.txt", b"aaa", "text/plain")),
        ("files", ("b.csv", b"b,b", "text/csv")),
    ])
    assert response.status_code == 201
    assert len(response.json()["files"]) == 2


def test_upload_rejects_invalid_type(client):
    response = upload(client, name="tool.exe", mime="application/octet-stream")
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_TYPE"


def test_upload_rejects_too_many_files(client):
    files = [("files", (f"{i}.txt", b"x", "text/plain")) for i in range(11)]
    response = client.post("/files", files=files)
    assert response.status_code == 400
    assert response.json()["code"] == "TOO_MANY_FILES"


def test_download_local_then_remote(client, store):
    file_id = upload(client, body=b"stream me").json()["files"][0]["file_id"]

    local = client.get(f"/files/{file_id}/download")
    assert local.status_code == 200
    assert local.content == b"stream me"
    assert local.headers["X-Source-Used"] == "local"
    assert local.headers["X-Checksum-SHA256"]

    processed = client.post("/sync/queue/process", json={"batch_size": 5})
    assert processed.json()["successful"] == 1

    store.delete_local(file_id)
    remote = client.get(f"/files/{file_id}/download", params={"source": "auto"})
    assert remote.status_code == 200
    assert remote.content == b"stream me"
    assert remote.headers["X-Source-Used"] == "remote"


def test_download_unavailable(client, store):
    file_id = upload(client).json()["files"][0]["file_id"]
    store.delete_local(file_id)

    response = client.get(f"/files/{file_id}/download")
    assert response.status_code == 503
    assert response.json()["code"] == "ALL_TIERS_UNAVAILABLE"

    response = client.get(f"/files/{file_id}/download", params={"source": "remote"})
    assert response.status_code == 404


def test_download_rejects_unknown_source(client):
    file_id = upload(client).json()["files"][0]["file_id"]
    assert client.get(f"/files/{file_id}/download", params={"source": "tape"}).status_code == 422


def test_soft_delete(client):
    file_id = upload(client).json()["files"][0]["file_id"]
    assert client.delete(f"/files/{file_id}").json() == {"file_id": file_id, "deleted": True}
    assert client.get(f"/files/{file_id}").status_code == 404
    assert client.delete(f"/files/{file_id}").json()["code"] == "NOT_FOUND"


def test_queue_status_and_reset(client, remote_tier):
    file_id = upload(client).json()["files"][0]["file_id"]
    remote_tier.fail_with = RemoteUnreachableError
    for _ in range(3):
        client.post("/sync/queue/process")

    status = client.get("/sync/queue").json()
    assert status["counts_by_status"]["FAILED"] == 1
    assert status["failed"][0]["file_id"] == file_id
    assert status["failed"][0]["last_error"].startswith("REMOTE_UNREACHABLE")

    reset = client.post("/sync/retries/reset", json={"file_ids": [file_id]})
    assert reset.json() == {"reset_count": 1}
    assert ReplicationRepository.get(file_id).status == SyncStatus.PENDING


def test_force_sync_and_priority(client):
    file_id = upload(client).json()["files"][0]["file_id"]

    priority = client.put(f"/sync/files/{file_id}/priority", json={"priority": "LOW"})
    assert priority.json()["priority"] == "LOW"

    response = client.post(f"/sync/files/{file_id}", json={"force_priority": "HIGH"})
    assert response.status_code == 200
    assert response.json()["success"] is True
    assert response.json()["status"] == "SYNCED"
    assert ReplicationRepository.get(file_id).priority.value == "HIGH"


def test_force_sync_conflict(client):
    file_id = upload(client).json()["files"][0]["file_id"]
    ReplicationRepository.claim(file_id, [SyncStatus.PENDING])

    response = client.post(f"/sync/files/{file_id}")
    assert response.status_code == 409
    assert response.json()["code"] == "SYNC_IN_PROGRESS"


def test_verify_remote_copy(client, remote_tier):
    file_id = upload(client).json()["files"][0]["file_id"]
    client.post(f"/sync/files/{file_id}")

    intact = client.post(f"/sync/files/{file_id}/verify")
    assert intact.status_code == 200
    assert intact.json()["verified"] is True

    remote_tier.blobs[file_id] = b"tampered"
    corrupt = client.post(f"/sync/files/{file_id}/verify").json()
    assert corrupt["verified"] is False
    assert corrupt["status"] == "PENDING"
    assert client.post("/sync/files/missing/verify").status_code == 404


def test_auto_sync_on_upload(client, monkeypatch):
    monkeypatch.setattr("vault.config.AUTO_SYNC_ON_UPLOAD", True)
    file_id = upload(client).json()["files"][0]["file_id"]
    assert ReplicationRepository.get(file_id).status == SyncStatus.SYNCED


def test_sync_disabled_without_remote(test_db, local_tier):
    from vault.storage import TieredStore

    service_locator.set_tiered_store(TieredStore(local_tier, None))
    try:
        client = TestClient(app)
        response = client.post("/sync/queue/process")
        assert response.status_code == 503
        assert response.json()["code"] == "SYNC_DISABLED"
        assert client.get("/ready").json()["remote_tier"] == "disabled"
    finally:
        service_locator.set_tiered_store(None)
