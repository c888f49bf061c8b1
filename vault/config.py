"""Configuration settings for the vault service."""

import os


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


DATABASE_PATH = os.environ.get("VAULT_DATABASE_PATH", "/app/data/docvault.db")

VAULT_HOST = os.environ.get("VAULT_HOST", "0.0.0.0")

VAULT_PORT = int(os.environ.get("VAULT_PORT", "8000"))

LOCAL_STORAGE_PATH = os.environ.get("VAULT_LOCAL_STORAGE_PATH", "/app/data/local")

LOCAL_MIN_FREE_BYTES = int(os.environ.get("VAULT_LOCAL_MIN_FREE_BYTES", "0"))

# "grpc" talks to a replica server, "directory" writes to a mounted volume
REMOTE_BACKEND = os.environ.get("VAULT_REMOTE_BACKEND", "grpc")

REMOTE_STORAGE_PATH = os.environ.get("VAULT_REMOTE_STORAGE_PATH", "/mnt/remote")

REPLICA_TARGET = os.environ.get("VAULT_REPLICA_TARGET", "replica:50051")

MAX_FILE_SIZE_BYTES = int(os.environ.get("VAULT_MAX_FILE_SIZE_BYTES", str(50 * 1024 * 1024)))

MAX_FILES_PER_UPLOAD = int(os.environ.get("VAULT_MAX_FILES_PER_UPLOAD", "10"))

DEFAULT_ALLOWED_EXTENSIONS = [
    ".pdf", ".doc", ".docx", ".xls", ".xlsx", ".ppt", ".pptx",
    ".jpg", ".jpeg", ".png", ".gif", ".webp", ".bmp", ".tiff",
    ".txt", ".csv", ".rtf", ".odt", ".ods", ".odp",
    ".zip", ".rar", ".7z", ".tar", ".gz",
    ".xml", ".json",
]

ALLOWED_EXTENSIONS = [
    ext.strip().lower() if ext.strip().startswith(".") else f".{ext.strip().lower()}"
    for ext in os.environ.get("VAULT_ALLOWED_EXTENSIONS", ",".join(DEFAULT_ALLOWED_EXTENSIONS)).split(",")
    if ext.strip()
]

IMAGE_OPTIMIZATION_ENABLED = _env_bool("VAULT_IMAGE_OPTIMIZATION", True)

IMAGE_MAX_WIDTH = int(os.environ.get("VAULT_IMAGE_MAX_WIDTH", "1920"))

IMAGE_MAX_HEIGHT = int(os.environ.get("VAULT_IMAGE_MAX_HEIGHT", "1080"))

IMAGE_QUALITY = int(os.environ.get("VAULT_IMAGE_QUALITY", "85"))

IMAGE_FORMAT = os.environ.get("VAULT_IMAGE_FORMAT", "webp").lower()

IMAGE_PRESERVE_ORIGINAL = _env_bool("VAULT_IMAGE_PRESERVE_ORIGINAL", True)

SYNC_ENABLED = _env_bool("VAULT_SYNC_ENABLED", True)

AUTO_SYNC_ON_UPLOAD = _env_bool("VAULT_AUTO_SYNC_ON_UPLOAD", False)

SYNC_BATCH_SIZE = int(os.environ.get("VAULT_SYNC_BATCH_SIZE", "10"))

SYNC_MAX_RETRIES = int(os.environ.get("VAULT_SYNC_MAX_RETRIES", "3"))

SYNC_TRANSFER_TIMEOUT_SECONDS = float(os.environ.get("VAULT_SYNC_TRANSFER_TIMEOUT_SECONDS", "300"))

SYNC_BACKOFF_BASE_SECONDS = float(os.environ.get("VAULT_SYNC_BACKOFF_BASE_SECONDS", "30"))

SYNC_BACKOFF_MAX_SECONDS = float(os.environ.get("VAULT_SYNC_BACKOFF_MAX_SECONDS", "3600"))

SYNC_INTERVAL_SECONDS = float(os.environ.get("VAULT_SYNC_INTERVAL_SECONDS", "60"))

SYNC_LEASE_SECONDS = float(os.environ.get("VAULT_SYNC_LEASE_SECONDS", "900"))
