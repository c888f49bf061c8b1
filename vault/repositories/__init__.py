"""Repository layer for data access."""

from vault.repositories.stored_file_repository import StoredFileRepository
from vault.repositories.replication_repository import ReplicationRepository

__all__ = [
    "StoredFileRepository",
    "ReplicationRepository",
]
