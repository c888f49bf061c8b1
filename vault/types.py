"""Vault data type definitions."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import AsyncIterator, Optional


class SyncStatus(str, Enum):
    PENDING = "PENDING"
    IN_PROGRESS = "IN_PROGRESS"
    SYNCED = "SYNCED"
    FAILED = "FAILED"


class SyncPriority(str, Enum):
    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return PRIORITY_RANK[self]


PRIORITY_RANK = {
    SyncPriority.LOW: 0,
    SyncPriority.NORMAL: 1,
    SyncPriority.HIGH: 2,
}


class SourceHint(str, Enum):
    AUTO = "auto"
    LOCAL = "local"
    REMOTE = "remote"


class Tier(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


OPTIMIZED_MIME_TYPES = {
    "webp": "image/webp",
    "jpeg": "image/jpeg",
    "jpg": "image/jpeg",
    "png": "image/png",
}


@dataclass(frozen=True)
class StoredFile:
    """
    Immutable metadata of an ingested file.

    ``checksum`` is the SHA-256 of the primary bytes, i.e. the optimized
    variant when an image was re-encoded.
    """
    file_id: str
    checksum: str
    original_name: str
    mime_type: str
    size_bytes: int
    is_image: bool
    created_at: datetime
    has_optimized_variant: bool = False
    optimized_size_bytes: Optional[int] = None
    optimized_format: Optional[str] = None
    compression_ratio: Optional[int] = None
    has_original_variant: bool = False
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None

    @property
    def primary_size_bytes(self) -> int:
        if self.has_optimized_variant and self.optimized_size_bytes is not None:
            return self.optimized_size_bytes
        return self.size_bytes

    @property
    def primary_mime_type(self) -> str:
        if self.has_optimized_variant and self.optimized_format:
            return OPTIMIZED_MIME_TYPES.get(self.optimized_format.lower(), "application/octet-stream")
        return self.mime_type


@dataclass(frozen=True)
class ReplicationRecord:
    """
    Synchronization state of one StoredFile's copy on the remote tier.
    """
    file_id: str
    status: SyncStatus
    priority: SyncPriority
    attempts: int
    last_error: Optional[str]
    created_at: datetime
    updated_at: datetime
    next_attempt_at: Optional[datetime] = None
    synced_at: Optional[datetime] = None


@dataclass
class ResolvedFile:
    """
    Outcome of a retrieval: the byte stream plus what a download endpoint needs.
    """
    file_id: str
    stream: AsyncIterator[bytes]
    source_used: Tier
    original_name: str
    mime_type: str
    size_bytes: int
    checksum: str
