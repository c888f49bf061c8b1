"""Utility helper functions for the vault service."""

import uuid
from datetime import datetime, timezone
from typing import Optional


def generate_file_id(checksum: str) -> str:
    """
    Build a content-addressed file id.

    The checksum prefix ties the id to the stored bytes; the random suffix keeps
    ids distinct when identical content is uploaded under different metadata.

    Args:
        checksum: SHA-256 hex digest of the primary bytes

    Returns:
        File id of the form ``<checksum[:32]>-<8 hex chars>``
    """
    return f"{checksum[:32]}-{uuid.uuid4().hex[:8]}"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    # fixed width so stored timestamps compare correctly as text
    return value.isoformat(timespec="microseconds") if value is not None else None


def from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None
