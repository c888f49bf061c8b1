"""Local and remote storage tiers."""

from vault.storage.local_tier import LocalTier
from vault.storage.remote_tier import RemoteTier, DirectoryRemoteTier, create_remote_tier
from vault.storage.replica_client import GrpcRemoteTier
from vault.storage.tiered_store import TieredStore

__all__ = [
    "LocalTier",
    "RemoteTier",
    "DirectoryRemoteTier",
    "GrpcRemoteTier",
    "TieredStore",
    "create_remote_tier",
]
