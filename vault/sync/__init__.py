"""Replication queue processing."""

from vault.sync.queue_manager import BatchResult, IntegrityResult, QueueStatus, SyncQueueManager, SyncResult
from vault.sync.scheduler import SyncScheduler

__all__ = [
    "BatchResult",
    "IntegrityResult",
    "QueueStatus",
    "SyncQueueManager",
    "SyncResult",
    "SyncScheduler",
]
