"""Service locator for the vault's long-lived components."""

from typing import Optional

from vault.retrieval_resolver import RetrievalResolver
from vault.services.upload_service import UploadService
from vault.storage import LocalTier, TieredStore, create_remote_tier
from vault.sync.queue_manager import SyncQueueManager

_tiered_store: Optional[TieredStore] = None
_queue_manager: Optional[SyncQueueManager] = None


def set_tiered_store(store: Optional[TieredStore]):
    """Set global tiered store instance"""
    global _tiered_store, _queue_manager
    _tiered_store = store
    _queue_manager = None


def get_tiered_store() -> TieredStore:
    """Get global tiered store instance, building it from configuration on first use"""
    global _tiered_store
    if _tiered_store is None:
        _tiered_store = TieredStore(LocalTier(), create_remote_tier())
    return _tiered_store


def set_queue_manager(manager: Optional[SyncQueueManager]):
    """Set global sync queue manager instance"""
    global _queue_manager
    _queue_manager = manager


def get_queue_manager() -> SyncQueueManager:
    """Get global sync queue manager instance"""
    global _queue_manager
    if _queue_manager is None:
        _queue_manager = SyncQueueManager(get_tiered_store())
    return _queue_manager


def get_upload_service() -> UploadService:
    return UploadService(get_tiered_store())


def get_retrieval_resolver() -> RetrievalResolver:
    return RetrievalResolver(get_tiered_store())
