"""Sync engine and its state store."""

from catalog_cache.sync.engine import PassResult, SyncEngine, SyncSummary
from catalog_cache.sync.state import ResourceType, SyncState, SyncStateStore, SyncStatus

__all__ = [
    "PassResult",
    "ResourceType",
    "SyncEngine",
    "SyncState",
    "SyncStateStore",
    "SyncStatus",
    "SyncSummary",
]
