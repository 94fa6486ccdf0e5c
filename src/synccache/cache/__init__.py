"""Local cache for remote directory syncs.

This module lets callers skip an expensive remote sync when an equivalent one
(same source, same filters) was cached recently.

Key components:
- SyncCache: Main cache interface
- CacheConfig: Configuration management
- fingerprint: Deterministic cache keys for sync requests
- LockManager: Advisory per-entry locks
- CleanupManager: Age-based garbage collection
"""

from synccache.cache.cleanup import CleanupManager, CleanupReport
from synccache.cache.config import CacheConfig
from synccache.cache.errors import (
    CacheError,
    CachePermissionError,
    EntryIOError,
    LockHeldError,
    RootUnavailableError,
)
from synccache.cache.keys import LegacySyncRequest, SyncRequest, fingerprint
from synccache.cache.locks import LockManager, LockRecord, LockState
from synccache.cache.manager import EntryStatus, SyncCache, SyncResult
from synccache.cache.storage import CacheStorage

__all__ = [
    "SyncCache",
    "CacheConfig",
    "CacheStorage",
    "LockManager",
    "LockRecord",
    "LockState",
    "CleanupManager",
    "CleanupReport",
    "EntryStatus",
    "SyncResult",
    "SyncRequest",
    "LegacySyncRequest",
    "fingerprint",
    "CacheError",
    "CachePermissionError",
    "EntryIOError",
    "LockHeldError",
    "RootUnavailableError",
]
