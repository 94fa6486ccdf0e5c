"""synccache: Local result cache for expensive remote directory syncs."""

__version__ = "0.1.0"

from synccache.cache import (
    CacheConfig,
    LegacySyncRequest,
    LockHeldError,
    SyncCache,
    SyncRequest,
    fingerprint,
)

__all__ = [
    "SyncCache",
    "CacheConfig",
    "SyncRequest",
    "LegacySyncRequest",
    "LockHeldError",
    "fingerprint",
    "__version__",
]
