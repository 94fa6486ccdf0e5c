"""Cache service for remote sync results."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from synccache.cache.cleanup import CleanupManager, CleanupReport
from synccache.cache.config import CacheConfig
from synccache.cache.keys import AnySyncRequest, fingerprint
from synccache.cache.locks import LockManager
from synccache.cache.storage import CacheStorage

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EntryStatus:
    """Snapshot of one cache entry."""

    fingerprint: str
    path: Path
    exists: bool
    locked: bool
    last_sync: Optional[datetime] = None
    is_expired: bool = False
    size_bytes: int = 0
    file_count: int = 0


@dataclass(frozen=True)
class SyncResult:
    """Outcome of :meth:`SyncCache.sync`."""

    fingerprint: str
    path: Path
    from_cache: bool


class SyncCache:
    """Local cache of remote directory syncs.

    Owns its storage, lock manager and cleanup manager. Build one per cache
    root and pass it to the components that sync.

    Examples:
        >>> cache = SyncCache(CacheConfig(cache_dir="/tmp/sync-cache"))
        >>> request = SyncRequest("build01", remote_user="ci", directories=["/srv/app"])
        >>> result = cache.sync(request, lambda target: rsync_into(target))
        >>> result.from_cache
        False
    """

    def __init__(self, config: Optional[CacheConfig] = None):
        """Initialize the cache service.

        Args:
            config: Cache configuration (defaults if None)
        """
        self.config = config or CacheConfig()
        self.storage = CacheStorage(self.config.cache_dir, self.config.default_ttl)
        self.locks = LockManager(
            self.storage,
            max_lock_age=self.config.max_lock_age,
            lock_timeout=self.config.lock_timeout,
        )
        self.cleanup = CleanupManager(self.storage, self.locks)

    @property
    def cache_dir(self) -> Path:
        return self.storage.cache_base_path

    def key_for(self, request: AnySyncRequest) -> str:
        """Compute the fingerprint of a sync request."""
        return fingerprint(request)

    def status(self, key: str) -> EntryStatus:
        """Get the status of an entry.

        The last-sync stamp is preferred over the directory mtime. Lock
        state is checked with abandoned locks cleared.
        """
        entry_path = self.storage.path_for_key(key)
        locked = self.locks.is_locked(key)

        if not entry_path.is_dir():
            return EntryStatus(
                fingerprint=key, path=entry_path, exists=False, locked=locked
            )

        try:
            last_sync = self.storage.read_last_sync(key)
            if last_sync is None:
                last_sync = self.storage.entry_mtime(key)
        except OSError as e:
            logger.warning(f"Error reading status of cache entry {key}: {e}")
            return EntryStatus(
                fingerprint=key, path=entry_path, exists=True, locked=locked
            )

        stats = self.storage.stats_for(entry_path)
        return EntryStatus(
            fingerprint=key,
            path=entry_path,
            exists=True,
            locked=locked,
            last_sync=last_sync,
            is_expired=self.storage.is_expired(last_sync),
            size_bytes=stats.size_bytes,
            file_count=stats.file_count,
        )

    def _fresh_path(self, key: str, max_age_hours: Optional[float]) -> Optional[Path]:
        entry_path = self.storage.path_for_key(key)
        if not entry_path.is_dir() or self.locks.is_locked(key):
            return None
        last_sync = self.storage.read_last_sync(key)
        if last_sync is None:
            # Never completed a sync
            return None
        if self.storage.is_expired(last_sync, max_age_hours):
            return None
        return entry_path

    def lookup(
        self, request: AnySyncRequest, max_age_hours: Optional[float] = None
    ) -> Optional[Path]:
        """Find a fresh, unlocked entry for a request.

        Args:
            request: Sync request
            max_age_hours: Validity window in hours (configured TTL if None)

        Returns:
            Path to the cached content, or None on a miss
        """
        return self._fresh_path(self.key_for(request), max_age_hours)

    def sync(
        self,
        request: AnySyncRequest,
        sync_fn: Callable[[Path], None],
        sync_id: Optional[str] = None,
        max_age_hours: Optional[float] = None,
    ) -> SyncResult:
        """Return cached content for a request, syncing it on a miss.

        Args:
            request: Sync request
            sync_fn: Called with the entry directory to populate it
            sync_id: Identifier recorded in the lock (random if None)
            max_age_hours: Validity window in hours (configured TTL if None)

        Returns:
            SyncResult with the entry path

        Raises:
            LockHeldError: If another sync is populating the same entry
        """
        key = self.key_for(request)
        cached = self._fresh_path(key, max_age_hours)
        if cached is not None:
            logger.info(f"Cache hit for {key}")
            return SyncResult(fingerprint=key, path=cached, from_cache=True)

        sync_id = sync_id or uuid.uuid4().hex
        logger.info(f"Cache miss for {key}, starting sync {sync_id}")

        with self.locks.hold(key, sync_id):
            entry_path = self.storage.prepare_entry(key)
            self.storage.clear_last_sync(key)
            sync_fn(entry_path)
            self.storage.update_last_sync(key)

        logger.info(f"Sync {sync_id} stored in cache entry {key}")
        return SyncResult(fingerprint=key, path=entry_path, from_cache=False)

    def invalidate(self, key: str) -> None:
        """Remove an entry and its lock."""
        self.locks.release(key)
        self.storage.remove_entry(key)

    def force_unlock(self, key: str) -> bool:
        """Force-remove the lock on an entry.

        Returns:
            True if a lock was removed
        """
        unlocked = self.locks.force_release(key)
        logger.info(f"Force unlock {key}: {'success' if unlocked else 'no lock found'}")
        return unlocked

    def cleanup_expired(
        self, max_age_hours: Optional[float] = None, dry_run: bool = False
    ) -> CleanupReport:
        """Remove expired, unlocked entries. See :class:`CleanupManager`."""
        return self.cleanup.cleanup_expired(max_age_hours, dry_run=dry_run)

    def prune_stale_locks(self) -> List[str]:
        """Remove abandoned locks across the cache root."""
        return self.locks.prune_stale()

    def list_entries(self) -> List[EntryStatus]:
        """Get the status of every entry under the cache root."""
        return [self.status(key) for key in self.storage.iter_entries()]
