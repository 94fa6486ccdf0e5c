"""Age-based garbage collection of cache entries."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from synccache.cache.errors import EntryIOError
from synccache.cache.locks import LockManager, LockState
from synccache.cache.storage import CacheStorage, age_in_hours

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemovedEntry:
    """An entry reclaimed by a cleanup pass."""

    fingerprint: str
    age_hours: float
    size_bytes: int
    file_count: int


@dataclass(frozen=True)
class CleanupFailure:
    """An entry that could not be inspected or removed."""

    fingerprint: str
    message: str


@dataclass(frozen=True)
class CleanupReport:
    """Result of one cleanup pass.

    Attributes:
        removed_entries: Entries removed (or, in a dry run, that would be)
        errors: Per-entry failures; they never abort the pass
        total_bytes_reclaimed: Sum of removed entry sizes
        total_files_reclaimed: Sum of removed entry file counts
        dry_run: True if nothing was actually deleted
    """

    removed_entries: Tuple[RemovedEntry, ...] = ()
    errors: Tuple[CleanupFailure, ...] = ()
    total_bytes_reclaimed: int = 0
    total_files_reclaimed: int = 0
    dry_run: bool = False

    @property
    def removed_fingerprints(self) -> List[str]:
        return [entry.fingerprint for entry in self.removed_entries]


@dataclass
class _ReportBuilder:
    removed: List[RemovedEntry] = field(default_factory=list)
    errors: List[CleanupFailure] = field(default_factory=list)

    def build(self, dry_run: bool) -> CleanupReport:
        return CleanupReport(
            removed_entries=tuple(self.removed),
            errors=tuple(self.errors),
            total_bytes_reclaimed=sum(e.size_bytes for e in self.removed),
            total_files_reclaimed=sum(e.file_count for e in self.removed),
            dry_run=dry_run,
        )


class CleanupManager:
    """Removes expired, unlocked entries from the cache root.

    Only reads entry metadata itself; deletion goes through the storage and
    lock state through the lock manager.
    """

    def __init__(self, storage: CacheStorage, lock_manager: LockManager):
        self.storage = storage
        self.lock_manager = lock_manager

    def cleanup_expired(
        self, max_age_hours: Optional[float] = None, dry_run: bool = False
    ) -> CleanupReport:
        """Remove entries older than ``max_age_hours``.

        Locked entries are skipped whatever their age. The lock is checked
        right before each deletion.

        Args:
            max_age_hours: Age threshold in hours (storage default if None)
            dry_run: Report candidates without deleting anything

        Returns:
            CleanupReport of the pass

        Raises:
            RootUnavailableError: If the cache root exists but cannot be listed
        """
        if max_age_hours is None:
            max_age_hours = self.storage.default_ttl

        logger.info(f"Cleaning up cache entries older than {max_age_hours}h")
        report = _ReportBuilder()

        for fingerprint in self.storage.iter_entries():
            try:
                removed = self._collect(fingerprint, max_age_hours, dry_run)
            except (OSError, EntryIOError) as e:
                logger.warning(f"Cleanup failed for {fingerprint}: {e}")
                report.errors.append(CleanupFailure(fingerprint, str(e)))
                continue
            if removed is not None:
                report.removed.append(removed)

        result = report.build(dry_run)
        logger.info(
            f"Cleanup finished: {len(result.removed_entries)} entries removed, "
            f"{len(result.errors)} errors"
        )
        return result

    def _collect(
        self, fingerprint: str, max_age_hours: float, dry_run: bool
    ) -> Optional[RemovedEntry]:
        age = age_in_hours(self.storage.entry_mtime(fingerprint))
        if age <= max_age_hours:
            return None

        if dry_run:
            # Read-only: leave abandoned locks for a real pass to clear
            locked = self.lock_manager.peek(fingerprint) is LockState.LOCKED
        else:
            locked = self.lock_manager.is_locked(fingerprint)
        if locked:
            logger.info(f"Skipping locked cache entry: {fingerprint}")
            return None

        stats = self.storage.stats_for(self.storage.path_for_key(fingerprint))
        if not dry_run:
            try:
                self.storage.remove_entry(fingerprint)
            except OSError as e:
                raise EntryIOError(fingerprint, f"Cannot remove entry: {e}") from e

        return RemovedEntry(
            fingerprint=fingerprint,
            age_hours=age,
            size_bytes=stats.size_bytes,
            file_count=stats.file_count,
        )
