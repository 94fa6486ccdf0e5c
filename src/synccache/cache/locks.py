"""Advisory locks on cache entries.

A lock is a small JSON file next to the entry directory
(``<cache_dir>/<fingerprint>.lock``). It is a marker, not a kernel lock: it
survives crashes and can be inspected or deleted by hand. A lock older than
``max_lock_age`` is considered abandoned and is removed by whoever notices.

Reading and writing markers happens under a single ``filelock`` guard at
``<cache_dir>/.locks/cache.guard``.
"""

import enum
import json
import logging
import os
import time
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from filelock import FileLock, Timeout

from synccache.cache.errors import CorruptLockError, EntryIOError, LockHeldError
from synccache.cache.storage import LOCK_SUFFIX, CacheStorage

logger = logging.getLogger(__name__)

DEFAULT_MAX_LOCK_AGE = 30 * 60  # seconds
GUARD_DIR = ".locks"
GUARD_FILE = "cache.guard"


class LockState(enum.Enum):
    """Outcome of a lock check."""

    FREE = "free"
    LOCKED = "locked"
    STALE_CLEARED = "stale_cleared"


@dataclass(frozen=True)
class LockRecord:
    """Contents of a lock file.

    Attributes:
        sync_id: Identifier of the sync holding the lock
        timestamp: Creation time in epoch milliseconds
        pid: Process id of the holder
        cache_key: Fingerprint of the locked entry
    """

    sync_id: str
    timestamp: int
    pid: int
    cache_key: str

    def age_seconds(self, now_ms: Optional[int] = None) -> float:
        if now_ms is None:
            now_ms = _now_ms()
        return (now_ms - self.timestamp) / 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "syncId": self.sync_id,
            "timestamp": self.timestamp,
            "pid": self.pid,
            "cacheKey": self.cache_key,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "LockRecord":
        """Build a record from decoded JSON.

        Raises:
            CorruptLockError: If required fields are missing or mistyped
        """
        if not isinstance(data, dict):
            raise CorruptLockError("Lock data is not an object")
        timestamp = data.get("timestamp")
        if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
            raise CorruptLockError(f"Invalid lock timestamp: {timestamp!r}")
        pid = data.get("pid", 0)
        if isinstance(pid, bool) or not isinstance(pid, int):
            raise CorruptLockError(f"Invalid lock pid: {pid!r}")
        return cls(
            sync_id=str(data.get("syncId", "")),
            timestamp=int(timestamp),
            pid=pid,
            cache_key=str(data.get("cacheKey", "")),
        )


def _now_ms() -> int:
    return int(time.time() * 1000)


class LockManager:
    """Creates, checks and removes lock files for cache entries.

    Args:
        storage: Storage providing the fingerprint to path mapping
        max_lock_age: Seconds after which a lock is treated as abandoned
        lock_timeout: Seconds to wait for another process's acquire to finish

    Examples:
        >>> locks = LockManager(CacheStorage(tmp_dir))
        >>> with locks.hold("0123456789abcdef", "sync-1"):
        ...     locks.is_locked("0123456789abcdef")
        True
    """

    def __init__(
        self,
        storage: CacheStorage,
        max_lock_age: float = DEFAULT_MAX_LOCK_AGE,
        lock_timeout: float = 10,
    ):
        self.storage = storage
        self.max_lock_age = max_lock_age
        self.lock_timeout = lock_timeout

    def lock_path(self, fingerprint: str) -> Path:
        """Get the lock side-file path for an entry."""
        entry_path = self.storage.path_for_key(fingerprint)
        return entry_path.with_name(entry_path.name + LOCK_SUFFIX)

    def _guard(self) -> FileLock:
        # One guard for the whole root: its sections only read or write a marker
        guard_dir = self.storage.cache_base_path / GUARD_DIR
        guard_dir.mkdir(parents=True, exist_ok=True)
        return FileLock(guard_dir / GUARD_FILE, timeout=self.lock_timeout)

    def _read_record(self, lock_path: Path) -> Optional[LockRecord]:
        """Read a lock file.

        Returns:
            The record, or None if the file does not exist

        Raises:
            CorruptLockError: If the file exists but cannot be decoded
        """
        try:
            with open(lock_path, "r") as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            raise CorruptLockError(f"Cannot read lock {lock_path}: {e}") from e
        return LockRecord.from_dict(data)

    def _inspect(self, lock_path: Path) -> Tuple[Optional[LockRecord], bool]:
        """Return the current record and whether it may be reclaimed.

        A missing file gives ``(None, False)``, a corrupt one ``(None, True)``.
        """
        try:
            record = self._read_record(lock_path)
        except CorruptLockError as e:
            logger.warning(f"Corrupt lock detected: {e}")
            return None, True
        if record is None:
            return None, False
        if record.age_seconds() > self.max_lock_age:
            logger.warning(
                f"Stale lock detected ({record.age_seconds():.0f}s old): {lock_path}"
            )
            return record, True
        return record, False

    def _write_record(self, lock_path: Path, record: LockRecord) -> None:
        temp_path = lock_path.with_name(f"{lock_path.name}.{os.getpid()}.tmp")
        try:
            with open(temp_path, "w") as f:
                json.dump(record.to_dict(), f, indent=2)
            os.replace(temp_path, lock_path)
        except OSError as e:
            try:
                temp_path.unlink()
            except FileNotFoundError:
                pass
            raise EntryIOError(record.cache_key, f"Cannot write lock: {e}") from e

    def acquire(self, fingerprint: str, sync_id: str) -> LockRecord:
        """Lock an entry for a sync.

        A stale or corrupt lock is replaced.

        Args:
            fingerprint: Cache key to lock
            sync_id: Identifier of the sync taking the lock

        Returns:
            The record written to disk

        Raises:
            LockHeldError: If a valid lock already exists
        """
        self.storage.ensure_root()
        lock_path = self.lock_path(fingerprint)

        try:
            with self._guard():
                current, reclaimable = self._inspect(lock_path)
                if current is not None and not reclaimable:
                    raise LockHeldError(fingerprint, current)

                record = LockRecord(
                    sync_id=sync_id,
                    timestamp=_now_ms(),
                    pid=os.getpid(),
                    cache_key=fingerprint,
                )
                self._write_record(lock_path, record)
        except Timeout as e:
            raise LockHeldError(fingerprint) from e

        logger.debug(f"Lock created: {lock_path}")
        return record

    def release(self, fingerprint: str) -> None:
        """Remove the lock on an entry. Missing locks are ignored."""
        lock_path = self.lock_path(fingerprint)
        try:
            lock_path.unlink()
        except FileNotFoundError:
            return
        logger.debug(f"Lock removed: {lock_path}")

    def check(self, fingerprint: str) -> LockState:
        """Check the lock state of an entry, clearing abandoned locks.

        Never raises for unreadable lock data.

        Returns:
            LOCKED for a valid lock, FREE if there is none, STALE_CLEARED
            if a stale or corrupt lock was found and removed
        """
        lock_path = self.lock_path(fingerprint)
        if not lock_path.exists():
            return LockState.FREE

        record, reclaimable = self._inspect(lock_path)
        if not reclaimable:
            return LockState.LOCKED if record is not None else LockState.FREE

        try:
            with self._guard():
                # Re-read: another process may have taken the lock meanwhile
                record, reclaimable = self._inspect(lock_path)
                if not reclaimable:
                    return LockState.LOCKED if record is not None else LockState.FREE
                try:
                    lock_path.unlink()
                except FileNotFoundError:
                    pass
        except Timeout:
            logger.info(f"Lock on {fingerprint} is busy in another process")
            return LockState.LOCKED
        except OSError as e:
            logger.warning(f"Unable to remove abandoned lock {lock_path}: {e}")
            return LockState.FREE

        logger.warning(f"Abandoned lock removed: {lock_path}")
        return LockState.STALE_CLEARED

    def is_locked(self, fingerprint: str) -> bool:
        """Check whether an entry holds a valid lock."""
        return self.check(fingerprint) is LockState.LOCKED

    def peek(self, fingerprint: str) -> LockState:
        """Check the lock state of an entry without changing anything.

        Stale or corrupt locks count as FREE but are left on disk.

        Returns:
            LOCKED for a valid lock, FREE otherwise
        """
        record, reclaimable = self._inspect(self.lock_path(fingerprint))
        if record is not None and not reclaimable:
            return LockState.LOCKED
        return LockState.FREE

    def read(self, fingerprint: str) -> Optional[LockRecord]:
        """Read the lock record as stored, without staleness handling.

        Returns:
            The record, or None if absent or unreadable
        """
        try:
            return self._read_record(self.lock_path(fingerprint))
        except CorruptLockError:
            return None

    def force_release(self, fingerprint: str) -> bool:
        """Delete the lock on an entry whether or not it is still valid.

        Returns:
            True if a lock file existed and was removed

        Raises:
            EntryIOError: If the lock file exists but cannot be removed
        """
        lock_path = self.lock_path(fingerprint)
        try:
            lock_path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error(f"Error force-removing lock {lock_path}: {e}")
            raise EntryIOError(fingerprint, f"Cannot remove lock: {e}") from e

        logger.info(f"Lock force-removed: {lock_path}")
        return True

    @contextmanager
    def hold(self, fingerprint: str, sync_id: str) -> Iterator[LockRecord]:
        """Hold the lock on an entry for the duration of a block."""
        record = self.acquire(fingerprint, sync_id)
        try:
            yield record
        finally:
            self.release(fingerprint)

    def prune_stale(self) -> List[str]:
        """Remove abandoned locks across the whole cache root.

        Also covers locks whose entry directory no longer exists.

        Returns:
            Fingerprints whose locks were cleared
        """
        cleared = []
        for fingerprint in self.storage.iter_lock_keys():
            if self.check(fingerprint) is LockState.STALE_CLEARED:
                cleared.append(fingerprint)
        if cleared:
            logger.info(f"Pruned {len(cleared)} abandoned lock(s)")
        return cleared
