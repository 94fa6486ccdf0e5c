"""On-disk layout for cached sync results.

Each entry lives in ``<cache_dir>/<fingerprint>/`` and carries a
``.last_sync.json`` stamp. Lock side-files sit next to the entry as
``<cache_dir>/<fingerprint>.lock``.
"""

import json
import logging
import os
import shutil
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional

from synccache.cache.errors import (
    CachePermissionError,
    EntryIOError,
    RootUnavailableError,
)

logger = logging.getLogger(__name__)

LAST_SYNC_FILE = ".last_sync.json"
LOCK_SUFFIX = ".lock"


@dataclass(frozen=True)
class EntryStats:
    """Size and file count of a cache entry."""

    size_bytes: int = 0
    file_count: int = 0


class CacheStorage:
    """Maps fingerprints to entry directories and manages their contents.

    Args:
        cache_base_path: Root directory for all entries
        default_ttl: Default maximum age in hours used by cleanup
    """

    def __init__(self, cache_base_path: Path, default_ttl: float = 72):
        self.cache_base_path = Path(cache_base_path)
        self.default_ttl = default_ttl

    def ensure_root(self) -> Path:
        """Create the cache root if needed.

        Raises:
            CachePermissionError: If the directory cannot be created
        """
        try:
            self.cache_base_path.mkdir(parents=True, exist_ok=True)
        except PermissionError as e:
            raise CachePermissionError(
                f"Cannot create cache directory at {self.cache_base_path}: {e}"
            ) from e
        return self.cache_base_path

    def path_for_key(self, fingerprint: str) -> Path:
        """Get the entry directory for a fingerprint."""
        return self.cache_base_path / fingerprint

    def prepare_entry(self, fingerprint: str) -> Path:
        """Create the entry directory if it does not exist yet.

        Args:
            fingerprint: Cache key

        Returns:
            Path to the entry directory
        """
        entry_path = self.path_for_key(fingerprint)
        if not entry_path.exists():
            try:
                entry_path.mkdir(parents=True, exist_ok=True)
            except PermissionError as e:
                raise CachePermissionError(
                    f"Cannot create cache entry {entry_path}: {e}"
                ) from e
            logger.debug(f"Created cache entry directory: {entry_path}")
        return entry_path

    def update_last_sync(self, fingerprint: str) -> None:
        """Stamp an entry with the current time and touch its directory.

        Failures are logged, not raised: the synced content is still usable.
        """
        entry_path = self.path_for_key(fingerprint)
        stamp_path = entry_path / LAST_SYNC_FILE
        now = datetime.now(timezone.utc)

        try:
            with open(stamp_path, "w") as f:
                json.dump({"syncedAt": now.isoformat()}, f, indent=2)
            os.utime(entry_path)
            logger.debug(f"Last-sync stamp updated: {stamp_path}")
        except OSError as e:
            logger.warning(f"Unable to write last-sync stamp for {fingerprint}: {e}")

    def clear_last_sync(self, fingerprint: str) -> None:
        """Remove the last-sync stamp so the entry reads as incomplete.

        Raises:
            EntryIOError: If an existing stamp cannot be removed
        """
        stamp_path = self.path_for_key(fingerprint) / LAST_SYNC_FILE
        try:
            stamp_path.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            raise EntryIOError(fingerprint, f"Cannot clear last-sync stamp: {e}") from e
        logger.debug(f"Last-sync stamp cleared: {stamp_path}")

    def read_last_sync(self, fingerprint: str) -> Optional[datetime]:
        """Read the last-sync stamp of an entry.

        Returns:
            Timezone-aware datetime, or None if missing or unreadable
        """
        stamp_path = self.path_for_key(fingerprint) / LAST_SYNC_FILE
        if not stamp_path.exists():
            return None

        try:
            with open(stamp_path, "r") as f:
                data = json.load(f)
            raw = data["syncedAt"]
            if raw.endswith("Z"):
                raw = raw[:-1] + "+00:00"
            synced_at = datetime.fromisoformat(raw)
        except (OSError, ValueError, KeyError, TypeError, AttributeError) as e:
            logger.warning(f"Unable to read last-sync stamp for {fingerprint}: {e}")
            return None

        if synced_at.tzinfo is None:
            synced_at = synced_at.replace(tzinfo=timezone.utc)
        return synced_at

    def entry_mtime(self, fingerprint: str) -> datetime:
        """Get the modification time of an entry directory.

        Raises:
            OSError: If the entry cannot be stat'ed
        """
        mtime = self.path_for_key(fingerprint).stat().st_mtime
        return datetime.fromtimestamp(mtime, tz=timezone.utc)

    def is_expired(
        self, last_sync: datetime, max_age_hours: Optional[float] = None
    ) -> bool:
        """Check whether a sync time is older than the allowed age."""
        if max_age_hours is None:
            max_age_hours = self.default_ttl
        return age_in_hours(last_sync) > max_age_hours

    def stats_for(self, path: Path) -> EntryStats:
        """Compute size and file count of a directory tree.

        Computed on every call. Unreadable subpaths are skipped.
        """
        size = 0
        file_count = 0
        for dirpath, _dirnames, filenames in os.walk(path):
            for name in filenames:
                try:
                    size += os.lstat(os.path.join(dirpath, name)).st_size
                except OSError:
                    continue
                file_count += 1
        return EntryStats(size_bytes=size, file_count=file_count)

    def remove_entry(self, fingerprint: str) -> None:
        """Recursively delete an entry. Does nothing if it is already gone."""
        entry_path = self.path_for_key(fingerprint)
        if entry_path.exists():
            shutil.rmtree(entry_path)
            logger.info(f"Removed cache entry: {fingerprint}")

    def _scan_root(self) -> Iterator[os.DirEntry]:
        try:
            with os.scandir(self.cache_base_path) as it:
                entries = list(it)
        except FileNotFoundError:
            return iter(())
        except OSError as e:
            logger.error(f"Cannot enumerate cache root {self.cache_base_path}: {e}")
            raise RootUnavailableError(
                f"Cannot enumerate cache root {self.cache_base_path}: {e}"
            ) from e
        return iter(sorted(entries, key=lambda d: d.name))

    def iter_entries(self) -> Iterator[str]:
        """Yield the fingerprint of every entry directory under the root.

        Lock side-files and dot-prefixed bookkeeping directories are skipped.
        A missing root yields nothing.

        Raises:
            RootUnavailableError: If the root exists but cannot be listed
        """
        for dir_entry in self._scan_root():
            if dir_entry.name.startswith("."):
                continue
            try:
                is_dir = dir_entry.is_dir(follow_symlinks=False)
            except OSError:
                # Reported by the caller when it stats the entry
                is_dir = True
            if is_dir:
                yield dir_entry.name

    def iter_lock_keys(self) -> Iterator[str]:
        """Yield the fingerprint of every lock side-file under the root."""
        for dir_entry in self._scan_root():
            if dir_entry.name.endswith(LOCK_SUFFIX) and not dir_entry.name.startswith(
                "."
            ):
                yield dir_entry.name[: -len(LOCK_SUFFIX)]


def age_in_hours(moment: datetime) -> float:
    """Hours elapsed since a timezone-aware moment."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (datetime.now(timezone.utc) - moment).total_seconds() / 3600
