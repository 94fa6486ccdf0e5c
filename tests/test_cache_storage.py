"""Unit tests for cache storage layout."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from synccache.cache.errors import RootUnavailableError
from synccache.cache.storage import LAST_SYNC_FILE, CacheStorage, EntryStats

KEY = "0123456789abcdef"


@pytest.fixture
def storage(cache_dir):
    """Create test storage."""
    return CacheStorage(cache_dir, default_ttl=72)


class TestEntryPaths:
    """Test the fingerprint to path mapping."""

    def test_path_for_key(self, storage, cache_dir):
        """Test that entries live directly under the root."""
        assert storage.path_for_key(KEY) == cache_dir / KEY

    def test_path_is_stable_across_instances(self, cache_dir):
        """Test that the mapping does not depend on the instance."""
        assert CacheStorage(cache_dir).path_for_key(KEY) == CacheStorage(
            cache_dir
        ).path_for_key(KEY)

    def test_prepare_entry_creates_directory(self, storage):
        """Test that prepare_entry creates the entry and root."""
        path = storage.prepare_entry(KEY)

        assert path.is_dir()
        assert storage.prepare_entry(KEY) == path


class TestLastSync:
    """Test last-sync stamps."""

    def test_update_and_read_last_sync(self, storage):
        """Test that the stamp records the current time."""
        storage.prepare_entry(KEY)
        before = datetime.now(timezone.utc)

        storage.update_last_sync(KEY)
        synced_at = storage.read_last_sync(KEY)

        assert synced_at is not None
        assert synced_at >= before - timedelta(seconds=1)
        assert synced_at.tzinfo is not None

    def test_stamp_file_format(self, storage):
        """Test the stamp file content."""
        path = storage.prepare_entry(KEY)
        storage.update_last_sync(KEY)

        data = json.loads((path / LAST_SYNC_FILE).read_text())
        assert "syncedAt" in data

    def test_missing_stamp_is_none(self, storage):
        """Test that an entry without a stamp reports None."""
        storage.prepare_entry(KEY)

        assert storage.read_last_sync(KEY) is None

    def test_corrupt_stamp_is_none(self, storage):
        """Test that an unreadable stamp reports None."""
        path = storage.prepare_entry(KEY)
        (path / LAST_SYNC_FILE).write_text("not json")

        assert storage.read_last_sync(KEY) is None

    def test_update_on_missing_entry_does_not_raise(self, storage):
        """Test that stamping a missing entry only logs."""
        storage.update_last_sync(KEY)

        assert storage.read_last_sync(KEY) is None

    def test_reads_utc_z_suffix(self, storage):
        """Test that a stamp written with a trailing Z is read as UTC."""
        path = storage.prepare_entry(KEY)
        (path / LAST_SYNC_FILE).write_text('{"syncedAt": "2024-05-01T12:34:56.000Z"}')

        assert storage.read_last_sync(KEY) == datetime(
            2024, 5, 1, 12, 34, 56, tzinfo=timezone.utc
        )

    def test_clear_last_sync(self, storage):
        """Test that clearing removes the stamp and keeps the content."""
        path = storage.prepare_entry(KEY)
        (path / "data.txt").write_text("content")
        storage.update_last_sync(KEY)

        storage.clear_last_sync(KEY)

        assert storage.read_last_sync(KEY) is None
        assert (path / "data.txt").exists()

    def test_clear_last_sync_without_stamp(self, storage):
        """Test that clearing a missing stamp is a no-op."""
        storage.clear_last_sync(KEY)
        storage.prepare_entry(KEY)
        storage.clear_last_sync(KEY)

        assert storage.read_last_sync(KEY) is None

    def test_is_expired(self, storage):
        """Test expiry against default and explicit thresholds."""
        now = datetime.now(timezone.utc)

        assert storage.is_expired(now - timedelta(hours=73)) is True
        assert storage.is_expired(now - timedelta(hours=71)) is False
        assert storage.is_expired(now - timedelta(hours=2), max_age_hours=1) is True


class TestStatsAndRemoval:
    """Test entry statistics and deletion."""

    def test_stats_for(self, make_entry, storage):
        """Test size and file count over a nested tree."""
        path = make_entry(KEY, files={"a": b"1234", "x/y/b": b"56", "c": b""})

        assert storage.stats_for(path) == EntryStats(size_bytes=6, file_count=3)

    def test_stats_for_missing_path(self, storage, cache_dir):
        """Test stats of a path that does not exist."""
        assert storage.stats_for(cache_dir / KEY) == EntryStats()

    def test_remove_entry(self, make_entry, storage):
        """Test recursive removal."""
        path = make_entry(KEY, files={"deep/tree/file": b"data"})

        storage.remove_entry(KEY)

        assert not path.exists()

    def test_remove_entry_is_idempotent(self, storage):
        """Test that removing a missing entry is not an error."""
        storage.remove_entry(KEY)
        storage.remove_entry(KEY)


class TestEnumeration:
    """Test listing entries and locks under the root."""

    def test_iter_entries_skips_files_and_dot_dirs(
        self, storage, cache_dir, make_entry, write_lock
    ):
        """Test that only entry directories are listed."""
        make_entry("bbbbbbbbbbbbbbbb")
        make_entry(KEY)
        write_lock(KEY)
        (cache_dir / ".locks").mkdir()

        assert list(storage.iter_entries()) == [KEY, "bbbbbbbbbbbbbbbb"]

    def test_iter_lock_keys(self, storage, make_entry, write_lock):
        """Test that lock side-files are listed by fingerprint."""
        make_entry(KEY)
        write_lock("bbbbbbbbbbbbbbbb")

        assert list(storage.iter_lock_keys()) == ["bbbbbbbbbbbbbbbb"]

    def test_missing_root_lists_nothing(self, storage):
        """Test enumeration of a root that does not exist."""
        assert list(storage.iter_entries()) == []
        assert list(storage.iter_lock_keys()) == []

    def test_root_that_is_a_file_raises(self, tmp_path):
        """Test that an unlistable root raises RootUnavailableError."""
        root = tmp_path / "cache"
        root.write_text("not a directory")

        with pytest.raises(RootUnavailableError):
            list(CacheStorage(root).iter_entries())
