"""Shared fixtures for synccache tests."""

import json
import os
import time
from pathlib import Path

import pytest

from synccache.cache.config import CacheConfig
from synccache.cache.manager import SyncCache


@pytest.fixture
def cache_dir(tmp_path):
    """Cache root that does not exist yet."""
    return tmp_path / "cache"


@pytest.fixture
def cache_config(cache_dir):
    """Create test cache configuration."""
    return CacheConfig(cache_dir=cache_dir, default_ttl=72, max_lock_age=1800)


@pytest.fixture
def sync_cache(cache_config):
    """Create test cache service."""
    return SyncCache(cache_config)


def set_age(path: Path, hours: float) -> None:
    """Backdate the mtime of a path by a number of hours."""
    stamp = time.time() - hours * 3600
    os.utime(path, (stamp, stamp))


@pytest.fixture
def make_entry(cache_dir):
    """Factory creating an entry directory with content and a given age."""

    def _make(fingerprint: str, age_hours: float = 0, files=None) -> Path:
        entry_path = cache_dir / fingerprint
        entry_path.mkdir(parents=True, exist_ok=True)
        if files is None:
            files = {"data.txt": b"hello"}
        for name, content in files.items():
            file_path = entry_path / name
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(content)
        set_age(entry_path, age_hours)
        return entry_path

    return _make


@pytest.fixture
def write_lock(cache_dir):
    """Factory writing a raw lock file with a given age in minutes."""

    def _write(fingerprint: str, age_minutes: float = 0, sync_id: str = "sync-x"):
        cache_dir.mkdir(parents=True, exist_ok=True)
        lock_path = cache_dir / f"{fingerprint}.lock"
        data = {
            "syncId": sync_id,
            "timestamp": int((time.time() - age_minutes * 60) * 1000),
            "pid": 4242,
            "cacheKey": fingerprint,
        }
        lock_path.write_text(json.dumps(data, indent=2))
        return lock_path

    return _write
