"""Cache configuration management."""

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Optional


def default_cache_dir() -> Path:
    """Default cache root, shared by every process on the host."""
    return Path(tempfile.gettempdir()) / "toolbox-remote-cache"


@dataclass
class CacheConfig:
    """Configuration for the sync result cache.

    Attributes:
        cache_dir: Root directory holding one subdirectory per fingerprint
        default_ttl: Default maximum entry age in hours before cleanup (72 hours)
        max_lock_age: Seconds after which a lock is considered abandoned (30 minutes)
        lock_timeout: Seconds to wait for the acquire guard before reporting contention
    """

    cache_dir: Optional[Path] = None
    default_ttl: float = 72
    max_lock_age: int = 1800  # 30 minutes
    lock_timeout: float = 10

    def __post_init__(self):
        """Ensure cache_dir is an expanded Path object."""
        if self.cache_dir is None:
            self.cache_dir = default_cache_dir()
        else:
            self.cache_dir = Path(self.cache_dir).expanduser()

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "CacheConfig":
        """Load configuration from file.

        Args:
            config_path: Path to config file. If None, uses
                ``config.json`` inside the default cache directory.

        Returns:
            CacheConfig instance (defaults if the file does not exist)
        """
        if config_path is None:
            config_path = default_cache_dir() / "config.json"

        if not config_path.exists():
            return cls()

        with open(config_path, "r") as f:
            data = json.load(f)

        if "cache_dir" in data:
            data["cache_dir"] = Path(data["cache_dir"])

        return cls(**data)

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save configuration to file.

        Args:
            config_path: Path to config file. If None, uses default location.
        """
        if config_path is None:
            config_path = self.cache_dir / "config.json"

        config_path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "cache_dir": str(self.cache_dir),
            "default_ttl": self.default_ttl,
            "max_lock_age": self.max_lock_age,
            "lock_timeout": self.lock_timeout,
        }

        with open(config_path, "w") as f:
            json.dump(data, f, indent=2)

    @classmethod
    def from_env(cls) -> "CacheConfig":
        """Create configuration from environment variables.

        Environment variables:
            SYNCCACHE_DIR: Cache directory path
            SYNCCACHE_TTL_HOURS: Default TTL in hours
            SYNCCACHE_MAX_LOCK_AGE: Maximum lock age in seconds
            SYNCCACHE_LOCK_TIMEOUT: Guard timeout in seconds

        Returns:
            CacheConfig instance
        """
        config = cls()

        if os.getenv("SYNCCACHE_DIR"):
            config.cache_dir = Path(os.getenv("SYNCCACHE_DIR")).expanduser()

        if os.getenv("SYNCCACHE_TTL_HOURS"):
            config.default_ttl = float(os.getenv("SYNCCACHE_TTL_HOURS"))

        if os.getenv("SYNCCACHE_MAX_LOCK_AGE"):
            config.max_lock_age = int(os.getenv("SYNCCACHE_MAX_LOCK_AGE"))

        if os.getenv("SYNCCACHE_LOCK_TIMEOUT"):
            config.lock_timeout = float(os.getenv("SYNCCACHE_LOCK_TIMEOUT"))

        return config
