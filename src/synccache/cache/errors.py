"""Exceptions raised by the sync cache."""


class CacheError(Exception):
    """Base exception for cache-related errors."""

    pass


class CachePermissionError(CacheError):
    """Raised when cache directory permissions are insufficient."""

    pass


class LockHeldError(CacheError):
    """Raised when another sync already holds a valid lock on an entry.

    This is the expected contention signal: the caller decides whether to
    wait, poll, or skip.
    """

    def __init__(self, fingerprint: str, holder=None):
        self.fingerprint = fingerprint
        self.holder = holder
        if holder is not None:
            message = (
                f"Cache entry {fingerprint} is locked by sync {holder.sync_id} "
                f"(pid {holder.pid})"
            )
        else:
            message = f"Cache entry {fingerprint} is locked"
        super().__init__(message)


class CorruptLockError(CacheError):
    """Raised internally when a lock file cannot be parsed."""

    pass


class EntryIOError(CacheError):
    """Raised when a single cache entry cannot be inspected or removed."""

    def __init__(self, fingerprint: str, message: str):
        self.fingerprint = fingerprint
        super().__init__(f"{fingerprint}: {message}")


class RootUnavailableError(CacheError):
    """Raised when the cache root itself cannot be enumerated."""

    pass
