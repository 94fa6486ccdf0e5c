"""Cache key generation for remote sync requests.

A fingerprint identifies a cache slot. It is a truncated SHA-256 over a
canonical JSON record of the request, in which every set-valued field is a
sorted list and every field is present even when empty. Two request shapes
exist and their records use different field sets, so a legacy single-path key
can never be mistaken for a multi-path one.
"""

import hashlib
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_SSH_PORT = 22
FINGERPRINT_LENGTH = 16

_SET_FIELDS = (
    "exclude_patterns",
    "exclude_extensions",
    "exclude_directories",
)


def _as_frozenset(values: Optional[Iterable[str]]) -> FrozenSet[str]:
    if values is None:
        return frozenset()
    if isinstance(values, str):
        return frozenset([values])
    return frozenset(values)


def _normalize(instance, set_fields) -> None:
    # Frozen dataclasses need object.__setattr__ to normalize in place
    for name in set_fields:
        object.__setattr__(instance, name, _as_frozenset(getattr(instance, name)))
    if not instance.remote_port:
        object.__setattr__(instance, "remote_port", DEFAULT_SSH_PORT)


@dataclass(frozen=True)
class SyncRequest:
    """Multi-path sync request: explicit sets of remote directories and files.

    Examples:
        >>> req = SyncRequest("host", remote_user="me", directories=["/a", "/b"])
        >>> req.directories == frozenset({"/a", "/b"})
        True
    """

    remote_host: str
    remote_port: int = DEFAULT_SSH_PORT
    remote_user: str = ""
    directories: FrozenSet[str] = field(default_factory=frozenset)
    files: FrozenSet[str] = field(default_factory=frozenset)
    recursive: bool = True
    exclude_patterns: FrozenSet[str] = field(default_factory=frozenset)
    exclude_extensions: FrozenSet[str] = field(default_factory=frozenset)
    exclude_directories: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        _normalize(self, ("directories", "files") + _SET_FIELDS)


@dataclass(frozen=True)
class LegacySyncRequest:
    """Single-path sync request, as issued by older callers."""

    remote_host: str
    remote_port: int = DEFAULT_SSH_PORT
    remote_user: str = ""
    remote_path: str = ""
    recursive: bool = True
    exclude_patterns: FrozenSet[str] = field(default_factory=frozenset)
    exclude_extensions: FrozenSet[str] = field(default_factory=frozenset)
    exclude_directories: FrozenSet[str] = field(default_factory=frozenset)

    def __post_init__(self):
        _normalize(self, _SET_FIELDS)


AnySyncRequest = Union[SyncRequest, LegacySyncRequest]


def canonical_record(request: AnySyncRequest) -> Dict[str, Any]:
    """Build the canonical record hashed into a fingerprint.

    Args:
        request: Multi-path or legacy sync request

    Returns:
        Dict with every field present and every set sorted
    """
    record: Dict[str, Any] = {
        "host": request.remote_host,
        "port": request.remote_port,
        "username": request.remote_user,
    }
    if isinstance(request, LegacySyncRequest):
        record["remotePath"] = request.remote_path
    else:
        record["directories"] = sorted(request.directories)
        record["files"] = sorted(request.files)
    record["recursive"] = bool(request.recursive)
    record["excludePatterns"] = sorted(request.exclude_patterns)
    record["excludeExtensions"] = sorted(request.exclude_extensions)
    record["excludeDirectories"] = sorted(request.exclude_directories)
    return record


def fingerprint(request: AnySyncRequest) -> str:
    """Compute the cache fingerprint for a sync request.

    Collisions from truncation only cost an unnecessary re-sync; entry
    contents are described by their own metadata, not by the key.

    Args:
        request: Multi-path or legacy sync request

    Returns:
        16 lowercase hex characters

    Examples:
        >>> len(fingerprint(LegacySyncRequest("host", remote_path="/srv")))
        16
    """
    payload = json.dumps(
        canonical_record(request),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    digest = hashlib.sha256(payload.encode("utf-8")).hexdigest()
    key = digest[:FINGERPRINT_LENGTH]
    logger.debug(f"Generated cache key {key} for {request.remote_host}")
    return key


def is_fingerprint(name: str) -> bool:
    """Check whether a string has the shape of a fingerprint."""
    return len(name) == FINGERPRINT_LENGTH and all(
        c in "0123456789abcdef" for c in name
    )
