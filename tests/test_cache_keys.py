"""Unit tests for cache key generation."""

import hashlib

import pytest

from synccache.cache.keys import (
    LegacySyncRequest,
    SyncRequest,
    canonical_record,
    fingerprint,
    is_fingerprint,
)


def _request(**overrides):
    values = dict(
        remote_host="build01",
        remote_port=22,
        remote_user="ci",
        directories=["/srv/app", "/srv/lib"],
        files=["/etc/app.conf"],
        recursive=True,
        exclude_patterns=["*.tmp", "cache*"],
        exclude_extensions=[".log", ".pyc"],
        exclude_directories=["node_modules", ".git"],
    )
    values.update(overrides)
    return SyncRequest(**values)


class TestFingerprintShape:
    """Test fingerprint format."""

    def test_fingerprint_is_16_hex_chars(self):
        """Test that fingerprints are 16 lowercase hex characters."""
        key = fingerprint(_request())

        assert len(key) == 16
        assert is_fingerprint(key)

    def test_fingerprint_is_deterministic(self):
        """Test that the same request always gives the same key."""
        assert fingerprint(_request()) == fingerprint(_request())

    def test_is_fingerprint_rejects_other_strings(self):
        """Test fingerprint shape detection."""
        assert is_fingerprint("0123456789abcdef")
        assert not is_fingerprint("0123456789ABCDEF")
        assert not is_fingerprint("0123456789abcde")
        assert not is_fingerprint("../../etc/passwd")


class TestFingerprintNormalization:
    """Test that set ordering never changes the key."""

    def test_reordered_sets_give_same_key(self):
        """Test set-valued fields are order-independent."""
        original = _request()
        reordered = _request(
            directories=["/srv/lib", "/srv/app"],
            exclude_patterns=["cache*", "*.tmp"],
            exclude_extensions=(".pyc", ".log"),
            exclude_directories={".git", "node_modules"},
        )

        assert fingerprint(original) == fingerprint(reordered)

    def test_duplicates_are_ignored(self):
        """Test repeated members collapse into one."""
        assert fingerprint(_request(exclude_extensions=[".log", ".pyc", ".log"])) == (
            fingerprint(_request())
        )

    def test_omitted_and_empty_sets_match(self):
        """Test an omitted filter and an empty one give the same key."""
        omitted = SyncRequest("build01", remote_user="ci", directories=["/srv"])
        empty = SyncRequest(
            "build01",
            remote_user="ci",
            directories=["/srv"],
            files=[],
            exclude_patterns=[],
            exclude_extensions=set(),
            exclude_directories=None,
        )

        assert fingerprint(omitted) == fingerprint(empty)

    def test_missing_port_defaults_to_ssh(self):
        """Test a falsy port is normalized to 22."""
        assert fingerprint(_request(remote_port=None)) == fingerprint(_request())

    def test_every_field_present_in_record(self):
        """Test canonical record carries every field, sorted."""
        record = canonical_record(SyncRequest("h"))

        assert record == {
            "host": "h",
            "port": 22,
            "username": "",
            "directories": [],
            "files": [],
            "recursive": True,
            "excludePatterns": [],
            "excludeExtensions": [],
            "excludeDirectories": [],
        }


class TestFingerprintSensitivity:
    """Test that any real difference changes the key."""

    @pytest.mark.parametrize(
        "overrides",
        [
            {"remote_host": "build02"},
            {"remote_port": 2222},
            {"remote_user": "root"},
            {"directories": ["/srv/app"]},
            {"directories": ["/srv/app", "/srv/lib", "/srv/doc"]},
            {"files": []},
            {"files": ["/etc/other.conf"]},
            {"recursive": False},
            {"exclude_patterns": ["*.tmp"]},
            {"exclude_extensions": [".log"]},
            {"exclude_directories": ["node_modules"]},
        ],
    )
    def test_difference_changes_key(self, overrides):
        """Test scalar and membership differences give different keys."""
        assert fingerprint(_request(**overrides)) != fingerprint(_request())

    def test_directory_and_file_sets_are_distinct(self):
        """Test moving a path from directories to files changes the key."""
        as_dir = SyncRequest("h", directories=["/srv/x"])
        as_file = SyncRequest("h", files=["/srv/x"])

        assert fingerprint(as_dir) != fingerprint(as_file)

    def test_corpus_has_no_collisions(self):
        """Test a corpus of distinct requests yields distinct keys."""
        keys = set()
        for host in ("a", "b"):
            for port in (22, 2222):
                for path in ("/x", "/y", "/z"):
                    for recursive in (True, False):
                        keys.add(
                            fingerprint(
                                SyncRequest(
                                    host,
                                    port,
                                    directories=[path],
                                    recursive=recursive,
                                )
                            )
                        )

        assert len(keys) == 2 * 2 * 3 * 2


class TestLegacyShape:
    """Test the single-path request shape."""

    def test_legacy_serialization_is_compact_and_sorted(self):
        """Test legacy keys hash the exact compact, key-sorted JSON."""
        request = LegacySyncRequest(
            "build01",
            remote_user="ci",
            remote_path="/srv/app",
            exclude_extensions=[".pyc", ".log"],
        )
        expected_payload = (
            '{"excludeDirectories":[],"excludeExtensions":[".log",".pyc"],'
            '"excludePatterns":[],"host":"build01","port":22,'
            '"recursive":true,"remotePath":"/srv/app","username":"ci"}'
        )

        expected = hashlib.sha256(expected_payload.encode("utf-8")).hexdigest()[:16]
        assert fingerprint(request) == expected

    def test_multi_path_serialization_is_compact_and_sorted(self):
        """Test multi-path keys hash the exact compact, key-sorted JSON."""
        request = SyncRequest(
            "build01", remote_user="ci", directories=["/b", "/a"], recursive=False
        )
        expected_payload = (
            '{"directories":["/a","/b"],"excludeDirectories":[],'
            '"excludeExtensions":[],"excludePatterns":[],"files":[],'
            '"host":"build01","port":22,"recursive":false,"username":"ci"}'
        )

        expected = hashlib.sha256(expected_payload.encode("utf-8")).hexdigest()[:16]
        assert fingerprint(request) == expected

    def test_non_ascii_paths_hash_as_utf8(self):
        """Test non-ASCII characters are serialized unescaped."""
        request = LegacySyncRequest("h", remote_path="/données")
        expected_payload = (
            '{"excludeDirectories":[],"excludeExtensions":[],'
            '"excludePatterns":[],"host":"h","port":22,'
            '"recursive":true,"remotePath":"/données","username":""}'
        )

        expected = hashlib.sha256(expected_payload.encode("utf-8")).hexdigest()[:16]
        assert fingerprint(request) == expected

    def test_legacy_and_multi_path_never_overlap(self):
        """Test a single-directory request does not reuse the legacy key."""
        legacy = LegacySyncRequest("build01", remote_user="ci", remote_path="/srv/app")
        multi = SyncRequest("build01", remote_user="ci", directories=["/srv/app"])

        assert fingerprint(legacy) != fingerprint(multi)
        assert set(canonical_record(legacy)) != set(canonical_record(multi))

    def test_legacy_string_filter_is_single_member(self):
        """Test a bare string filter is one member, not characters."""
        request = LegacySyncRequest("h", remote_path="/p", exclude_patterns="*.tmp")

        assert request.exclude_patterns == frozenset({"*.tmp"})
