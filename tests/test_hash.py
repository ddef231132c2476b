"""
Test snapshot and metadata hashing.

Verifies hash stability, whitelist sensitivity and the prefix rules.
"""

import datetime
import hashlib
import os
import struct

import pytest

from sfc._src.hash import (
    compute_metadata_hash,
    compute_snapshot_hash,
    find_hash_by_prefix,
    hashes_match,
    log_hash,
    short_hash,
    validate_hash_format,
)
from sfc._src.models.container import ContainerConfig, PackageSpec

FIXED_MTIME = 1_700_000_000


def freeze(path):
    os.utime(path, (FIXED_MTIME, FIXED_MTIME))


@pytest.fixture
def snapshot(tmp_path):
    snapshot_dir = tmp_path / "abcdefghijkl-new"
    snapshot_dir.mkdir()
    (snapshot_dir / "requirements.txt").write_text("flask==3.0.0\n")
    (snapshot_dir / "notes.txt").write_text("not hashed\n")
    freeze(snapshot_dir)
    return snapshot_dir


class TestSnapshotHash:
    """Test the snapshot identity hash."""

    def test_matches_documented_layout(self, snapshot):
        """Basename, whitelisted name and bytes, then the mtime as u64."""
        hasher = hashlib.sha256()
        hasher.update(b"abcdefghijkl-new")
        hasher.update(b"requirements.txt")
        hasher.update(b"flask==3.0.0\n")
        hasher.update(struct.pack("<Q", FIXED_MTIME))

        assert compute_snapshot_hash(snapshot) == hasher.hexdigest()

    def test_stable_across_calls(self, snapshot):
        first = compute_snapshot_hash(snapshot)
        second = compute_snapshot_hash(snapshot)

        assert first == second
        assert validate_hash_format(first)
        assert first == first.lower()

    def test_whitelisted_contents_change_hash(self, snapshot):
        before = compute_snapshot_hash(snapshot)
        (snapshot / "requirements.txt").write_text("flask==3.0.1\n")
        freeze(snapshot)

        assert compute_snapshot_hash(snapshot) != before

    def test_whitelisted_name_change_changes_hash(self, snapshot):
        before = compute_snapshot_hash(snapshot)
        (snapshot / "requirements.txt").rename(snapshot / "Gemfile.lock")
        freeze(snapshot)

        assert compute_snapshot_hash(snapshot) != before

    def test_metadata_file_changes_hash(self, snapshot):
        before = compute_snapshot_hash(snapshot)
        (snapshot / "container.toml").write_text('name = "demo"\n')
        freeze(snapshot)

        assert compute_snapshot_hash(snapshot) != before

    def test_non_whitelisted_file_is_ignored(self, snapshot):
        before = compute_snapshot_hash(snapshot)
        (snapshot / "notes.txt").write_text("changed, still not hashed\n")
        freeze(snapshot)

        assert compute_snapshot_hash(snapshot) == before

    def test_location_is_part_of_identity(self, snapshot, tmp_path):
        """Two directories with identical contents hash differently."""
        twin = tmp_path / "zyxwvutsrqpo-new"
        twin.mkdir()
        (twin / "requirements.txt").write_text("flask==3.0.0\n")
        freeze(twin)

        assert compute_snapshot_hash(twin) != compute_snapshot_hash(snapshot)

    def test_touching_changes_hash(self, snapshot):
        before = compute_snapshot_hash(snapshot)
        os.utime(snapshot, (FIXED_MTIME + 5, FIXED_MTIME + 5))

        assert compute_snapshot_hash(snapshot) != before


class TestMetadataHash:
    """Test the container metadata hash used by the history ledger."""

    @pytest.fixture
    def created_at(self):
        return datetime.datetime(2024, 5, 1, 12, 30, 15, tzinfo=datetime.UTC)

    def test_insertion_order_does_not_matter(self, created_at):
        a = ContainerConfig(
            name="demo",
            created_at=created_at,
            packages=[PackageSpec(name="flask"), PackageSpec(name="attrs", version="23.1")],
            environment={"B": "2", "A": "1"},
            toolchains={"rust": "1.75", "node": "20"},
        )
        b = ContainerConfig(
            name="demo",
            created_at=created_at,
            packages=[PackageSpec(name="attrs", version="23.1"), PackageSpec(name="flask")],
            environment={"A": "1", "B": "2"},
            toolchains={"node": "20", "rust": "1.75"},
        )

        assert compute_metadata_hash(a) == compute_metadata_hash(b)

    def test_created_at_is_truncated_to_minutes(self, created_at):
        a = ContainerConfig(name="demo", created_at=created_at)
        b = ContainerConfig(name="demo", created_at=created_at.replace(second=59))
        c = ContainerConfig(name="demo", created_at=created_at.replace(minute=31))

        assert compute_metadata_hash(a) == compute_metadata_hash(b)
        assert compute_metadata_hash(a) != compute_metadata_hash(c)

    def test_package_change_changes_hash(self, created_at):
        config = ContainerConfig(name="demo", created_at=created_at)
        before = compute_metadata_hash(config)
        config.add_package(PackageSpec(name="flask", version="3.0.0"))

        assert compute_metadata_hash(config) != before

    def test_differs_from_snapshot_scheme(self, snapshot, created_at):
        config = ContainerConfig(name=snapshot.name, created_at=created_at)

        assert compute_metadata_hash(config) != compute_snapshot_hash(snapshot)


class TestPrefixMatching:
    """Test hash prefix lookups and comparisons."""

    CANDIDATES = [
        "abcdef" + "0" * 58,
        "abcdeg" + "1" * 58,
        "123456" + "2" * 58,
    ]

    def test_unique_prefix_matches(self):
        assert find_hash_by_prefix(self.CANDIDATES, "123456") == self.CANDIDATES[2]
        assert find_hash_by_prefix(self.CANDIDATES, "abcdef0") == self.CANDIDATES[0]

    def test_short_prefix_never_matches(self):
        """A unique but five character prefix is still rejected."""
        assert find_hash_by_prefix(self.CANDIDATES, "12345") is None

    def test_ambiguous_prefix_does_not_match(self):
        candidates = self.CANDIDATES + ["123456" + "3" * 58]
        assert find_hash_by_prefix(candidates, "123456") is None

    def test_absent_prefix_does_not_match(self):
        assert find_hash_by_prefix(self.CANDIDATES, "ffffff") is None

    def test_hashes_match(self):
        full = self.CANDIDATES[0]

        assert hashes_match(full, full)
        assert hashes_match(full[:6], full)
        assert hashes_match(full, full[:10])
        assert not hashes_match(full[:5], full)
        assert not hashes_match(full, self.CANDIDATES[1])

    def test_validate_hash_format(self):
        assert validate_hash_format("a" * 64)
        assert not validate_hash_format("a" * 63)
        assert not validate_hash_format("g" * 64)

    def test_short_forms(self):
        full = self.CANDIDATES[0]

        assert short_hash(full) == full[:12]
        assert log_hash(full) == full[:8]
