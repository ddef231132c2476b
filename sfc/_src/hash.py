"""Snapshot identity and container-metadata identity.

The two hashing schemes below are deliberately independent: a snapshot hash
identifies a directory in ``store/`` (location, lock files and a coarse
modification time), a metadata hash identifies the state of a container's
configuration in the history ledger. Nothing should compare one against the
other.
"""
import hashlib
import struct
from pathlib import Path
from typing import Iterable, Optional

from sfc._src.constants import (
    HASHED_LOCKFILES,
    HASHED_METADATA_FILES,
    LOG_HASH_LENGTH,
    METADATA_VERSION,
    MIN_PREFIX_LENGTH,
    SHORT_HASH_LENGTH,
)
from sfc._src.exceptions import io_context
from sfc._src.models.container import ContainerConfig

_HEX_DIGITS = frozenset("0123456789abcdefABCDEF")


def compute_snapshot_hash(snapshot_dir: str | Path) -> str:
    """Compute the identity hash of a snapshot directory.

    The digest covers, in order: the directory basename, every whitelisted
    lock file that exists (name then bytes), every whitelisted metadata file
    that exists (name then bytes), and the directory's modification time in
    whole seconds as a little-endian u64. Moving, copying or touching a
    snapshot therefore changes its hash.

    Returns
    -------
    hash: str
        64 lowercase hex characters
    """
    snapshot_dir = Path(snapshot_dir)
    hasher = hashlib.sha256()
    hasher.update(snapshot_dir.name.encode("utf-8"))

    for filename in (*HASHED_LOCKFILES, *HASHED_METADATA_FILES):
        path = snapshot_dir / filename
        if path.exists():
            hasher.update(filename.encode("utf-8"))
            with io_context(f"reading {filename}", path):
                hasher.update(path.read_bytes())

    try:
        mtime = int(snapshot_dir.stat().st_mtime)
    except OSError:
        mtime = None
    if mtime is not None and mtime >= 0:
        hasher.update(struct.pack("<Q", mtime))

    return hasher.hexdigest()


def compute_metadata_hash(config: ContainerConfig, version: str = METADATA_VERSION) -> str:
    """Compute the history identity of a container's configuration.

    Packages, environment variables and toolchains are sorted first so the
    result does not depend on insertion order. The creation time is
    truncated to the minute.
    """
    hasher = hashlib.sha256()
    hasher.update(config.name.encode("utf-8"))

    for pkg in sorted(config.packages, key=lambda p: p.sort_key()):
        hasher.update(pkg.name.encode("utf-8"))
        if pkg.version is not None:
            hasher.update(pkg.version.encode("utf-8"))
        hasher.update(pkg.source.encode("utf-8"))
        if pkg.channel is not None:
            hasher.update(pkg.channel.encode("utf-8"))

    for key, value in sorted(config.environment.items()):
        hasher.update(key.encode("utf-8"))
        hasher.update(value.encode("utf-8"))

    for key, value in sorted(config.toolchains.items()):
        hasher.update(key.encode("utf-8"))
        hasher.update(value.encode("utf-8"))

    hasher.update(version.encode("utf-8"))
    minutes = int(config.created_at.timestamp()) // 60
    hasher.update(struct.pack("<q", minutes))

    return hasher.hexdigest()


def short_hash(full_hash: str, length: int = SHORT_HASH_LENGTH) -> str:
    return full_hash[:length]


def log_hash(full_hash: str) -> str:
    return short_hash(full_hash, LOG_HASH_LENGTH)


def validate_hash_format(value: str) -> bool:
    return len(value) == 64 and all(c in _HEX_DIGITS for c in value)


def find_hash_by_prefix(candidates: Iterable[str], prefix: str) -> Optional[str]:
    """Return the single candidate starting with ``prefix``.

    Prefixes shorter than 6 characters never match, and neither does a
    prefix shared by more than one candidate.
    """
    if len(prefix) < MIN_PREFIX_LENGTH:
        return None
    matches = [h for h in candidates if h.startswith(prefix)]
    if len(matches) == 1:
        return matches[0]
    return None


def hashes_match(a: str, b: str) -> bool:
    if len(a) == len(b):
        return a == b
    shorter, longer = (a, b) if len(a) < len(b) else (b, a)
    if len(shorter) < MIN_PREFIX_LENGTH:
        return False
    return longer.startswith(shorter)
