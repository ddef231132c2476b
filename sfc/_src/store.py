import datetime
import logging
import os
import shutil
from pathlib import Path
from typing import Iterator, Optional

from sfc._src import constants
from sfc._src.exceptions import (
    AlreadyExistsError,
    FilesystemError,
    NotFoundError,
    ValidationError,
    io_context,
)
from sfc._src.hash import compute_snapshot_hash
from sfc._src.links import (
    list_aliases,
    read_symlink_target,
    remove_symlink,
    resolve_alias,
    validate_symlink_target,
)
from sfc._src.models.snapshot import SnapshotInfo
from sfc._src.utils import ensure_dir, is_link, random_name

logger = logging.getLogger(__name__)


def seed_lockfiles(snapshot_dir: Path) -> None:
    """Write placeholder lock files, leaving existing ones untouched"""
    for filename, content in constants.SEED_LOCKFILES.items():
        path = snapshot_dir / filename
        if not path.exists():
            with io_context(f"creating lockfile {filename}", path):
                path.write_bytes(content)


def copy_lockfiles(src: Path, dst: Path) -> None:
    """Copy only the lock files a temp snapshot branches from"""
    for filename in constants.BRANCH_LOCKFILES:
        if (src / filename).exists():
            with io_context(f"copying {filename}", src / filename):
                shutil.copy2(src / filename, dst / filename)


def check_links_inside(root: Path, src: Path) -> None:
    """Raise ``ValidationError`` if any symlink under ``src`` leads outside ``root``"""
    for dirpath, dirnames, filenames in os.walk(src):
        for entry in dirnames + filenames:
            path = Path(dirpath) / entry
            if not is_link(path):
                continue
            candidate = path.parent.absolute() / read_symlink_target(path)
            try:
                validate_symlink_target(root, candidate)
            except FilesystemError as err:
                raise ValidationError("symlink", str(path), "target does not exist") from err


def copy_tree(src: Path, dst: Path, root: Path) -> None:
    """Deep-copy a snapshot, refusing symlinks that escape the workspace ``root``"""
    check_links_inside(root, src)
    with io_context(f"copying snapshot {src.name} to {dst.name}", src):
        shutil.copytree(src, dst, symlinks=True, dirs_exist_ok=True)


def toolchain_markers(snapshot_dir: Path) -> dict[str, str]:
    """Toolchain versions recorded in a snapshot's marker files"""
    toolchains = {}
    for toolchain, marker in constants.TOOLCHAIN_MARKERS.items():
        path = snapshot_dir / marker
        if path.is_file():
            try:
                toolchains[toolchain] = path.read_text(encoding="utf-8").strip()
            except OSError:
                logger.warning("could not read %s", path)
    return toolchains


def store_relative(snapshot_dir: Path) -> Path:
    """The target an alias in links/ uses to reach ``snapshot_dir``"""
    return Path("..") / constants.STORE_DIR / snapshot_dir.name


class SnapshotStore:
    """The immutable snapshot directories under ``<root>/store``"""
    def __init__(self, root: Path):
        self.root = Path(root)
        self.store_dir = self.root / constants.STORE_DIR
        self.links_dir = self.root / constants.LINKS_DIR

    def create_snapshot_dir(self, kind: str | constants.SnapshotKind) -> Path:
        kind = kind.value if isinstance(kind, constants.SnapshotKind) else kind
        ensure_dir(self.store_dir)
        snapshot_dir = self.store_dir / f"{random_name(12)}-{kind}"
        try:
            snapshot_dir.mkdir()
        except FileExistsError as err:
            raise AlreadyExistsError("snapshot", snapshot_dir.name) from err
        except OSError as err:
            raise FilesystemError("creating snapshot directory", str(snapshot_dir), err) from err
        logger.debug("allocated snapshot %s", snapshot_dir.name)
        return snapshot_dir

    def iter_snapshots(self) -> Iterator[Path]:
        if not self.store_dir.is_dir():
            return
        with io_context("reading store directory", self.store_dir):
            entries = sorted(
                (entry for entry in os.scandir(self.store_dir) if entry.is_dir(follow_symlinks=False)),
                key=lambda entry: entry.name,
            )
        for entry in entries:
            yield Path(entry.path)

    def find_snapshot_by_hash(self, prefix: str) -> Path:
        """Return the first snapshot whose hash starts with ``prefix``.

        Unlike ``find_hash_by_prefix`` this does not reject ambiguous or
        short prefixes, the first match in store order wins.
        """
        for snapshot_dir in self.iter_snapshots():
            if compute_snapshot_hash(snapshot_dir).startswith(prefix):
                return snapshot_dir
        raise NotFoundError("snapshot", prefix)

    def snapshot_by_name(self, dir_name: str) -> Path:
        snapshot_dir = self.store_dir / dir_name
        if not snapshot_dir.is_dir():
            raise NotFoundError("snapshot", dir_name)
        return snapshot_dir

    def resolve_alias(self, alias: str) -> Optional[Path]:
        return resolve_alias(self.links_dir, alias)

    def stable_snapshot(self, name: str) -> Path:
        snapshot_dir = self.resolve_alias(constants.stable_alias(name))
        if snapshot_dir is None:
            raise NotFoundError("stable snapshot", name)
        return snapshot_dir

    def current_snapshot_hash(self, name: str) -> str:
        return compute_snapshot_hash(self.stable_snapshot(name))

    def aliases_referencing(self, dir_name: str) -> list[str]:
        aliases = []
        for alias in list_aliases(self.links_dir):
            target = self.resolve_alias(alias)
            if target is not None and target.name == dir_name:
                aliases.append(alias)
        return aliases

    def owners(self, dir_name: str) -> list[str]:
        """Names of the containers with an alias resolving to ``dir_name``"""
        names = []
        for alias in sorted(self.aliases_referencing(dir_name)):
            if alias.endswith("-stable"):
                name = alias[:-len("-stable")]
            elif "-temp-" in alias:
                name = alias.rpartition("-temp-")[0]
            else:
                continue
            if name and name not in names:
                names.append(name)
        return names

    def remove_snapshot_dir(self, snapshot_dir: Path) -> None:
        with io_context("removing snapshot directory", snapshot_dir):
            shutil.rmtree(snapshot_dir)
        logger.info("removed snapshot %s", snapshot_dir.name)

    def delete_snapshot(self, container_name: str, hash_prefix: str) -> Path:
        """Delete the snapshot matching ``hash_prefix`` and every alias to it.

        Callers are responsible for refusing to delete the snapshot behind
        an active stable alias.
        """
        snapshot_dir = self.find_snapshot_by_hash(hash_prefix)
        for alias in list_aliases(self.links_dir):
            try:
                target = Path(os.readlink(self.links_dir / alias))
            except OSError:
                continue
            if target.name == snapshot_dir.name or self.resolve_alias(alias) == snapshot_dir.resolve():
                remove_symlink(self.links_dir / alias)
                logger.info("removed alias %s", alias)
        self.remove_snapshot_dir(snapshot_dir)
        logger.info("deleted snapshot %s of %s", snapshot_dir.name, container_name)
        return snapshot_dir

    def list_container_snapshots(self, container_name: str) -> list[SnapshotInfo]:
        """Snapshots referenced by one of the container's aliases, newest first"""
        try:
            current_hash = self.current_snapshot_hash(container_name)
        except NotFoundError:
            current_hash = None

        owned = set()
        stable = constants.stable_alias(container_name)
        temp_prefix = constants.temp_alias_prefix(container_name)
        for alias in list_aliases(self.links_dir):
            if alias != stable and not alias.startswith(temp_prefix):
                continue
            target = self.resolve_alias(alias)
            if target is not None:
                owned.add(target.name)

        snapshots = []
        for snapshot_dir in self.iter_snapshots():
            if snapshot_dir.name not in owned:
                continue
            snapshot_hash = compute_snapshot_hash(snapshot_dir)
            is_active = snapshot_hash == current_hash
            with io_context("reading snapshot metadata", snapshot_dir):
                mtime = snapshot_dir.stat().st_mtime
            snapshots.append(SnapshotInfo(
                hash=snapshot_hash,
                dir_name=snapshot_dir.name,
                container_name=container_name,
                timestamp=datetime.datetime.fromtimestamp(mtime, datetime.UTC),
                description="current stable" if is_active else "snapshot",
                is_active=is_active,
            ))
        snapshots.sort(key=lambda s: s.timestamp, reverse=True)
        return snapshots
