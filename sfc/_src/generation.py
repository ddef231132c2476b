import logging
import os
import shutil
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from sfc._src import constants
from sfc._src.exceptions import (
    AlreadyExistsError,
    NotFoundError,
    SfcError,
    ValidationError,
    io_context,
)
from sfc._src.gc import CleanReport, GarbageCollector
from sfc._src.hash import compute_snapshot_hash, log_hash, short_hash
from sfc._src.history import HistoryLedger
from sfc._src.links import create_or_update_symlink, find_latest_temp_alias, list_aliases
from sfc._src.models.container import ContainerConfig
from sfc._src.models.history import Operation
from sfc._src.models.snapshot import FileChangeSummary, Transition
from sfc._src.store import (
    SnapshotStore,
    copy_lockfiles,
    copy_tree,
    seed_lockfiles,
    store_relative,
    toolchain_markers,
)
from sfc._src.toolchain import ShellToolchainInstaller, ToolchainInstaller
from sfc._src.utils import ensure_dir, lexists, read_lines_trimmed, timestamp_suffix
from sfc._src.workspace import Workspace, read_toml, validate_name

logger = logging.getLogger(__name__)


class BatchResult(BaseModel):
    """Outcome of running one operation over several container names"""
    succeeded: List[str] = Field(default_factory=list)
    failed: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed


def summarize_lockfile(old_snapshot: Optional[Path], new_snapshot: Path, filename: str) -> Optional[FileChangeSummary]:
    """Line-set difference of one lock file between two snapshots.

    Returns None when the new snapshot does not have the file. A missing old
    snapshot (or file) counts as empty.
    """
    new_path = new_snapshot / filename
    if not new_path.exists():
        return None
    old_lines = set() if old_snapshot is None else set(read_lines_trimmed(old_snapshot / filename))
    new_lines = set(read_lines_trimmed(new_path))
    return FileChangeSummary(
        file=filename,
        added=sorted(new_lines - old_lines),
        removed=sorted(old_lines - new_lines),
    )


def summarize_changes(old_snapshot: Optional[Path], new_snapshot: Path) -> List[FileChangeSummary]:
    summaries = []
    for filename in constants.BRANCH_LOCKFILES:
        summary = summarize_lockfile(old_snapshot, new_snapshot, filename)
        if summary is not None:
            summaries.append(summary)
    return summaries


def build_change_message(
    changes: List[FileChangeSummary],
    old_hash: Optional[str],
    new_hash: str,
) -> str:
    if old_hash is None:
        lines = [f"Switching to generation {short_hash(new_hash)}"]
    else:
        lines = [f"Switching generation {short_hash(old_hash)} -> {short_hash(new_hash)}"]

    changed = [summary for summary in changes if summary.changed]
    for summary in changed:
        lines.append(f"{summary.file}:")
        if summary.added:
            lines.append(f"  + {len(summary.added)} entries")
        if summary.removed:
            lines.append(f"  - {len(summary.removed)} entries")
    if not changed:
        lines.append("No lockfile changes detected")
    return "\n".join(lines)


class GenerationManager:
    """Lifecycle transitions of containers and their generations.

    Every operation works against the ``Workspace`` it was built with; the
    store and the alias linker are only touched from here.

    Parameters
    ----------
    ws: Workspace
        The workspace to operate on
    toolchain_installer: ToolchainInstaller, optional
        Used by ``temp`` when toolchains are requested. Defaults to
        ``ShellToolchainInstaller``
    """
    def __init__(self, ws: Workspace, toolchain_installer: Optional[ToolchainInstaller] = None):
        self.ws = ws
        self.store = SnapshotStore(ws.root)
        self.toolchain_installer = toolchain_installer

    @property
    def root(self) -> Path:
        return self.ws.root

    def _link(self, alias: str, snapshot_dir: Path) -> None:
        self.ws.linker.link(self.root, alias, store_relative(snapshot_dir))

    def _record(self, name: str, operation: Operation, message: str) -> str:
        config = self.ws.load_config(name)
        return HistoryLedger.load(self.root).add_entry(config, operation, message)

    # create

    def create(self, name: str, from_hash: Optional[str] = None) -> Path:
        """Create a container with a fresh stable generation.

        With ``from_hash`` the new generation is a copy of the snapshot
        matching that hash, and the container config is rebuilt from what
        the snapshot records.

        Returns
        -------
        snapshot_dir: Path
            The snapshot the new stable alias points at
        """
        validate_name(name)
        container_dir = self.ws.container_dir(name)
        if lexists(container_dir):
            raise AlreadyExistsError("container", name)

        source = None if from_hash is None else self.store.find_snapshot_by_hash(from_hash)

        with io_context("creating container directory", container_dir):
            ensure_dir(container_dir / "src")
            ensure_dir(container_dir / "temp")
        snapshot_dir = None
        try:
            if source is None:
                snapshot_dir = self.store.create_snapshot_dir(constants.SnapshotKind.NEW)
                seed_lockfiles(snapshot_dir)
                config = self.ws.new_config(name)
            else:
                snapshot_dir = self.store.create_snapshot_dir(constants.SnapshotKind.RECREATED)
                copy_tree(source, snapshot_dir, self.root)
                config = self._rehydrate_config(name, source)
            self.ws.save_config(config)

            alias = constants.stable_alias(name)
            self._link(alias, snapshot_dir)
            create_or_update_symlink(Path("..") / ".." / constants.LINKS_DIR / alias, container_dir / "stable")
        except SfcError:
            shutil.rmtree(container_dir, ignore_errors=True)
            if snapshot_dir is not None:
                shutil.rmtree(snapshot_dir, ignore_errors=True)
            self.ws.delete_config(name)
            raise

        snapshot_hash = compute_snapshot_hash(snapshot_dir)
        if source is None:
            message = f"Created container {name}"
        else:
            message = f"Recreated container {name} from {short_hash(from_hash)}"
        self._record(name, Operation.create(), message)
        logger.info("created %s at snapshot %s", name, short_hash(snapshot_hash))
        return snapshot_dir

    def create_many(self, names: List[str], from_hash: Optional[str] = None) -> BatchResult:
        """Create each container in turn; one failure does not stop the rest"""
        result = BatchResult()
        for name in names:
            try:
                self.create(name, from_hash=from_hash)
            except SfcError as err:
                logger.error("error creating %s: %s", name, err)
                result.failed[name] = str(err)
            else:
                result.succeeded.append(name)
        return result

    def _rehydrate_config(self, name: str, source: Path) -> ContainerConfig:
        config = self.ws.new_config(name)
        recorded = source / "container.toml"
        if recorded.is_file():
            data = read_toml(recorded)
            config.packages = ContainerConfig.model_validate({**data, "name": name}).packages
            config.environment.update(data.get("environment", {}))
        else:
            for owner in self.store.owners(source.name):
                if self.ws.config_path(owner).exists():
                    owner_config = self.ws.load_config(owner)
                    config.packages = list(owner_config.packages)
                    config.environment.update(owner_config.environment)
                    break
        config.toolchains.update(toolchain_markers(source))
        logger.info(
            "recreated %d packages and %d toolchains for %s",
            len(config.packages), len(config.toolchains), name,
        )
        return config

    # temp / promote / discard

    def _unique_temp_alias(self, name: str) -> str:
        base = constants.temp_alias_prefix(name) + timestamp_suffix(constants.TEMP_SUFFIX_FORMAT)
        alias = base
        counter = 1
        while lexists(self.ws.links_dir / alias):
            alias = f"{base}-{counter}"
            counter += 1
        return alias

    def temp(self, name: Optional[str] = None, toolchains: Optional[Dict[str, str]] = None) -> str:
        """Branch a temp generation off the container's stable one.

        Returns the new temp alias.
        """
        name = self.ws.resolve_name(name)
        validate_name(name)
        stable = self.store.stable_snapshot(name)

        snapshot_dir = self.store.create_snapshot_dir(constants.SnapshotKind.TEMP)
        copy_lockfiles(stable, snapshot_dir)

        if toolchains:
            installer = self.toolchain_installer or ShellToolchainInstaller(self.root)
            try:
                installer.install(snapshot_dir, toolchains)
            except SfcError as err:
                logger.warning("toolchain setup failed, continuing without it: %s", err)

        alias = self._unique_temp_alias(name)
        self._link(alias, snapshot_dir)
        logger.info("temp created %s -> %s", name, alias)
        return alias

    def _resolve_temp_alias(self, name: str, temp_alias: Optional[str]) -> str:
        if temp_alias is None:
            temp_alias = find_latest_temp_alias(self.ws.links_dir, name)
            if temp_alias is None:
                raise NotFoundError("temp snapshot for container", name)
        elif not temp_alias.startswith(constants.temp_alias_prefix(name)):
            raise ValidationError("temp alias", temp_alias, f"is not a temp alias of {name}")
        elif not lexists(self.ws.links_dir / temp_alias):
            raise NotFoundError("temp alias", temp_alias)
        return temp_alias

    def _repoint_stable(self, name: str, new_dir: Path, source: str, operation: Operation, verb: str) -> Transition:
        old_dir = self.store.resolve_alias(constants.stable_alias(name))
        old_hash = None if old_dir is None else compute_snapshot_hash(old_dir)
        new_hash = compute_snapshot_hash(new_dir)
        changes = summarize_changes(old_dir, new_dir)
        message = build_change_message(changes, old_hash, new_hash)

        self._link(constants.stable_alias(name), new_dir)
        history_hash = self._record(name, operation, f"{verb} {source}")
        logger.info("%s %s -> %s", verb.lower(), name, source)
        return Transition(
            container_name=name,
            source=source,
            old_hash=old_hash,
            new_hash=new_hash,
            changes=changes,
            message=message,
            history_hash=history_hash,
        )

    def promote(self, name: Optional[str] = None, temp_alias: Optional[str] = None) -> Transition:
        """Point the stable alias at a temp generation.

        The temp alias itself is kept; ``clean`` or ``discard`` remove it.
        """
        name = self.ws.resolve_name(name)
        alias = self._resolve_temp_alias(name, temp_alias)
        new_dir = self.store.resolve_alias(alias)
        if new_dir is None:
            raise NotFoundError("temp alias target", alias)
        return self._repoint_stable(name, new_dir, alias, Operation.promote(), "Promoted")

    def discard(self, name: Optional[str] = None, temp_alias: Optional[str] = None) -> Tuple[str, Optional[str]]:
        """Remove a temp alias, and its snapshot once nothing else points at it.

        Returns
        -------
        (alias, removed_snapshot)
            The discarded alias and the name of the deleted snapshot
            directory, or None if it is still referenced
        """
        name = self.ws.resolve_name(name)
        alias = self._resolve_temp_alias(name, temp_alias)
        target = self.store.resolve_alias(alias)
        self.ws.linker.unlink(self.root, alias)
        logger.info("discarded temp %s", alias)

        removed = None
        in_store = target is not None and str(target.parent) == os.path.realpath(self.ws.store_dir)
        if in_store and not self.store.aliases_referencing(target.name):
            self.store.remove_snapshot_dir(target)
            removed = target.name

        if self.ws.settings.advanced.auto_cleanup:
            GarbageCollector(self.root).collect()
        return alias, removed

    # rollback

    def rollback(self, name: Optional[str], target: str) -> Transition:
        """Point the stable alias at the store directory named ``target``"""
        name = self.ws.resolve_name(name)
        if not target or target in (".", "..") or os.sep in target or "/" in target:
            raise ValidationError("snapshot name", target, "must be a directory name under store/")
        new_dir = self.store.snapshot_by_name(target)
        new_hash = compute_snapshot_hash(new_dir)
        return self._repoint_stable(name, new_dir, target, Operation.rollback(new_hash), "Rolled back to")

    # delete / clean

    def delete(self, name: str, force: bool = False) -> CleanReport:
        """Remove a container, its config and every alias it owns, then collect garbage"""
        self.ws.require_container(name)
        if self.ws.current == name and not force:
            raise ValidationError(
                "container", name, "is the current container; switch first or use --force",
            )

        container_dir = self.ws.container_dir(name)
        with io_context("removing container directory", container_dir):
            shutil.rmtree(container_dir)
        self.ws.delete_config(name)
        self.ws.linker.unlink(self.root, constants.stable_alias(name))
        for alias in list_aliases(self.ws.links_dir, constants.temp_alias_prefix(name)):
            self.ws.linker.unlink(self.root, alias)

        if self.ws.current == name:
            self.ws.clear_current_container()
        logger.info("deleted container %s", name)
        return GarbageCollector(self.root).collect()

    def delete_many(self, names: List[str], force: bool = False) -> BatchResult:
        result = BatchResult()
        for name in names:
            try:
                self.delete(name, force=force)
            except SfcError as err:
                logger.error("error deleting %s: %s", name, err)
                result.failed[name] = str(err)
            else:
                result.succeeded.append(name)
        return result

    def delete_snapshot(self, name: str, hash_prefix: str, force: bool = False) -> Path:
        """Delete one snapshot of a container along with its aliases.

        A snapshot behind any container's stable alias is refused unless
        ``force``.
        """
        self.ws.require_container(name)
        snapshot_dir = self.store.find_snapshot_by_hash(hash_prefix)
        if not force:
            try:
                current_hash = self.store.current_snapshot_hash(name)
            except NotFoundError:
                current_hash = None
            if current_hash is not None and current_hash.startswith(hash_prefix):
                raise ValidationError(
                    "snapshot", short_hash(hash_prefix), "is the active snapshot; use --force to delete it",
                )
            stable_aliases = sorted(
                alias for alias in self.store.aliases_referencing(snapshot_dir.name)
                if alias.endswith("-stable")
            )
            if stable_aliases:
                raise ValidationError(
                    "snapshot", snapshot_dir.name,
                    f"backs {', '.join(stable_aliases)}; use --force to delete it",
                )
        snapshot_dir = self.store.delete_snapshot(name, hash_prefix)
        logger.info("deleted snapshot %s (%s)", snapshot_dir.name, log_hash(hash_prefix))
        return snapshot_dir

    def clean(self, dry_run: bool = False) -> CleanReport:
        return GarbageCollector(self.root).collect(dry_run=dry_run)
