"""Package mutation flows.

Installing files is delegated to a ``PackageInstaller``; this module only
keeps the container config and the history ledger in step with it.
"""
import logging
from pathlib import Path
from typing import Optional, Protocol

from sfc._src.exceptions import NotFoundError
from sfc._src.history import HistoryLedger
from sfc._src.models.container import PackageSpec
from sfc._src.models.history import Operation
from sfc._src.store import SnapshotStore
from sfc._src.workspace import Workspace

logger = logging.getLogger(__name__)


class PackageInstaller(Protocol):
    def install(self, spec: PackageSpec, snapshot_dir: Path) -> bool:
        """Write the package's files into ``snapshot_dir``. False on failure."""
        ...


def parse_package_spec(value: str, source: str = "nixpkgs", channel: Optional[str] = "stable") -> PackageSpec:
    """Parse ``name`` or ``name@version``"""
    name, _, version = value.partition("@")
    return PackageSpec(name=name, version=version or None, source=source, channel=channel)


def add_package(
    ws: Workspace,
    spec: PackageSpec,
    installer: Optional[PackageInstaller] = None,
    name: Optional[str] = None,
) -> bool:
    """Add ``spec`` to a container, replacing any package of the same name.

    When an installer is given it runs against the container's stable
    snapshot first; if it reports failure the config is left unchanged and
    False is returned.
    """
    name = ws.resolve_name(name)
    ws.require_container(name)

    if installer is not None:
        snapshot_dir = SnapshotStore(ws.root).stable_snapshot(name)
        if not installer.install(spec, snapshot_dir):
            logger.warning("failed to install %s into %s", spec, name)
            return False

    config = ws.load_config(name)
    previous = config.add_package(spec)
    ws.save_config(config)

    ledger = HistoryLedger.load(ws.root)
    if previous is None:
        ledger.add_entry(config, Operation.add_package(spec.name, spec.version), f"Added {spec}")
    else:
        ledger.add_entry(
            config,
            Operation.modify_package(spec.name, previous.version, spec.version),
            f"Changed {spec.name} from {previous.version or 'latest'} to {spec.version or 'latest'}",
        )
    logger.info("added %s to %s", spec, name)
    return True


def remove_package(ws: Workspace, package: str, name: Optional[str] = None) -> None:
    name = ws.resolve_name(name)
    ws.require_container(name)

    config = ws.load_config(name)
    if not config.remove_package(package):
        raise NotFoundError("package", package)
    ws.save_config(config)

    HistoryLedger.load(ws.root).add_entry(config, Operation.remove_package(package), f"Removed {package}")
    logger.info("removed %s from %s", package, name)
