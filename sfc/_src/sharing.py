import getpass
import platform
from importlib import metadata
from typing import Optional

import yaml

from sfc._src.hash import compute_snapshot_hash, short_hash
from sfc._src.models.snapshot import ShareInfo, ShareMetadata
from sfc._src.store import SnapshotStore, toolchain_markers
from sfc._src.utils import utcnow
from sfc._src.workspace import Workspace


def sfc_version() -> str:
    try:
        return metadata.version("sfc")
    except metadata.PackageNotFoundError:
        return "unknown"


def generate_share_info(ws: Workspace, container_name: str, snapshot_hash: Optional[str] = None) -> ShareInfo:
    """Summarize a container's snapshot so it can be recreated elsewhere.

    Without ``snapshot_hash`` the container's current stable snapshot is
    used. Nothing in the workspace is modified.
    """
    ws.require_container(container_name)
    store = SnapshotStore(ws.root)
    if snapshot_hash is None:
        snapshot_dir = store.stable_snapshot(container_name)
    else:
        snapshot_dir = store.find_snapshot_by_hash(snapshot_hash)
    full_hash = compute_snapshot_hash(snapshot_dir)

    config = ws.load_config(container_name)
    toolchains = dict(config.toolchains)
    toolchains.update(toolchain_markers(snapshot_dir))

    try:
        user = getpass.getuser()
    except (KeyError, OSError):
        user = "unknown"

    return ShareInfo(
        hash=full_hash,
        container_name=container_name,
        description=f"snapshot {short_hash(full_hash)} of {container_name}",
        packages=list(config.packages),
        toolchains=toolchains,
        environment=dict(config.environment),
        metadata=ShareMetadata(
            sfc_version=sfc_version(),
            platform_os=platform.system().lower(),
            platform_arch=platform.machine(),
            created_by=user,
            shared_at=utcnow(),
        ),
    )


def to_yaml(info: ShareInfo) -> str:
    return yaml.dump(info.model_dump(mode="json"), sort_keys=False)
