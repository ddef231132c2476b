import logging
import os
import shutil
from pathlib import Path
from typing import Dict, Optional, Protocol

from sfc._src import constants
from sfc._src.exceptions import CommandError, io_context
from sfc._src.utils import ensure_dir, run_command

logger = logging.getLogger(__name__)


class ToolchainInstaller(Protocol):
    """Installs language toolchains for a snapshot.

    ``toolchains`` maps a toolchain name (``node``, ``npm``, ``rust``) to
    the requested version.
    """

    def install(self, snapshot_dir: Path, toolchains: Dict[str, str]) -> None:
        ...


def toolchain_env(root: Path) -> Dict[str, str]:
    """Environment for volta and rustup, sandboxed under .sfc/toolchains"""
    tc_root = Path(root) / constants.META_DIR / constants.TOOLCHAINS_DIR
    volta_home = tc_root / "volta"
    rustup_home = tc_root / "rustup"
    cargo_home = tc_root / "cargo"
    for path in (volta_home, rustup_home, cargo_home):
        ensure_dir(path)

    env = dict(os.environ)
    env["VOLTA_HOME"] = str(volta_home)
    env["RUSTUP_HOME"] = str(rustup_home)
    env["CARGO_HOME"] = str(cargo_home)
    env["PATH"] = os.pathsep.join([
        str(volta_home / "bin"),
        str(cargo_home / "bin"),
        env.get("PATH", ""),
    ])
    return env


def write_marker(snapshot_dir: Path, toolchain: str, version: str) -> None:
    path = snapshot_dir / constants.TOOLCHAIN_MARKERS[toolchain]
    with io_context(f"writing {path.name}", path):
        path.write_text(version, encoding="utf-8")


class ShellToolchainInstaller:
    """Install toolchains with volta (node, npm) and rustup (rust).

    Both tools must already be on PATH; they are never downloaded.
    """
    def __init__(self, root: Path):
        self.root = Path(root)

    def _require(self, executable: str, env: Dict[str, str]) -> str:
        found = shutil.which(executable, path=env["PATH"])
        if found is None:
            raise CommandError(executable, None, f"{executable} is not installed")
        return found

    def install(self, snapshot_dir: Path, toolchains: Dict[str, str]) -> None:
        env = toolchain_env(self.root)
        unknown = set(toolchains) - set(constants.TOOLCHAIN_MARKERS)
        for name in sorted(unknown):
            logger.warning("ignoring unknown toolchain %s", name)

        for name in ("node", "npm"):
            version = toolchains.get(name)
            if version is None:
                continue
            volta = self._require("volta", env)
            run_command([volta, "install", f"{name}@{version}"], env=env)
            write_marker(snapshot_dir, name, version)
            logger.info("installed %s@%s", name, version)

        version = toolchains.get("rust")
        if version is not None:
            rustup = self._require("rustup", env)
            run_command([rustup, "toolchain", "install", version], env=env)
            run_command([rustup, "default", version], env=env)
            write_marker(snapshot_dir, "rust", version)
            logger.info("installed rust %s", version)


def requested_toolchains(
    node: Optional[str] = None,
    npm: Optional[str] = None,
    rust: Optional[str] = None,
) -> Dict[str, str]:
    requested = {"node": node, "npm": npm, "rust": rust}
    return {name: version for name, version in requested.items() if version}
