import logging
import os
import re
import tomllib
from pathlib import Path
from typing import Optional

import tomli_w
from pydantic import ValidationError as PydanticValidationError

from sfc._src import constants
from sfc._src.exceptions import ConfigError, NotFoundError, ValidationError, io_context
from sfc._src.links import Linker, select_linker
from sfc._src.models.container import ContainerConfig
from sfc._src.models.settings import Settings
from sfc._src.utils import ensure_dir

logger = logging.getLogger(__name__)

_NAME_RE = re.compile(constants.NAME_PATTERN)


def default_root() -> Path:
    """The workspace root: $SFC_HOME if set, otherwise ~/.sfc"""
    env_root = os.environ.get("SFC_HOME")
    if env_root:
        return Path(env_root).expanduser()
    return Path.home() / ".sfc"


def validate_name(name: str) -> None:
    if not name:
        raise ValidationError("container name", name, "cannot be empty")
    if not _NAME_RE.match(name):
        raise ValidationError("container name", name, "must match [A-Za-z0-9_-]+")


def read_toml(path: Path) -> dict:
    try:
        with open(path, "rb") as fh:
            return tomllib.load(fh)
    except tomllib.TOMLDecodeError as err:
        raise ConfigError(str(err), str(path)) from err
    except OSError as err:
        raise ConfigError(err.strerror or str(err), str(path)) from err


def write_toml(path: Path, data: dict) -> None:
    ensure_dir(path.parent)
    with io_context("writing configuration", path):
        with open(path, "wb") as fh:
            tomli_w.dump(data, fh)


class Workspace:
    """Application context shared by every operation.

    Holds the root directory, the workspace settings, the alias linker chosen
    at startup and the name of the current container. The current container
    is an explicit field backed by `.sfc/current`; `None` means no container
    is selected.
    """
    @classmethod
    def open(cls, root: str | Path | None = None, linker: Optional[Linker] = None):
        """Open (and initialize if needed) the workspace at ``root``"""
        root = default_root() if root is None else Path(root).expanduser()
        ensure_layout(root)
        settings = load_settings(root)
        if linker is None:
            linker = select_linker(root, stow_enabled=settings.advanced.stow_enabled)
        return cls(root=root, settings=settings, linker=linker)

    def __init__(self, root: Path, settings: Settings, linker: Linker):
        self.root = Path(root)
        self.settings = settings
        self.linker = linker
        self.current = self._read_current()

    @property
    def store_dir(self) -> Path:
        return self.root / constants.STORE_DIR

    @property
    def links_dir(self) -> Path:
        return self.root / constants.LINKS_DIR

    @property
    def containers_dir(self) -> Path:
        return self.root / constants.CONTAINERS_DIR

    @property
    def meta_dir(self) -> Path:
        return self.root / constants.META_DIR

    def container_dir(self, name: str) -> Path:
        return self.containers_dir / name

    def config_path(self, name: str) -> Path:
        return self.meta_dir / "containers" / f"{name}.toml"

    def is_initialized(self) -> bool:
        return all(
            p.is_dir() for p in (self.meta_dir, self.store_dir, self.containers_dir, self.links_dir)
        )

    def list_containers(self) -> list[str]:
        if not self.containers_dir.is_dir():
            return []
        with io_context("reading containers directory", self.containers_dir):
            names = [entry.name for entry in os.scandir(self.containers_dir) if entry.is_dir()]
        return sorted(names)

    def container_exists(self, name: str) -> bool:
        return self.container_dir(name).is_dir()

    def require_container(self, name: str) -> None:
        if not self.container_exists(name):
            raise NotFoundError("container", name)

    # current container pointer

    def _read_current(self) -> Optional[str]:
        current_file = self.meta_dir / constants.CURRENT_FILE
        if not current_file.is_file():
            return None
        with io_context("reading current container", current_file):
            name = current_file.read_text(encoding="utf-8").strip()
        return name or None

    def current_container(self) -> Optional[str]:
        return self.current

    def set_current_container(self, name: str) -> None:
        current_file = self.meta_dir / constants.CURRENT_FILE
        ensure_dir(self.meta_dir)
        with io_context("writing current container", current_file):
            current_file.write_text(name, encoding="utf-8")
        self.current = name
        logger.debug("current container set to %s", name)

    def clear_current_container(self) -> None:
        current_file = self.meta_dir / constants.CURRENT_FILE
        if current_file.exists():
            with io_context("removing current container file", current_file):
                current_file.unlink()
        self.current = None

    def switch(self, name: str) -> None:
        self.require_container(name)
        self.set_current_container(name)

    def resolve_name(self, name: Optional[str]) -> str:
        """Return ``name``, or the current container when it is omitted"""
        if name is not None:
            return name
        if self.current is None:
            raise NotFoundError("container", "current")
        return self.current

    # container configuration

    def load_config(self, name: str) -> ContainerConfig:
        path = self.config_path(name)
        if not path.exists():
            return self.new_config(name)
        data = read_toml(path)
        data["name"] = name
        try:
            return ContainerConfig.model_validate(data)
        except PydanticValidationError as err:
            raise ConfigError(str(err), str(path)) from err

    def new_config(self, name: str) -> ContainerConfig:
        defaults = self.settings.defaults
        return ContainerConfig(
            name=name,
            environment=dict(defaults.environment),
            toolchains=dict(defaults.toolchains),
            shell=self.settings.workspace.default_shell,
        )

    def save_config(self, config: ContainerConfig) -> None:
        write_toml(self.config_path(config.name), config.model_dump(exclude_none=True))

    def delete_config(self, name: str) -> None:
        path = self.config_path(name)
        if path.exists():
            with io_context("removing container config", path):
                path.unlink()


def ensure_layout(root: Path) -> None:
    """Create the workspace directory structure. Safe to re-run."""
    for sub in (constants.STORE_DIR, constants.CONTAINERS_DIR, constants.LINKS_DIR, constants.META_DIR):
        with io_context("creating workspace directory", root / sub):
            ensure_dir(root / sub)
    for sub in ("containers", constants.TOOLCHAINS_DIR, "cache"):
        with io_context("creating metadata directory", root / constants.META_DIR / sub):
            ensure_dir(root / constants.META_DIR / sub)

    gitignore = root / ".gitignore"
    if not gitignore.exists():
        with io_context("writing .gitignore", gitignore):
            gitignore.write_text("\n".join(constants.GITIGNORE_LINES) + "\n", encoding="utf-8")


def load_settings(root: Path) -> Settings:
    path = root / constants.META_DIR / constants.SETTINGS_FILE
    if not path.exists():
        return Settings()
    try:
        return Settings.model_validate(read_toml(path))
    except PydanticValidationError as err:
        raise ConfigError(str(err), str(path)) from err


def save_settings(root: Path, settings: Settings) -> None:
    write_toml(root / constants.META_DIR / constants.SETTINGS_FILE, settings.model_dump())
