"""Named pointers under ``links/`` and the symlink primitives behind them.

An alias is a symlink ``links/<alias>`` that resolves to a snapshot in
``store/``. Aliases are managed through a ``Linker``: ``DirectLinker``
creates the symlink itself, ``StowLinker`` stages a package under
``.sfc/stow-pkgs/`` and lets GNU stow create the link, falling back to a
direct symlink whenever stow fails.
"""
import logging
import os
import shutil
from pathlib import Path
from typing import Optional, Protocol

from sfc._src import constants
from sfc._src.exceptions import CommandError, ValidationError, io_context
from sfc._src.utils import ensure_dir, is_link, lexists, run_command

logger = logging.getLogger(__name__)


def create_or_update_symlink(target: str | Path, link: str | Path) -> None:
    """Point ``link`` at ``target``, replacing whatever was at ``link``.

    Not atomic: a crash between the remove and the create leaves no link.
    """
    link = Path(link)
    if lexists(link):
        with io_context("removing existing link", link):
            link.unlink()
    ensure_dir(link.parent)
    with io_context(f"creating symlink {link} -> {target}", link):
        os.symlink(target, link)


def remove_symlink(link: str | Path) -> bool:
    """Remove ``link`` if present. Returns False when it was already gone."""
    link = Path(link)
    if not lexists(link):
        return False
    with io_context("removing symlink", link):
        link.unlink(missing_ok=True)
    return True


def validate_symlink_target(workspace_root: str | Path, target: str | Path) -> Path:
    """Ensure ``target`` (relative to the workspace root if not absolute)
    resolves inside the workspace. Returns the resolved path.
    """
    workspace_root = Path(workspace_root)
    target = Path(target)
    candidate = target if target.is_absolute() else workspace_root / target
    with io_context(f"resolving symlink target {target}", candidate):
        resolved = candidate.resolve(strict=True)
    with io_context("resolving workspace root", workspace_root):
        root = workspace_root.resolve(strict=True)
    if not resolved.is_relative_to(root):
        raise ValidationError("symlink target", str(target), "target is outside workspace bounds")
    return resolved


def read_symlink_target(link: str | Path) -> Path:
    link = Path(link)
    if not is_link(link):
        raise ValidationError("path", str(link), "path is not a symlink")
    with io_context("reading symlink target", link):
        return Path(os.readlink(link))


def resolve_symlink(link: str | Path) -> Path:
    """Follow ``link`` to its final target, which must exist"""
    link = Path(link)
    target = read_symlink_target(link)
    if not target.is_absolute():
        target = link.parent / target
    with io_context(f"resolving symlink {link}", link):
        return target.resolve(strict=True)


def resolve_alias(links_dir: Path, alias: str) -> Optional[Path]:
    """Return the directory an alias resolves to, or None if it dangles"""
    link = links_dir / alias
    if not is_link(link):
        return None
    try:
        resolved = Path(os.path.realpath(link))
    except OSError:
        return None
    if not resolved.is_dir():
        return None
    return resolved


def list_aliases(links_dir: Path, prefix: str = "") -> list[str]:
    if not links_dir.is_dir():
        return []
    with io_context("reading links directory", links_dir):
        return [
            entry.name for entry in os.scandir(links_dir)
            if entry.name.startswith(prefix) and entry.is_symlink()
        ]


def find_latest_temp_alias(links_dir: Path, name: str) -> Optional[str]:
    """The temp alias of ``name`` whose symlink was modified last.

    Ties go to whichever alias the directory listing yields first.
    """
    latest = None
    latest_mtime = None
    for alias in list_aliases(links_dir, constants.temp_alias_prefix(name)):
        try:
            mtime = os.lstat(links_dir / alias).st_mtime
        except OSError:
            continue
        if latest_mtime is None or mtime > latest_mtime:
            latest, latest_mtime = alias, mtime
    return latest


class Linker(Protocol):
    """Creates and removes aliases under ``<root>/links``"""

    def link(self, root: Path, alias: str, rel_target: Path) -> None:
        ...

    def unlink(self, root: Path, alias: str) -> None:
        ...


class DirectLinker:
    name = "direct"

    def link(self, root: Path, alias: str, rel_target: Path) -> None:
        create_or_update_symlink(rel_target, Path(root) / constants.LINKS_DIR / alias)

    def unlink(self, root: Path, alias: str) -> None:
        remove_symlink(Path(root) / constants.LINKS_DIR / alias)


class StowLinker:
    """Manage aliases as GNU stow packages.

    Each alias gets a package ``.sfc/stow-pkgs/<alias>/`` holding a single
    symlink named ``<alias>``; stow then links it into ``links/``.
    """
    name = "stow"

    @classmethod
    def available(cls, executable: str = "stow") -> bool:
        if shutil.which(executable) is None:
            return False
        try:
            run_command([executable, "--version"])
        except CommandError:
            return False
        return True

    def __init__(self, executable: str = "stow"):
        self.executable = executable
        self._direct = DirectLinker()

    def _pkgs_dir(self, root: Path) -> Path:
        return Path(root) / constants.META_DIR / constants.STOW_PKGS_DIR

    def link(self, root: Path, alias: str, rel_target: Path) -> None:
        links_dir = Path(root) / constants.LINKS_DIR
        pkgs_dir = self._pkgs_dir(root)
        pkg_dir = pkgs_dir / alias
        ensure_dir(pkg_dir)
        ensure_dir(links_dir)

        # the staged link must resolve from inside the package dir to the
        # same place rel_target resolves to from links/
        staged_target = os.path.relpath(os.path.normpath(links_dir / rel_target), pkg_dir)
        create_or_update_symlink(staged_target, pkg_dir / alias)

        # a plain symlink left by the direct linker would make stow refuse
        existing = links_dir / alias
        if is_link(existing) and not self._is_stow_managed(existing, pkgs_dir):
            remove_symlink(existing)

        try:
            run_command([self.executable, "-d", str(pkgs_dir), "-t", str(links_dir), "-R", alias])
        except CommandError as err:
            logger.warning("stow failed for %s, using a direct symlink: %s", alias, err.stderr)
            self._direct.link(root, alias, rel_target)

    def unlink(self, root: Path, alias: str) -> None:
        links_dir = Path(root) / constants.LINKS_DIR
        pkgs_dir = self._pkgs_dir(root)
        if (pkgs_dir / alias).is_dir():
            try:
                run_command([self.executable, "-d", str(pkgs_dir), "-t", str(links_dir), "-D", alias])
            except CommandError as err:
                logger.warning("stow -D failed for %s: %s", alias, err.stderr)
            shutil.rmtree(pkgs_dir / alias, ignore_errors=True)
        remove_symlink(links_dir / alias)

    def _is_stow_managed(self, link: Path, pkgs_dir: Path) -> bool:
        target = Path(os.readlink(link))
        if not target.is_absolute():
            target = link.parent / target
        return Path(os.path.normpath(target)).is_relative_to(os.path.normpath(pkgs_dir))


def select_linker(root: Path, stow_enabled: bool = True) -> Linker:
    """Pick the linker implementation once, at startup"""
    if stow_enabled and StowLinker.available():
        logger.debug("using stow to manage aliases in %s", root)
        return StowLinker()
    return DirectLinker()
