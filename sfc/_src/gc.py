"""Mark-and-sweep reclamation of the store.

Aliases in ``links/`` are the only roots. A collection first drops aliases
that no longer resolve to a directory, then removes every snapshot in
``store/`` that none of the remaining aliases reaches.
"""
import logging
import os
import shutil
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field

from sfc._src import constants
from sfc._src.exceptions import FilesystemError, io_context
from sfc._src.links import list_aliases, resolve_alias

logger = logging.getLogger(__name__)


class CleanReport(BaseModel):
    removed_links: List[str] = Field(default_factory=list)
    removed_snapshots: List[str] = Field(default_factory=list)
    dry_run: bool = False

    @property
    def empty(self) -> bool:
        return not (self.removed_links or self.removed_snapshots)


class GarbageCollector:
    def __init__(self, root: Path):
        self.root = Path(root)
        self.links_dir = self.root / constants.LINKS_DIR
        self.store_dir = self.root / constants.STORE_DIR

    def collect(self, dry_run: bool = False) -> CleanReport:
        """Run both sweeps, dangling links first.

        With ``dry_run`` nothing is removed; the report lists what would be.
        """
        report = CleanReport(dry_run=dry_run)
        report.removed_links = self.sweep_dangling_links(dry_run=dry_run)
        report.removed_snapshots = self.sweep_orphan_snapshots(dry_run=dry_run)
        return report

    def sweep_dangling_links(self, dry_run: bool = False) -> List[str]:
        removed = []
        for alias in list_aliases(self.links_dir):
            if resolve_alias(self.links_dir, alias) is not None:
                continue
            if not dry_run:
                try:
                    os.unlink(self.links_dir / alias)
                except FileNotFoundError:
                    pass
                else:
                    logger.info("removed dangling link %s", alias)
            removed.append(alias)
        return sorted(removed)

    def reachable(self) -> set:
        """Basenames of the store entries some alias resolves to"""
        names = set()
        store_dir = os.path.realpath(self.store_dir)
        for alias in list_aliases(self.links_dir):
            target = resolve_alias(self.links_dir, alias)
            if target is not None and os.path.dirname(target) == store_dir:
                names.add(target.name)
        return names

    def sweep_orphan_snapshots(self, dry_run: bool = False) -> List[str]:
        if not self.store_dir.is_dir():
            return []
        reachable = self.reachable()
        removed = []
        with io_context("reading store directory", self.store_dir):
            entries = [entry for entry in os.scandir(self.store_dir) if entry.is_dir(follow_symlinks=False)]
        for entry in entries:
            if entry.name in reachable:
                continue
            if not dry_run:
                try:
                    shutil.rmtree(entry.path)
                except FileNotFoundError:
                    continue
                except OSError as err:
                    raise FilesystemError(f"removing orphaned snapshot {entry.name}", entry.path, err) from err
                logger.info("pruned orphaned snapshot %s", entry.name)
            removed.append(entry.name)
        return sorted(removed)
