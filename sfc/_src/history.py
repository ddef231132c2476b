import json
import logging
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from sfc._src import constants
from sfc._src.exceptions import ConfigError, io_context
from sfc._src.hash import compute_metadata_hash, log_hash
from sfc._src.models.container import ContainerConfig
from sfc._src.models.history import HistoryEntry, Operation
from sfc._src.utils import ensure_dir, utcnow

logger = logging.getLogger(__name__)

_entries_adapter = TypeAdapter(List[HistoryEntry])


class HistoryLedger:
    """Append-only record of every mutating operation, per container.

    The whole file is read on load and rewritten on every append; there is
    no locking, so concurrent writers can lose entries.
    """
    @classmethod
    def load(cls, root: Path):
        path = Path(root) / constants.META_DIR / constants.HISTORY_FILE
        entries = []
        if path.exists():
            with io_context("reading history", path):
                content = path.read_text(encoding="utf-8")
            if content.strip():
                try:
                    entries = _entries_adapter.validate_json(content)
                except PydanticValidationError as err:
                    raise ConfigError(f"invalid history file: {err}", str(path)) from err
        return cls(path=path, entries=entries)

    def __init__(self, path: Path, entries: List[HistoryEntry]):
        self.path = path
        self.entries = entries

    def save(self) -> None:
        ensure_dir(self.path.parent)
        data = [entry.model_dump(mode="json", exclude_none=True) for entry in self.entries]
        with io_context("writing history", self.path):
            self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")

    def add_entry(self, container: ContainerConfig, operation: Operation, message: str) -> str:
        """Append an entry for ``container`` and persist the ledger.

        Returns
        -------
        hash: str
            The metadata hash of the container, which identifies the entry
        """
        entry_hash = compute_metadata_hash(container)
        parent = self.latest(container.name)
        entry = HistoryEntry(
            hash=entry_hash,
            container_name=container.name,
            timestamp=utcnow(),
            message=message,
            operation=operation,
            parent_hash=None if parent is None else parent.hash,
        )
        self.entries.append(entry)
        self.save()
        logger.debug("history %s %s %s", container.name, operation.tag(), log_hash(entry_hash))
        return entry_hash

    def latest(self, container_name: str) -> Optional[HistoryEntry]:
        for entry in reversed(self.entries):
            if entry.container_name == container_name:
                return entry
        return None

    def container_history(self, container_name: str) -> List[HistoryEntry]:
        return [e for e in self.entries if e.container_name == container_name]

    def find_by_hash(self, prefix: str) -> Optional[HistoryEntry]:
        """First entry in stored order whose hash starts with ``prefix``"""
        for entry in self.entries:
            if entry.hash.startswith(prefix):
                return entry
        return None

    def _select(self, container_name: Optional[str]) -> List[HistoryEntry]:
        if container_name is None:
            return list(self.entries)
        return self.container_history(container_name)

    def log(self, container_name: Optional[str] = None, limit: int = constants.LOG_LIMIT) -> List[HistoryEntry]:
        """Most recent entries first, at most ``limit`` of them"""
        return list(reversed(self._select(container_name)))[:limit]

    def render_log(self, container_name: Optional[str] = None, limit: int = constants.LOG_LIMIT) -> List[str]:
        """One line per entry, as printed by `history log --oneline`"""
        return [format_entry(entry) for entry in self.log(container_name, limit=limit)]

    def render_graph(self, container_name: Optional[str] = None) -> List[str]:
        """Draw the parent/child structure of the selected entries as a tree.

        An entry's parent is the latest earlier entry of the same container
        carrying its ``parent_hash``; entries without one are roots.
        """
        entries = self._select(container_name)
        children: Dict[int, List[int]] = {}
        roots: List[int] = []
        last_seen: Dict[tuple, int] = {}
        for idx, entry in enumerate(entries):
            parent = None
            if entry.parent_hash is not None:
                parent = last_seen.get((entry.container_name, entry.parent_hash))
            if parent is None:
                roots.append(idx)
            else:
                children.setdefault(parent, []).append(idx)
            last_seen[(entry.container_name, entry.hash)] = idx

        lines: List[str] = []

        def draw(idx: int, prefix: str, is_last: bool):
            entry = entries[idx]
            connector = "└── " if is_last else "├── "
            time_str = entry.timestamp.strftime("%m-%d %H:%M")
            lines.append(f"{prefix}{connector}{log_hash(entry.hash)} {time_str} {entry.message}")
            kids = children.get(idx, [])
            child_prefix = prefix + ("    " if is_last else "│   ")
            for pos, kid in enumerate(kids):
                draw(kid, child_prefix, pos == len(kids) - 1)

        for pos, idx in enumerate(roots):
            draw(idx, "", pos == len(roots) - 1)
        return lines


def format_entry(entry: HistoryEntry) -> str:
    time_str = entry.timestamp.strftime("%Y-%m-%d %H:%M:%S")
    return (
        f"{log_hash(entry.hash)} {time_str} [{entry.container_name}] "
        f"{entry.operation.tag()} - {entry.message}"
    )
