import pytest

from sfc._src.generation import GenerationManager
from sfc._src.links import DirectLinker
from sfc._src.store import SnapshotStore
from sfc._src.workspace import Workspace


@pytest.fixture
def ws(tmp_path):
    """A fresh workspace that always links aliases directly."""
    return Workspace.open(tmp_path / "workspace", linker=DirectLinker())


@pytest.fixture
def manager(ws):
    return GenerationManager(ws)


@pytest.fixture
def store(ws):
    return SnapshotStore(ws.root)
