"""
Test workspace layout, settings and container configuration.
"""

import datetime

import pytest

from sfc._src import constants
from sfc._src.exceptions import ConfigError, NotFoundError, ValidationError
from sfc._src.links import DirectLinker
from sfc._src.models.container import ContainerConfig, PackageSpec
from sfc._src.models.settings import Settings
from sfc._src.workspace import (
    Workspace,
    default_root,
    ensure_layout,
    load_settings,
    save_settings,
    validate_name,
)


class TestLayout:
    """Test creating the workspace directories."""

    def test_ensure_layout(self, tmp_path):
        ensure_layout(tmp_path)

        for sub in ("store", "links", "containers", ".sfc", ".sfc/containers", ".sfc/toolchains"):
            assert (tmp_path / sub).is_dir()
        gitignore = (tmp_path / ".gitignore").read_text().splitlines()
        assert "store/" in gitignore
        assert ".sfc/toolchains/" in gitignore

    def test_ensure_layout_is_idempotent(self, tmp_path):
        ensure_layout(tmp_path)
        (tmp_path / ".gitignore").write_text("custom\n")

        ensure_layout(tmp_path)

        assert (tmp_path / ".gitignore").read_text() == "custom\n"

    def test_open_initializes(self, tmp_path):
        ws = Workspace.open(tmp_path / "fresh", linker=DirectLinker())

        assert ws.is_initialized()
        assert ws.current is None
        assert ws.list_containers() == []

    def test_default_root_from_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("SFC_HOME", str(tmp_path / "home"))
        assert default_root() == tmp_path / "home"

        monkeypatch.delenv("SFC_HOME")
        assert default_root().name == ".sfc"


class TestNames:
    """Test container name validation."""

    @pytest.mark.parametrize("name", ["demo", "web_app-2", "A"])
    def test_valid(self, name):
        validate_name(name)

    @pytest.mark.parametrize("name", ["", "with space", "a.b", "../up", "ü"])
    def test_invalid(self, name):
        with pytest.raises(ValidationError):
            validate_name(name)


class TestCurrentContainer:
    """Test the current container pointer."""

    def test_switch_and_reopen(self, ws):
        ws.container_dir("demo").mkdir()

        ws.switch("demo")
        reopened = Workspace.open(ws.root, linker=DirectLinker())

        assert ws.current_container() == "demo"
        assert reopened.current == "demo"
        assert (ws.meta_dir / constants.CURRENT_FILE).read_text() == "demo"

    def test_switch_to_missing(self, ws):
        with pytest.raises(NotFoundError):
            ws.switch("ghost")

    def test_clear(self, ws):
        ws.set_current_container("demo")
        ws.clear_current_container()

        assert ws.current is None
        assert Workspace.open(ws.root, linker=DirectLinker()).current is None

    def test_blank_pointer_means_none(self, ws):
        (ws.meta_dir / constants.CURRENT_FILE).write_text("  \n")

        assert Workspace.open(ws.root, linker=DirectLinker()).current is None

    def test_resolve_name(self, ws):
        assert ws.resolve_name("explicit") == "explicit"
        with pytest.raises(NotFoundError):
            ws.resolve_name(None)

        ws.set_current_container("demo")
        assert ws.resolve_name(None) == "demo"


class TestSettings:
    """Test reading and writing workspace.toml."""

    def test_defaults_without_file(self, tmp_path):
        settings = load_settings(tmp_path)

        assert settings.advanced.stow_enabled is True
        assert settings.advanced.auto_cleanup is True
        assert settings.ui.log_level == "WARNING"

    def test_round_trip(self, tmp_path):
        settings = Settings()
        settings.advanced.stow_enabled = False
        settings.defaults.environment = {"EDITOR": "vim"}
        settings.workspace.notes = ["first"]

        save_settings(tmp_path, settings)

        assert load_settings(tmp_path).model_dump() == settings.model_dump()

    def test_partial_file(self, tmp_path):
        path = tmp_path / ".sfc" / "workspace.toml"
        path.parent.mkdir()
        path.write_text("[advanced]\nauto_cleanup = false\n")

        settings = load_settings(tmp_path)

        assert settings.advanced.auto_cleanup is False
        assert settings.advanced.stow_enabled is True

    @pytest.mark.parametrize("content", ["[advanced\n", "[advanced]\nstow_enabled = 'sometimes'\n"])
    def test_invalid_file(self, tmp_path, content):
        path = tmp_path / ".sfc" / "workspace.toml"
        path.parent.mkdir()
        path.write_text(content)

        with pytest.raises(ConfigError):
            load_settings(tmp_path)


class TestContainerConfig:
    """Test persisting container configs."""

    def test_missing_config_uses_defaults(self, ws):
        ws.settings.defaults.environment = {"LANG": "C.UTF-8"}
        ws.settings.workspace.default_shell = "/bin/zsh"

        config = ws.load_config("demo")

        assert config.name == "demo"
        assert config.environment == {"LANG": "C.UTF-8"}
        assert config.shell == "/bin/zsh"
        assert config.packages == []

    def test_round_trip(self, ws):
        config = ContainerConfig(
            name="demo",
            created_at=datetime.datetime(2024, 5, 1, 12, 0, tzinfo=datetime.UTC),
            environment={"A": "1"},
            toolchains={"node": "20"},
            shell="/bin/sh",
        )
        config.add_package(PackageSpec(name="flask", version="3.0.0"))
        config.add_package(PackageSpec(name="attrs"))

        ws.save_config(config)
        loaded = ws.load_config("demo")

        assert loaded.model_dump() == config.model_dump()
        assert [pkg.name for pkg in loaded.packages] == ["attrs", "flask"]

    def test_invalid_config(self, ws):
        ws.config_path("demo").write_text("packages = 3\n")

        with pytest.raises(ConfigError):
            ws.load_config("demo")

    def test_delete_config(self, ws):
        ws.save_config(ContainerConfig(name="demo"))
        ws.delete_config("demo")
        ws.delete_config("demo")

        assert not ws.config_path("demo").exists()

    def test_add_and_remove_package(self):
        config = ContainerConfig(name="demo")

        assert config.add_package(PackageSpec(name="flask", version="2.0")) is None
        previous = config.add_package(PackageSpec(name="flask", version="3.0"))

        assert previous.version == "2.0"
        assert len(config.packages) == 1
        assert config.remove_package("flask") is True
        assert config.remove_package("flask") is False
