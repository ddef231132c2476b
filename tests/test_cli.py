"""
Smoke test the command line interface.
"""

import os

import pytest
from typer.testing import CliRunner

from sfc._src.models.settings import Settings
from sfc._src.workspace import save_settings
from sfc.cli.root import app


runner = CliRunner()


@pytest.fixture
def root(tmp_path):
    root = tmp_path / "workspace"
    settings = Settings()
    settings.advanced.stow_enabled = False
    save_settings(root, settings)
    return root


def invoke(root, *args, **kwargs):
    return runner.invoke(app, ["--root", str(root), *args], **kwargs)


def aliases(root):
    return sorted(os.listdir(root / "links"))


class TestLifecycleCommands:
    """Test the lifecycle commands end to end."""

    def test_create_switches_to_single_container(self, root):
        result = invoke(root, "create", "demo")

        assert result.exit_code == 0, result.output
        assert "Created container demo" in result.output
        assert (root / ".sfc" / "current").read_text() == "demo"
        assert aliases(root) == ["demo-stable"]

    def test_create_several_keeps_current(self, root):
        result = invoke(root, "create", "a", "b")

        assert result.exit_code == 0, result.output
        assert not (root / ".sfc" / "current").exists()

    def test_create_with_bad_name_fails(self, root):
        result = invoke(root, "create", "ok", "not ok")

        assert result.exit_code == 1
        assert "Error creating not ok" in result.output
        assert (root / "containers" / "ok").is_dir()

    def test_temp_promote_discard(self, root):
        invoke(root, "create", "demo")

        result = invoke(root, "temp")
        assert result.exit_code == 0, result.output
        temp_alias = [a for a in aliases(root) if a.startswith("demo-temp-")][0]

        result = invoke(root, "promote")
        assert result.exit_code == 0, result.output
        assert "Switching generation" in result.output
        assert "No lockfile changes detected" in result.output
        assert os.path.realpath(root / "links" / "demo-stable") == os.path.realpath(root / "links" / temp_alias)

        result = invoke(root, "discard", "--temp", temp_alias)
        assert result.exit_code == 0, result.output
        assert f"Discarded temp {temp_alias}" in result.output
        assert aliases(root) == ["demo-stable"]

    def test_rollback(self, root):
        invoke(root, "create", "demo")
        original = os.path.basename(os.path.realpath(root / "links" / "demo-stable"))
        invoke(root, "temp")
        invoke(root, "promote")

        result = invoke(root, "rollback", "demo", original)

        assert result.exit_code == 0, result.output
        assert f"Rolled back demo -> {original}" in result.output
        assert os.path.basename(os.path.realpath(root / "links" / "demo-stable")) == original

    def test_delete_asks_for_confirmation(self, root):
        invoke(root, "create", "a", "b")

        result = invoke(root, "delete", "a", input="n\n")
        assert "Skipping deletion of a" in result.output
        assert (root / "containers" / "a").is_dir()

        result = invoke(root, "delete", "a", input="y\n")
        assert result.exit_code == 0, result.output
        assert not (root / "containers" / "a").exists()

    def test_delete_current_needs_force(self, root):
        invoke(root, "create", "demo")

        result = invoke(root, "delete", "demo", input="y\n")
        assert result.exit_code == 1
        assert (root / "containers" / "demo").is_dir()

        result = invoke(root, "delete", "demo", "--force")
        assert result.exit_code == 0, result.output
        assert os.listdir(root / "store") == []

    def test_clean_dry_run(self, root):
        invoke(root, "create", "demo")
        os.makedirs(root / "store" / "orphanorphan-new")

        result = invoke(root, "clean", "--dry-run")
        assert "Would remove orphaned snapshot orphanorphan-new" in result.output
        assert (root / "store" / "orphanorphan-new").is_dir()

        result = invoke(root, "clean")
        assert "Removed orphaned snapshot orphanorphan-new" in result.output
        assert not (root / "store" / "orphanorphan-new").exists()


class TestInspectionCommands:
    """Test list, status, snapshots, share and history."""

    def test_list_and_status(self, root):
        invoke(root, "create", "demo")
        invoke(root, "add", "flask@3.0.0")

        result = invoke(root, "list")
        assert result.exit_code == 0, result.output
        assert "demo" in result.output

        result = invoke(root, "status")
        assert result.exit_code == 0, result.output
        assert "flask@3.0.0" in result.output
        assert "Temporary environments (0)" in result.output

    def test_switch_unknown(self, root):
        result = invoke(root, "switch", "ghost")

        assert result.exit_code == 1
        assert "error:" in result.output
        assert "ghost" in result.output

    def test_share_to_file(self, root, tmp_path):
        invoke(root, "create", "demo")
        output = tmp_path / "demo.yaml"

        result = invoke(root, "share", "demo", "--output", str(output))

        assert result.exit_code == 0, result.output
        assert "container_name: demo" in output.read_text()
        assert "sfc create demo --from" in result.output

    def test_snapshots(self, root):
        invoke(root, "create", "demo")

        result = invoke(root, "snapshots", "demo")

        assert result.exit_code == 0, result.output
        assert "current stable" in result.output

    def test_delete_snapshot_with_force(self, root):
        invoke(root, "create", "demo")
        stable = os.path.basename(os.path.realpath(root / "links" / "demo-stable"))
        share = invoke(root, "share", "demo").output
        snapshot_hash = share.split("--from ")[1].split()[0]

        result = invoke(root, "delete-snapshot", "demo", snapshot_hash[:12], "--force")
        assert result.exit_code == 0, result.output
        assert not (root / "store" / stable).exists()

    def test_history(self, root):
        invoke(root, "create", "demo")
        invoke(root, "add", "flask")
        invoke(root, "remove", "flask")

        result = invoke(root, "history", "log")
        assert result.exit_code == 0, result.output
        assert "REMOVE flask" in result.output

        result = invoke(root, "history", "log", "--oneline", "--container", "demo")
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[0].endswith("[demo] REMOVE flask - Removed flask")

        result = invoke(root, "history", "graph", "--container", "demo")
        assert result.exit_code == 0, result.output
        assert result.output.splitlines()[0].startswith("└── ")

        result = invoke(root, "history", "show", "zzzzzz")
        assert result.exit_code == 1

    def test_promote_without_temps(self, root):
        invoke(root, "create", "demo")

        result = invoke(root, "promote")

        assert result.exit_code == 1
        assert "error:" in result.output
