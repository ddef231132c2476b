import logging
import typer
from typing import List, Optional
from typing_extensions import Annotated
from pathlib import Path

from rich.table import Table
import rich

from sfc._src import constants
from sfc._src.exceptions import NotFoundError
from sfc._src.generation import GenerationManager
from sfc._src.hash import short_hash
from sfc._src.links import list_aliases
from sfc._src.log import configure_logging
from sfc._src.packages import add_package, parse_package_spec, remove_package
from sfc._src.sharing import generate_share_info, to_yaml
from sfc._src.store import SnapshotStore
from sfc._src.toolchain import requested_toolchains
from sfc._src.workspace import Workspace
from sfc.cli.common import echo, exit_on_error, workspace
from sfc.cli.history import history_command


app = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)

app.add_typer(
    history_command,
    name="history",
    help="inspect the operation history",
    rich_help_panel="History",
)


@app.callback()
def main(
    ctx: typer.Context,
    root: Optional[str] = typer.Option(
        None,
        "--root",
        help="workspace root, defaults to $SFC_HOME or ~/.sfc"
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose", "-v",
        help="show debug logging"
    ),
):
    """Manage containers of pinned dependencies and their generations"""
    with exit_on_error():
        ws = Workspace.open(root)
    configure_logging(logging.DEBUG if verbose else ws.settings.ui.log_level)
    ctx.obj = ws


@app.command()
def create(
    ctx: typer.Context,
    names: List[str] = typer.Argument(
        help="names of the containers to create"
    ),
    from_hash: Annotated[Optional[str], typer.Option(
        "--from",
        help="recreate from the snapshot with this hash"
    )] = None,
):
    """Create one or more containers.

    When exactly one container is created it becomes the current one.
    """
    ws = workspace(ctx)
    result = GenerationManager(ws).create_many(names, from_hash=from_hash)
    for name in result.succeeded:
        echo(f"Created container {name}")
    for name, message in result.failed.items():
        echo(f"Error creating {name}: {message}")

    if len(result.succeeded) == 1:
        with exit_on_error():
            ws.set_current_container(result.succeeded[0])
        echo(f"Switched to container {result.succeeded[0]}")
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def temp(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(
        None,
        help="container name, defaults to the current container"
    ),
    node: Optional[str] = typer.Option(None, help="node version to install"),
    npm: Optional[str] = typer.Option(None, help="npm version to install"),
    rust: Optional[str] = typer.Option(None, help="rust toolchain to install"),
):
    """Branch a temporary generation off the stable one"""
    ws = workspace(ctx)
    with exit_on_error():
        alias = GenerationManager(ws).temp(name, toolchains=requested_toolchains(node, npm, rust))
    echo(f"Temp created {ws.resolve_name(name)} -> {alias}")


@app.command()
def promote(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(
        None,
        help="container name, defaults to the current container"
    ),
    temp_alias: Annotated[Optional[str], typer.Option(
        "--temp",
        help="temp alias to promote, defaults to the most recent one"
    )] = None,
):
    """Make a temp generation the stable one"""
    with exit_on_error():
        transition = GenerationManager(workspace(ctx)).promote(name, temp_alias)
    echo(transition.message)
    echo(f"Promoted {transition.container_name} -> {transition.source}")


@app.command()
def discard(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(
        None,
        help="container name, defaults to the current container"
    ),
    temp_alias: Annotated[Optional[str], typer.Option(
        "--temp",
        help="temp alias to discard, defaults to the most recent one"
    )] = None,
):
    """Throw away a temp generation"""
    with exit_on_error():
        alias, removed = GenerationManager(workspace(ctx)).discard(name, temp_alias)
    echo(f"Discarded temp {alias}")
    if removed is not None:
        echo(f"Removed snapshot {removed}")


@app.command()
def rollback(
    ctx: typer.Context,
    name: str = typer.Argument(help="container name"),
    target: str = typer.Argument(help="snapshot directory name under store/"),
):
    """Point the stable generation back at an earlier snapshot"""
    with exit_on_error():
        transition = GenerationManager(workspace(ctx)).rollback(name, target)
    echo(transition.message)
    echo(f"Rolled back {name} -> {target}")


@app.command()
def delete(
    ctx: typer.Context,
    names: List[str] = typer.Argument(
        help="names of the containers to delete"
    ),
    force: bool = typer.Option(
        False,
        "--force", "-f",
        help="skip confirmation and allow deleting the current container"
    ),
):
    """Delete containers and everything only they reference"""
    ws = workspace(ctx)
    confirmed = []
    for name in names:
        if force or typer.confirm(f"Delete container '{name}' and all its data?"):
            confirmed.append(name)
        else:
            echo(f"Skipping deletion of {name}")

    result = GenerationManager(ws).delete_many(confirmed, force=force)
    for name in result.succeeded:
        echo(f"Container {name} deleted")
    for name, message in result.failed.items():
        echo(f"Error deleting {name}: {message}")
    if not result.ok:
        raise typer.Exit(code=1)


@app.command()
def switch(
    ctx: typer.Context,
    name: str = typer.Argument(help="container to make current"),
):
    """Select the current container"""
    with exit_on_error():
        workspace(ctx).switch(name)
    echo(f"Switched to container {name}")


@app.command(name="list")
def list_(ctx: typer.Context):
    """List all containers"""
    ws = workspace(ctx)
    store = SnapshotStore(ws.root)
    with exit_on_error():
        names = ws.list_containers()
    if not names:
        echo("No containers yet, create one with `sfc create NAME`")
        return

    table = Table(title="Containers")
    table.add_column("name", justify="left", no_wrap=True)
    table.add_column("current", justify="left", no_wrap=True)
    table.add_column("stable", justify="left", no_wrap=True)
    table.add_column("temps", justify="right", no_wrap=True)

    for name in names:
        try:
            stable = short_hash(store.current_snapshot_hash(name))
        except NotFoundError:
            stable = "-"
        temps = len(list_aliases(ws.links_dir, constants.temp_alias_prefix(name)))
        table.add_row(name, "*" if name == ws.current else "", stable, str(temps))

    rich.print(table)


@app.command()
def status(
    ctx: typer.Context,
    name: Optional[str] = typer.Argument(
        None,
        help="container name, defaults to the current container"
    ),
):
    """Show the stable generation, packages and temps of a container"""
    ws = workspace(ctx)
    store = SnapshotStore(ws.root)
    with exit_on_error():
        name = ws.resolve_name(name)
        ws.require_container(name)
        config = ws.load_config(name)

    stable = store.resolve_alias(constants.stable_alias(name))
    if stable is None:
        echo(f"No stable environment found for {name}")
    else:
        echo(f"Stable {name} -> {stable.name}")

    echo(f"Installed packages ({len(config.packages)})")
    for pkg in config.packages:
        echo(f"  {pkg}")

    temps = sorted(list_aliases(ws.links_dir, constants.temp_alias_prefix(name)))
    echo(f"Temporary environments ({len(temps)})")
    for alias in temps:
        target = store.resolve_alias(alias)
        echo(f"  {alias} -> {target.name if target is not None else 'dangling'}")


@app.command()
def clean(
    ctx: typer.Context,
    dry_run: bool = typer.Option(
        False,
        "--dry-run",
        help="only report what would be removed"
    ),
):
    """Remove dangling links and snapshots nothing points at"""
    with exit_on_error():
        report = GenerationManager(workspace(ctx)).clean(dry_run=dry_run)
    verb = "Would remove" if dry_run else "Removed"
    for alias in report.removed_links:
        echo(f"{verb} dangling link {alias}")
    for dir_name in report.removed_snapshots:
        echo(f"{verb} orphaned snapshot {dir_name}")
    echo("Clean completed")


@app.command()
def snapshots(
    ctx: typer.Context,
    name: str = typer.Argument(help="container name"),
):
    """List the snapshots a container references"""
    ws = workspace(ctx)
    with exit_on_error():
        ws.require_container(name)
        infos = SnapshotStore(ws.root).list_container_snapshots(name)

    table = Table(title=f"Snapshots of {name}")
    table.add_column("hash", justify="left", no_wrap=True)
    table.add_column("directory", justify="left", no_wrap=True)
    table.add_column("timestamp", justify="left", no_wrap=True)
    table.add_column("description", justify="left", no_wrap=True)

    for info in infos:
        table.add_row(
            short_hash(info.hash),
            info.dir_name,
            info.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            f"* {info.description}" if info.is_active else info.description,
        )

    rich.print(table)


@app.command()
def share(
    ctx: typer.Context,
    name: str = typer.Argument(help="container name"),
    snapshot_hash: Annotated[Optional[str], typer.Option(
        "--hash",
        help="snapshot to share, defaults to the stable one"
    )] = None,
    output: str = typer.Option(
        None,
        help="path to write the summary to"
    ),
):
    """Export a snapshot summary that can be recreated elsewhere"""
    with exit_on_error():
        info = generate_share_info(workspace(ctx), name, snapshot_hash)
    text = to_yaml(info)

    # If no output is specified dump yaml output to stdout
    if output is None:
        echo(text)
    else:
        Path(output).write_text(text)
        echo(f"Wrote {output}")
    echo(f"Recreate with: {info.recreate_command()}")


@app.command(name="delete-snapshot")
def delete_snapshot(
    ctx: typer.Context,
    name: str = typer.Argument(help="container name"),
    snapshot_hash: str = typer.Argument(help="hash, or leading part of it, of the snapshot"),
    force: bool = typer.Option(
        False,
        "--force", "-f",
        help="skip confirmation and allow deleting the active snapshot"
    ),
):
    """Delete a single snapshot of a container"""
    if not force and not typer.confirm(f"Delete snapshot {short_hash(snapshot_hash)} of '{name}'?"):
        echo("Cancelled deletion")
        return
    with exit_on_error():
        snapshot_dir = GenerationManager(workspace(ctx)).delete_snapshot(name, snapshot_hash, force=force)
    echo(f"Deleted snapshot {snapshot_dir.name}")


@app.command()
def add(
    ctx: typer.Context,
    package: str = typer.Argument(help="package as NAME or NAME@VERSION"),
    name: Annotated[Optional[str], typer.Option(
        "--container", "-c",
        help="container name, defaults to the current container"
    )] = None,
    source: str = typer.Option("nixpkgs", help="where the package comes from"),
):
    """Add a package to a container"""
    spec = parse_package_spec(package, source=source)
    with exit_on_error():
        add_package(workspace(ctx), spec, name=name)
    echo(f"Added {spec}")


@app.command()
def remove(
    ctx: typer.Context,
    package: str = typer.Argument(help="package name"),
    name: Annotated[Optional[str], typer.Option(
        "--container", "-c",
        help="container name, defaults to the current container"
    )] = None,
):
    """Remove a package from a container"""
    with exit_on_error():
        remove_package(workspace(ctx), package, name=name)
    echo(f"Removed {package}")
