import typer
from typing import Optional

from rich.table import Table
import rich

from sfc._src import constants
from sfc._src.exceptions import NotFoundError
from sfc._src.hash import log_hash
from sfc._src.history import HistoryLedger
from sfc.cli.common import echo, exit_on_error, workspace


history_command = typer.Typer(
    add_completion=False,
    no_args_is_help=True,
    rich_markup_mode="rich",
    context_settings={"help_option_names": ["-h", "--help"]},
)


@history_command.command()
def log(
    ctx: typer.Context,
    container: Optional[str] = typer.Option(
        None,
        "--container", "-c",
        help="only show entries of this container"
    ),
    limit: int = typer.Option(
        constants.LOG_LIMIT,
        help="maximum number of entries to show"
    ),
    oneline: bool = typer.Option(
        False,
        "--oneline",
        help="print one plain line per entry instead of a table"
    ),
):
    """Show the most recent operations, newest first"""
    with exit_on_error():
        ledger = HistoryLedger.load(workspace(ctx).root)
    entries = ledger.log(container, limit=limit)
    if not entries:
        echo("No history entries")
        return

    if oneline:
        for line in ledger.render_log(container, limit=limit):
            echo(line)
        return

    table = Table(title="History")
    table.add_column("hash", justify="left", no_wrap=True)
    table.add_column("timestamp", justify="left", no_wrap=True)
    table.add_column("container", justify="left", no_wrap=True)
    table.add_column("operation", justify="left", no_wrap=True)
    table.add_column("message", justify="left")

    for entry in entries:
        table.add_row(
            log_hash(entry.hash),
            entry.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            entry.container_name,
            entry.operation.tag(),
            entry.message,
        )

    rich.print(table)


@history_command.command()
def graph(
    ctx: typer.Context,
    container: Optional[str] = typer.Option(
        None,
        "--container", "-c",
        help="only draw entries of this container"
    ),
):
    """Draw the history as a tree of parent and child entries"""
    with exit_on_error():
        ledger = HistoryLedger.load(workspace(ctx).root)
    lines = ledger.render_graph(container)
    if not lines:
        echo("No history entries")
        return
    for line in lines:
        echo(line)


@history_command.command()
def show(
    ctx: typer.Context,
    prefix: str = typer.Argument(
        help="hash, or leading part of it, of the entry"
    ),
):
    """Show a single history entry"""
    with exit_on_error():
        entry = HistoryLedger.load(workspace(ctx).root).find_by_hash(prefix)
        if entry is None:
            raise NotFoundError("history entry", prefix)

    echo(f"hash:      {entry.hash}")
    echo(f"container: {entry.container_name}")
    echo(f"timestamp: {entry.timestamp.isoformat()}")
    echo(f"operation: {entry.operation.tag()}")
    echo(f"parent:    {entry.parent_hash or '-'}")
    echo(f"message:   {entry.message}")
