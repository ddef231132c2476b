from contextlib import contextmanager

import typer
from rich.console import Console
from rich.markup import escape

from sfc._src.exceptions import SfcError
from sfc._src.workspace import Workspace


console = Console(highlight=False)
err_console = Console(stderr=True, highlight=False)


def echo(message: str) -> None:
    console.print(message, markup=False, soft_wrap=True)


@contextmanager
def exit_on_error():
    """Print an ``SfcError`` as a one-line message and exit with status 1"""
    try:
        yield
    except SfcError as err:
        err_console.print(f"[bold red]error:[/bold red] {escape(err.msg)}", soft_wrap=True)
        raise typer.Exit(code=1)


def workspace(ctx: typer.Context) -> Workspace:
    return ctx.obj
