"""CLI entry point. Importing this package registers all subcommands."""

import typer

from .. import __version__
from ._common import console

app = typer.Typer(
    name="coverwatch",
    help="coverwatch - production line coverage for Python services",
    add_completion=False,
    rich_markup_mode="rich",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"coverwatch {__version__}")
        raise typer.Exit()


@app.callback()
def _root(
    version: bool = typer.Option(
        False, "--version", callback=_version_callback, is_eager=True, help="Show version and exit."
    ),
) -> None:
    """Inspect and manage stored coverage."""


# Import subcommands to register them
from .store import clear as _clear, clear_file as _clear_file, info as _info  # noqa: F401, E402


def main() -> None:
    app()
