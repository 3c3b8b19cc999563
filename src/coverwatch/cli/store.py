"""Store management commands."""

import os
from pathlib import Path
from typing import Optional

import typer
from rich.table import Table

from ..classifier import FileClassifier
from ..exceptions import CoverwatchError
from . import app
from ._common import console, fail, open_store, resolve_config

ConfigOption = typer.Option(None, "--config", "-c", help="Path to a coverwatch.toml file.")
StoreTypeOption = typer.Option(None, "--store", help="Store type: memory, file, sqlite or http.")
StorePathOption = typer.Option(None, "--store-path", help="File or database path for the store.")


@app.command()
def info(
    config: Optional[Path] = ConfigOption,
    store_type: Optional[str] = StoreTypeOption,
    store_path: Optional[str] = StorePathOption,
):
    """Show store location, covered files per group and size."""
    settings = resolve_config(config, store_type, store_path)
    store = open_store(settings)
    try:
        files = store.covered_files()
        size = store.size_in_mib
    except CoverwatchError as e:
        fail(e)
    finally:
        store.close()

    table = Table(title="coverwatch store", show_header=False)
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    table.add_row("Type", settings.store_type)
    if settings.store_type in ("file", "sqlite"):
        table.add_row("Path", settings.resolved_store_path)
    table.add_row("Roots", "\n".join(settings.all_root_paths))
    table.add_row("Files", str(len(files)))
    if settings.effective_groups:
        grouped = FileClassifier.from_config(settings).group_files(files)
        for name in settings.effective_groups:
            table.add_row(f"  {name}", str(len(grouped.get(name, []))))
        table.add_row("  Ungrouped", str(len(grouped.get("", []))))
    table.add_row("Size", f"{size} MiB")
    console.print(table)


@app.command()
def clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
    config: Optional[Path] = ConfigOption,
    store_type: Optional[str] = StoreTypeOption,
    store_path: Optional[str] = StorePathOption,
):
    """Delete all stored coverage."""
    settings = resolve_config(config, store_type, store_path)
    if not yes and not typer.confirm("Delete all stored coverage?"):
        console.print("[yellow]Aborted[/yellow]")
        raise typer.Exit(0)

    store = open_store(settings)
    try:
        store.clear()
    except CoverwatchError as e:
        fail(e)
    finally:
        store.close()
    console.print("[green]Coverage cleared[/green]")


@app.command("clear-file")
def clear_file(
    path: str = typer.Argument(
        ..., help="Source file, as an absolute path or relative to its project root."
    ),
    config: Optional[Path] = ConfigOption,
    store_type: Optional[str] = StoreTypeOption,
    store_path: Optional[str] = StorePathOption,
):
    """Delete stored coverage for one file."""
    settings = resolve_config(config, store_type, store_path)
    key = path
    if os.path.isabs(path):
        key = FileClassifier.from_config(settings).relative_key(path)
    store = open_store(settings)
    try:
        store.clear_file(key)
    except CoverwatchError as e:
        fail(e)
    finally:
        store.close()
    console.print(f"[green]Cleared coverage for[/green] {key}")
