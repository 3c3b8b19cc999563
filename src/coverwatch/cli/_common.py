"""Shared CLI helpers."""

from pathlib import Path
from typing import NoReturn, Optional

import typer
from rich.console import Console
from rich.markup import escape

from ..config import CoverageConfig, load_config
from ..exceptions import CoverwatchError
from ..stores import CoverageStore, build_store

console = Console()


def resolve_config(
    config: Optional[Path] = None,
    store_type: Optional[str] = None,
    store_path: Optional[str] = None,
) -> CoverageConfig:
    """Build config from CLI options."""
    overrides = {}
    if store_type is not None:
        overrides["store_type"] = store_type
    if store_path is not None:
        overrides["store_path"] = store_path
    try:
        return load_config(config_file=config, **overrides)
    except CoverwatchError as e:
        fail(e)


def open_store(config: CoverageConfig) -> CoverageStore:
    try:
        return build_store(config)
    except CoverwatchError as e:
        fail(e)


def fail(error: Exception) -> NoReturn:
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    raise typer.Exit(1)
