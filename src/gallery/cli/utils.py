"""
CLI utility helpers -- output formatting and error reporting.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import asdict
from typing import Any, NoReturn

import typer
from rich.console import Console
from rich.table import Table

from gallery.core.errors import ConfigError, GalleryError
from gallery.core.settings import GallerySettings, get_settings
from gallery.metadata.resolver import ExampleFailure

console = Console()
err_console = Console(stderr=True)


# ── Settings and errors ──────────────────────────────────────────────


def load_settings(**overrides: Any) -> GallerySettings:
    """Settings with CLI overrides; invalid configuration exits with status 2."""
    try:
        return get_settings(**overrides)
    except ConfigError as e:
        err_console.print(f"[bold red]Error[/bold red] ({e.category.value}): {e.message}")
        raise typer.Exit(code=2) from e


def fail(error: GalleryError) -> NoReturn:
    """Print a pipeline-fatal error and exit with status 1."""
    err_console.print(f"[bold red]Error[/bold red] ({error.category.value}): {error}")
    raise typer.Exit(code=1)


def print_failures(failures: Sequence[ExampleFailure], *, title: str = "Failed examples") -> None:
    if not failures:
        return
    table = Table(title=title, show_lines=False, pad_edge=False)
    table.add_column("example", style="bold")
    table.add_column("stage")
    table.add_column("error", style="red")
    table.add_column("message", overflow="fold")
    for failure in failures:
        table.add_row(failure.example_id, failure.stage, failure.error_type, failure.message)
    err_console.print(table)


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def output(data: Any, *, as_json: bool = False, title: str = "") -> None:
    """Render a model, dataclass or dict as JSON or key-value pairs."""
    payload = _to_dict(data)
    if as_json:
        console.print_json(json.dumps(payload, default=str))
        return
    if title:
        console.print(f"[bold]{title}[/bold]")
    for key, value in payload.items():
        if isinstance(value, list | tuple):
            value = ", ".join(str(v) for v in value) or "[dim]none[/dim]"
        console.print(f"  [cyan]{key}[/cyan]: {value}")
