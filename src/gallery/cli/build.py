"""
CLI: ``gallery build`` and ``gallery validate``.
"""

from __future__ import annotations

import uuid
from pathlib import Path

import typer
from rich.table import Table

from gallery.cli.utils import console, fail, load_settings, print_failures
from gallery.core.errors import GalleryError
from gallery.framework.logging import set_context


def build(
    target: Path | None = typer.Option(None, "--target", "-t", help="Output directory for the website."),
    reuse: bool | None = typer.Option(
        None, "--reuse/--no-reuse", help="Skip examples whose complete output matches this run."
    ),
    workers: int | None = typer.Option(None, "--workers", "-j", min=1, help="Examples processed in parallel."),
    timeout: float | None = typer.Option(None, "--timeout", min=0, help="Seconds per script run; 0 disables."),
    official: bool | None = typer.Option(None, "--official/--no-official", help="Include the official examples."),
) -> None:
    """Run every example and render the website."""
    from gallery.pipeline import build_site

    settings = load_settings(
        target_dir=target,
        reuse_outputs=reuse,
        workers=workers,
        run_timeout_seconds=timeout,
        include_official=official,
    )
    build_id = uuid.uuid4().hex[:12]
    set_context(build_id=build_id)

    try:
        report = build_site(settings, build_id=build_id)
    except GalleryError as e:
        fail(e)

    console.print(
        f"[green]Built[/green] {len(report.results)} example(s) into [bold]{settings.target_dir}[/bold]"
    )
    if report.failures:
        print_failures(report.failures)
        raise typer.Exit(code=1)


def validate(
    images: list[str] | None = typer.Option(
        None, "--image", "-i", help="Container image to validate against (repeatable)."
    ),
    status_file: Path | None = typer.Option(None, "--status-file", help="Where to write the status ledger."),
    workers: int | None = typer.Option(None, "--workers", "-j", min=1),
    timeout: float | None = typer.Option(None, "--timeout", min=0),
    official: bool | None = typer.Option(None, "--official/--no-official"),
) -> None:
    """Run every example against each image and write the status ledger."""
    from gallery.pipeline import validate_site

    settings = load_settings(
        status_file=status_file,
        workers=workers,
        run_timeout_seconds=timeout,
        include_official=official,
    )
    set_context(build_id=uuid.uuid4().hex[:12])

    try:
        report = validate_site(settings, images)
    except GalleryError as e:
        fail(e)

    table = Table(title="Validation", show_lines=False, pad_edge=False)
    table.add_column("example", style="bold")
    table.add_column("commit")
    table.add_column("status")
    for example_id, status in sorted(report.ledger.examples.items()):
        style = "green" if status.overall.value == "passed" else "red"
        table.add_row(example_id, (status.commit or "")[:12], f"[{style}]{status.overall.value}[/{style}]")
    console.print(table)
    console.print(f"Ledger written to [bold]{settings.status_file}[/bold]")

    if report.failures:
        print_failures(report.failures)
        raise typer.Exit(code=1)
