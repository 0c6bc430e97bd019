"""
CLI: ``gallery scan`` and ``gallery show`` -- inspect inputs without running anything.
"""

from __future__ import annotations

from pathlib import Path

import typer

from gallery.artifacts.scanner import scan_log
from gallery.artifacts.selector import collect_sequences, select_images, select_thumbnail
from gallery.cli.utils import console, fail, load_settings, output
from gallery.core.errors import DescriptorError
from gallery.metadata.declarative import load_declarative
from gallery.metadata.embedded import load_embedded


def scan(
    log: Path = typer.Argument(..., help="Execution log (log.html)."),
    names: list[str] | None = typer.Option(None, "--name", "-n", help="Logical image name to keep (repeatable)."),
    index: int | None = typer.Option(None, "--index", min=0, help="Pick this occurrence of each name."),
    thumbnail: int | None = typer.Option(None, "--thumbnail", min=0, help="Pick this image as thumbnail."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Show the images that would be selected from an execution log."""
    if not log.is_file():
        console.print(f"[yellow]No log at {log}; nothing selected.[/yellow]")
    sequences = collect_sequences(scan_log(log), names or None)
    images = select_images(sequences, index)
    result = {
        "sequences": sequences.as_dict(),
        "images": images,
        "thumbnail": select_thumbnail(images, thumbnail),
    }
    if json_out:
        output(result, as_json=True)
        return
    for name, filenames in sequences:
        console.print(f"  [cyan]{name}[/cyan]: {len(filenames)} rendering(s)")
    output({"images": images, "thumbnail": result["thumbnail"] or "none"}, title="Selected")


def show(
    descriptor: Path = typer.Argument(..., help="A *.yaml descriptor or an official example script."),
    json_out: bool = typer.Option(False, "--json"),
) -> None:
    """Resolve one descriptor and print the resulting record."""
    try:
        if descriptor.suffix == ".py":
            settings = load_settings()
            record = load_embedded(
                descriptor,
                repository=settings.official_repository,
                authors=settings.official_authors,
                git_timeout=settings.git_timeout_seconds,
            )
        else:
            record = load_declarative(descriptor)
    except DescriptorError as e:
        fail(e)
    output(record, as_json=json_out, title=record.id)
