"""
Root Typer application for the gallery CLI.

Commands::

    gallery build      run every example and render the website
    gallery validate   run every example against several images
    gallery scan       show the images selected from an execution log
    gallery show       resolve and print one descriptor
"""

from __future__ import annotations

from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as pkg_version

import typer
from typer import Typer

from gallery import __version__
from gallery.cli.utils import load_settings
from gallery.framework.logging import configure_logging

app = Typer(
    name="gallery",
    help="gallery -- build a static website from runnable example scripts.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        try:
            v = pkg_version("example-gallery")
        except PackageNotFoundError:
            v = __version__
        typer.echo(f"gallery {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR."),
    log_format: str | None = typer.Option(None, "--log-format", help="console or json."),
) -> None:
    """gallery CLI -- build, validate and inspect examples."""
    settings = load_settings()
    try:
        configure_logging(
            level=log_level or settings.log_level,
            format=log_format or settings.log_format,
            force=True,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e), param_hint="--log-level / --log-format") from e


# ── Command registration ─────────────────────────────────────────────────

from gallery.cli.build import build, validate  # noqa: E402
from gallery.cli.inspection import scan, show  # noqa: E402

app.command("build")(build)
app.command("validate")(validate)
app.command("scan")(scan)
app.command("show")(show)
