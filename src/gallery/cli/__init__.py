"""
CLI layer for the gallery builder.

Provides a Typer application whose commands delegate to
``gallery.pipeline`` and the artifact/metadata packages. This package
handles only terminal transport: argument parsing, coloured output and
table formatting.

Entry point::

    gallery --help
"""

from gallery.cli.app import app

__all__ = ["app"]
