"""Allow ``python -m gallery``."""

from gallery.cli.app import app

app(prog_name="gallery")
