"""Jinja2 page renderer.

Renders the per-example page and the index page into the target
directory. Templates are loaded eagerly so a missing or broken template
aborts the build before any example runs.

Architecture:
    ```
    ExamplePage ──► example.html.j2        ──► <target>/<id>/index.html
    [IndexEntry] ──► examples-list.html.j2 ──► <target>/index.html
    ```

Undefined template variables raise instead of rendering empty strings.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict
from pathlib import Path

from jinja2 import Environment, FileSystemLoader, StrictUndefined, TemplateError, select_autoescape

from gallery.core.errors import RenderError
from gallery.framework.logging import get_logger
from gallery.rendering.context import ExamplePage, IndexEntry

logger = get_logger(__name__)

DEFAULT_TEMPLATE_DIR = Path(__file__).parent / "templates"

EXAMPLE_TEMPLATE = "example.html.j2"
INDEX_TEMPLATE = "examples-list.html.j2"


class PageRenderer:
    """Loads the two page templates and renders contexts to files."""

    def __init__(self, template_dir: Path | str | None = None):
        self.template_dir = Path(template_dir) if template_dir is not None else DEFAULT_TEMPLATE_DIR
        self.env = Environment(
            loader=FileSystemLoader(str(self.template_dir)),
            autoescape=select_autoescape(["html", "xml", "j2"]),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        try:
            self._example = self.env.get_template(EXAMPLE_TEMPLATE)
            self._index = self.env.get_template(INDEX_TEMPLATE)
        except TemplateError as e:
            raise RenderError(f"Failed to load templates: {e}", cause=e, fatal=True).with_context(
                path=str(self.template_dir), stage="render"
            ) from e

    def render_example(self, page: ExamplePage) -> str:
        try:
            return self._example.render(page=asdict(page))
        except TemplateError as e:
            raise RenderError(f"Failed to render example page: {e}", cause=e).with_context(
                example_id=page.id, stage="render"
            ) from e

    def render_index(self, entries: Sequence[IndexEntry]) -> str:
        try:
            return self._index.render(examples=[asdict(entry) for entry in entries])
        except TemplateError as e:
            raise RenderError(f"Failed to render index page: {e}", cause=e, fatal=True).with_context(
                stage="render"
            ) from e

    def write_example(self, page: ExamplePage, directory: Path) -> Path:
        return _write(directory / "index.html", self.render_example(page), example_id=page.id)

    def write_index(self, entries: Sequence[IndexEntry], directory: Path) -> Path:
        path = _write(directory / "index.html", self.render_index(entries))
        logger.info("render.index.written", path=str(path), examples=len(entries))
        return path


def _write(path: Path, html: str, example_id: str | None = None) -> Path:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(html, encoding="utf-8")
    except OSError as e:
        raise RenderError(f"Failed to write page: {e}", cause=e).with_context(
            example_id=example_id, path=str(path), stage="render"
        ) from e
    return path
