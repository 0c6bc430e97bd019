"""Rendering -- records and selected artifacts in, HTML pages out.

Architecture::

    context.py     ExamplePage / IndexEntry, prose author lists,
                   markdown descriptions, script permalinks
    renderer.py    PageRenderer (Jinja2, StrictUndefined)
    templates/     example.html.j2, examples-list.html.j2
"""

from gallery.rendering.context import (
    ExamplePage,
    IndexEntry,
    build_index_entry,
    build_page,
    comma_and_join,
    render_markdown,
    script_url,
)
from gallery.rendering.renderer import DEFAULT_TEMPLATE_DIR, PageRenderer

__all__ = [
    "ExamplePage",
    "IndexEntry",
    "build_page",
    "build_index_entry",
    "comma_and_join",
    "render_markdown",
    "script_url",
    "PageRenderer",
    "DEFAULT_TEMPLATE_DIR",
]
