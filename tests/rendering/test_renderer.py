"""Tests for the Jinja2 page renderer."""

from pathlib import Path

import pytest

from gallery.core.errors import RenderError
from gallery.rendering.context import ExamplePage, IndexEntry
from gallery.rendering.renderer import EXAMPLE_TEMPLATE, INDEX_TEMPLATE, PageRenderer

COMMIT = "0123456789abcdef0123456789abcdef01234567"


def _page(**kwargs) -> ExamplePage:
    values = {
        "id": "user-cavity",
        "name": "Cavity <flow>",
        "authors": "Jane Doe and John Roe",
        "description": "<p>Flow in a <strong>cavity</strong>.</p>",
        "images": ["a.png", "b.jpg"],
        "tags": ["flow"],
        "repository": "https://github.com/jdoe/cavity.git",
        "revision": COMMIT,
        "script": "cavity.py",
        "script_url": f"https://github.com/jdoe/cavity/blob/{COMMIT}/cavity.py",
    }
    values.update(kwargs)
    return ExamplePage(**values)


class TestPackagedTemplates:
    def test_example_page(self):
        html = PageRenderer().render_example(_page())
        assert "Cavity &lt;flow&gt;" in html
        assert "<p>Flow in a <strong>cavity</strong>.</p>" in html
        assert 'src="a.png"' in html
        assert 'src="b.jpg"' in html
        assert f"blob/{COMMIT}/cavity.py" in html
        assert "Jane Doe and John Roe" in html

    def test_example_page_status(self):
        html = PageRenderer().render_example(_page(status="failed", results={"img:8": "failed"}))
        assert "status-failed" in html
        assert "img:8" in html

    def test_index_page(self):
        entries = [
            IndexEntry(name="A", thumbnail="user-a/x.png", tags=["t"], href="user-a/"),
            IndexEntry(name="B", thumbnail=None, tags=[], href="user-b/", status="passed"),
            IndexEntry(name="C", thumbnail=None, tags=[], href="official-c/", kind="official"),
        ]
        html = PageRenderer().render_index(entries)
        assert 'href="user-a/"' in html
        assert 'src="user-a/x.png"' in html
        assert "no-thumbnail" in html
        assert html.index("user-a/") < html.index("user-b/")
        assert html.count('class="tile tile-user"') == 2
        assert html.count('class="tile tile-official"') == 1
        assert html.count('<span class="kind">contributed</span>') == 2

    def test_write(self, tmp_path: Path):
        renderer = PageRenderer()
        path = renderer.write_example(_page(), tmp_path / "user-cavity")
        assert path == tmp_path / "user-cavity" / "index.html"
        assert renderer.write_index([], tmp_path).read_text().startswith("<!DOCTYPE html>")


class TestCustomTemplates:
    def _templates(self, tmp_path: Path, example: str, index: str = "{{ examples | length }}") -> Path:
        (tmp_path / EXAMPLE_TEMPLATE).write_text(example)
        (tmp_path / INDEX_TEMPLATE).write_text(index)
        return tmp_path

    def test_override(self, tmp_path: Path):
        renderer = PageRenderer(self._templates(tmp_path, "{{ page.name }}|{{ page.images | join(',') }}"))
        assert renderer.render_example(_page(name="X")) == "X|a.png,b.jpg"
        assert renderer.render_index([]) == "0"

    def test_undefined_variable_is_an_error(self, tmp_path: Path):
        renderer = PageRenderer(self._templates(tmp_path, "{{ page.nonexistent }}"))
        with pytest.raises(RenderError) as excinfo:
            renderer.render_example(_page())
        assert excinfo.value.context.example_id == "user-cavity"
        assert not excinfo.value.fatal

    def test_missing_template_is_fatal(self, tmp_path: Path):
        with pytest.raises(RenderError) as excinfo:
            PageRenderer(tmp_path)
        assert excinfo.value.fatal

    def test_syntax_error_is_fatal(self, tmp_path: Path):
        with pytest.raises(RenderError) as excinfo:
            PageRenderer(self._templates(tmp_path, "{% for %}"))
        assert excinfo.value.fatal
