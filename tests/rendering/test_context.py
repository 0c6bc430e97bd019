"""Tests for page contexts: prose joins, markdown and script permalinks."""

import pytest

from gallery.artifacts.selector import SelectedArtifacts
from gallery.core.errors import RenderError
from gallery.metadata.models import ExampleRecord
from gallery.rendering.context import (
    build_index_entry,
    build_page,
    comma_and_join,
    render_markdown,
    script_url,
)

COMMIT = "0123456789abcdef0123456789abcdef01234567"


def _record(**kwargs) -> ExampleRecord:
    values = {
        "id": "official-poisson",
        "name": "Poisson problem",
        "authors": ("Evalf", "other Nutils contributors"),
        "description": "Solves *Poisson*.\n",
        "repository": "https://github.com/evalf/nutils.git",
        "revision": COMMIT,
        "script": "examples/poisson.py",
        "tags": ("official", "laplace"),
    }
    values.update(kwargs)
    return ExampleRecord(**values)


class TestCommaAndJoin:
    @pytest.mark.parametrize(
        "items, expected",
        [
            ([], ""),
            (["A"], "A"),
            (["A", "B"], "A and B"),
            (["A", "B", "C"], "A, B and C"),
            (["A", "B", "C", "D"], "A, B, C and D"),
        ],
    )
    def test_join(self, items, expected):
        assert comma_and_join(items) == expected


class TestRenderMarkdown:
    def test_emphasis(self):
        assert render_markdown("Solves *Poisson*.") == "<p>Solves <em>Poisson</em>.</p>"

    def test_paragraphs(self):
        assert render_markdown("one\n\ntwo\n").count("<p>") == 2


class TestScriptUrl:
    def test_github(self):
        assert (
            script_url("https://github.com/evalf/nutils.git", COMMIT, "examples/poisson.py")
            == f"https://github.com/evalf/nutils/blob/{COMMIT}/examples/poisson.py"
        )

    def test_gitlab(self):
        assert (
            script_url("https://gitlab.com/group/proj.git", COMMIT, "run.py")
            == f"https://gitlab.com/group/proj/-/blob/{COMMIT}/run.py"
        )

    def test_missing_git_suffix(self):
        with pytest.raises(RenderError, match=".git"):
            script_url("https://github.com/evalf/nutils", COMMIT, "run.py")

    def test_unknown_host(self):
        with pytest.raises(RenderError, match="script url"):
            script_url("https://example.org/x.git", COMMIT, "run.py")


class TestBuilders:
    def test_page(self):
        artifacts = SelectedArtifacts(images=["a.png", "b.png"], thumbnail="b.png")
        page = build_page(_record(), artifacts, status="passed", results={"img:7": "passed"})
        assert page.authors == "Evalf and other Nutils contributors"
        assert page.description == "<p>Solves <em>Poisson</em>.</p>"
        assert page.images == ["a.png", "b.png"]
        assert page.tags == ["official", "laplace"]
        assert page.revision == COMMIT
        assert page.script_url.endswith(f"/blob/{COMMIT}/examples/poisson.py")
        assert page.status == "passed"
        assert page.results == {"img:7": "passed"}

    def test_page_unknown_host(self):
        with pytest.raises(RenderError):
            build_page(_record(repository="https://example.org/x.git"), SelectedArtifacts())

    def test_index_entry(self):
        entry = build_index_entry(_record(), SelectedArtifacts(images=["a.png"], thumbnail="a.png"))
        assert entry.thumbnail == "official-poisson/a.png"
        assert entry.href == "official-poisson/"
        assert entry.name == "Poisson problem"
        assert entry.kind == "official"

    def test_index_entry_without_thumbnail(self):
        assert build_index_entry(_record(), SelectedArtifacts()).thumbnail is None
