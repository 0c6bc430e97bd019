"""Template contexts for example and index pages.

The renderer never sees an ``ExampleRecord`` directly; it gets these
flattened, display-ready views:

    ExamplePage   one per example page
    IndexEntry    one per tile on the index page
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import markdown

from gallery.artifacts.selector import SelectedArtifacts
from gallery.core.errors import RenderError
from gallery.metadata.models import ExampleRecord

# Hosting providers and the path segment between repository and commit.
_BLOB_PATHS = {
    "https://github.com/": "blob",
    "https://gitlab.com/": "-/blob",
}


def comma_and_join(items: Sequence[str]) -> str:
    """Join as prose: ``A``, ``A and B``, ``A, B and C``."""
    if len(items) <= 1:
        return "".join(items)
    return f"{', '.join(items[:-1])} and {items[-1]}"


def render_markdown(text: str) -> str:
    return markdown.markdown(text)


def script_url(repository: str, commit: str, script: str) -> str:
    """Permalink to ``script`` at ``commit`` on the hosting provider.

    Raises:
        RenderError: the repository URL does not end in ``.git`` or the
            provider is unknown.
    """
    if not repository.endswith(".git"):
        raise RenderError(f"repository does not end with .git: {repository}").with_context(
            repository=repository, stage="render"
        )
    prefix = repository[: -len(".git")]
    for host, blob in _BLOB_PATHS.items():
        if prefix.startswith(host):
            return f"{prefix}/{blob}/{commit}/{script}"
    raise RenderError(f"don't know how to form a script url for {repository}").with_context(
        repository=repository, stage="render"
    )


@dataclass(frozen=True)
class ExamplePage:
    """Context for ``example.html.j2``."""

    id: str
    name: str
    authors: str
    description: str
    images: list[str]
    tags: list[str]
    repository: str
    revision: str
    script: str
    script_url: str
    status: str | None = None
    results: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class IndexEntry:
    """Context for one tile of ``examples-list.html.j2``."""

    name: str
    thumbnail: str | None
    tags: list[str]
    href: str
    status: str | None = None
    kind: str = "user"


def build_page(
    record: ExampleRecord,
    artifacts: SelectedArtifacts,
    *,
    status: str | None = None,
    results: dict[str, str] | None = None,
) -> ExamplePage:
    return ExamplePage(
        id=record.id,
        name=record.name,
        authors=comma_and_join(record.authors),
        description=render_markdown(record.description),
        images=list(artifacts.images),
        tags=list(record.tags),
        repository=record.repository,
        revision=record.revision,
        script=record.script,
        script_url=script_url(record.repository, record.revision, record.script),
        status=status,
        results=dict(results or {}),
    )


def build_index_entry(record: ExampleRecord, artifacts: SelectedArtifacts, *, status: str | None = None) -> IndexEntry:
    return IndexEntry(
        name=record.name,
        thumbnail=f"{record.id}/{artifacts.thumbnail}" if artifacts.thumbnail else None,
        tags=list(record.tags),
        href=f"{record.id}/",
        status=status,
        kind=record.kind,
    )
