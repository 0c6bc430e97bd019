"""Metadata source discovery and resolution.

Two descriptor shapes collapse into one record type::

    MetadataSource = DeclarativeSource(path) | EmbeddedSource(path, ...)
                         │                          │
                 load_declarative()          load_embedded()
                         └──────────┬───────────────┘
                                    ▼
                              ExampleRecord

:func:`resolve_all` resolves every source independently: a broken
descriptor becomes an :class:`ExampleFailure` and the remaining examples
still resolve.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from gallery.core.errors import DescriptorError, GalleryError
from gallery.framework.logging import get_logger
from gallery.metadata.declarative import load_declarative
from gallery.metadata.embedded import load_embedded
from gallery.metadata.models import OFFICIAL_PREFIX, USER_PREFIX, ExampleRecord

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExampleFailure:
    """One example that could not be completed, and at which stage."""

    example_id: str
    stage: str
    message: str
    error_type: str = "GalleryError"

    @classmethod
    def from_error(cls, example_id: str, stage: str, error: Exception) -> ExampleFailure:
        if isinstance(error, GalleryError):
            example_id = error.context.example_id or example_id
            stage = error.context.stage or stage
            message = error.message
        else:
            message = str(error)
        return cls(example_id=example_id, stage=stage, message=message, error_type=type(error).__name__)


@dataclass(frozen=True)
class DeclarativeSource:
    """A user example described by a YAML file."""

    path: Path

    @property
    def example_id(self) -> str:
        return f"{USER_PREFIX}{self.path.stem}"

    def resolve(self) -> ExampleRecord:
        return load_declarative(self.path, self.example_id)


@dataclass(frozen=True)
class EmbeddedSource:
    """An official example script with a comment header."""

    path: Path
    repository: str
    authors: tuple[str, ...]
    git_timeout: float | None = None

    @property
    def example_id(self) -> str:
        return f"{OFFICIAL_PREFIX}{self.path.stem}"

    def resolve(self) -> ExampleRecord:
        return load_embedded(
            self.path,
            repository=self.repository,
            authors=self.authors,
            example_id=self.example_id,
            git_timeout=self.git_timeout,
        )


MetadataSource = DeclarativeSource | EmbeddedSource


def discover_embedded(
    examples_dir: Path,
    *,
    repository: str,
    authors: Sequence[str],
    git_timeout: float | None = None,
) -> list[EmbeddedSource]:
    """List ``*.py`` example scripts (``__init__.py`` excluded), sorted."""
    if not examples_dir.is_dir():
        raise DescriptorError(f"official examples directory not found: {examples_dir}").with_context(
            path=str(examples_dir), stage="metadata"
        )
    return [
        EmbeddedSource(path=path, repository=repository, authors=tuple(authors), git_timeout=git_timeout)
        for path in sorted(examples_dir.glob("*.py"))
        if path.is_file() and path.stem != "__init__"
    ]


def discover_declarative(descriptors_dir: Path) -> list[DeclarativeSource]:
    """List ``*.yaml`` descriptors, sorted. A missing directory yields none."""
    if not descriptors_dir.is_dir():
        logger.info("metadata.user_dir.missing", path=str(descriptors_dir))
        return []
    return [DeclarativeSource(path=path) for path in sorted(descriptors_dir.glob("*.yaml")) if path.is_file()]


def resolve_all(sources: Iterable[MetadataSource]) -> tuple[list[ExampleRecord], list[ExampleFailure]]:
    """Resolve every source, keeping going past broken descriptors.

    Records are returned sorted by id. Duplicate ids are reported as
    failures of the later source.
    """
    records: dict[str, ExampleRecord] = {}
    failures: list[ExampleFailure] = []

    for source in sources:
        try:
            record = source.resolve()
        except DescriptorError as e:
            logger.warning("metadata.resolve.failed", example_id=source.example_id, **e.to_dict())
            failures.append(ExampleFailure.from_error(source.example_id, "metadata", e))
            continue
        if record.id in records:
            failures.append(
                ExampleFailure(record.id, "metadata", f"duplicate example id from {source.path}", "DescriptorError")
            )
            continue
        records[record.id] = record

    logger.info("metadata.resolved", records=len(records), failures=len(failures))
    return [records[key] for key in sorted(records)], failures
