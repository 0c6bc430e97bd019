"""Declarative (YAML) example descriptors.

A user example is described by one YAML document next to the gallery
sources::

    name: Lid-driven cavity
    authors: [Jane Doe, John Roe]
    description: |
      Incompressible flow in a **lid-driven** cavity.
    repository: https://github.com/jdoe/cavity.git
    revision: main
    script: cavity.py
    tags: [flow, stokes]
    images: [velocity, pressure]   # optional, fixed-name mode
    image_index: 0                 # optional
    thumbnail_index: 1             # optional

``commit`` is accepted for ``revision`` and ``thumbnail`` for
``thumbnail_index``; older descriptors use those names. Unknown keys are
ignored, with a warning naming them, so descriptors written for newer or
older builders still load.
"""

from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from gallery.core.errors import DescriptorError
from gallery.framework.logging import get_logger
from gallery.metadata.models import USER_PREFIX, ExampleRecord

logger = get_logger(__name__)


class DescriptorSpec(BaseModel):
    """Typed shape of a declarative descriptor document."""

    model_config = ConfigDict(extra="allow")

    name: str
    authors: list[str]
    description: str
    repository: str
    revision: str = Field(validation_alias=AliasChoices("revision", "commit"))
    script: str
    tags: list[str]
    images: list[str] | None = None
    image_index: int | None = Field(default=None, ge=0)
    thumbnail_index: int | None = Field(
        default=None,
        ge=0,
        validation_alias=AliasChoices("thumbnail_index", "thumbnail"),
    )

    def to_record(self, example_id: str) -> ExampleRecord:
        return ExampleRecord(
            id=example_id,
            name=self.name,
            authors=tuple(self.authors),
            description=self.description,
            repository=self.repository,
            revision=self.revision,
            script=self.script,
            tags=tuple(self.tags),
            image_names=tuple(self.images) if self.images is not None else None,
            image_index=self.image_index,
            thumbnail_index=self.thumbnail_index,
        )


def parse_declarative(text: str, example_id: str) -> ExampleRecord:
    """Parse descriptor YAML into a record.

    Raises:
        DescriptorError: invalid YAML, a non-mapping document, or a document
            that does not match :class:`DescriptorSpec`.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise DescriptorError(f"Invalid YAML: {e}", cause=e) from e

    if not isinstance(data, dict):
        raise DescriptorError(f"Expected a mapping, got {type(data).__name__}")

    try:
        spec = DescriptorSpec.model_validate(data)
        record = spec.to_record(example_id)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        raise DescriptorError(f"Invalid descriptor: {problems}", cause=e) from e

    if spec.model_extra:
        logger.warning("metadata.declarative.unknown_keys", example_id=example_id, keys=sorted(spec.model_extra))
    return record


def load_declarative(path: Path | str, example_id: str | None = None) -> ExampleRecord:
    """Load a declarative descriptor file.

    The id defaults to ``user-<file stem>``.
    """
    path = Path(path)
    example_id = example_id or f"{USER_PREFIX}{path.stem}"

    try:
        text = path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DescriptorError(f"Cannot read descriptor: {e}", cause=e).with_context(
            example_id=example_id, path=str(path), stage="metadata"
        ) from e

    try:
        record = parse_declarative(text, example_id)
    except DescriptorError as e:
        raise e.with_context(example_id=example_id, path=str(path), stage="metadata")

    logger.debug("metadata.declarative.loaded", example_id=example_id, path=str(path))
    return record
