"""Example record model.

``ExampleRecord`` is the one normalized shape both descriptor forms resolve
into. It is a frozen pydantic model: constructed once per build from a
descriptor, never mutated afterwards. Resolving a symbolic revision
produces a new record via :meth:`ExampleRecord.with_revision`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from gallery.execution.git import is_commit

OFFICIAL_PREFIX = "official-"
USER_PREFIX = "user-"


class ExampleRecord(BaseModel):
    """Identity and provenance of one example.

    Attributes:
        id: Unique key, namespaced by source kind (``official-``/``user-``)
        name: Display name
        authors: Ordered author list
        description: Raw markdown
        repository: Repository URL
        revision: Branch name or resolved 40-hex commit
        script: Script path relative to the repository root
        tags: Ordered tags, duplicates dropped (first occurrence kept)
        image_names: Expected logical image names; ``None`` discovers all
        image_index: Per-name selection index; ``None`` takes the last render
        thumbnail_index: Index into the selected images; ``None`` takes the last
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str
    authors: tuple[str, ...]
    description: str
    repository: str
    revision: str = Field(min_length=1)
    script: str = Field(min_length=1)
    tags: tuple[str, ...] = ()
    image_names: tuple[str, ...] | None = None
    image_index: int | None = Field(default=None, ge=0)
    thumbnail_index: int | None = Field(default=None, ge=0)

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, tags: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(tags))

    @property
    def kind(self) -> str:
        """``official`` or ``user``."""
        return "official" if self.id.startswith(OFFICIAL_PREFIX) else "user"

    @property
    def is_resolved(self) -> bool:
        return is_commit(self.revision)

    def with_revision(self, commit: str) -> ExampleRecord:
        """Return a copy pinned to ``commit``."""
        if not is_commit(commit):
            raise ValueError(f"not a full commit hash: {commit!r}")
        return self.model_copy(update={"revision": commit})
