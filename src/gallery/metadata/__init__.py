"""Example metadata -- descriptors in, normalized records out.

Architecture::

    models.py        ExampleRecord (frozen pydantic model)
    declarative.py   YAML descriptors (user examples)
    embedded.py      Comment-header descriptors (official examples)
    resolver.py      MetadataSource variants, discovery, batch resolution
"""

from gallery.metadata.declarative import DescriptorSpec, load_declarative, parse_declarative
from gallery.metadata.embedded import EmbeddedHeader, load_embedded, parse_header
from gallery.metadata.models import ExampleRecord, is_commit
from gallery.metadata.resolver import (
    DeclarativeSource,
    EmbeddedSource,
    ExampleFailure,
    MetadataSource,
    discover_declarative,
    discover_embedded,
    resolve_all,
)

__all__ = [
    "ExampleRecord",
    "is_commit",
    "DescriptorSpec",
    "parse_declarative",
    "load_declarative",
    "EmbeddedHeader",
    "parse_header",
    "load_embedded",
    "DeclarativeSource",
    "EmbeddedSource",
    "MetadataSource",
    "ExampleFailure",
    "discover_declarative",
    "discover_embedded",
    "resolve_all",
]
