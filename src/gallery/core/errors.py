"""
Structured error types for the gallery builder.

Every failure the builder can report is a :class:`GalleryError` carrying a
category and an :class:`ErrorContext`. The context says *which* example,
*which* file and *which* pipeline stage failed, so a batch run ends with a
readable per-example failure list instead of a bare traceback.

Architecture:
    ::

        ┌──────────────────────────────────────────────────────────────┐
        │                        GalleryError                           │
        │             (category, context, cause, fatal)                 │
        ├──────────────────────────────────────────────────────────────┤
        │  per-example (batch continues)   │  pipeline (batch aborts)   │
        │  ───────────────────────────     │  ────────────────────────  │
        │  DescriptorError   PARSE         │  SandboxError    RUNTIME   │
        │  FetchError        SOURCE        │  OutputError     STORAGE   │
        │  RenderError       RENDER        │  ConfigError     CONFIG    │
        │  ScriptFailed      EXECUTION     │                            │
        └──────────────────────────────────────────────────────────────┘

    ``RenderError`` is per-example when a single page fails, and pipeline
    fatal when it is raised while loading templates (``fatal=True``).

Guardrails:
    ❌ DON'T: Raise bare ``Exception`` for an expected failure
    ✅ DO: Raise the matching subclass and chain the original via ``cause=``

    ❌ DON'T: Format the example id into the message by hand
    ✅ DO: Attach it with ``with_context(example_id=...)``

Tags:
    error-handling, exception-hierarchy, error-context, gallery

Doc-Types:
    - API Reference
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Error categories used for reporting and for the status ledger."""

    PARSE = "PARSE"            # Descriptor could not be parsed
    SOURCE = "SOURCE"          # Repository could not be fetched
    RUNTIME = "RUNTIME"        # Sandbox runtime could not be invoked
    EXECUTION = "EXECUTION"    # Example script failed or timed out
    RENDER = "RENDER"          # Template or page rendering failed
    STORAGE = "STORAGE"        # Output directory problems
    CONFIG = "CONFIG"          # Invalid settings
    INTERNAL = "INTERNAL"      # Bugs, unexpected state


@dataclass
class ErrorContext:
    """
    Identifying metadata attached to an error.

    Attributes:
        example_id: Example the error belongs to (e.g. ``official-poisson``)
        path: Descriptor, log or output path involved
        repository: Repository URL being fetched
        revision: Branch or commit being fetched
        stage: Pipeline stage (``metadata``, ``fetch``, ``run``, ``render``)
        metadata: Additional key-value pairs
    """

    example_id: str | None = None
    path: str | None = None
    repository: str | None = None
    revision: str | None = None
    stage: str | None = None

    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["example_id", "path", "repository", "revision", "stage"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class GalleryError(Exception):
    """
    Base exception for all gallery builder errors.

    Subclasses set ``default_category`` and ``default_fatal``. ``fatal``
    errors abort the whole build; all others are recorded against a single
    example and the batch moves on.

    Examples:
        >>> error = GalleryError("Something went wrong")
        >>> error.category
        <ErrorCategory.INTERNAL: 'INTERNAL'>

        >>> error = DescriptorError("second line should be an empty comment")
        >>> error.with_context(example_id="official-adaptivity", path="adaptivity.py")
        DescriptorError(...)
        >>> error.context.example_id
        'official-adaptivity'
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL
    default_fatal: bool = False

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        fatal: bool | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.fatal = fatal if fatal is not None else self.default_fatal
        self.context = context or ErrorContext()
        self.cause = cause

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> GalleryError:
        """
        Add context to this error (fluent API).

        Keys already set on the context are not overwritten, so the
        innermost (most specific) value wins when an error is re-wrapped
        on its way up.
        """
        for key, value in kwargs.items():
            if hasattr(self.context, key) and key != "metadata":
                if getattr(self.context, key) is None:
                    setattr(self.context, key, value)
            else:
                self.context.metadata.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured logging and the status ledger."""
        result: dict[str, Any] = {
            "error_type": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "fatal": self.fatal,
            "context": self.context.to_dict(),
        }
        if self.cause is not None:
            result["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return result

    def __repr__(self) -> str:
        return f"{type(self).__name__}(...)"

    def __str__(self) -> str:
        prefix = ""
        if self.context.example_id:
            prefix = f"{self.context.example_id}: "
        if self.context.path:
            prefix += f"{self.context.path}: "
        return f"{prefix}{self.message}"


class DescriptorError(GalleryError):
    """A declarative or embedded descriptor could not be turned into a record."""

    default_category = ErrorCategory.PARSE


class FetchError(GalleryError):
    """A repository revision could not be fetched or checked out.

    Reported as "could not verify", never as a failing script.
    """

    default_category = ErrorCategory.SOURCE


class SandboxError(GalleryError):
    """The sandbox runtime itself could not be invoked."""

    default_category = ErrorCategory.RUNTIME
    default_fatal = True


class ScriptFailed(GalleryError):
    """An example script exited non-zero or timed out.

    A normal, recorded outcome: the build reports it and moves on.
    """

    default_category = ErrorCategory.EXECUTION


class RenderError(GalleryError):
    """A page could not be rendered, or templates could not be loaded."""

    default_category = ErrorCategory.RENDER


class OutputError(GalleryError):
    """The output directory could not be created or written."""

    default_category = ErrorCategory.STORAGE
    default_fatal = True


class ConfigError(GalleryError):
    """Settings are missing or inconsistent."""

    default_category = ErrorCategory.CONFIG
    default_fatal = True
