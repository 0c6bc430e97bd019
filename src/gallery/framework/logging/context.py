"""
Per-example log context.

A build processes examples on worker threads; each worker pushes the id
of the example it is working on and every event it logs carries it::

    token = push_context(example_id="official-poisson")
    try:
        ...                      # logs include example_id=official-poisson
    finally:
        token.restore()

Fresh threads start from an empty :class:`LogContext`.
"""

from contextvars import ContextVar, Token
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

import structlog


@dataclass(frozen=True)
class LogContext:
    """
    Fields attached to every log event.

    build_id: one ``gallery build`` / ``gallery validate`` invocation
    example_id: example being processed (``official-poisson``, ``user-cavity``)
    repository, revision: source being fetched or run
    step, span_id, parent_span_id: set by :func:`~gallery.framework.logging.log_step`
    """

    build_id: str | None = None
    example_id: str | None = None
    repository: str | None = None
    revision: str | None = None
    step: str | None = None
    span_id: str | None = None
    parent_span_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {key: value for key, value in asdict(self).items() if value is not None}

    def merge(self, **values: Any) -> "LogContext":
        """Copy with ``values`` applied; ``None`` values and unknown keys are ignored."""
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in values.items() if v is not None and k in known})


_EMPTY = LogContext()
_current: ContextVar[LogContext] = ContextVar("gallery_log_context", default=_EMPTY)


@dataclass(frozen=True)
class ContextToken:
    """Restores the context that was current before :func:`push_context`."""

    token: Token

    def restore(self) -> None:
        _current.reset(self.token)


def get_context() -> LogContext:
    return _current.get()


def set_context(**values: Any) -> LogContext:
    """Replace the context with ``values`` (unset fields become ``None``)."""
    ctx = _EMPTY.merge(**values)
    _current.set(ctx)
    return ctx


def bind_context(**values: Any) -> LogContext:
    """Add ``values`` to the current context for the rest of this thread or scope."""
    ctx = get_context().merge(**values)
    _current.set(ctx)
    return ctx


def push_context(**values: Any) -> ContextToken:
    """Like :func:`bind_context` but returns a token to undo it."""
    return ContextToken(_current.set(get_context().merge(**values)))


def clear_context() -> None:
    _current.set(_EMPTY)


def add_context_processor(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """structlog processor: add context fields the event does not set itself."""
    for key, value in get_context().to_dict().items():
        event_dict.setdefault(key, value)
    return event_dict


def get_logger(name: str | None = None) -> Any:
    return structlog.get_logger(name)
