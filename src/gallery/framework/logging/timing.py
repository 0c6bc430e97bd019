"""
Timed, traced pipeline steps.

``log_step`` wraps one step of the pipeline (fetch, sandbox run, page
render) and logs::

    <step>.start   DEBUG    span_id, parent_span_id, extra fields
    <step>.end     INFO     duration_ms, span_id, metrics
    <step>.error   WARNING  for per-example GalleryErrors, ERROR otherwise

Nested steps link through ``parent_span_id`` so a JSON log of a parallel
build can be regrouped per example and per step. ``timed_block`` measures
without logging (the sandbox reports its own duration in ``RunOutcome``).
"""

import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

from gallery.framework.logging.context import get_context, get_logger, push_context

logger = get_logger("gallery.steps")


@dataclass
class StepTimer:
    """Duration, span ids and metrics of one step."""

    step: str
    parent_span_id: str | None = None
    span_id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    metrics: dict[str, Any] = field(default_factory=dict)
    started_at: float = field(default_factory=time.perf_counter)
    ended_at: float | None = None
    error: BaseException | None = None

    def stop(self) -> None:
        if self.ended_at is None:
            self.ended_at = time.perf_counter()

    @property
    def duration_seconds(self) -> float:
        end = self.ended_at if self.ended_at is not None else time.perf_counter()
        return end - self.started_at

    @property
    def duration_ms(self) -> float:
        return self.duration_seconds * 1000

    def add_metric(self, key: str, value: Any) -> "StepTimer":
        self.metrics[key] = value
        return self

    def to_log_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"duration_ms": round(self.duration_ms, 2), "span_id": self.span_id}
        if self.parent_span_id:
            data["parent_span_id"] = self.parent_span_id
        data.update(self.metrics)
        return data

    def to_error_dict(self) -> dict[str, Any]:
        data = self.to_log_dict()
        data["status"] = "error"
        if self.error is not None:
            data["error_type"] = type(self.error).__name__
            data["error_message"] = str(self.error)
        return data


def _error_level(error: BaseException) -> str:
    # Imported lazily: core.errors is independent of logging.
    from gallery.core.errors import GalleryError

    if isinstance(error, GalleryError) and not error.fatal:
        return "warning"
    return "error"


@contextmanager
def timed_block(step: str = "unnamed") -> Iterator[StepTimer]:
    """Measure a block without logging or touching the context."""
    timer = StepTimer(step=step, parent_span_id=get_context().span_id)
    try:
        yield timer
    finally:
        timer.stop()


@contextmanager
def log_step(event: str, log_start: bool = True, level: str = "info", **fields: Any) -> Iterator[StepTimer]:
    """
    Log ``event`` as a traced step; exceptions are logged and re-raised.

    Example:
        with log_step("fetch", repository=url, ref=ref) as timer:
            commit = fetch(url, ref)
            timer.add_metric("commit", commit)
    """
    parent = get_context().span_id
    timer = StepTimer(step=event, parent_span_id=parent, metrics=dict(fields))
    token = push_context(step=event, span_id=timer.span_id, parent_span_id=parent)
    try:
        if log_start:
            logger.debug(f"{event}.start", span_id=timer.span_id, parent_span_id=parent, **fields)
        yield timer
    except Exception as e:
        timer.stop()
        timer.error = e
        getattr(logger, _error_level(e))(f"{event}.error", **timer.to_error_dict())
        raise
    finally:
        timer.stop()
        token.restore()

    getattr(logger, level)(f"{event}.end", **timer.to_log_dict())
