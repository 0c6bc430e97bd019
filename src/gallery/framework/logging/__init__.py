"""
Structured logging for the gallery builder (structlog).

    from gallery.framework.logging import configure_logging, get_logger, log_step, push_context

    configure_logging()
    log = get_logger(__name__)

    token = push_context(example_id="official-poisson")
    with log_step("sandbox.run", image=image):
        runner.run(...)
    token.restore()
"""

from gallery.framework.logging.config import configure_logging
from gallery.framework.logging.context import (
    LogContext,
    bind_context,
    clear_context,
    get_context,
    get_logger,
    push_context,
    set_context,
)
from gallery.framework.logging.timing import StepTimer, log_step, timed_block

__all__ = [
    "configure_logging",
    "get_logger",
    "LogContext",
    "get_context",
    "set_context",
    "bind_context",
    "push_context",
    "clear_context",
    "StepTimer",
    "log_step",
    "timed_block",
]
