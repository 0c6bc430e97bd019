"""
structlog setup for the gallery builder.

One call at CLI startup routes every ``gallery.*`` logger through structlog
and onto stderr, keeping stdout free for command output (tables, JSON).

Level and format default to ``GallerySettings.log_level`` /
``log_format`` (``GALLERY_LOG_LEVEL``, ``GALLERY_LOG_FORMAT``)::

    configure_logging()                         # settings / environment
    configure_logging(level="DEBUG", format="json", force=True)

JSON lines carry the bound example context, so a parallel build can be
filtered per example::

    {"event": "sandbox.run.end", "example_id": "official-poisson",
     "exit_code": 0, "duration_ms": 5012.4, "level": "info", ...}
"""

import logging
import sys

import structlog
from structlog.types import Processor

from gallery.framework.logging.context import add_context_processor

FORMATS = ("console", "json")

# Third-party loggers that are chatty at DEBUG.
_QUIET_LOGGERS = ("MARKDOWN",)

_configured = False


def _resolve_level(level: str | None) -> int:
    if level is None:
        from gallery.core.settings import get_settings

        level = get_settings().log_level
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def _resolve_format(format: str | None) -> str:
    if format is None:
        from gallery.core.settings import get_settings

        format = get_settings().log_format
    format = format.lower()
    if format not in FORMATS:
        raise ValueError(f"Unknown log format: {format} (expected console or json)")
    return format


def _renderer(format: str) -> Processor:
    if format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=sys.stderr.isatty(),
        exception_formatter=structlog.dev.plain_traceback,
    )


def configure_logging(level: str | None = None, format: str | None = None, force: bool = False) -> None:
    """
    Configure structlog and the stdlib root logger.

    A second call is a no-op unless ``force`` is set (the CLI forces, since
    its options may differ from the environment).

    Raises:
        ValueError: unknown level or format.
    """
    global _configured

    if _configured and not force:
        return

    log_level = _resolve_level(level)
    renderer = _renderer(_resolve_format(format))

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_context_processor,
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=log_level, force=True)
    logging.getLogger("gallery").setLevel(log_level)
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(log_level, logging.INFO))

    _configured = True
