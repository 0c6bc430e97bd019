"""Execution-log scanner.

The sandboxed script writes an HTML log (``log.html``). Every figure the
script saves is announced on one line by an anchor::

    <a href="2f4e...9c1a.png" download="solution.png">solution.png</a>

Matching contract (one fixed rule):
    - ``href`` is exactly 40 lowercase hex digits followed by ``.png`` or
      ``.jpg``; this is the image filename
    - ``download`` immediately follows ``href`` and gives the logical name
    - the inner link text is not used
    - the first qualifying anchor on a line wins; other lines are skipped

The pattern lives in :class:`LogLinePattern` so it can be swapped without
touching selection.
"""

from __future__ import annotations

import re
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path

from gallery.execution.models import LOG_FILENAME
from gallery.framework.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class ImageEvent:
    """One (logical name, image filename) pair announced in the log."""

    name: str
    filename: str


class LogLinePattern:
    """Extracts at most one :class:`ImageEvent` from a log line."""

    DEFAULT = r'<a href="(?P<filename>[0-9a-f]{40}\.(?:png|jpg))" download="(?P<name>[^"]+)">'

    def __init__(self, pattern: str = DEFAULT):
        self.regex = re.compile(pattern)
        missing = {"filename", "name"} - set(self.regex.groupindex)
        if missing:
            raise ValueError(f"log pattern lacks named groups: {sorted(missing)}")

    def match(self, line: str) -> ImageEvent | None:
        m = self.regex.search(line)
        if m is None:
            return None
        return ImageEvent(name=m.group("name"), filename=m.group("filename"))


DEFAULT_PATTERN = LogLinePattern()


def iter_events(lines: Iterator[str], pattern: LogLinePattern = DEFAULT_PATTERN) -> Iterator[ImageEvent]:
    """Yield events from an iterable of log lines."""
    for line in lines:
        event = pattern.match(line)
        if event is not None:
            yield event


def scan_log(path: Path | str, pattern: LogLinePattern = DEFAULT_PATTERN) -> Iterator[ImageEvent]:
    """Lazily yield image events from the log at ``path``.

    A missing log yields nothing: a script that wrote no log produced no
    images. The file is read one line at a time and closed when the
    generator is exhausted or closed.
    """
    path = Path(path)
    try:
        log = path.open(encoding="utf-8", errors="replace")
    except FileNotFoundError:
        logger.debug("scan.log.missing", path=str(path))
        return
    with log:
        yield from iter_events(log, pattern)
