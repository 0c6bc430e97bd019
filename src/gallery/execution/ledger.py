"""Validation status ledger.

The validation workflow runs every example against several tool versions
(container images) and persists the outcome for the build to display::

    {
      "generated_at": "2026-10-16T12:00:00Z",
      "examples": {
        "official-poisson": {
          "commit": "5d0c...",
          "results": {"ghcr.io/evalf/nutils:7": "passed", "ghcr.io/evalf/nutils:8": "failed"}
        },
        "user-cavity": {
          "fetch_failed": true,
          "error": "Failed to fetch 'main' from https://..."
        }
      }
    }

"failed" (the script broke) and ``fetch_failed`` (the code could not even
be fetched) stay distinct: they have different owners.
"""

from __future__ import annotations

import os
import tempfile
import threading
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, PrivateAttr, ValidationError

from gallery.core.errors import OutputError
from gallery.framework.logging import get_logger

logger = get_logger(__name__)


class VersionResult(str, Enum):
    PASSED = "passed"
    FAILED = "failed"


class OverallStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    FETCH_FAILED = "fetch_failed"
    UNTESTED = "untested"


class ExampleStatus(BaseModel):
    """Validation status of one example."""

    commit: str | None = None
    fetch_failed: bool = False
    error: str | None = None
    results: dict[str, VersionResult] = Field(default_factory=dict)

    @property
    def overall(self) -> OverallStatus:
        if self.fetch_failed:
            return OverallStatus.FETCH_FAILED
        if not self.results:
            return OverallStatus.UNTESTED
        if all(result == VersionResult.PASSED for result in self.results.values()):
            return OverallStatus.PASSED
        return OverallStatus.FAILED


class StatusLedger(BaseModel):
    """Mapping of example id to :class:`ExampleStatus`; safe to update from worker threads."""

    generated_at: datetime | None = None
    examples: dict[str, ExampleStatus] = Field(default_factory=dict)

    _lock: threading.Lock = PrivateAttr(default_factory=threading.Lock)

    def record_result(self, example_id: str, version: str, passed: bool, commit: str | None = None) -> None:
        with self._lock:
            status = self.examples.setdefault(example_id, ExampleStatus())
            status.results[version] = VersionResult.PASSED if passed else VersionResult.FAILED
            if commit is not None:
                status.commit = commit

    def record_fetch_failure(self, example_id: str, error: str) -> None:
        with self._lock:
            self.examples[example_id] = ExampleStatus(fetch_failed=True, error=error)

    def get(self, example_id: str) -> ExampleStatus | None:
        return self.examples.get(example_id)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: Path | str) -> StatusLedger:
        """Read a ledger; a missing file is an empty ledger.

        Raises:
            OutputError: the file exists but is not a valid ledger.
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return cls()
        except OSError as e:
            raise OutputError(f"Cannot read status ledger: {e}", cause=e, fatal=False).with_context(
                path=str(path)
            ) from e
        try:
            return cls.model_validate_json(text)
        except ValidationError as e:
            raise OutputError(f"Invalid status ledger: {e}", cause=e, fatal=False).with_context(path=str(path)) from e

    def save(self, path: Path | str) -> Path:
        """Write the ledger atomically (temp file + rename)."""
        path = Path(path)
        with self._lock:
            self.generated_at = datetime.now(UTC)
            payload = self.model_dump_json(indent=2)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp = tempfile.mkstemp(prefix=".status-", suffix=".json", dir=path.parent)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp, path)
        except OSError as e:
            raise OutputError(f"Cannot write status ledger: {e}", cause=e).with_context(path=str(path)) from e
        logger.info("ledger.saved", path=str(path), examples=len(self.examples))
        return path
