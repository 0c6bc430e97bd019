"""Per-example output directories and the completion marker.

Each example's run writes into ``<target>/<example id>/``. Runs execute in
a staging directory beside the target and are moved into place only when
the sandbox returns, so an interrupted build never leaves a directory that
looks finished, and never leaves anything inside the published site::

    target/
      .website.staging/
        official-poisson-k2j3x/    in flight, never reused; swept at build start
      website/
        official-poisson/
          log.html
          2f4e...9c1a.png
          .complete                written only after a SUCCEEDED run

``.complete`` records what produced the directory (repository, commit,
script, image). With reuse enabled, a directory is only reused when its
marker matches the current run exactly.
"""

from __future__ import annotations

import json
import shutil
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from gallery.core.errors import OutputError
from gallery.execution.models import RunOutcome, RunState
from gallery.framework.logging import get_logger

logger = get_logger(__name__)

MARKER_NAME = ".complete"


def _utcnow() -> datetime:
    return datetime.now(UTC)


class OutputStore:
    """Manages ``<target>/<example id>`` directories."""

    def __init__(self, target_dir: Path | str) -> None:
        self.target_dir = Path(target_dir)
        # Beside the target so the final rename stays on one filesystem.
        self.staging_root = self.target_dir.parent / f".{self.target_dir.name}.staging"

    def ensure_target(self) -> None:
        try:
            self.target_dir.mkdir(parents=True, exist_ok=True)
            self.staging_root.mkdir(exist_ok=True)
        except OSError as e:
            raise OutputError(f"Failed to create output directory: {e}", cause=e).with_context(
                path=str(self.target_dir)
            ) from e

    def sweep_staging(self) -> int:
        """Remove staging directories left behind by a killed build.

        Call once before a build starts; in-flight runs of the current
        build would be removed too.
        """
        if not self.staging_root.is_dir():
            return 0
        stale = [path for path in self.staging_root.iterdir() if path.is_dir()]
        for path in stale:
            shutil.rmtree(path, ignore_errors=True)
        if stale:
            logger.info("outputs.staging.swept", directories=len(stale))
        return len(stale)

    def final_dir(self, example_id: str) -> Path:
        return self.target_dir / example_id

    def marker_path(self, example_id: str) -> Path:
        return self.final_dir(example_id) / MARKER_NAME

    # ------------------------------------------------------------------
    # Reuse
    # ------------------------------------------------------------------

    def read_marker(self, example_id: str) -> dict[str, Any] | None:
        path = self.marker_path(example_id)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("outputs.marker.unreadable", example_id=example_id, error=str(e))
            return None

    def reusable(self, example_id: str, identity: dict[str, str]) -> RunOutcome | None:
        """Outcome of a previous complete run with the same identity, if any."""
        marker = self.read_marker(example_id)
        if marker is None:
            return None
        if any(marker.get(key) != value for key, value in identity.items()):
            logger.info("outputs.marker.stale", example_id=example_id)
            return None
        return RunOutcome(
            state=RunState.SUCCEEDED,
            output_dir=self.final_dir(example_id),
            exit_code=marker.get("exit_code", 0),
            reused=True,
        )

    # ------------------------------------------------------------------
    # Staging and commit
    # ------------------------------------------------------------------

    def staging(self, example_id: str) -> Path:
        """Fresh empty staging directory for one run."""
        self.ensure_target()
        try:
            return Path(tempfile.mkdtemp(prefix=f"{example_id}-", dir=self.staging_root))
        except OSError as e:
            raise OutputError(f"Failed to create staging directory: {e}", cause=e).with_context(
                example_id=example_id, path=str(self.staging_root)
            ) from e

    def commit(self, example_id: str, staging: Path, outcome: RunOutcome, identity: dict[str, str]) -> RunOutcome:
        """Move ``staging`` into place and mark it when the run succeeded."""
        final = self.final_dir(example_id)
        try:
            if final.exists():
                shutil.rmtree(final)
            staging.rename(final)
            # Container runtimes may create the mount point with 0700.
            final.chmod(0o755)
            if outcome.succeeded:
                marker = {
                    **identity,
                    "exit_code": outcome.exit_code,
                    "completed_at": _utcnow().isoformat(),
                }
                (final / MARKER_NAME).write_text(json.dumps(marker, indent=2, sort_keys=True), encoding="utf-8")
        except OSError as e:
            raise OutputError(f"Failed to store run output: {e}", cause=e).with_context(
                example_id=example_id, path=str(final)
            ) from e
        return outcome.with_output_dir(final)

    def discard(self, staging: Path) -> None:
        shutil.rmtree(staging, ignore_errors=True)
