"""Sandboxed script execution via the podman/docker CLI.

Runs exactly one example script against exactly one checkout inside a
container with no network. The container is created first and then
started, so the runtime's own failures are told apart from the script's
exit status::

    podman create --network=none --name=gallery-<id>
        --mount=type=bind,destination=/app,source=<checkout>
        --mount=type=bind,destination=/log,source=<output dir>
        <image> <script>
    podman start --attach gallery-<id>
    podman rm --force gallery-<id>

The image's entrypoint runs ``<script>`` relative to ``/app`` and writes its
HTML log (``log.html``) plus the rendered images to ``/log``.

Outcome mapping:

    ============================  ==========================================
    What happened                 Result
    ============================  ==========================================
    start exits 0                 RunOutcome(SUCCEEDED)
    start exits != 0              RunOutcome(FAILED), recorded, batch goes on
    timeout                       RunOutcome(FAILED, timed_out=True)
    runtime binary missing        SandboxError (aborts the build)
    create exits != 0             SandboxError (malformed mount, unknown
                                  image, broken runtime)
    mount path contains ``,``     SandboxError (cannot form a mount spec)
    ============================  ==========================================

``start --attach`` passes the container's exit status through unchanged,
so any status there (125 included) belongs to the script.

Uses the container CLI through ``subprocess``, no SDK dependency, so any
runtime exposing a docker-compatible CLI works.
"""

from __future__ import annotations

import shutil
import subprocess
import uuid
from collections.abc import Sequence
from pathlib import Path

from gallery.core.errors import SandboxError
from gallery.execution.models import RunOutcome, RunState, RunTracker
from gallery.framework.logging import get_logger, timed_block

logger = get_logger(__name__)

APP_MOUNT = "/app"
LOG_MOUNT = "/log"

_TAIL_LINES = 20


def _tail(text: str | bytes | None, lines: int = _TAIL_LINES) -> str:
    if not text:
        return ""
    if isinstance(text, bytes):
        text = text.decode("utf-8", errors="replace")
    return "\n".join(text.splitlines()[-lines:])


def _mount(source: Path, destination: str) -> str:
    source_str = str(source.resolve())
    if "," in source_str:
        raise SandboxError(f"cannot bind-mount path containing ',': {source_str}")
    return f"--mount=type=bind,destination={destination},source={source_str}"


class SandboxRunner:
    """Runs example scripts in a network-isolated container.

    Parameters
    ----------
    image
        Container image that provides the library and the log-writing
        entrypoint (e.g. ``ghcr.io/evalf/nutils:7``).
    runtime
        ``podman`` or ``docker`` (name on PATH, or an absolute path).
    timeout
        Seconds before a run is killed and recorded as failed; ``None``
        waits forever.
    extra_args
        Additional ``create`` options inserted before the image.
    """

    def __init__(
        self,
        image: str,
        *,
        runtime: str = "podman",
        timeout: float | None = None,
        extra_args: Sequence[str] = (),
    ) -> None:
        self.image = image
        self.runtime = runtime
        self.timeout = timeout
        self.extra_args = list(extra_args)
        self._runtime_cmd: str | None = None

    # ------------------------------------------------------------------
    # Runtime discovery
    # ------------------------------------------------------------------

    @property
    def runtime_cmd(self) -> str:
        """Absolute path of the runtime CLI.

        Raises:
            SandboxError: the runtime is not installed.
        """
        if self._runtime_cmd is None:
            found = shutil.which(self.runtime)
            if found is None:
                raise SandboxError(
                    f"Container runtime {self.runtime!r} not found on PATH. "
                    "Install podman (or docker and set GALLERY_SANDBOX_RUNTIME=docker)."
                )
            self._runtime_cmd = found
        return self._runtime_cmd

    def check_available(self) -> None:
        """Fail fast before a batch when the runtime cannot be invoked."""
        try:
            result = subprocess.run(
                [self.runtime_cmd, "--version"],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=30,
            )
        except (subprocess.TimeoutExpired, OSError) as exc:
            raise SandboxError(f"Container runtime {self.runtime!r} is not usable: {exc}", cause=exc) from exc
        if result.returncode != 0:
            raise SandboxError(f"Container runtime {self.runtime!r} is not usable: {result.stderr.strip()}")
        logger.debug("sandbox.runtime.available", runtime=self.runtime, version=result.stdout.strip())

    # ------------------------------------------------------------------
    # Execution
    # ------------------------------------------------------------------

    def create_command(self, tree: Path, script: str, output_dir: Path, *, name: str) -> list[str]:
        return [
            self.runtime_cmd,
            "create",
            "--network=none",
            f"--name={name}",
            _mount(tree, APP_MOUNT),
            _mount(output_dir, LOG_MOUNT),
            *self.extra_args,
            self.image,
            script,
        ]

    def start_command(self, name: str) -> list[str]:
        return [self.runtime_cmd, "start", "--attach", name]

    def _create(self, cmd: list[str], tracker: RunTracker) -> None:
        """Create the container; any failure here is the runtime's."""
        try:
            result = subprocess.run(
                cmd,
                stdin=subprocess.DEVNULL,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except (subprocess.TimeoutExpired, OSError) as exc:
            tracker.transition_to(RunState.SANDBOX_ERROR)
            raise SandboxError(f"Could not invoke {self.runtime!r}: {exc}", cause=exc) from exc
        if result.returncode != 0:
            tracker.transition_to(RunState.SANDBOX_ERROR)
            raise SandboxError(
                f"{self.runtime} failed to create the container (exit {result.returncode}): "
                f"{_tail(result.stderr, 5)}"
            )

    def run(self, tree: Path | str, script: str, output_dir: Path | str) -> RunOutcome:
        """Execute ``script`` (relative to ``tree``) and return the outcome.

        ``output_dir`` must exist; it receives the execution log.

        Raises:
            SandboxError: the runtime could not be invoked or could not
                create the container.
        """
        tree = Path(tree)
        output_dir = Path(output_dir)
        tracker = RunTracker()
        container_name = f"gallery-{uuid.uuid4().hex[:12]}"

        try:
            cmd = self.create_command(tree, script, output_dir, name=container_name)
        except SandboxError:
            tracker.transition_to(RunState.SANDBOX_ERROR)
            raise

        self._create(cmd, tracker)
        tracker.transition_to(RunState.RUNNING)
        logger.info("sandbox.run.start", script=script, image=self.image, container=container_name)

        try:
            with timed_block("sandbox.run") as timer:
                try:
                    result = subprocess.run(
                        self.start_command(container_name),
                        stdin=subprocess.DEVNULL,
                        capture_output=True,
                        text=True,
                        timeout=self.timeout,
                    )
                except subprocess.TimeoutExpired as exc:
                    timer.stop()
                    tracker.transition_to(RunState.FAILED)
                    logger.warning("sandbox.run.timeout", script=script, timeout=self.timeout)
                    return RunOutcome(
                        state=tracker.state,
                        output_dir=output_dir,
                        timed_out=True,
                        duration_seconds=timer.duration_seconds,
                        output_tail=_tail(exc.stderr) or _tail(exc.stdout),
                    )
                except OSError as exc:
                    tracker.transition_to(RunState.SANDBOX_ERROR)
                    raise SandboxError(f"Could not invoke {self.runtime!r}: {exc}", cause=exc) from exc
        finally:
            self._force_remove(container_name)

        tracker.transition_to(RunState.SUCCEEDED if result.returncode == 0 else RunState.FAILED)
        outcome = RunOutcome(
            state=tracker.state,
            output_dir=output_dir,
            exit_code=result.returncode,
            duration_seconds=timer.duration_seconds,
            output_tail=_tail(result.stderr) or _tail(result.stdout),
        )
        log = logger.info if outcome.succeeded else logger.warning
        log(
            "sandbox.run.end",
            script=script,
            state=outcome.state.value,
            exit_code=outcome.exit_code,
            duration_ms=round(timer.duration_ms, 2),
        )
        return outcome

    def _force_remove(self, container_name: str) -> None:
        """Remove the container, stopping it first if the client was killed."""
        try:
            subprocess.run(
                [self.runtime_cmd, "rm", "--force", container_name],
                stdin=subprocess.DEVNULL,
                capture_output=True,
                timeout=60,
            )
        except (subprocess.TimeoutExpired, OSError) as exc:
            logger.warning("sandbox.cleanup.failed", container=container_name, error=str(exc))
