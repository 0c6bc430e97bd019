"""Thin wrapper around the ``git`` CLI.

All repository access goes through :func:`run_git` so that failures always
surface as :class:`GitCommandError` with the command, exit status and
stderr attached, whatever the cause (missing binary, timeout, non-zero
exit).
"""

from __future__ import annotations

import os
import re
import subprocess
from pathlib import Path

from gallery.framework.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TIMEOUT = 300.0

COMMIT_RE = re.compile(r"^[0-9a-f]{40}$")


def is_commit(revision: str) -> bool:
    """True when ``revision`` is a full 40-hex commit hash."""
    return bool(COMMIT_RE.match(revision))


class GitCommandError(RuntimeError):
    """Raised when a git command cannot be run or exits non-zero."""

    def __init__(self, args: list[str], message: str, returncode: int | None = None, stderr: str = ""):
        self.args_list = args
        self.returncode = returncode
        self.stderr = stderr
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"git {' '.join(args)} {message}{detail}")


def run_git(
    args: list[str],
    *,
    cwd: Path | str | None = None,
    timeout: float | None = DEFAULT_TIMEOUT,
) -> str:
    """Run ``git <args>`` and return its stdout.

    stdin is closed and terminal prompts are disabled so git never waits
    for credentials.

    Raises:
        GitCommandError: git is missing, timed out, or exited non-zero.
    """
    cmd = ["git", *args]
    logger.debug("git.exec", cmd=" ".join(cmd), cwd=str(cwd) if cwd else None)
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            stdin=subprocess.DEVNULL,
            capture_output=True,
            text=True,
            timeout=timeout,
            env={**os.environ, "GIT_TERMINAL_PROMPT": "0"},
        )
    except FileNotFoundError as exc:
        raise GitCommandError(args, "failed: git executable not found") from exc
    except subprocess.TimeoutExpired as exc:
        raise GitCommandError(args, f"timed out after {timeout}s") from exc
    except OSError as exc:
        raise GitCommandError(args, f"could not be started: {exc}") from exc

    if result.returncode != 0:
        raise GitCommandError(
            args, f"failed (exit {result.returncode})", returncode=result.returncode, stderr=result.stderr
        )
    return result.stdout


def show_toplevel_and_head(directory: Path | str, *, timeout: float | None = DEFAULT_TIMEOUT) -> tuple[Path, str]:
    """Return the checkout top level and HEAD commit for ``directory``."""
    lines = run_git(["rev-parse", "--show-toplevel", "HEAD"], cwd=directory, timeout=timeout).splitlines()
    if len(lines) != 2:
        raise GitCommandError(["rev-parse", "--show-toplevel", "HEAD"], "yielded unexpected output")
    return Path(lines[0]), lines[1].strip()
