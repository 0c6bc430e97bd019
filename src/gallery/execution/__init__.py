"""Execution layer -- fetch a revision, run a script, keep its outputs.

Architecture::

    git.py          git subprocess wrapper
    fetcher.py      RepositoryCache (bare repos, shallow fetch, worktrees)
    sandbox.py      SandboxRunner (podman/docker, no network, timeout)
    models.py       RunState machine and RunOutcome
    outputs.py      OutputStore (staging, commit, completion marker)
    ledger.py       StatusLedger (multi-version validation results)
    validation.py   Validation workflow (imported explicitly)
"""

from gallery.execution.fetcher import Checkout, RepositoryCache
from gallery.execution.git import GitCommandError, is_commit, run_git, show_toplevel_and_head
from gallery.execution.ledger import ExampleStatus, OverallStatus, StatusLedger, VersionResult
from gallery.execution.models import (
    LOG_FILENAME,
    InvalidTransitionError,
    RunOutcome,
    RunState,
    RunTracker,
    validate_transition,
)
from gallery.execution.outputs import MARKER_NAME, OutputStore
from gallery.execution.sandbox import SandboxRunner

__all__ = [
    # git
    "GitCommandError",
    "is_commit",
    "run_git",
    "show_toplevel_and_head",
    # fetcher
    "Checkout",
    "RepositoryCache",
    # sandbox
    "SandboxRunner",
    # models
    "LOG_FILENAME",
    "InvalidTransitionError",
    "RunOutcome",
    "RunState",
    "RunTracker",
    "validate_transition",
    # outputs
    "MARKER_NAME",
    "OutputStore",
    # ledger
    "ExampleStatus",
    "OverallStatus",
    "StatusLedger",
    "VersionResult",
]
