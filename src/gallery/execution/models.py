"""Sandbox run models.

Defines the lifecycle of one sandboxed script execution:

- RunState: ``pending → running → {succeeded, failed, sandbox_error}``
- RunOutcome: terminal result handed to scanning and the status ledger
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

LOG_FILENAME = "log.html"


class InvalidTransitionError(ValueError):
    """Raised when an illegal state transition is attempted.

    Transition validation is deliberately strict. If a legitimate
    transition is blocked, add it to ``RUN_VALID_TRANSITIONS`` explicitly.
    """

    def __init__(self, current: str, target: str) -> None:
        self.current = current
        self.target = target
        super().__init__(f"Invalid RunState transition: {current} → {target}")


class RunState(str, Enum):
    """State of one sandboxed execution.

    Valid transition graph::

        PENDING  → RUNNING | SANDBOX_ERROR
        RUNNING  → SUCCEEDED | FAILED | SANDBOX_ERROR
        SUCCEEDED, FAILED, SANDBOX_ERROR → (terminal)

    FAILED is a normal outcome (the script errored or timed out) and is
    recorded, not raised. SANDBOX_ERROR means the runtime itself could not
    be used and aborts the build.
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SANDBOX_ERROR = "sandbox_error"

    @property
    def is_terminal(self) -> bool:
        return not RUN_VALID_TRANSITIONS[self]


RUN_VALID_TRANSITIONS: dict[RunState, frozenset[RunState]] = {
    RunState.PENDING: frozenset({RunState.RUNNING, RunState.SANDBOX_ERROR}),
    RunState.RUNNING: frozenset({RunState.SUCCEEDED, RunState.FAILED, RunState.SANDBOX_ERROR}),
    RunState.SUCCEEDED: frozenset(),
    RunState.FAILED: frozenset(),
    RunState.SANDBOX_ERROR: frozenset(),
}


def validate_transition(current: RunState, target: RunState) -> None:
    if target not in RUN_VALID_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, target.value)


@dataclass
class RunTracker:
    """Mutable state holder used while a run is in flight."""

    state: RunState = RunState.PENDING
    history: list[RunState] = field(default_factory=lambda: [RunState.PENDING])

    def transition_to(self, target: RunState) -> None:
        validate_transition(self.state, target)
        self.state = target
        self.history.append(target)


@dataclass(frozen=True)
class RunOutcome:
    """Terminal result of one sandboxed execution."""

    state: RunState
    output_dir: Path
    exit_code: int | None = None
    timed_out: bool = False
    duration_seconds: float = 0.0
    output_tail: str = ""
    reused: bool = False

    @property
    def succeeded(self) -> bool:
        return self.state == RunState.SUCCEEDED

    @property
    def log_path(self) -> Path:
        return self.output_dir / LOG_FILENAME

    def with_output_dir(self, output_dir: Path) -> RunOutcome:
        return RunOutcome(
            state=self.state,
            output_dir=output_dir,
            exit_code=self.exit_code,
            timed_out=self.timed_out,
            duration_seconds=self.duration_seconds,
            output_tail=self.output_tail,
            reused=self.reused,
        )

    def describe(self) -> str:
        if self.timed_out:
            return "timed out"
        if self.exit_code is None:
            return self.state.value
        return f"{self.state.value} (exit {self.exit_code})"
