"""Tests for SandboxRunner -- the container CLI is replaced by a fake ``subprocess.run``."""

from __future__ import annotations

import subprocess
from pathlib import Path

import pytest

from gallery.core.errors import SandboxError
from gallery.execution import sandbox as sandbox_module
from gallery.execution.models import RunState
from gallery.execution.sandbox import SandboxRunner

IMAGE = "ghcr.io/evalf/nutils:7"


# ── Helpers ──────────────────────────────────────────────────────────────


class FakeRun:
    """Records calls and answers with a scripted result per runtime verb.

    ``returncode``/``stderr``/``raises`` script the ``start`` call (the
    container's own exit); ``create_*`` script the ``create`` call.
    """

    def __init__(self):
        self.returncode = 0
        self.stdout = ""
        self.stderr = ""
        self.raises: Exception | None = None
        self.create_returncode = 0
        self.create_stderr = ""
        self.create_raises: Exception | None = None
        self.calls: list[list[str]] = []
        self.kwargs: dict[str, dict] = {}

    def __call__(self, cmd, **kwargs):
        verb = cmd[1]
        self.calls.append(list(cmd))
        self.kwargs[verb] = kwargs
        if verb == "create":
            if self.create_raises is not None:
                raise self.create_raises
            return subprocess.CompletedProcess(cmd, self.create_returncode, "0123abcd\n", self.create_stderr)
        if verb == "start":
            if self.raises is not None:
                raise self.raises
            return subprocess.CompletedProcess(cmd, self.returncode, self.stdout, self.stderr)
        if verb == "rm":
            return subprocess.CompletedProcess(cmd, 0, "", "")
        return subprocess.CompletedProcess(cmd, 0, "podman version 5.0.0\n", "")

    def verbs(self) -> list[str]:
        return [cmd[1] for cmd in self.calls]


@pytest.fixture
def fake_run(monkeypatch) -> FakeRun:
    fake = FakeRun()
    monkeypatch.setattr(sandbox_module.shutil, "which", lambda name: f"/usr/bin/{name}")
    monkeypatch.setattr(sandbox_module.subprocess, "run", fake)
    return fake


@pytest.fixture
def dirs(tmp_path: Path) -> tuple[Path, Path]:
    tree = tmp_path / "tree"
    out = tmp_path / "out"
    tree.mkdir()
    out.mkdir()
    return tree, out


def _name(cmd: list[str]) -> str:
    return next(arg for arg in cmd if arg.startswith("--name=")).split("=", 1)[1]


# ── Command line ─────────────────────────────────────────────────────────


class TestCommands:
    def test_create_shape(self, fake_run, dirs):
        tree, out = dirs
        cmd = SandboxRunner(IMAGE).create_command(tree, "examples/poisson.py", out, name="gallery-x")
        assert cmd == [
            "/usr/bin/podman",
            "create",
            "--network=none",
            "--name=gallery-x",
            f"--mount=type=bind,destination=/app,source={tree.resolve()}",
            f"--mount=type=bind,destination=/log,source={out.resolve()}",
            IMAGE,
            "examples/poisson.py",
        ]

    def test_start_shape(self, fake_run):
        assert SandboxRunner(IMAGE).start_command("gallery-x") == ["/usr/bin/podman", "start", "--attach", "gallery-x"]

    def test_extra_args_before_image(self, fake_run, dirs):
        tree, out = dirs
        cmd = SandboxRunner(IMAGE, extra_args=["--memory=2g"]).create_command(tree, "s.py", out, name="g")
        assert cmd[-3:] == ["--memory=2g", IMAGE, "s.py"]

    def test_docker_runtime(self, fake_run, dirs):
        tree, out = dirs
        cmd = SandboxRunner(IMAGE, runtime="docker").create_command(tree, "s.py", out, name="g")
        assert cmd[0] == "/usr/bin/docker"

    def test_comma_in_path(self, fake_run, tmp_path):
        tree = tmp_path / "a,b"
        tree.mkdir()
        with pytest.raises(SandboxError, match="','"):
            SandboxRunner(IMAGE).create_command(tree, "s.py", tmp_path, name="g")


# ── Runs ─────────────────────────────────────────────────────────────────


class TestRun:
    def test_success(self, fake_run, dirs):
        tree, out = dirs
        outcome = SandboxRunner(IMAGE).run(tree, "s.py", out)
        assert outcome.state == RunState.SUCCEEDED
        assert outcome.exit_code == 0
        assert outcome.output_dir == out
        assert not outcome.timed_out

    def test_create_start_remove(self, fake_run, dirs):
        SandboxRunner(IMAGE).run(dirs[0], "s.py", dirs[1])
        create, start, rm = fake_run.calls
        name = _name(create)
        assert start == ["/usr/bin/podman", "start", "--attach", name]
        assert rm == ["/usr/bin/podman", "rm", "--force", name]

    def test_script_failure_is_an_outcome(self, fake_run, dirs):
        fake_run.returncode = 1
        fake_run.stderr = "Traceback\nValueError: diverged\n"
        outcome = SandboxRunner(IMAGE).run(dirs[0], "s.py", dirs[1])
        assert outcome.state == RunState.FAILED
        assert outcome.exit_code == 1
        assert "diverged" in outcome.output_tail
        assert fake_run.verbs()[-1] == "rm"

    @pytest.mark.parametrize("code", [125, 126, 127])
    def test_any_script_exit_status_is_failure(self, fake_run, dirs, code):
        fake_run.returncode = code
        fake_run.stderr = f"Traceback\nSystemExit: {code}\n"
        outcome = SandboxRunner(IMAGE).run(dirs[0], "s.py", dirs[1])
        assert outcome.state == RunState.FAILED
        assert outcome.exit_code == code

    def test_create_failure_is_sandbox_error(self, fake_run, dirs):
        fake_run.create_returncode = 125
        fake_run.create_stderr = "Error: image not known"
        with pytest.raises(SandboxError, match="image not known") as excinfo:
            SandboxRunner(IMAGE).run(dirs[0], "s.py", dirs[1])
        assert excinfo.value.fatal
        assert fake_run.verbs() == ["create"]

    def test_runtime_not_startable(self, fake_run, dirs):
        fake_run.create_raises = PermissionError("denied")
        with pytest.raises(SandboxError, match="Could not invoke"):
            SandboxRunner(IMAGE).run(dirs[0], "s.py", dirs[1])

    def test_timeout_removes_container(self, fake_run, dirs):
        fake_run.raises = subprocess.TimeoutExpired(cmd="podman", timeout=5, stderr=b"still solving")
        outcome = SandboxRunner(IMAGE, timeout=5).run(dirs[0], "s.py", dirs[1])

        assert outcome.state == RunState.FAILED
        assert outcome.timed_out
        assert outcome.output_tail == "still solving"
        create, _, rm = fake_run.calls
        assert rm == ["/usr/bin/podman", "rm", "--force", _name(create)]

    def test_timeout_passed_to_subprocess(self, fake_run, dirs):
        SandboxRunner(IMAGE, timeout=12.5).run(dirs[0], "s.py", dirs[1])
        assert fake_run.kwargs["start"]["timeout"] == 12.5
        assert fake_run.kwargs["start"]["stdin"] is subprocess.DEVNULL


# ── Runtime discovery ────────────────────────────────────────────────────


class TestRuntime:
    def test_missing_runtime(self, monkeypatch, dirs):
        monkeypatch.setattr(sandbox_module.shutil, "which", lambda name: None)
        with pytest.raises(SandboxError, match="not found"):
            SandboxRunner(IMAGE).run(dirs[0], "s.py", dirs[1])

    def test_check_available(self, fake_run):
        SandboxRunner(IMAGE).check_available()
        assert fake_run.calls == [["/usr/bin/podman", "--version"]]

    def test_check_available_failure(self, monkeypatch):
        monkeypatch.setattr(sandbox_module.shutil, "which", lambda name: f"/usr/bin/{name}")
        monkeypatch.setattr(
            sandbox_module.subprocess,
            "run",
            lambda cmd, **kw: subprocess.CompletedProcess(cmd, 1, "", "cannot connect"),
        )
        with pytest.raises(SandboxError, match="cannot connect"):
            SandboxRunner(IMAGE).check_available()
