"""
Shared pytest fixtures for the gallery builder tests.

This module provides:
- Isolation fixtures (GALLERY_* environment, settings cache, log context)
- A local git repository factory (skipped when git is not installed)
- A fake sandbox runner and a fake repository cache for pipeline tests
- Helpers for writing execution logs and declarative descriptors

Usage:
    Fixtures are auto-discovered by pytest:

    def test_something(git_repo, fake_runner):
        ...
"""

from __future__ import annotations

import hashlib
import os
import shutil
import subprocess
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import pytest
import yaml

from gallery.core.errors import FetchError
from gallery.core.settings import GallerySettings, clear_settings_cache
from gallery.execution.fetcher import Checkout
from gallery.execution.git import is_commit
from gallery.execution.models import LOG_FILENAME, RunOutcome, RunState
from gallery.framework.logging import clear_context

GITHUB_REPO = "https://github.com/jdoe/cavity.git"


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Iterator[None]:
    """Drop GALLERY_* variables, clear caches and run inside ``tmp_path``.

    Running inside ``tmp_path`` keeps relative default paths (``target/``,
    ``.env``) away from the repository.
    """
    for key in list(os.environ):
        if key.startswith("GALLERY_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    clear_settings_cache()
    clear_context()
    yield
    clear_settings_cache()
    clear_context()


# =============================================================================
# Execution Logs
# =============================================================================


def image_file(seed: str, ext: str = "png") -> str:
    """A content-addressed image filename (40 hex digits)."""
    return f"{hashlib.sha1(seed.encode()).hexdigest()}.{ext}"


def log_line(name: str, filename: str) -> str:
    return f'<li><a href="{filename}" download="{name}">{name}</a></li>'


def write_log(directory: Path, events: list[tuple[str, str]]) -> Path:
    """Write ``log.html`` announcing ``(name, filename)`` events in order."""
    directory.mkdir(parents=True, exist_ok=True)
    body = "\n".join(log_line(name, filename) for name, filename in events)
    path = directory / LOG_FILENAME
    path.write_text(f"<html><body><ul>\n{body}\n</ul></body></html>\n", encoding="utf-8")
    return path


# =============================================================================
# Descriptors
# =============================================================================


def descriptor(**overrides) -> dict:
    data = {
        "name": "Lid-driven cavity",
        "authors": ["Jane Doe", "John Roe"],
        "description": "Flow in a **lid-driven** cavity.",
        "repository": GITHUB_REPO,
        "revision": "main",
        "script": "cavity.py",
        "tags": ["flow", "stokes"],
    }
    data.update(overrides)
    return data


def write_descriptor(directory: Path, stem: str, **overrides) -> Path:
    directory.mkdir(parents=True, exist_ok=True)
    path = directory / f"{stem}.yaml"
    path.write_text(yaml.safe_dump(descriptor(**overrides), sort_keys=False), encoding="utf-8")
    return path


# =============================================================================
# Settings
# =============================================================================


@pytest.fixture
def make_settings(tmp_path: Path):
    """Factory for settings rooted in ``tmp_path`` with official examples off."""

    def _make(**overrides) -> GallerySettings:
        values = {
            "include_official": False,
            "user_examples_dir": tmp_path / "examples",
            "target_dir": tmp_path / "target" / "website",
            "static_dir": tmp_path / "static",
            "status_file": tmp_path / "target" / "status.json",
        }
        values.update(overrides)
        return GallerySettings(**values)

    return _make


# =============================================================================
# Git
# =============================================================================


class GitRepo:
    """A throwaway non-bare repository with a ``main`` branch."""

    def __init__(self, path: Path, env: dict[str, str]):
        self.path = path
        self.env = env

    def git(self, *args: str) -> str:
        result = subprocess.run(
            ["git", *args], cwd=self.path, env=self.env, capture_output=True, text=True, check=True
        )
        return result.stdout.strip()

    def write(self, relpath: str, content: str) -> Path:
        path = self.path / relpath
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")
        return path

    def commit(self, message: str = "update") -> str:
        self.git("add", "-A")
        self.git("commit", "--quiet", "-m", message)
        return self.git("rev-parse", "HEAD")

    @property
    def url(self) -> str:
        return self.path.as_uri()


@pytest.fixture
def git_repo(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> GitRepo:
    """Initialized repository on branch ``main``; skipped without git."""
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    home = tmp_path / "home"
    home.mkdir()
    # Code under test inherits os.environ; keep user/system config out.
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Test")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "test@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Test")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "test@example.com")

    path = tmp_path / "origin"
    path.mkdir()
    repo = GitRepo(path, dict(os.environ))
    repo.git("init", "--quiet")
    repo.git("symbolic-ref", "HEAD", "refs/heads/main")
    return repo


# =============================================================================
# Fakes
# =============================================================================


class FakeRunner:
    """Stands in for ``SandboxRunner``: writes a log instead of running a container.

    ``events`` maps a script path to the ``(name, filename)`` pairs its log
    announces; ``exit_codes`` maps a script path to its exit status.
    """

    def __init__(self, image: str = "ghcr.io/evalf/nutils:7", events=None, exit_codes=None):
        self.image = image
        self.events: dict[str, list[tuple[str, str]]] = events or {}
        self.exit_codes: dict[str, int] = exit_codes or {}
        self.calls: list[tuple[Path, str, Path]] = []

    def run(self, tree, script, output_dir) -> RunOutcome:
        output_dir = Path(output_dir)
        self.calls.append((Path(tree), script, output_dir))
        events = self.events.get(script, [])
        write_log(output_dir, events)
        for _, filename in events:
            (output_dir / filename).write_bytes(b"\x89PNG")
        code = self.exit_codes.get(script, 0)
        return RunOutcome(
            state=RunState.SUCCEEDED if code == 0 else RunState.FAILED,
            output_dir=output_dir,
            exit_code=code,
        )


class FakeCache:
    """Stands in for ``RepositoryCache``: symbolic refs map to fixed commits."""

    def __init__(self, root: Path, failing: set[str] | None = None):
        self.root = root
        self.failing = failing or set()
        self.checkouts: list[tuple[str, str]] = []

    def resolve(self, repository: str, ref: str) -> str:
        if repository in self.failing:
            raise FetchError(f"Failed to fetch {ref!r} from {repository}").with_context(
                repository=repository, revision=ref, stage="fetch"
            )
        if is_commit(ref):
            return ref
        return hashlib.sha1(f"{repository}@{ref}".encode()).hexdigest()

    @contextmanager
    def checkout(self, repository: str, ref: str) -> Iterator[Checkout]:
        commit = self.resolve(repository, ref)
        path = self.root / commit
        path.mkdir(parents=True, exist_ok=True)
        self.checkouts.append((repository, commit))
        yield Checkout(path=path, repository=repository, commit=commit)


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def fake_cache(tmp_path: Path) -> FakeCache:
    return FakeCache(tmp_path / "checkouts")
