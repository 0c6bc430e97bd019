"""Revision fetching with a shared repository cache.

Every example names a repository and a revision. Many examples share both
(all official examples come from one commit), and the validation workflow
runs each example several times. ``RepositoryCache`` keeps one bare
repository per remote URL for the lifetime of a batch and hands out
disposable checkouts::

    RepositoryCache (batch lifetime, context manager)
    ┌───────────────────────────────────────────────────────────────┐
    │  cache_dir/                                                   │
    │    repos/<url-hash>.git      bare repo, one per URL           │
    │       refs/gallery/<commit>  pins every fetched commit        │
    │    worktrees/checkout-*      disposable, one per checkout()   │
    │                                                               │
    │  resolve(url, ref)   git fetch --depth 1 <url> <ref>          │
    │                      → 40-hex commit, memoized per (url, ref) │
    │  checkout(url, ref)  git worktree add --detach <dir> <commit> │
    │                      → Checkout, removed on exit              │
    └───────────────────────────────────────────────────────────────┘

Concurrency contract:
    One lock per repository URL serializes fetches and worktree add/remove
    for that URL. Checkouts of different URLs proceed independently. Work
    inside a checkout (the sandbox run) happens outside the lock.

Library directory:
    If a checkout contains a top-level directory named after the library
    (``nutils``), it is renamed to ``nutils.tmp`` so the script imports the
    library installed in the container, not the sources in the tree.

Failures (network, unknown ref, authentication, timeout) raise
:class:`~gallery.core.errors.FetchError`: "could not verify", never
"verified and failing".
"""

from __future__ import annotations

import hashlib
import shutil
import tempfile
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path

from gallery.core.errors import FetchError
from gallery.execution.git import DEFAULT_TIMEOUT, GitCommandError, is_commit, run_git
from gallery.framework.logging import get_logger, log_step

logger = get_logger(__name__)

PIN_NAMESPACE = "refs/gallery"


@dataclass(frozen=True)
class Checkout:
    """A materialized working tree of one exact commit."""

    path: Path
    repository: str
    commit: str


def _repo_key(repository: str) -> str:
    return hashlib.sha256(repository.encode("utf-8")).hexdigest()[:16]


class RepositoryCache:
    """Bare-repository cache shared by all examples of one batch.

    Example:
        >>> with RepositoryCache() as cache:
        ...     commit = cache.resolve("https://github.com/evalf/nutils.git", "release/7")
        ...     with cache.checkout("https://github.com/evalf/nutils.git", commit) as tree:
        ...         run_script(tree.path)
    """

    def __init__(
        self,
        cache_dir: Path | str | None = None,
        *,
        library_dir: str | None = "nutils",
        git_timeout: float | None = DEFAULT_TIMEOUT,
    ) -> None:
        self._requested_dir = Path(cache_dir) if cache_dir is not None else None
        self._owned_tmp: tempfile.TemporaryDirectory | None = None
        self._root: Path | None = None
        self.library_dir = library_dir
        self.git_timeout = git_timeout

        self._registry_lock = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}
        self._resolved: dict[tuple[str, str], str] = {}
        self._initialized: set[str] = set()

    # ------------------------------------------------------------------
    # Lifetime
    # ------------------------------------------------------------------

    def __enter__(self) -> RepositoryCache:
        self.open()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def open(self) -> None:
        if self._root is not None:
            return
        if self._requested_dir is None:
            self._owned_tmp = tempfile.TemporaryDirectory(prefix="gallery-repos-")
            self._root = Path(self._owned_tmp.name)
        else:
            self._root = self._requested_dir
        (self._root / "repos").mkdir(parents=True, exist_ok=True)
        (self._root / "worktrees").mkdir(parents=True, exist_ok=True)
        logger.debug("fetch.cache.opened", root=str(self._root))

    def close(self) -> None:
        if self._root is None:
            return
        for key in list(self._initialized):
            try:
                run_git(["worktree", "prune"], cwd=self._root / "repos" / f"{key}.git", timeout=self.git_timeout)
            except GitCommandError as e:
                logger.warning("fetch.cache.prune_failed", error=str(e))
        if self._owned_tmp is not None:
            self._owned_tmp.cleanup()
            self._owned_tmp = None
        logger.debug("fetch.cache.closed", root=str(self._root))
        self._root = None
        self._resolved.clear()
        self._initialized.clear()

    @property
    def root(self) -> Path:
        if self._root is None:
            raise RuntimeError("RepositoryCache is not open")
        return self._root

    # ------------------------------------------------------------------
    # Locking
    # ------------------------------------------------------------------

    def _lock_for(self, repository: str) -> threading.Lock:
        with self._registry_lock:
            return self._locks.setdefault(repository, threading.Lock())

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _bare_repo(self, repository: str) -> Path:
        """Bare repository for ``repository``; caller holds the URL lock."""
        key = _repo_key(repository)
        path = self.root / "repos" / f"{key}.git"
        if key not in self._initialized:
            if not (path / "HEAD").is_file():
                run_git(["init", "--bare", "--quiet", str(path)], timeout=self.git_timeout)
            self._initialized.add(key)
        return path

    def _has_commit(self, bare: Path, commit: str) -> bool:
        try:
            run_git(["cat-file", "-e", f"{commit}^{{commit}}"], cwd=bare, timeout=self.git_timeout)
        except GitCommandError:
            return False
        return True

    def resolve(self, repository: str, ref: str) -> str:
        """Resolve ``ref`` (branch, tag or commit) of ``repository`` to a commit.

        The first call per ``(repository, ref)`` fetches with depth 1; later
        calls are served from memory.

        Raises:
            FetchError: git failed to fetch or resolve the ref.
        """
        key = (repository, ref)
        with self._lock_for(repository):
            if key in self._resolved:
                return self._resolved[key]
            try:
                bare = self._bare_repo(repository)
                if is_commit(ref) and self._has_commit(bare, ref):
                    commit = ref
                else:
                    with log_step("fetch", repository=repository, ref=ref) as timer:
                        run_git(
                            ["fetch", "--quiet", "--depth", "1", "--no-tags", repository, ref],
                            cwd=bare,
                            timeout=self.git_timeout,
                        )
                        commit = run_git(["rev-parse", "FETCH_HEAD^{commit}"], cwd=bare, timeout=self.git_timeout).strip()
                        timer.add_metric("commit", commit)
                    run_git(["update-ref", f"{PIN_NAMESPACE}/{commit}", commit], cwd=bare, timeout=self.git_timeout)
            except GitCommandError as e:
                raise FetchError(f"Failed to fetch {ref!r} from {repository}: {e}", cause=e).with_context(
                    repository=repository, revision=ref, stage="fetch"
                ) from e

            if not is_commit(commit):
                raise FetchError(f"git resolved {ref!r} to unexpected value {commit!r}").with_context(
                    repository=repository, revision=ref, stage="fetch"
                )
            self._resolved[key] = commit
            # A resolved commit is also its own ref.
            self._resolved.setdefault((repository, commit), commit)

        logger.info("fetch.resolved", repository=repository, ref=ref, commit=commit)
        return commit

    # ------------------------------------------------------------------
    # Checkouts
    # ------------------------------------------------------------------

    @contextmanager
    def checkout(self, repository: str, ref: str) -> Iterator[Checkout]:
        """Materialize ``ref`` of ``repository`` in a disposable worktree.

        Raises:
            FetchError: the ref could not be fetched or checked out.
        """
        commit = self.resolve(repository, ref)
        path = Path(tempfile.mkdtemp(prefix="checkout-", dir=self.root / "worktrees"))

        with self._lock_for(repository):
            bare = self._bare_repo(repository)
            try:
                run_git(["worktree", "add", "--detach", "--quiet", str(path), commit], cwd=bare, timeout=self.git_timeout)
            except GitCommandError as e:
                shutil.rmtree(path, ignore_errors=True)
                raise FetchError(f"Failed to check out {commit}: {e}", cause=e).with_context(
                    repository=repository, revision=commit, stage="fetch"
                ) from e

        try:
            self._hide_library_sources(path, repository, commit)
            logger.debug("fetch.checkout.created", path=str(path), commit=commit)
            yield Checkout(path=path, repository=repository, commit=commit)
        finally:
            self._remove_worktree(repository, bare, path)

    def _hide_library_sources(self, path: Path, repository: str, commit: str) -> None:
        if not self.library_dir:
            return
        library = path / self.library_dir
        if library.is_dir():
            try:
                library.rename(path / f"{self.library_dir}.tmp")
            except OSError as e:
                raise FetchError(f"Cannot move {self.library_dir}/ aside in checkout: {e}", cause=e).with_context(
                    repository=repository, revision=commit, stage="fetch"
                ) from e
            logger.debug("fetch.checkout.library_renamed", library=self.library_dir)

    def _remove_worktree(self, repository: str, bare: Path, path: Path) -> None:
        with self._lock_for(repository):
            try:
                run_git(["worktree", "remove", "--force", str(path)], cwd=bare, timeout=self.git_timeout)
            except GitCommandError as e:
                logger.warning("fetch.checkout.remove_failed", path=str(path), error=str(e))
                shutil.rmtree(path, ignore_errors=True)
                try:
                    run_git(["worktree", "prune"], cwd=bare, timeout=self.git_timeout)
                except GitCommandError as prune_error:
                    logger.warning("fetch.cache.prune_failed", error=str(prune_error))
