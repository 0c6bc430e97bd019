"""Tests for RepositoryCache against local repositories (file:// URLs)."""

from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from gallery.core.errors import FetchError
from gallery.execution.fetcher import RepositoryCache


@pytest.fixture
def origin(git_repo):
    git_repo.write("examples/poisson.py", "print('v1')\n")
    git_repo.write("nutils/__init__.py", "")
    git_repo.commit("v1")
    return git_repo


class TestResolve:
    def test_branch_to_commit(self, origin):
        head = origin.git("rev-parse", "HEAD")
        with RepositoryCache() as cache:
            assert cache.resolve(origin.url, "main") == head

    def test_tag(self, origin):
        origin.git("tag", "v1.0")
        head = origin.git("rev-parse", "HEAD")
        with RepositoryCache() as cache:
            assert cache.resolve(origin.url, "v1.0") == head

    def test_memoized_per_ref(self, origin):
        with RepositoryCache() as cache:
            first = cache.resolve(origin.url, "main")
            origin.write("examples/poisson.py", "print('v2')\n")
            origin.commit("v2")
            assert cache.resolve(origin.url, "main") == first

    def test_unknown_ref(self, origin):
        with RepositoryCache() as cache, pytest.raises(FetchError) as excinfo:
            cache.resolve(origin.url, "no-such-branch")
        ctx = excinfo.value.context
        assert ctx.repository == origin.url
        assert ctx.revision == "no-such-branch"
        assert ctx.stage == "fetch"

    def test_unreachable_repository(self, git_repo, tmp_path):
        with RepositoryCache() as cache, pytest.raises(FetchError):
            cache.resolve((tmp_path / "missing").as_uri(), "main")

    def test_persistent_cache_dir(self, origin, tmp_path):
        cache_dir = tmp_path / "cache"
        with RepositoryCache(cache_dir) as cache:
            commit = cache.resolve(origin.url, "main")
        assert (cache_dir / "repos").is_dir()
        with RepositoryCache(cache_dir) as cache:
            # Known commits resolve without fetching.
            assert cache.resolve(origin.url, commit) == commit


class TestCheckout:
    def test_materializes_exact_commit(self, origin):
        with RepositoryCache() as cache:
            with cache.checkout(origin.url, "main") as tree:
                assert tree.commit == origin.git("rev-parse", "HEAD")
                assert (tree.path / "examples" / "poisson.py").read_text() == "print('v1')\n"
                path = tree.path
            assert not path.exists()

    def test_library_dir_renamed(self, origin):
        with RepositoryCache() as cache, cache.checkout(origin.url, "main") as tree:
            assert not (tree.path / "nutils").exists()
            assert (tree.path / "nutils.tmp" / "__init__.py").is_file()

    def test_library_dir_disabled(self, origin):
        with RepositoryCache(library_dir=None) as cache, cache.checkout(origin.url, "main") as tree:
            assert (tree.path / "nutils").is_dir()

    def test_library_rename_blocked(self, origin):
        origin.write("nutils.tmp/notes.txt", "scratch\n")
        origin.commit("add nutils.tmp")
        with RepositoryCache() as cache:
            with pytest.raises(FetchError, match="nutils/ aside") as excinfo:
                with cache.checkout(origin.url, "main"):
                    pass
            assert excinfo.value.context.stage == "fetch"
            assert not excinfo.value.fatal
            assert list((cache.root / "worktrees").iterdir()) == []

    def test_checkouts_are_independent(self, origin):
        with RepositoryCache() as cache:
            with cache.checkout(origin.url, "main") as a, cache.checkout(origin.url, "main") as b:
                assert a.path != b.path
                (a.path / "scratch.txt").write_text("x")
                assert not (b.path / "scratch.txt").exists()

    def test_parallel_checkouts_of_two_commits(self, origin):
        origin.git("tag", "v1")
        origin.write("examples/poisson.py", "print('v2')\n")
        origin.commit("v2")
        origin.git("tag", "v2")

        with RepositoryCache() as cache:
            commits = {
                cache.resolve(origin.url, "v1"): "print('v1')\n",
                cache.resolve(origin.url, "v2"): "print('v2')\n",
            }
            order = list(commits) * 8

            def read(commit: str) -> tuple[str, str]:
                with cache.checkout(origin.url, commit) as tree:
                    return tree.commit, (tree.path / "examples" / "poisson.py").read_text()

            with ThreadPoolExecutor(max_workers=8) as pool:
                seen = list(pool.map(read, order))

            assert seen == [(commit, commits[commit]) for commit in order]
            assert list((cache.root / "worktrees").iterdir()) == []

    def test_removed_after_error(self, origin):
        with RepositoryCache() as cache:
            with pytest.raises(RuntimeError), cache.checkout(origin.url, "main") as tree:
                path = tree.path
                raise RuntimeError("script exploded")
            assert not path.exists()

    def test_pinned_commit_after_branch_moves(self, origin):
        with RepositoryCache() as cache:
            old = cache.resolve(origin.url, "main")
            origin.write("examples/poisson.py", "print('v2')\n")
            origin.commit("v2")
            with cache.checkout(origin.url, old) as tree:
                assert (tree.path / "examples" / "poisson.py").read_text() == "print('v1')\n"

    def test_closed_cache(self, origin):
        cache = RepositoryCache()
        with pytest.raises(RuntimeError, match="not open"):
            cache.root
