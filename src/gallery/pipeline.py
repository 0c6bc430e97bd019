"""
Site build orchestration.

Sequences the whole build: prepare the target directory, collect example
records from both sources, run every example in the sandbox, select its
images, render its page, and finally render the index.

Architecture:
    ::

        build_site(settings)
          │
          ├─ OutputStore.ensure_target()          OutputError → abort
          ├─ OutputStore.sweep_staging()          leftovers of killed builds
          ├─ copy_static()
          ├─ PageRenderer(templates_dir)          RenderError → abort
          ├─ RepositoryCache ─────────────────────────────────────────┐
          │    collect_records()                                      │
          │      official: checkout(branch) → discover_embedded       │
          │      user:     discover_declarative                       │
          │    ThreadPoolExecutor(workers)                            │
          │      process_example(record) per example                  │
          │        resolve → reuse? → staging → sandbox → commit      │
          │        → select_artifacts → write page                    │
          └────────────────────────────────────────────────────────────┘
          └─ write index (sorted by example id)

        validate_site(settings, images)
          collect_records() → run_validation() → StatusLedger.save()

Failure isolation:
    Per-example errors (descriptor, fetch, failed script, page render)
    become ``ExampleFailure`` entries in the ``BuildReport``, and so does a
    stray ``OSError`` raised while processing one example. Errors marked
    ``fatal`` (``SandboxError``, ``OutputError``, template loading) abort.

Tags:
    pipeline, orchestration, build, gallery

Doc-Types:
    - Architecture
    - API Reference
"""

from __future__ import annotations

import shutil
from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from gallery.artifacts.selector import SelectedArtifacts, select_artifacts
from gallery.core.errors import DescriptorError, FetchError, GalleryError, OutputError, ScriptFailed
from gallery.core.settings import GallerySettings
from gallery.execution.fetcher import RepositoryCache
from gallery.execution.ledger import StatusLedger
from gallery.execution.models import RunOutcome
from gallery.execution.outputs import OutputStore
from gallery.execution.sandbox import SandboxRunner
from gallery.execution.validation import RunnerFactory, ValidationReport, run_validation
from gallery.framework.logging import get_logger, log_step, push_context
from gallery.metadata.models import ExampleRecord
from gallery.metadata.resolver import ExampleFailure, discover_declarative, discover_embedded, resolve_all
from gallery.rendering.context import IndexEntry, build_index_entry, build_page
from gallery.rendering.renderer import PageRenderer

logger = get_logger(__name__)


@dataclass(frozen=True)
class ExampleResult:
    """A fully built example: its run, its selected images and its page."""

    record: ExampleRecord
    outcome: RunOutcome
    artifacts: SelectedArtifacts
    page_path: Path
    status: str | None = None

    @property
    def images(self) -> list[str]:
        return self.artifacts.images

    @property
    def thumbnail(self) -> str | None:
        return self.artifacts.thumbnail

    def index_entry(self) -> IndexEntry:
        return build_index_entry(self.record, self.artifacts, status=self.status)


@dataclass
class BuildReport:
    results: list[ExampleResult] = field(default_factory=list)
    failures: list[ExampleFailure] = field(default_factory=list)
    index_path: Path | None = None

    @property
    def ok(self) -> bool:
        return not self.failures


# ── Static assets ─────────────────────────────────────────────────────────


def copy_static(static_dir: Path, target_dir: Path) -> list[Path]:
    """Copy every regular file of ``static_dir`` into ``target_dir``."""
    if not static_dir.is_dir():
        logger.info("build.static.missing", path=str(static_dir))
        return []
    copied = []
    try:
        for source in sorted(static_dir.iterdir()):
            if source.is_file():
                copied.append(Path(shutil.copyfile(source, target_dir / source.name)))
    except OSError as e:
        raise OutputError(f"Failed to copy static files: {e}", cause=e).with_context(path=str(static_dir)) from e
    logger.debug("build.static.copied", files=len(copied))
    return copied


# ── Records ───────────────────────────────────────────────────────────────


def collect_records(
    settings: GallerySettings, cache: RepositoryCache
) -> tuple[list[ExampleRecord], list[ExampleFailure]]:
    """Resolve the official and user examples into records sorted by id.

    The official examples are read from a checkout of the official branch;
    when it cannot be fetched the user examples are still built.
    """
    user_sources = discover_declarative(settings.user_examples_dir)
    if not settings.include_official:
        return resolve_all(user_sources)

    try:
        with cache.checkout(settings.official_repository, settings.official_branch) as tree:
            official_sources = discover_embedded(
                tree.path / settings.official_examples_dir,
                repository=settings.official_repository,
                authors=settings.official_authors,
                git_timeout=settings.git_timeout_seconds,
            )
            records, failures = resolve_all([*official_sources, *user_sources])
    except (FetchError, DescriptorError) as e:
        logger.error("build.official.unavailable", **e.to_dict())
        records, failures = resolve_all(user_sources)
        failures.insert(0, ExampleFailure.from_error("official", "fetch", e))
    return records, failures


# ── One example ───────────────────────────────────────────────────────────


def _ledger_status(ledger: StatusLedger | None, record: ExampleRecord) -> tuple[str | None, dict[str, str]]:
    status = ledger.get(record.id) if ledger is not None else None
    if status is None:
        return None, {}
    if status.commit is not None and status.commit != record.revision:
        # Validated a different commit; says nothing about this one.
        return None, {}
    return status.overall.value, {image: result.value for image, result in status.results.items()}


def process_example(
    record: ExampleRecord,
    *,
    cache: RepositoryCache,
    runner: SandboxRunner,
    store: OutputStore,
    renderer: PageRenderer,
    reuse: bool = False,
    ledger: StatusLedger | None = None,
) -> ExampleResult:
    """Run, harvest and render one example.

    Raises:
        FetchError: the revision could not be fetched.
        ScriptFailed: the script exited non-zero or timed out.
        RenderError: the page could not be rendered.
        OutputError: the execution log could not be read (not fatal), or
            the output directory could not be written (fatal).
        SandboxError: the runtime could not be used (fatal).
    """
    commit = cache.resolve(record.repository, record.revision)
    record = record.with_revision(commit)
    identity = {
        "repository": record.repository,
        "revision": commit,
        "script": record.script,
        "image": runner.image,
    }

    outcome = store.reusable(record.id, identity) if reuse else None
    if outcome is not None:
        logger.info("build.example.reused", path=str(outcome.output_dir))
    else:
        staging = store.staging(record.id)
        try:
            with cache.checkout(record.repository, commit) as tree:
                outcome = runner.run(tree.path, record.script, staging)
        except BaseException:
            store.discard(staging)
            raise
        outcome = store.commit(record.id, staging, outcome, identity)

    if not outcome.succeeded:
        raise ScriptFailed(f"script {record.script} {outcome.describe()}").with_context(
            path=str(outcome.log_path), stage="run", exit_code=outcome.exit_code
        )

    try:
        artifacts = select_artifacts(record, outcome.log_path)
    except OSError as e:
        raise OutputError(f"Cannot read execution log: {e}", cause=e, fatal=False).with_context(
            path=str(outcome.log_path), stage="scan"
        ) from e

    with log_step("render.example", log_start=False) as timer:
        status, results = _ledger_status(ledger, record)
        page = build_page(record, artifacts, status=status, results=results)
        page_path = renderer.write_example(page, outcome.output_dir)
        timer.add_metric("images", len(artifacts.images))

    return ExampleResult(record=record, outcome=outcome, artifacts=artifacts, page_path=page_path, status=status)


def _example_failed(record: ExampleRecord, error: GalleryError) -> ExampleFailure:
    error.with_context(example_id=record.id)
    logger.warning("build.example.failed", **error.to_dict())
    return ExampleFailure.from_error(record.id, "build", error)


def _process_isolated(record: ExampleRecord, build_id: str | None, **kwargs: Any) -> ExampleResult | ExampleFailure:
    """Process one example in a worker, turning per-example errors into failures."""
    token = push_context(build_id=build_id, example_id=record.id, repository=record.repository)
    try:
        return process_example(record, **kwargs)
    except GalleryError as e:
        if e.fatal:
            raise
        return _example_failed(record, e)
    except OSError as e:
        error = OutputError(f"Filesystem error: {e}", cause=e, fatal=False)
        return _example_failed(record, error)
    finally:
        token.restore()


# ── Whole site ────────────────────────────────────────────────────────────


def _cache_scope(settings: GallerySettings, cache: RepositoryCache | None):
    if cache is not None:
        return nullcontext(cache)
    return RepositoryCache(settings.cache_dir, library_dir=settings.library_dir, git_timeout=settings.git_timeout_seconds)


def load_ledger(path: Path) -> StatusLedger | None:
    try:
        ledger = StatusLedger.load(path)
    except OutputError as e:
        logger.warning("build.ledger.unreadable", **e.to_dict())
        return None
    return ledger if ledger.examples else None


def build_site(
    settings: GallerySettings,
    *,
    runner: SandboxRunner | None = None,
    cache: RepositoryCache | None = None,
    renderer: PageRenderer | None = None,
    build_id: str | None = None,
) -> BuildReport:
    """Build the whole website into ``settings.target_dir``.

    Raises:
        SandboxError: the container runtime is unusable.
        OutputError: the target directory cannot be written.
        RenderError: the templates cannot be loaded.
    """
    store = OutputStore(settings.target_dir)
    store.ensure_target()
    store.sweep_staging()
    copy_static(settings.static_dir, settings.target_dir)
    renderer = renderer or PageRenderer(settings.templates_dir)
    ledger = load_ledger(settings.status_file)

    if runner is None:
        runner = SandboxRunner(
            settings.container_image,
            runtime=settings.sandbox_runtime,
            timeout=settings.run_timeout,
        )
        runner.check_available()

    report = BuildReport()
    with log_step("build", target=str(settings.target_dir)) as timer, _cache_scope(settings, cache) as repos:
        records, report.failures = collect_records(settings, repos)
        with ThreadPoolExecutor(max_workers=settings.workers) as pool:
            futures = [
                pool.submit(
                    _process_isolated,
                    record,
                    build_id,
                    cache=repos,
                    runner=runner,
                    store=store,
                    renderer=renderer,
                    reuse=settings.reuse_outputs,
                    ledger=ledger,
                )
                for record in records
            ]
            for future in futures:
                try:
                    result = future.result()
                except BaseException:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
                if isinstance(result, ExampleFailure):
                    report.failures.append(result)
                else:
                    report.results.append(result)

        entries = [result.index_entry() for result in sorted(report.results, key=lambda r: r.record.id)]
        report.index_path = renderer.write_index(entries, settings.target_dir)
        timer.add_metric("examples", len(report.results))
        timer.add_metric("failures", len(report.failures))

    return report


# ── Validation ────────────────────────────────────────────────────────────


def validate_site(
    settings: GallerySettings,
    images: Sequence[str] | None = None,
    *,
    runner_for: RunnerFactory | None = None,
    cache: RepositoryCache | None = None,
) -> ValidationReport:
    """Run every example against each image and save the status ledger.

    Images default to ``settings.validation_images``, then to the build
    image alone.

    Raises:
        SandboxError: the container runtime is unusable.
        OutputError: the ledger cannot be written.
    """
    images = list(images or settings.validation_images or [settings.container_image])

    if runner_for is None:

        def runner_for(image: str) -> SandboxRunner:
            return SandboxRunner(image, runtime=settings.sandbox_runtime, timeout=settings.run_timeout)

        runner_for(images[0]).check_available()

    with _cache_scope(settings, cache) as repos:
        records, failures = collect_records(settings, repos)
        report = run_validation(records, images, repos, runner_for, workers=settings.workers)

    report.failures[:0] = failures
    report.ledger.save(settings.status_file)
    return report
