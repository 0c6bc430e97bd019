"""Multi-version validation workflow.

Runs every example against each configured container image and records
the outcome in a :class:`~gallery.execution.ledger.StatusLedger`::

    for record in records:                 (ThreadPoolExecutor)
        checkout(record.repository, record.revision)
            FetchError  → ledger.record_fetch_failure, next record
        for image in images:
            SandboxRunner(image).run(checkout, script, scratch dir)
            → ledger.record_result(id, image, passed, commit)

Script failures are results, not errors. A ``SandboxError`` means the
runtime itself is broken and aborts the whole workflow.
"""

from __future__ import annotations

import shutil
import tempfile
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path

from gallery.core.errors import FetchError
from gallery.execution.fetcher import RepositoryCache
from gallery.execution.ledger import StatusLedger
from gallery.execution.sandbox import SandboxRunner
from gallery.framework.logging import bind_context, get_logger, log_step, push_context
from gallery.metadata.models import ExampleRecord
from gallery.metadata.resolver import ExampleFailure

logger = get_logger(__name__)

RunnerFactory = Callable[[str], SandboxRunner]


@dataclass
class ValidationReport:
    ledger: StatusLedger
    failures: list[ExampleFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def validate_example(
    record: ExampleRecord,
    images: Sequence[str],
    cache: RepositoryCache,
    runner_for: RunnerFactory,
    ledger: StatusLedger,
) -> list[ExampleFailure]:
    """Run one example against every image and record the results."""
    token = push_context(example_id=record.id, repository=record.repository, revision=record.revision)
    failures: list[ExampleFailure] = []
    try:
        try:
            with cache.checkout(record.repository, record.revision) as tree:
                bind_context(revision=tree.commit)
                for image in images:
                    scratch = Path(tempfile.mkdtemp(prefix=f"gallery-validate-{record.id}-"))
                    try:
                        with log_step("validate.run", image=image):
                            outcome = runner_for(image).run(tree.path, record.script, scratch)
                    finally:
                        shutil.rmtree(scratch, ignore_errors=True)
                    ledger.record_result(record.id, image, outcome.succeeded, commit=tree.commit)
                    if not outcome.succeeded:
                        failures.append(ExampleFailure(record.id, "run", f"{image}: {outcome.describe()}", "ScriptFailed"))
        except FetchError as e:
            logger.warning("validate.fetch.failed", **e.to_dict())
            ledger.record_fetch_failure(record.id, e.message)
            failures.append(ExampleFailure.from_error(record.id, "fetch", e))
    finally:
        token.restore()
    return failures


def run_validation(
    records: Sequence[ExampleRecord],
    images: Sequence[str],
    cache: RepositoryCache,
    runner_for: RunnerFactory,
    *,
    ledger: StatusLedger | None = None,
    workers: int = 1,
) -> ValidationReport:
    """Validate ``records`` against ``images``.

    Raises:
        SandboxError: the container runtime could not be used.
    """
    if not images:
        raise ValueError("at least one image is required for validation")
    report = ValidationReport(ledger=ledger if ledger is not None else StatusLedger())

    with log_step("validate", examples=len(records), images=len(images)) as timer:
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [
                pool.submit(validate_example, record, images, cache, runner_for, report.ledger) for record in records
            ]
            for future in futures:
                try:
                    report.failures.extend(future.result())
                except BaseException:
                    pool.shutdown(wait=False, cancel_futures=True)
                    raise
        timer.add_metric("failures", len(report.failures))

    return report
