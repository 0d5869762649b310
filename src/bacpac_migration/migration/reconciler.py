"""Post-polling reconciliation of reported job outcomes against the server.

Two independent checks run on the final job snapshot:

1. How many imports ended failed, as reported by the import service.
2. Whether a database named after every archive actually exists on the
   target server, regardless of what the import service reported.

Both checks always run and every failure reason is collected into a single
:class:`BatchResult`.
"""

import asyncio
from collections import Counter
from collections.abc import Mapping, Sequence

from bacpac_migration.client.interfaces import DatabaseLookup
from bacpac_migration.migration.models import (
    BatchResult,
    ImportStatus,
    JobSnapshot,
    PollOutcome,
)
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)


def build_batch_result(
    jobs: Sequence[JobSnapshot],
    existing: Mapping[str, bool],
    server: str,
    timed_out: bool = False,
    elapsed_seconds: float = 0.0,
) -> BatchResult:
    """Aggregate a final job snapshot and existence results into a BatchResult.

    This is a pure function of its arguments.

    Args:
        jobs: Final snapshot of every job in the batch
        existing: Whether each database exists, keyed by database name
        server: Target server name, used in failure messages
        timed_out: Whether polling stopped at its deadline
        elapsed_seconds: Wall-clock time of the run so far

    Returns:
        The batch result
    """
    counts = Counter(job.status for job in jobs)
    status_counts = {status.value: counts[status] for status in ImportStatus if counts[status]}

    failed = tuple(job for job in jobs if job.status is ImportStatus.FAILED)
    not_started = [job for job in failed if not job.started]
    unavailable = tuple(job for job in jobs if job.status is ImportStatus.STATUS_UNAVAILABLE)
    still_running = (
        tuple(job for job in jobs if job.status is ImportStatus.IN_PROGRESS) if timed_out else ()
    )

    # An import that never started is already counted as failed
    missing = tuple(
        job.archive
        for job in jobs
        if job.started and not existing.get(job.database_name, False)
    )

    reasons: list[str] = []
    if failed:
        reason = f"{len(failed)} import(s) failed"
        if not_started:
            reason += f" ({len(not_started)} never started)"
        reasons.append(reason)
    if missing:
        reasons.append(f"{len(missing)} database(s) missing on server '{server}'")
    if still_running:
        reasons.append(f"{len(still_running)} import(s) still in progress when polling stopped")

    return BatchResult(
        total_jobs=len(jobs),
        status_counts=status_counts,
        failed_jobs=failed,
        missing_databases=missing,
        unavailable_jobs=unavailable,
        still_in_progress=still_running,
        timed_out=timed_out,
        elapsed_seconds=elapsed_seconds,
        failure_reasons=tuple(reasons),
    )


class Reconciler:
    """Checks the final outcome of a batch against the target server."""

    def __init__(self, lookup: DatabaseLookup, server: str, max_concurrent: int = 10):
        """Initialize the reconciler.

        Args:
            lookup: Database existence lookup
            server: Target server name
            max_concurrent: Existence queries in flight at once
        """
        self.lookup = lookup
        self.server = server
        self.max_concurrent = max_concurrent

    async def reconcile(self, outcome: PollOutcome, elapsed_seconds: float = 0.0) -> BatchResult:
        """Run both checks against the final snapshot of a polling run.

        Args:
            outcome: Result of the polling loop
            elapsed_seconds: Wall-clock time of the run so far

        Returns:
            The batch result with every failure reason collected
        """
        existing = await self.check_databases(outcome.final)
        result = build_batch_result(
            outcome.final,
            existing,
            server=self.server,
            timed_out=outcome.timed_out,
            elapsed_seconds=elapsed_seconds,
        )

        logger.info(
            "reconciliation_completed",
            total_jobs=result.total_jobs,
            failed=result.failed_count,
            missing=len(result.missing_databases),
            status_unavailable=len(result.unavailable_jobs),
            succeeded=result.succeeded,
        )
        return result

    async def check_databases(self, jobs: Sequence[JobSnapshot]) -> dict[str, bool]:
        """Look up every archive's database on the target server.

        Every archive is checked, including those whose import never started.
        A lookup that errors counts as not found.

        Returns:
            Existence per database name
        """
        names = list(dict.fromkeys(job.database_name for job in jobs))
        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def exists(name: str) -> bool:
            async with semaphore:
                try:
                    return await self.lookup.database_exists(self.server, name)
                except Exception as e:
                    logger.warning(
                        "database_lookup_failed",
                        server=self.server,
                        database=name,
                        error_type=type(e).__name__,
                        error=str(e),
                    )
                    return False

        results = await asyncio.gather(*(exists(name) for name in names))
        existing = dict(zip(names, results, strict=True))

        for job in jobs:
            if job.started and not existing[job.database_name]:
                logger.warning(
                    "database_missing",
                    server=self.server,
                    database=job.database_name,
                    archive=job.archive.name,
                    reported_status=job.status.value,
                )
        return existing
