"""Status polling and aggregation for a batch of import jobs.

The poller repeatedly queries every unfinished job, classifies each response,
and emits a consolidated progress snapshot per iteration. It keeps going while
any job reports in-progress, sleeping a fixed interval between iterations.
"""

import asyncio
import time
from collections import Counter
from collections.abc import Awaitable, Callable, Sequence
from datetime import UTC, datetime

from bacpac_migration.client.exceptions import StatusQueryError
from bacpac_migration.client.interfaces import ImportService, SnapshotSink
from bacpac_migration.migration.models import (
    ImportJob,
    ImportStatus,
    PollOutcome,
    ProgressSnapshot,
)
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL = 15.0

_QUEUED_VALUES = {"queued", "pending", "notstarted", "accepted", "created"}
_IN_PROGRESS_VALUES = {"inprogress", "running", "importing"}
_SUCCEEDED_VALUES = {"succeeded", "completed", "success", "successful"}
_FAILED_VALUES = {"failed", "canceled", "cancelled", "error"}


def classify_status(raw_status: str | None) -> ImportStatus:
    """Map an import service status string to an :class:`ImportStatus`.

    Matching ignores case, spaces and underscores. Older import endpoints
    report progress as "Running, Progress = 42%", which counts as in-progress.
    Unrecognised values are treated as in-progress so the job keeps being polled.
    """
    normalized = (raw_status or "").strip().lower().replace(" ", "").replace("_", "")

    if normalized in _QUEUED_VALUES:
        return ImportStatus.QUEUED
    if normalized in _SUCCEEDED_VALUES:
        return ImportStatus.SUCCEEDED
    if normalized in _FAILED_VALUES:
        return ImportStatus.FAILED
    if normalized in _IN_PROGRESS_VALUES or normalized.startswith("running"):
        return ImportStatus.IN_PROGRESS

    logger.warning("unknown_import_status", raw_status=raw_status)
    return ImportStatus.IN_PROGRESS


def build_progress_snapshot(jobs: Sequence[ImportJob], iteration: int) -> ProgressSnapshot:
    """Aggregate the current status of every job into one snapshot."""
    counts = Counter(job.status for job in jobs)
    items = tuple(job.snapshot() for job in jobs if job.status is not ImportStatus.SUCCEEDED)
    return ProgressSnapshot(
        iteration=iteration,
        total_jobs=len(jobs),
        not_succeeded=len(items),
        status_counts=dict(counts),
        items=items,
        taken_at=datetime.now(UTC),
    )


class StatusPoller:
    """Polls import operations until none is in progress.

    Jobs without a handle (never started) are not polled. A status query that
    raises marks its job status-unavailable, which does not keep the loop alive.
    """

    def __init__(
        self,
        service: ImportService,
        interval: float = DEFAULT_POLL_INTERVAL,
        max_wait: float | None = None,
        max_concurrent: int = 10,
        on_snapshot: SnapshotSink | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the poller.

        Args:
            service: Import service answering status queries
            interval: Seconds between polling iterations
            max_wait: Stop polling after this many seconds; None waits for completion
            max_concurrent: Status queries in flight at once within an iteration
            on_snapshot: Receives the progress snapshot of every iteration
            sleep: Coroutine used to wait between iterations
            clock: Monotonic clock used for the deadline
        """
        if interval <= 0:
            raise ValueError("interval must be positive")
        if max_wait is not None and max_wait <= 0:
            raise ValueError("max_wait must be positive")
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")

        self.service = service
        self.interval = interval
        self.max_wait = max_wait
        self.max_concurrent = max_concurrent
        self.on_snapshot = on_snapshot
        self._sleep = sleep
        self._clock = clock

    async def poll(self, jobs: Sequence[ImportJob]) -> PollOutcome:
        """Poll until no job is in progress or the deadline passes.

        Args:
            jobs: Every job of the batch, including ones that failed to start

        Returns:
            Iteration count, deadline flag and one final snapshot of all jobs
        """
        started_at = self._clock()
        iteration = 0
        timed_out = False

        logger.info(
            "polling_started",
            jobs=len(jobs),
            pollable=sum(1 for job in jobs if job.is_pollable),
            interval=self.interval,
            max_wait=self.max_wait,
        )

        while True:
            iteration += 1
            await self._poll_iteration(jobs)

            snapshot = build_progress_snapshot(jobs, iteration)
            self._emit(snapshot)

            if not any(job.status is ImportStatus.IN_PROGRESS for job in jobs):
                break

            if self.max_wait is not None:
                remaining = self.max_wait - (self._clock() - started_at)
                if remaining <= 0:
                    timed_out = True
                    logger.warning(
                        "polling_deadline_reached",
                        iteration=iteration,
                        max_wait=self.max_wait,
                        still_in_progress=snapshot.in_progress,
                    )
                    break
                await self._sleep(min(self.interval, remaining))
            else:
                await self._sleep(self.interval)

        final = tuple(job.snapshot() for job in jobs)
        logger.info(
            "polling_completed",
            iterations=iteration,
            timed_out=timed_out,
            elapsed_seconds=round(self._clock() - started_at, 1),
        )
        return PollOutcome(iterations=iteration, timed_out=timed_out, final=final)

    async def _poll_iteration(self, jobs: Sequence[ImportJob]) -> None:
        """Query every unfinished job once; results are applied before returning."""
        pending = [job for job in jobs if job.is_pollable]
        if not pending:
            return

        semaphore = asyncio.Semaphore(self.max_concurrent)

        async def query_with_semaphore(job: ImportJob) -> None:
            async with semaphore:
                await self._query(job)

        await asyncio.gather(*(query_with_semaphore(job) for job in pending))

    async def _query(self, job: ImportJob) -> None:
        """Query and record the status of one job."""
        assert job.handle is not None
        previous = job.status

        try:
            remote = await self.service.get_status(job.handle)
        except Exception as e:
            error = StatusQueryError(job.handle.operation_id, str(e))
            job.mark_status_unavailable(error.reason)
            logger.warning(
                "status_query_failed",
                database=job.database_name,
                operation_id=job.handle.operation_id,
                error_type=type(e).__name__,
                error=str(error),
            )
            return

        observed = classify_status(remote.status)
        if not job.record_status(observed, remote.detail):
            logger.warning(
                "status_regression_ignored",
                database=job.database_name,
                operation_id=job.handle.operation_id,
                current=job.lifecycle_status.value,
                observed=observed.value,
            )
            return

        if observed is not previous:
            logger.info(
                "import_status_changed",
                database=job.database_name,
                operation_id=job.handle.operation_id,
                previous=previous.value,
                status=observed.value,
                message=remote.status_message,
            )

    def _emit(self, snapshot: ProgressSnapshot) -> None:
        logger.info(
            "poll_iteration_completed",
            iteration=snapshot.iteration,
            total_jobs=snapshot.total_jobs,
            not_succeeded=snapshot.not_succeeded,
            status_counts={status.value: count for status, count in snapshot.status_counts.items()},
        )
        if self.on_snapshot is not None:
            self.on_snapshot(snapshot)
