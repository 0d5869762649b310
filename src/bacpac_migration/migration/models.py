"""In-memory data model for a batch of bacpac imports.

Archives and import jobs live only for the duration of a single run. The
poller mutates :class:`ImportJob` status; everything handed to reporting and
reconciliation is an immutable snapshot.
"""

import posixpath
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any


class ImportStatus(str, Enum):
    """Status of one import job as last observed."""

    QUEUED = "queued"
    IN_PROGRESS = "in_progress"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    # The status call itself errored; the job may have succeeded or failed
    STATUS_UNAVAILABLE = "status_unavailable"

    @property
    def is_lifecycle_terminal(self) -> bool:
        """Whether the job has reached the end of Queued -> InProgress -> done."""
        return self in (ImportStatus.SUCCEEDED, ImportStatus.FAILED)


# Position along Queued -> InProgress -> {Succeeded | Failed}
_LIFECYCLE_RANK = {
    ImportStatus.QUEUED: 0,
    ImportStatus.IN_PROGRESS: 1,
    ImportStatus.SUCCEEDED: 2,
    ImportStatus.FAILED: 2,
}


class SubmissionOutcome(str, Enum):
    """Whether the import request for an archive was accepted."""

    OK = "ok"
    FAILED_TO_START = "failed_to_start"


@dataclass(frozen=True)
class Archive:
    """A bacpac blob found in the storage container.

    Attributes:
        name: Blob name, the archive's identity
        url: Full blob URL used as the import source
        size: Blob size in bytes, when reported by the listing
    """

    name: str
    url: str | None = None
    size: int | None = None

    @property
    def base_name(self) -> str:
        """Blob name without virtual directories and extension.

        This is the name of the database the archive is imported into.
        """
        return posixpath.splitext(posixpath.basename(self.name))[0]


@dataclass(frozen=True)
class BlobInfo:
    """One entry of a container listing."""

    name: str
    size: int | None = None


@dataclass(frozen=True)
class OperationHandle:
    """Opaque reference to a running import operation.

    Attributes:
        operation_id: Identifier of the asynchronous operation
        status_url: URL the operation status is read from
    """

    operation_id: str
    status_url: str

    def __str__(self) -> str:
        return self.operation_id


@dataclass(frozen=True)
class StatusDetail:
    """Detail fields reported alongside an import status."""

    status_message: str | None = None
    error_message: str | None = None
    queued_time: datetime | None = None
    modified_time: datetime | None = None


@dataclass(frozen=True)
class RemoteStatus:
    """Status of an import operation as returned by the import service.

    ``status`` is the raw service string; the poller classifies it.
    """

    status: str
    status_message: str | None = None
    error_message: str | None = None
    queued_time: datetime | None = None
    modified_time: datetime | None = None

    @property
    def detail(self) -> StatusDetail:
        return StatusDetail(
            status_message=self.status_message,
            error_message=self.error_message,
            queued_time=self.queued_time,
            modified_time=self.modified_time,
        )


@dataclass(frozen=True)
class JobSnapshot:
    """Immutable view of an :class:`ImportJob` at one point in time."""

    archive: Archive
    handle: OperationHandle | None
    status: ImportStatus
    detail: StatusDetail
    submission_outcome: SubmissionOutcome
    submission_error: str | None = None

    @property
    def database_name(self) -> str:
        return self.archive.base_name

    @property
    def started(self) -> bool:
        return self.submission_outcome is SubmissionOutcome.OK

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "archive": self.archive.name,
            "database_name": self.database_name,
            "operation_id": self.handle.operation_id if self.handle else None,
            "status": self.status.value,
            "submission_outcome": self.submission_outcome.value,
            "submission_error": self.submission_error,
            "status_message": self.detail.status_message,
            "error_message": self.detail.error_message,
            "queued_time": _isoformat(self.detail.queued_time),
            "modified_time": _isoformat(self.detail.modified_time),
        }


@dataclass
class ImportJob:
    """One asynchronous import of an archive into a new database.

    Status only moves forward along Queued -> InProgress -> {Succeeded | Failed}.
    A failed status query sets ``STATUS_UNAVAILABLE`` without losing the last
    lifecycle status, so a later successful query cannot move the job backwards.
    """

    archive: Archive
    handle: OperationHandle | None = None
    status: ImportStatus = ImportStatus.QUEUED
    detail: StatusDetail = field(default_factory=StatusDetail)
    submission_outcome: SubmissionOutcome = SubmissionOutcome.OK
    submission_error: str | None = None
    lifecycle_status: ImportStatus = ImportStatus.QUEUED

    @classmethod
    def submitted(cls, archive: Archive, handle: OperationHandle) -> "ImportJob":
        """Create the job for an accepted import request."""
        return cls(archive=archive, handle=handle)

    @classmethod
    def failed_to_start(cls, archive: Archive, error: str) -> "ImportJob":
        """Create the placeholder job for an import that was never accepted."""
        return cls(
            archive=archive,
            status=ImportStatus.FAILED,
            detail=StatusDetail(error_message=error),
            submission_outcome=SubmissionOutcome.FAILED_TO_START,
            submission_error=error,
            lifecycle_status=ImportStatus.FAILED,
        )

    @property
    def database_name(self) -> str:
        return self.archive.base_name

    @property
    def is_pollable(self) -> bool:
        """Whether the job has a handle and has not finished."""
        return self.handle is not None and not self.lifecycle_status.is_lifecycle_terminal

    def record_status(self, observed: ImportStatus, detail: StatusDetail) -> bool:
        """Apply an observed lifecycle status.

        Args:
            observed: Classified status from a successful status query
            detail: Detail fields from the same response

        Returns:
            True if applied, False if the observation would regress the job
            and was ignored
        """
        if observed is ImportStatus.STATUS_UNAVAILABLE:
            raise ValueError("Use mark_status_unavailable() for failed status queries")

        current = self.lifecycle_status
        regressed = _LIFECYCLE_RANK[observed] < _LIFECYCLE_RANK[current] or (
            current.is_lifecycle_terminal and observed is not current
        )
        if regressed:
            # The query itself succeeded, so the job is no longer status-unavailable
            self.status = current
            return False

        self.lifecycle_status = observed
        self.status = observed
        self.detail = detail
        return True

    def mark_status_unavailable(self, reason: str) -> None:
        """Record that the status query for this job raised."""
        self.status = ImportStatus.STATUS_UNAVAILABLE
        self.detail = replace(self.detail, error_message=reason)

    def snapshot(self) -> JobSnapshot:
        return JobSnapshot(
            archive=self.archive,
            handle=self.handle,
            status=self.status,
            detail=self.detail,
            submission_outcome=self.submission_outcome,
            submission_error=self.submission_error,
        )


@dataclass(frozen=True)
class ProgressSnapshot:
    """Consolidated status of the batch after one polling iteration.

    Attributes:
        iteration: 1-based polling iteration number
        total_jobs: Number of jobs in the batch
        not_succeeded: Jobs whose status is anything but succeeded
        status_counts: Number of jobs per status
        items: Snapshot of every job that has not succeeded
        taken_at: When the iteration's results were aggregated
    """

    iteration: int
    total_jobs: int
    not_succeeded: int
    status_counts: dict[ImportStatus, int]
    items: tuple[JobSnapshot, ...]
    taken_at: datetime

    @property
    def in_progress(self) -> int:
        return self.status_counts.get(ImportStatus.IN_PROGRESS, 0)


@dataclass(frozen=True)
class PollOutcome:
    """Result of a completed polling loop.

    Attributes:
        iterations: Number of polling iterations run
        timed_out: True if the loop stopped at its deadline with work outstanding
        final: Snapshot of every job taken once, after the loop exited
    """

    iterations: int
    timed_out: bool
    final: tuple[JobSnapshot, ...]


@dataclass(frozen=True)
class BatchResult:
    """Aggregate outcome of one batch run, computed once after polling.

    Attributes:
        total_jobs: Number of jobs (one per enumerated archive)
        status_counts: Final number of jobs per status value
        failed_jobs: Jobs whose final status is failed, including never-started ones
        missing_databases: Archives with a started import but no destination database
        unavailable_jobs: Jobs whose final status query errored
        still_in_progress: Jobs left running when polling hit its deadline
        timed_out: Whether polling stopped at its deadline
        elapsed_seconds: Wall-clock time from run start to reconciliation
        failure_reasons: One message per failing check; empty means success
    """

    total_jobs: int
    status_counts: dict[str, int]
    failed_jobs: tuple[JobSnapshot, ...]
    missing_databases: tuple[Archive, ...]
    unavailable_jobs: tuple[JobSnapshot, ...]
    still_in_progress: tuple[JobSnapshot, ...]
    timed_out: bool
    elapsed_seconds: float
    failure_reasons: tuple[str, ...]

    @property
    def failed_count(self) -> int:
        return len(self.failed_jobs)

    @property
    def not_started(self) -> tuple[JobSnapshot, ...]:
        return tuple(job for job in self.failed_jobs if not job.started)

    @property
    def succeeded(self) -> bool:
        return not self.failure_reasons

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "succeeded": self.succeeded,
            "total_jobs": self.total_jobs,
            "status_counts": dict(self.status_counts),
            "failed_count": self.failed_count,
            "failed_jobs": [job.to_dict() for job in self.failed_jobs],
            "missing_databases": [archive.base_name for archive in self.missing_databases],
            "unavailable_jobs": [job.to_dict() for job in self.unavailable_jobs],
            "still_in_progress": [job.to_dict() for job in self.still_in_progress],
            "timed_out": self.timed_out,
            "elapsed_seconds": round(self.elapsed_seconds, 3),
            "failure_reasons": list(self.failure_reasons),
        }


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None
