"""Tests for reconciliation of job outcomes against the target server."""

import pytest
from conftest import FakeDatabaseLookup, make_archive, submitted_job

from bacpac_migration.migration.models import ImportJob, ImportStatus, PollOutcome, StatusDetail
from bacpac_migration.migration.reconciler import Reconciler, build_batch_result

pytestmark = pytest.mark.unit


def _finished(name: str, status: ImportStatus) -> ImportJob:
    job = submitted_job(name)
    error = "boom" if status is ImportStatus.FAILED else None
    job.record_status(status, StatusDetail(error_message=error))
    return job


def _outcome(*jobs: ImportJob, timed_out: bool = False) -> PollOutcome:
    return PollOutcome(iterations=1, timed_out=timed_out, final=tuple(j.snapshot() for j in jobs))


class TestBuildBatchResult:
    def test_all_succeeded_and_present(self) -> None:
        jobs = [
            _finished("a", ImportStatus.SUCCEEDED).snapshot(),
            _finished("b", ImportStatus.SUCCEEDED).snapshot(),
        ]

        result = build_batch_result(jobs, {"a": True, "b": True}, server="sqlsrv")

        assert result.succeeded
        assert result.failed_count == 0
        assert result.missing_databases == ()
        assert result.status_counts == {"succeeded": 2}

    def test_succeeded_job_with_absent_database_is_missing(self) -> None:
        jobs = [_finished("a", ImportStatus.SUCCEEDED).snapshot()]

        result = build_batch_result(jobs, {"a": False}, server="sqlsrv")

        assert not result.succeeded
        assert [archive.name for archive in result.missing_databases] == ["a.bacpac"]
        assert result.failure_reasons == ("1 database(s) missing on server 'sqlsrv'",)

    def test_failed_job_and_missing_database_both_reported(self) -> None:
        jobs = [
            _finished("a", ImportStatus.FAILED).snapshot(),
            _finished("b", ImportStatus.SUCCEEDED).snapshot(),
        ]

        result = build_batch_result(jobs, {"a": False, "b": False}, server="sqlsrv")

        assert result.failure_reasons == (
            "1 import(s) failed",
            "2 database(s) missing on server 'sqlsrv'",
        )

    def test_failed_job_whose_database_exists_is_still_failed(self) -> None:
        jobs = [_finished("a", ImportStatus.FAILED).snapshot()]

        result = build_batch_result(jobs, {"a": True}, server="sqlsrv")

        assert result.failed_count == 1
        assert result.missing_databases == ()

    def test_status_unavailable_is_reported_but_not_failed(self) -> None:
        job = submitted_job("a")
        job.record_status(ImportStatus.IN_PROGRESS, StatusDetail())
        job.mark_status_unavailable("timeout")

        result = build_batch_result([job.snapshot()], {"a": True}, server="sqlsrv")

        assert result.failed_count == 0
        assert [j.database_name for j in result.unavailable_jobs] == ["a"]
        assert result.succeeded

    def test_deadline_with_running_jobs_fails(self) -> None:
        job = submitted_job("a")
        job.record_status(ImportStatus.IN_PROGRESS, StatusDetail())

        result = build_batch_result([job.snapshot()], {"a": False}, server="sqlsrv", timed_out=True)

        assert result.timed_out
        assert [j.database_name for j in result.still_in_progress] == ["a"]
        assert "1 import(s) still in progress when polling stopped" in result.failure_reasons

    def test_to_dict_is_serialisable(self) -> None:
        jobs = [_finished("a", ImportStatus.FAILED).snapshot()]

        result = build_batch_result(jobs, {"a": False}, server="sqlsrv", elapsed_seconds=12.3456)
        data = result.to_dict()

        assert data["succeeded"] is False
        assert data["failed_jobs"][0]["error_message"] == "boom"
        assert data["missing_databases"] == ["a"]
        assert data["elapsed_seconds"] == 12.346


class TestReconciler:
    @pytest.mark.asyncio
    async def test_archive_scenario_with_one_rejected_submission(self) -> None:
        # a and c import fine, b is never accepted
        jobs = [
            _finished("a", ImportStatus.SUCCEEDED),
            ImportJob.failed_to_start(make_archive("b.bacpac"), "rejected"),
            _finished("c", ImportStatus.SUCCEEDED),
        ]
        lookup = FakeDatabaseLookup(existing={"a", "c"})

        result = await Reconciler(lookup, "sqlsrv").reconcile(_outcome(*jobs))

        assert result.total_jobs == 3
        assert result.failed_count == 1
        assert [j.database_name for j in result.not_started] == ["b"]
        assert result.missing_databases == ()
        assert result.failure_reasons == ("1 import(s) failed (1 never started)",)
        assert not result.succeeded
        # b is still looked up
        assert sorted(name for _, name in lookup.calls) == ["a", "b", "c"]

    @pytest.mark.asyncio
    async def test_lookup_error_counts_as_missing(self) -> None:
        lookup = FakeDatabaseLookup(existing={"a"}, errors={"a"})

        result = await Reconciler(lookup, "sqlsrv").reconcile(
            _outcome(_finished("a", ImportStatus.SUCCEEDED))
        )

        assert [archive.base_name for archive in result.missing_databases] == ["a"]

    @pytest.mark.asyncio
    async def test_reconciling_twice_gives_identical_result(self) -> None:
        outcome = _outcome(
            _finished("a", ImportStatus.SUCCEEDED),
            _finished("b", ImportStatus.FAILED),
            _finished("c", ImportStatus.SUCCEEDED),
        )
        reconciler = Reconciler(FakeDatabaseLookup(existing={"a"}), "sqlsrv")

        first = await reconciler.reconcile(outcome, elapsed_seconds=5.0)
        second = await reconciler.reconcile(outcome, elapsed_seconds=5.0)

        assert first == second

    @pytest.mark.asyncio
    async def test_elapsed_time_is_carried_into_result(self) -> None:
        result = await Reconciler(FakeDatabaseLookup(existing={"a"}), "sqlsrv").reconcile(
            _outcome(_finished("a", ImportStatus.SUCCEEDED)), elapsed_seconds=42.0
        )

        assert result.elapsed_seconds == 42.0
        assert result.succeeded
