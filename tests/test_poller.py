"""Tests for the status polling loop."""

import pytest
from conftest import FakeImportService, make_archive, submitted_job

from bacpac_migration.client.exceptions import NetworkError
from bacpac_migration.migration.models import ImportJob, ImportStatus
from bacpac_migration.migration.poller import StatusPoller, build_progress_snapshot, classify_status

pytestmark = pytest.mark.unit


def _poller(service, sleep, clock, recorder=None, **kwargs) -> StatusPoller:
    return StatusPoller(
        service,
        interval=kwargs.pop("interval", 15),
        on_snapshot=recorder,
        sleep=sleep,
        clock=clock,
        **kwargs,
    )


class TestClassifyStatus:
    @pytest.mark.parametrize(
        "raw, expected",
        [
            ("Queued", ImportStatus.QUEUED),
            ("NotStarted", ImportStatus.QUEUED),
            ("Pending", ImportStatus.QUEUED),
            ("InProgress", ImportStatus.IN_PROGRESS),
            ("in_progress", ImportStatus.IN_PROGRESS),
            ("Running, Progress = 42%", ImportStatus.IN_PROGRESS),
            ("Succeeded", ImportStatus.SUCCEEDED),
            ("Completed", ImportStatus.SUCCEEDED),
            ("Failed", ImportStatus.FAILED),
            ("Canceled", ImportStatus.FAILED),
        ],
    )
    def test_known_values(self, raw: str, expected: ImportStatus) -> None:
        assert classify_status(raw) is expected

    def test_unknown_value_keeps_job_polled(self) -> None:
        assert classify_status("Reticulating") is ImportStatus.IN_PROGRESS

    def test_missing_value_keeps_job_polled(self) -> None:
        assert classify_status(None) is ImportStatus.IN_PROGRESS


class TestProgressSnapshot:
    def test_counts_and_items(self) -> None:
        done = submitted_job("a")
        done.record_status(ImportStatus.SUCCEEDED, done.detail)
        running = submitted_job("b")
        running.record_status(ImportStatus.IN_PROGRESS, running.detail)
        never = ImportJob.failed_to_start(make_archive("c.bacpac"), "rejected")

        snapshot = build_progress_snapshot([done, running, never], iteration=4)

        assert snapshot.iteration == 4
        assert snapshot.total_jobs == 3
        assert snapshot.not_succeeded == 2
        assert [item.database_name for item in snapshot.items] == ["b", "c"]
        assert snapshot.status_counts == {
            ImportStatus.SUCCEEDED: 1,
            ImportStatus.IN_PROGRESS: 1,
            ImportStatus.FAILED: 1,
        }
        assert snapshot.in_progress == 1


class TestPoll:
    @pytest.mark.asyncio
    async def test_exits_one_iteration_after_last_job_leaves_in_progress(
        self, sleep, clock, recorder
    ) -> None:
        service = FakeImportService(
            statuses={
                "a": ["InProgress", "InProgress", "Succeeded"],
                "b": ["InProgress", "Failed"],
            }
        )
        jobs = [submitted_job("a"), submitted_job("b")]

        outcome = await _poller(service, sleep, clock, recorder).poll(jobs)

        assert outcome.iterations == 3
        assert not outcome.timed_out
        assert sleep.calls == [15, 15]
        assert [s.iteration for s in recorder.snapshots] == [1, 2, 3]
        assert [job.status for job in jobs] == [ImportStatus.SUCCEEDED, ImportStatus.FAILED]

    @pytest.mark.asyncio
    async def test_every_snapshot_covers_every_job(self, sleep, clock, recorder) -> None:
        service = FakeImportService(
            statuses={"a": ["InProgress", "Succeeded"], "b": ["Succeeded"]}
        )
        jobs = [
            submitted_job("a"),
            submitted_job("b"),
            ImportJob.failed_to_start(make_archive("c.bacpac"), "rejected"),
        ]

        outcome = await _poller(service, sleep, clock, recorder).poll(jobs)

        assert all(s.total_jobs == 3 for s in recorder.snapshots)
        assert all(sum(s.status_counts.values()) == 3 for s in recorder.snapshots)
        assert len(outcome.final) == 3

    @pytest.mark.asyncio
    async def test_failed_to_start_jobs_are_not_queried(self, sleep, clock, recorder) -> None:
        service = FakeImportService()
        never = ImportJob.failed_to_start(make_archive("c.bacpac"), "rejected")

        await _poller(service, sleep, clock, recorder).poll([submitted_job("a"), never])

        assert "c" not in service.status_calls
        assert [item.database_name for item in recorder.snapshots[-1].items] == ["c"]

    @pytest.mark.asyncio
    async def test_finished_jobs_are_not_queried_again(self, sleep, clock) -> None:
        service = FakeImportService(
            statuses={"a": ["Succeeded"], "b": ["InProgress", "InProgress", "Succeeded"]}
        )

        await _poller(service, sleep, clock).poll([submitted_job("a"), submitted_job("b")])

        assert service.status_calls == {"a": 1, "b": 3}

    @pytest.mark.asyncio
    async def test_status_never_moves_backwards(self, sleep, clock, recorder) -> None:
        service = FakeImportService(statuses={"a": ["InProgress", "Queued", "Succeeded"]})
        jobs = [submitted_job("a")]

        await _poller(service, sleep, clock, recorder).poll(jobs)

        observed = [s.status_counts for s in recorder.snapshots]
        assert observed[0] == {ImportStatus.IN_PROGRESS: 1}
        assert observed[1] == {ImportStatus.IN_PROGRESS: 1}
        assert jobs[0].status is ImportStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_persistent_status_error_ends_unavailable(self, sleep, clock, recorder) -> None:
        service = FakeImportService(
            statuses={"a": ["InProgress", NetworkError("timeout")], "b": ["InProgress", "Succeeded"]}
        )
        jobs = [submitted_job("a"), submitted_job("b")]

        outcome = await _poller(service, sleep, clock, recorder).poll(jobs)

        assert outcome.iterations == 2
        final = {job.database_name: job for job in outcome.final}
        assert final["a"].status is ImportStatus.STATUS_UNAVAILABLE
        assert "timeout" in final["a"].detail.error_message
        assert final["b"].status is ImportStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_unavailable_job_is_queried_while_others_run(self, sleep, clock) -> None:
        service = FakeImportService(
            statuses={
                "a": [NetworkError("timeout"), "InProgress", "Succeeded"],
                "b": ["InProgress", "InProgress", "Succeeded"],
            }
        )
        jobs = [submitted_job("a"), submitted_job("b")]

        outcome = await _poller(service, sleep, clock).poll(jobs)

        assert outcome.iterations == 3
        assert jobs[0].status is ImportStatus.SUCCEEDED

    @pytest.mark.asyncio
    async def test_queued_jobs_do_not_keep_loop_alive(self, sleep, clock) -> None:
        service = FakeImportService(statuses={"a": ["Queued"]})

        outcome = await _poller(service, sleep, clock).poll([submitted_job("a")])

        assert outcome.iterations == 1
        assert sleep.calls == []
        assert outcome.final[0].status is ImportStatus.QUEUED

    @pytest.mark.asyncio
    async def test_empty_batch_runs_one_iteration(self, sleep, clock, recorder) -> None:
        outcome = await _poller(FakeImportService(), sleep, clock, recorder).poll([])

        assert outcome.iterations == 1
        assert outcome.final == ()
        assert recorder.snapshots[0].total_jobs == 0

    @pytest.mark.asyncio
    async def test_deadline_stops_polling(self, sleep, clock) -> None:
        service = FakeImportService(statuses={"a": ["InProgress"]})

        outcome = await _poller(service, sleep, clock, max_wait=30).poll([submitted_job("a")])

        assert outcome.timed_out
        assert outcome.iterations == 3
        assert sleep.calls == [15, 15]
        assert outcome.final[0].status is ImportStatus.IN_PROGRESS

    @pytest.mark.asyncio
    async def test_last_sleep_is_shortened_to_deadline(self, sleep, clock) -> None:
        service = FakeImportService(statuses={"a": ["InProgress"]})

        outcome = await _poller(service, sleep, clock, max_wait=20).poll([submitted_job("a")])

        assert outcome.timed_out
        assert sleep.calls == [15, 5]

    @pytest.mark.asyncio
    async def test_completion_before_deadline_is_not_timed_out(self, sleep, clock) -> None:
        service = FakeImportService(statuses={"a": ["InProgress", "Succeeded"]})

        outcome = await _poller(service, sleep, clock, max_wait=3600).poll([submitted_job("a")])

        assert not outcome.timed_out
        assert outcome.iterations == 2

    @pytest.mark.parametrize(
        "kwargs",
        [{"interval": 0}, {"max_wait": 0}, {"max_concurrent": 0}],
    )
    def test_rejects_invalid_settings(self, sleep, clock, kwargs) -> None:
        with pytest.raises(ValueError):
            _poller(FakeImportService(), sleep, clock, **kwargs)
