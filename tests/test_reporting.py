"""Tests for the progress table, the batch report and payload redaction."""

import json
from io import StringIO

import pytest
from conftest import make_archive, submitted_job
from rich.console import Console

from bacpac_migration.cli.utils import format_bytes, print_table
from bacpac_migration.migration.models import (
    ImportJob,
    ImportStatus,
    OperationHandle,
    RemoteStatus,
    StatusDetail,
)
from bacpac_migration.migration.poller import StatusPoller, build_progress_snapshot
from bacpac_migration.migration.reconciler import build_batch_result
from bacpac_migration.reporting.progress import ProgressReporter, build_snapshot_table
from bacpac_migration.reporting.report import BatchReport
from bacpac_migration.utils.logging import sanitize_payload

pytestmark = pytest.mark.unit


def _console() -> tuple[Console, StringIO]:
    buffer = StringIO()
    return Console(file=buffer, width=200, color_system=None), buffer


class BracketedStatusService:
    """Import service whose messages quote blob paths in brackets."""

    def __init__(self, statuses: list[str]):
        self.statuses = statuses
        self.calls = 0

    async def submit_import(self, server, database_name, credentials, storage):
        raise NotImplementedError

    async def get_status(self, handle: OperationHandle) -> RemoteStatus:
        status = self.statuses[min(self.calls, len(self.statuses) - 1)]
        self.calls += 1
        return RemoteStatus(
            status=status,
            status_message="Importing [dbo].[Users]",
            error_message="Cannot open [/bacpacs/a.bacpac]" if status == "Failed" else None,
        )


def _running(name: str) -> ImportJob:
    job = submitted_job(name)
    job.record_status(ImportStatus.IN_PROGRESS, StatusDetail(status_message="Running, Progress = 10%"))
    return job


class TestProgressReporter:
    def test_table_lists_jobs_not_yet_succeeded(self) -> None:
        done = submitted_job("a")
        done.record_status(ImportStatus.SUCCEEDED, StatusDetail())
        snapshot = build_progress_snapshot([done, _running("b")], iteration=2)

        table = build_snapshot_table(snapshot)

        assert table.title == "Iteration 2: 2 import(s) queued, 1 not yet succeeded"
        assert table.row_count == 1

    def test_prints_table_per_snapshot(self) -> None:
        console, buffer = _console()
        reporter = ProgressReporter(console=console)

        reporter(build_progress_snapshot([_running("b")], iteration=1))

        output = buffer.getvalue()
        assert "Running, Progress = 10%" in output
        assert "op-b" in output
        assert reporter.snapshots_seen == 1

    def test_all_succeeded_prints_single_line(self) -> None:
        console, buffer = _console()
        done = submitted_job("a")
        done.record_status(ImportStatus.SUCCEEDED, StatusDetail())

        ProgressReporter(console=console)(build_progress_snapshot([done], iteration=3))

        assert buffer.getvalue().strip() == "Iteration 3: all 1 import(s) succeeded"

    def test_disabled_reporter_only_counts(self) -> None:
        console, buffer = _console()
        reporter = ProgressReporter(console=console, enabled=False)

        reporter(build_progress_snapshot([_running("b")], iteration=1))

        assert buffer.getvalue() == ""
        assert reporter.last_snapshot.iteration == 1

    @pytest.mark.parametrize(
        "message",
        ["Object [dbo].[Users] already exists", "Cannot open [/bacpacs/a.bacpac]"],
    )
    def test_bracketed_service_text_is_printed_verbatim(self, message: str) -> None:
        console, buffer = _console()
        job = submitted_job("a")
        job.record_status(ImportStatus.FAILED, StatusDetail(error_message=message))

        ProgressReporter(console=console)(build_progress_snapshot([job], iteration=1))

        assert message in buffer.getvalue()

    @pytest.mark.asyncio
    async def test_bracketed_status_message_does_not_stop_polling(self, sleep, clock) -> None:
        console, buffer = _console()
        service = BracketedStatusService(["InProgress", "Failed"])

        outcome = await StatusPoller(
            service,
            interval=15,
            on_snapshot=ProgressReporter(console=console),
            sleep=sleep,
            clock=clock,
        ).poll([submitted_job("a")])

        assert outcome.iterations == 2
        assert outcome.final[0].status is ImportStatus.FAILED
        assert "Cannot open [/bacpacs/a.bacpac]" in buffer.getvalue()


class TestBatchReport:
    def _failed_result(self):
        failed = submitted_job("a")
        failed.record_status(ImportStatus.FAILED, StatusDetail(error_message="Login failed"))
        never = ImportJob.failed_to_start(make_archive("b.bacpac"), "rejected")
        return build_batch_result(
            [failed.snapshot(), never.snapshot()], {"a": False, "b": False}, server="sqlsrv"
        )

    def test_render_failure(self) -> None:
        console, buffer = _console()

        BatchReport(self._failed_result(), "sqlsrv").render(console)

        output = buffer.getvalue()
        assert "Failed Imports (2)" in output
        assert "Login failed" in output
        assert "not started" in output
        assert "2 import(s) failed (1 never started)" in output

    def test_render_success(self) -> None:
        console, buffer = _console()
        done = submitted_job("a")
        done.record_status(ImportStatus.SUCCEEDED, StatusDetail())
        result = build_batch_result([done.snapshot()], {"a": True}, server="sqlsrv")

        BatchReport(result, "sqlsrv").render(console)

        assert "All 1 database(s) imported" in buffer.getvalue()

    def test_render_keeps_bracketed_errors(self) -> None:
        console, buffer = _console()
        failed = submitted_job("a")
        failed.record_status(
            ImportStatus.FAILED, StatusDetail(error_message="Object [dbo].[Users] already exists")
        )
        unavailable = submitted_job("b")
        unavailable.mark_status_unavailable("Cannot open [/bacpacs/b.bacpac]")
        result = build_batch_result(
            [failed.snapshot(), unavailable.snapshot()], {"a": False, "b": True}, server="sqlsrv"
        )

        BatchReport(result, "sqlsrv").render(console)

        output = buffer.getvalue()
        assert "Object [dbo].[Users] already exists" in output
        assert "Cannot open [/bacpacs/b.bacpac]" in output

    def test_generate_json(self, tmp_path) -> None:
        path = tmp_path / "reports" / "batch.json"

        text = BatchReport(self._failed_result(), "sqlsrv", run_id="abc123").generate_json(path)

        data = json.loads(path.read_text())
        assert data == json.loads(text)
        assert data["run_id"] == "abc123"
        assert data["result"]["failed_count"] == 2
        assert data["result"]["failed_jobs"][1]["submission_outcome"] == "failed_to_start"


class TestFormatBytes:
    @pytest.mark.parametrize(
        "size, expected",
        [(None, "-"), (512, "512 B"), (2048, "2.0 KiB"), (5 * 1024**3, "5.0 GiB")],
    )
    def test_format(self, size, expected) -> None:
        assert format_bytes(size) == expected


class TestPrintTable:
    def test_cells_are_printed_literally(self) -> None:
        console, buffer = _console()

        print_table(console, "Planned Imports", ["Archive"], [["[bold]sales[/bold].bacpac"]])

        assert "[bold]sales[/bold].bacpac" in buffer.getvalue()


class TestSanitizePayload:
    def test_redacts_import_secrets(self) -> None:
        payload = {
            "databaseName": "sales",
            "storageKey": "key",
            "administratorLoginPassword": "pw",
            "nested": [{"access_token": "t"}],
        }

        assert sanitize_payload(payload) == {
            "databaseName": "sales",
            "storageKey": "[REDACTED]",
            "administratorLoginPassword": "[REDACTED]",
            "nested": [{"access_token": "[REDACTED]"}],
        }

    def test_keeps_non_secret_settings(self) -> None:
        assert sanitize_payload({"sas_ttl_hours": 8}) == {"sas_ttl_hours": 8}
