"""Tests for logging setup and ARM call logging."""

import json

import pytest
from structlog.testing import capture_logs

from bacpac_migration.utils.logging import (
    configure_logging,
    get_logger,
    log_arm_call,
    should_log_payloads,
)

pytestmark = pytest.mark.unit


class TestConfigureLogging:
    def test_payloads_need_a_debug_sink(self, tmp_path) -> None:
        configure_logging(level="WARNING")
        assert not should_log_payloads(True)

        configure_logging(level="WARNING", log_file=tmp_path / "x.log", file_level="DEBUG")
        assert should_log_payloads(True)
        assert not should_log_payloads(False)

    def test_json_file_records(self, tmp_path) -> None:
        log_path = tmp_path / "logs" / "bridge.log"
        configure_logging(level="ERROR", log_file=log_path, file_level="INFO")

        get_logger("bacpac_migration.test").info("import_submitted", database="sales")
        get_logger("bacpac_migration.test").debug("not_written")

        records = [json.loads(line) for line in log_path.read_text().splitlines()]
        assert [record["event"] for record in records] == ["import_submitted"]
        assert records[0]["database"] == "sales"
        assert records[0]["level"] == "info"


class TestLogArmCall:
    @pytest.mark.parametrize(
        "status_code, event, level",
        [
            (200, "arm_call", "debug"),
            (404, "arm_call_rejected", "info"),
            (429, "arm_call_retryable_error", "warning"),
            (503, "arm_call_retryable_error", "warning"),
        ],
    )
    def test_level_follows_status(self, status_code, event, level) -> None:
        configure_logging(level="DEBUG")

        with capture_logs() as logs:
            log_arm_call(
                get_logger("test"),
                "GET",
                "https://management.azure.com/subscriptions/s/x?api-version=2023-08-01",
                status_code,
                12.5,
                request_id="req-1",
            )

        assert logs == [
            {
                "event": event,
                "log_level": level,
                "method": "GET",
                "path": "https://management.azure.com/subscriptions/s/x",
                "status_code": status_code,
                "duration_ms": 12.5,
                "request_id": "req-1",
            }
        ]
