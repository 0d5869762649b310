"""Final batch report.

Renders a :class:`BatchResult` to the console and, optionally, to a JSON
file for later inspection.
"""

import json
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from rich.console import Console
from rich.table import Table
from rich.text import Text

from bacpac_migration import __version__
from bacpac_migration.migration.models import BatchResult
from bacpac_migration.reporting.colors import MigrationColors
from bacpac_migration.reporting.elapsed import format_duration
from bacpac_migration.reporting.progress import status_text
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)


class BatchReport:
    """Generates the end-of-run report for a batch of imports."""

    def __init__(self, result: BatchResult, server: str, run_id: str | None = None):
        """Initialize batch report.

        Args:
            result: Final result of the batch
            server: Target server name
            run_id: Optional identifier of the run
        """
        self.result = result
        self.server = server
        self.run_id = run_id
        self.generated_at = datetime.now(UTC)

    def to_dict(self) -> dict[str, Any]:
        return {
            "report_version": "1.0",
            "tool_version": __version__,
            "generated_at": self.generated_at.isoformat(),
            "run_id": self.run_id,
            "server": self.server,
            "elapsed": format_duration(self.result.elapsed_seconds),
            "result": self.result.to_dict(),
        }

    def generate_json(self, output_path: str | Path | None = None) -> str:
        """Generate JSON report.

        Args:
            output_path: Optional path to save report

        Returns:
            JSON report as string
        """
        json_str = json.dumps(self.to_dict(), indent=2, default=str)

        if output_path:
            path = Path(output_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json_str)
            logger.info("json_report_saved", path=str(path))

        return json_str

    def render(self, console: Console) -> None:
        """Print summary, failed imports and missing databases."""
        result = self.result

        summary = Table(title="Batch Summary", show_header=False, border_style=MigrationColors.BORDER)
        summary.add_column("Metric", style=MigrationColors.LABEL)
        summary.add_column("Value")
        summary.add_row("Server", Text(self.server))
        summary.add_row("Imports", str(result.total_jobs))
        for status, count in result.status_counts.items():
            summary.add_row(status.replace("_", " ").title(), str(count))
        summary.add_row("Missing Databases", str(len(result.missing_databases)))
        if result.timed_out:
            summary.add_row("Polling", "stopped at deadline")
        console.print(summary)

        if result.failed_jobs:
            failed = Table(
                title=f"Failed Imports ({result.failed_count})", border_style=MigrationColors.ERROR
            )
            failed.add_column("Database")
            failed.add_column("Archive")
            failed.add_column("Operation")
            failed.add_column("Status")
            failed.add_column("Error")
            for job in result.failed_jobs:
                failed.add_row(
                    Text(job.database_name),
                    Text(job.archive.name),
                    Text(job.handle.operation_id) if job.handle else "not started",
                    status_text(job.status),
                    Text(job.detail.error_message or job.detail.status_message or ""),
                )
            console.print(failed)

        if result.missing_databases:
            missing = Table(
                title=f"Missing Databases ({len(result.missing_databases)})",
                border_style=MigrationColors.ERROR,
            )
            missing.add_column("Database")
            missing.add_column("Archive")
            for archive in result.missing_databases:
                missing.add_row(Text(archive.base_name), Text(archive.name))
            console.print(missing)

        if result.unavailable_jobs:
            unavailable = Table(
                title=f"Status Unavailable ({len(result.unavailable_jobs)})",
                border_style=MigrationColors.WARNING,
            )
            unavailable.add_column("Database")
            unavailable.add_column("Operation")
            unavailable.add_column("Error")
            for job in result.unavailable_jobs:
                unavailable.add_row(
                    Text(job.database_name),
                    Text(job.handle.operation_id) if job.handle else "-",
                    Text(job.detail.error_message or ""),
                )
            console.print(unavailable)

        if result.succeeded:
            console.print(
                f"[{MigrationColors.SUCCESS}]✓ All {result.total_jobs} database(s) imported"
                f"[/{MigrationColors.SUCCESS}]"
            )
        else:
            for reason in result.failure_reasons:
                console.print(Text(f"✗ {reason}", style=MigrationColors.ERROR))
