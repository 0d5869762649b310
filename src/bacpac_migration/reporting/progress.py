"""Per-iteration progress report for the status poller.

Each polling iteration produces a :class:`ProgressSnapshot`; this module turns
it into a Rich table listing every import that has not succeeded yet.
"""

from datetime import datetime

from rich.console import Console
from rich.table import Table
from rich.text import Text

from bacpac_migration.migration.models import ImportStatus, JobSnapshot, ProgressSnapshot
from bacpac_migration.reporting.colors import MigrationColors
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)


def _format_time(value: datetime | None) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def status_text(status: ImportStatus) -> Text:
    """Render a status value in its color."""
    return Text(status.value.replace("_", " "), style=MigrationColors.for_status(status))


def build_snapshot_table(snapshot: ProgressSnapshot) -> Table:
    """Build the table for one progress snapshot.

    Args:
        snapshot: Snapshot emitted by the poller

    Returns:
        Rich table with one row per job that has not succeeded
    """
    title = (
        f"Iteration {snapshot.iteration}: {snapshot.total_jobs} import(s) queued, "
        f"{snapshot.not_succeeded} not yet succeeded"
    )
    table = Table(title=title, border_style=MigrationColors.BORDER, header_style=MigrationColors.HEADER)
    table.add_column("Database")
    table.add_column("Operation")
    table.add_column("Status")
    table.add_column("Status Message")
    table.add_column("Error")
    table.add_column("Queued")
    table.add_column("Modified")

    for item in snapshot.items:
        table.add_row(*_row(item))

    return table


def _row(item: JobSnapshot) -> list[str | Text]:
    # Service text may contain brackets, so it is never parsed as markup
    return [
        Text(item.database_name),
        Text(item.handle.operation_id) if item.handle else "-",
        status_text(item.status),
        Text(item.detail.status_message or ""),
        Text(item.detail.error_message or ""),
        _format_time(item.detail.queued_time),
        _format_time(item.detail.modified_time),
    ]


class ProgressReporter:
    """Prints a progress table for every polling iteration.

    Instances are callables so they can be passed directly as the poller's
    ``on_snapshot`` sink.
    """

    def __init__(self, console: Console | None = None, enabled: bool = True):
        """Initialize the reporter.

        Args:
            console: Console to print to (defaults to stdout)
            enabled: When False, snapshots are only counted (useful for CI/logging)
        """
        self.console = console or Console()
        self.enabled = enabled
        self.snapshots_seen = 0
        self.last_snapshot: ProgressSnapshot | None = None

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        self.snapshots_seen += 1
        self.last_snapshot = snapshot

        if not self.enabled:
            return

        if snapshot.not_succeeded == 0:
            self.console.print(
                f"[{MigrationColors.SUCCESS}]Iteration {snapshot.iteration}: all "
                f"{snapshot.total_jobs} import(s) succeeded[/{MigrationColors.SUCCESS}]"
            )
            return

        self.console.print(build_snapshot_table(snapshot))
