"""
Migration execution command.

Runs one batch: upload the local archives, start an import per archive,
poll until none is in progress, then check every database exists.
"""

import asyncio
from pathlib import Path

import click

from bacpac_migration.cli.context import MigrationContext
from bacpac_migration.cli.decorators import handle_errors, pass_context
from bacpac_migration.cli.utils import echo_info, echo_warning, format_bytes, print_table
from bacpac_migration.client.credentials import ClickCredentialPrompt
from bacpac_migration.client.exceptions import BatchFailedError
from bacpac_migration.client.session import AzureSessionProvider
from bacpac_migration.migration.coordinator import BatchCoordinator
from bacpac_migration.reporting.elapsed import format_duration
from bacpac_migration.reporting.progress import ProgressReporter
from bacpac_migration.reporting.report import BatchReport
from bacpac_migration.utils.logging import get_logger

logger = get_logger(__name__)


@click.command(name="migrate")
@click.option("--subscription-id", help="Azure subscription ID")
@click.option("--resource-group", help="Resource group of the server and storage account")
@click.option("--storage-account", help="Storage account receiving the archives")
@click.option("--container", help="Blob container for the archives")
@click.option("--server", "server_name", help="Target Azure SQL logical server")
@click.option("--admin-login", help="Server administrator login")
@click.option("--edition", help="Edition of the created databases (e.g. Standard)")
@click.option("--service-objective", help="Service objective of the created databases (e.g. S0)")
@click.option(
    "--source-dir",
    type=click.Path(file_okay=False, path_type=Path),
    help="Local directory holding the .bacpac archives",
)
@click.option(
    "--skip-upload",
    is_flag=True,
    help="Archives are already in the container; do not run AzCopy",
)
@click.option(
    "--azcopy-path",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Path to the azcopy executable",
)
@click.option(
    "--poll-interval",
    type=click.FloatRange(min=0, min_open=True),
    help="Seconds between status checks",
)
@click.option(
    "--max-wait",
    type=click.FloatRange(min=0, min_open=True),
    help="Stop polling after this many seconds (default: wait for completion)",
)
@click.option(
    "--max-concurrent-submissions",
    type=click.IntRange(min=1),
    help="Import requests in flight at once (default: 1, sequential)",
)
@click.option(
    "--report-json",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Write the batch result as JSON to this file",
)
@click.option("--dry-run", is_flag=True, help="List the imports that would be started, then stop")
@click.option("--no-progress", is_flag=True, help="Do not print the per-iteration progress table")
@click.option(
    "--non-interactive",
    is_flag=True,
    help="Never prompt; read the admin password from BACPAC_BRIDGE_ADMIN_PASSWORD",
)
@pass_context
@handle_errors
def migrate(
    ctx: MigrationContext,
    subscription_id: str | None,
    resource_group: str | None,
    storage_account: str | None,
    container: str | None,
    server_name: str | None,
    admin_login: str | None,
    edition: str | None,
    service_objective: str | None,
    source_dir: Path | None,
    skip_upload: bool,
    azcopy_path: Path | None,
    poll_interval: float | None,
    max_wait: float | None,
    max_concurrent_submissions: int | None,
    report_json: Path | None,
    dry_run: bool,
    no_progress: bool,
    non_interactive: bool,
) -> None:
    """Import every .bacpac archive into its own Azure SQL database.

    Each archive's file name (without extension) becomes the database name.
    Options override the configuration file.

    Examples:

        # Upload ./exports and import everything
        bacpac-bridge migrate --config config.yaml

        # Archives already uploaded, give up after two hours
        bacpac-bridge migrate --config config.yaml --skip-upload --max-wait 7200

        # Show what would be imported
        bacpac-bridge migrate --config config.yaml --dry-run
    """
    ctx.apply_overrides(
        {
            "azure": {"subscription_id": subscription_id, "resource_group": resource_group},
            "storage": {"account_name": storage_account, "container": container},
            "server": {
                "name": server_name,
                "admin_login": admin_login,
                "edition": edition,
                "service_objective": service_objective,
            },
            "upload": {
                "source_dir": str(source_dir) if source_dir else None,
                "skip_upload": skip_upload or None,
                "azcopy_path": str(azcopy_path) if azcopy_path else None,
            },
            "polling": {
                "interval_seconds": poll_interval,
                "max_wait_seconds": max_wait,
                "max_concurrent_submissions": max_concurrent_submissions,
            },
            "report": {"json_path": str(report_json) if report_json else None},
            "dry_run": dry_run or None,
        }
    )
    config = ctx.config
    console = ctx.console

    echo_info(
        f"Importing archives from container '{config.storage.container}' "
        f"into server '{config.server.name}'"
    )
    if config.dry_run:
        echo_warning("Dry run: no archives are uploaded and no imports are started")

    def report_elapsed(elapsed: float, error: BaseException | None) -> None:
        console.print(f"Elapsed: {format_duration(elapsed)}")

    reporter = ProgressReporter(
        console=console, enabled=not (no_progress or config.logging.disable_progress)
    )
    coordinator = BatchCoordinator(
        config,
        session_provider=AzureSessionProvider(
            tenant_id=config.azure.tenant_id,
            interactive=config.azure.interactive_login,
            management_url=config.azure.management_url,
        ),
        credential_prompt=ClickCredentialPrompt(interactive=not non_interactive),
        on_snapshot=reporter,
        on_elapsed=report_elapsed,
    )

    try:
        result = asyncio.run(coordinator.run())
    except BatchFailedError as e:
        BatchReport(e.result, config.server.name, run_id=coordinator.run_id).render(console)
        raise

    if config.dry_run:
        source = (
            f"container '{config.storage.container}'"
            if config.upload.skip_upload
            else config.upload.source_dir
        )
        print_table(
            console,
            f"Planned Imports from {source} ({len(coordinator.planned)})",
            ["Archive", "Database", "Size"],
            [[a.name, a.base_name, format_bytes(a.size)] for a in coordinator.planned],
        )
        return

    BatchReport(result, config.server.name, run_id=coordinator.run_id).render(console)
