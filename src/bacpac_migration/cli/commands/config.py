"""
Configuration management commands.

This module provides commands for validating and displaying the migration
configuration.
"""

import asyncio
import shutil
from pathlib import Path

import click

from bacpac_migration.cli.context import MigrationContext
from bacpac_migration.cli.decorators import handle_errors, pass_context
from bacpac_migration.cli.utils import echo_error, echo_info, echo_success, echo_warning, print_table
from bacpac_migration.client.arm_client import ArmClient
from bacpac_migration.client.session import AzureSessionProvider
from bacpac_migration.config import MigrationConfig
from bacpac_migration.migration.enumerator import list_local_archives
from bacpac_migration.utils.logging import get_logger, sanitize_payload

logger = get_logger(__name__)


@click.group(name="config")
def config() -> None:
    """Configuration management commands.

    Validate and display migration configuration.
    """
    pass


@config.command(name="validate")
@click.option(
    "--check-connectivity",
    is_flag=True,
    help="Sign in and confirm the server and storage account are reachable",
)
@pass_context
@handle_errors
def validate(ctx: MigrationContext, check_connectivity: bool) -> None:
    """Validate migration configuration.

    Checks required fields, name formats, the source directory and the AzCopy
    executable. With --check-connectivity it also signs in to Azure and reads
    the server and the storage account keys.

    Examples:

        bacpac-bridge config validate --config config.yaml

        bacpac-bridge config validate --config config.yaml --check-connectivity
    """
    echo_info(f"Validating configuration: {ctx.config_path or 'options and environment'}")

    config = ctx.config

    click.echo()
    _display_config_summary(ctx, config)

    click.echo()
    echo_info("Validating upload settings...")
    _validate_upload(config)

    echo_info("Validating polling settings...")
    _validate_polling(config)

    if check_connectivity:
        click.echo()
        echo_info("Testing connectivity...")
        asyncio.run(_test_connectivity(config))

    click.echo()
    echo_success("Configuration is valid!")


def _display_config_summary(ctx: MigrationContext, config: MigrationConfig) -> None:
    """Display configuration summary."""
    rows = [
        ["Subscription", config.azure.subscription_id],
        ["Resource Group", config.azure.resource_group],
        ["Storage Container", config.storage.container_url],
        ["Server", config.server.name],
        ["Edition / Objective", f"{config.server.edition} / {config.server.service_objective}"],
        ["Source Directory", "(skipped)" if config.upload.skip_upload else config.upload.source_dir],
        ["Poll Interval (s)", config.polling.interval_seconds],
        ["Max Wait (s)", config.polling.max_wait_seconds or "until complete"],
    ]

    print_table(ctx.console, "Configuration Summary", ["Setting", "Value"], rows)


def _validate_upload(config: MigrationConfig) -> None:
    """Check the source directory and AzCopy when the upload step will run."""
    if config.upload.skip_upload:
        echo_success("Upload skipped; archives are expected in the container")
        return

    source_dir = config.upload.source_dir
    archives = list_local_archives(source_dir, extension=config.storage.archive_extension)
    if archives:
        echo_success(f"Found {len(archives)} archive(s) in {source_dir}")
    else:
        echo_warning(f"No {config.storage.archive_extension} files in {source_dir}")

    azcopy = config.upload.azcopy_path or shutil.which("azcopy")
    if not azcopy or not Path(azcopy).is_file():
        echo_error("AzCopy not found (install it or set upload.azcopy_path)")
        raise click.ClickException("AzCopy executable not found")
    echo_success(f"AzCopy found: {azcopy}")


def _validate_polling(config: MigrationConfig) -> None:
    """Warn about polling settings that are legal but unusual."""
    polling = config.polling
    if polling.interval_seconds < 5:
        echo_warning(
            f"Poll interval of {polling.interval_seconds}s may hit ARM throttling limits"
        )
    if polling.max_wait_seconds is not None and polling.max_wait_seconds < polling.interval_seconds:
        echo_warning("Max wait is shorter than one poll interval; only one status check will run")
    if polling.max_concurrent_submissions > 1:
        echo_warning(
            f"{polling.max_concurrent_submissions} concurrent submissions; the server may "
            "reject imports beyond its concurrent operation limit"
        )
    echo_success("Polling settings are valid")


async def _test_connectivity(config: MigrationConfig) -> None:
    """Sign in, then read the server and the storage account keys."""
    provider = AzureSessionProvider(
        tenant_id=config.azure.tenant_id,
        interactive=config.azure.interactive_login,
        management_url=config.azure.management_url,
    )
    session = await provider.select_context(config.azure.subscription_id)
    echo_success(f"Signed in to subscription {config.azure.subscription_id}")

    async with ArmClient(
        session,
        resource_group=config.azure.resource_group,
        api_version_sql=config.client.api_version_sql,
        api_version_storage=config.client.api_version_storage,
        timeout=config.client.timeout,
    ) as client:
        await client.verify_access(config.server.name)
        echo_success(f"SQL server accessible: {config.server.name}")

        await client.get_primary_key(config.azure.resource_group, config.storage.account_name)
        echo_success(f"Storage account keys readable: {config.storage.account_name}")


@config.command(name="show")
@pass_context
@handle_errors
def show(ctx: MigrationContext) -> None:
    """Display current configuration.

    Shows the loaded configuration with sensitive values masked.

    Examples:

        bacpac-bridge config show --config config.yaml
    """
    config = ctx.config
    data = sanitize_payload(config.model_dump(mode="json"))

    _display_config_summary(ctx, config)

    for section in ("azure", "storage", "server", "upload", "polling", "client", "logging", "report"):
        click.echo(f"\n{section.title()} Configuration:")
        for key, value in data[section].items():
            click.echo(f"  {key}: {value}")

    if config.dry_run:
        click.echo("\nDry run: enabled")
