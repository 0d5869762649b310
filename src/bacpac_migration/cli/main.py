"""
Main CLI entry point for BACPAC Bridge.

This module provides the command-line interface for importing a batch of
bacpac archives into Azure SQL.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from bacpac_migration import __version__
from bacpac_migration.cli.commands import config as config_commands
from bacpac_migration.cli.commands import migrate as migrate_commands
from bacpac_migration.cli.context import MigrationContext
from bacpac_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="bacpac-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file",
    envvar="BACPAC_BRIDGE_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Console logging level (overrides logging.level; default: WARNING)",
    envvar="BACPAC_BRIDGE_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="Log file path (overrides logging.file)",
    envvar="BACPAC_BRIDGE_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str | None,
    log_file: Path | None,
) -> None:
    """BACPAC Bridge - Import bacpac archives into Azure SQL databases.

    Uploads a directory of .bacpac archives to blob storage, starts one
    import per archive on the target server, follows every import until it
    finishes and verifies that each database exists.

    Examples:

        # Validate configuration
        bacpac-bridge config validate --config config.yaml

        # Run the batch
        bacpac-bridge migrate --config config.yaml

        # Everything from options and environment
        bacpac-bridge migrate --subscription-id ... --resource-group rg \\
            --storage-account acct --server sqlsrv --admin-login sqladmin --skip-upload
    """
    # Until the configuration is loaded only the command-line settings apply
    configure_logging(level=(log_level or "WARNING").upper(), log_file=log_file)

    ctx.obj = MigrationContext(
        config_path=config,
        log_level=log_level.upper() if log_level else None,
        log_file=log_file,
    )

    logger.debug(
        "cli_initialized",
        config=str(config) if config else None,
        log_level=log_level,
    )


cli.add_command(config_commands.config)
cli.add_command(migrate_commands.migrate)


def main() -> int:
    """Main entry point for CLI."""
    try:
        # Without standalone mode click returns the code of an Exit instead of raising it
        rv = cli(standalone_mode=False)
        return rv if isinstance(rv, int) else 0
    except click.exceptions.Exit as e:
        return e.exit_code
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1
    except Exception as e:
        logger.error("unexpected_error", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
