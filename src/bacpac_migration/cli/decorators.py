"""
Decorators for CLI commands.

This module provides decorators for error handling and context passing.
"""

import functools
from collections.abc import Callable

import click

from bacpac_migration.cli.context import MigrationContext
from bacpac_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    BatchFailedError,
    ConfigurationError,
    NetworkError,
    UpstreamError,
)
from bacpac_migration.utils.logging import get_logger, log_error

logger = get_logger(__name__)

EXIT_GENERAL = 1
EXIT_CONFIGURATION = 2
EXIT_AUTHENTICATION = 3
EXIT_API = 4
EXIT_BATCH_FAILED = 6
EXIT_INTERRUPTED = 130


def pass_context(f: Callable) -> Callable:
    """
    Decorator to pass MigrationContext to command function.

    Usage:
        @click.command()
        @pass_context
        def my_command(ctx: MigrationContext):
            print(ctx.config)
    """

    @click.pass_context
    @functools.wraps(f)
    def wrapper(click_ctx: click.Context, *args, **kwargs):
        migration_ctx: MigrationContext = click_ctx.obj
        return f(migration_ctx, *args, **kwargs)

    return wrapper


def handle_errors(f: Callable) -> Callable:
    """
    Decorator to handle common errors in CLI commands.

    Converts exceptions to user-friendly error messages with exit codes.

    Exit codes:
        0: Success
        1: General error
        2: Configuration error
        3: Authentication error
        4: API or upstream error (storage, upload, enumeration)
        6: Batch failed (failed imports or missing databases)
        130: Interrupted
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except click.exceptions.Exit:
            raise

        except BatchFailedError as e:
            logger.error("batch_failed", reasons=e.reasons)
            click.echo(f"Batch Failed: {e}", err=True)
            raise click.exceptions.Exit(EXIT_BATCH_FAILED) from e

        except ConfigurationError as e:
            logger.error("configuration_error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            click.echo(
                "\nPlease check your configuration file and ensure all required fields are set.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_CONFIGURATION) from e

        except AuthenticationError as e:
            logger.error("authentication_error", error=str(e))
            click.echo(f"Authentication Error: {e}", err=True)
            click.echo(
                "\nSign in with 'az login' or set azure.interactive_login, and check the tenant.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_AUTHENTICATION) from e

        except APIError as e:
            logger.error("api_error", error=str(e), status_code=e.status_code)
            click.echo(f"API Error: {e}", err=True)
            raise click.exceptions.Exit(EXIT_API) from e

        except (UpstreamError, NetworkError) as e:
            logger.error("upstream_error", error_type=type(e).__name__, error=str(e))
            click.echo(f"Error: {e}", err=True)
            raise click.exceptions.Exit(EXIT_API) from e

        except KeyboardInterrupt as e:
            click.echo("\nInterrupted.", err=True)
            raise click.exceptions.Exit(EXIT_INTERRUPTED) from e

        except Exception as e:
            log_error(logger, e, context=f.__name__)
            click.echo(f"Unexpected Error: {e}", err=True)
            click.echo(
                "\nAn unexpected error occurred. Please check the logs for details.",
                err=True,
            )
            raise click.exceptions.Exit(EXIT_GENERAL) from e

    return wrapper
