"""
Decorators for CLI commands.

This module provides decorators for error handling, context passing,
and other common CLI patterns.
"""

import functools
from collections.abc import Callable

import click

from wp_migration.cli.context import MigrationContext
from wp_migration.client.exceptions import (
    APIError,
    AuthenticationError,
    ConfigurationError,
    DestinationError,
    NetworkError,
    StateError,
)
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)


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
    Decorator to turn errors into short messages and exit codes.

    Exit codes:
        0: Success
        1: General error
        2: Configuration error
        3: Authentication error
        4: Source API error
        5: State or destination store error
    """

    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)

        except click.exceptions.Exit:
            raise

        except (ConfigurationError, FileNotFoundError) as e:
            logger.error("configuration_error", error=str(e))
            click.echo(f"Configuration Error: {e}", err=True)
            raise click.exceptions.Exit(2) from e

        except AuthenticationError as e:
            logger.error("authentication_error", error=str(e))
            click.echo(f"Authentication Error: {e}", err=True)
            click.echo("\nPlease verify the source credentials in the configuration.", err=True)
            raise click.exceptions.Exit(3) from e

        except (APIError, NetworkError) as e:
            logger.error("api_error", error=str(e))
            click.echo(f"API Error: {e}", err=True)
            raise click.exceptions.Exit(4) from e

        except (StateError, DestinationError) as e:
            logger.error("state_error", error_type=type(e).__name__, error=str(e))
            click.echo(f"{type(e).__name__}: {e}", err=True)
            click.echo(
                "\nThe run was aborted. Progress up to the last saved checkpoint is kept; "
                "rerun the command once the problem is fixed.",
                err=True,
            )
            raise click.exceptions.Exit(5) from e

        except Exception as e:
            logger.error("unexpected_error", error=str(e), exc_info=True)
            click.echo(f"Unexpected Error: {e}", err=True)
            raise click.exceptions.Exit(1) from e

    return wrapper


def requires_config(f: Callable) -> Callable:
    """Decorator to ensure configuration is loaded before the command runs."""

    @functools.wraps(f)
    def wrapper(ctx: MigrationContext, *args, **kwargs):
        if ctx.config_path is None:
            click.echo(
                "Error: Configuration file required. Use --config option or set WP_BRIDGE_CONFIG.",
                err=True,
            )
            raise click.exceptions.Exit(2)

        try:
            _ = ctx.config
        except (ConfigurationError, FileNotFoundError) as e:
            click.echo(f"Error loading configuration: {e}", err=True)
            raise click.exceptions.Exit(2) from e

        return f(ctx, *args, **kwargs)

    return wrapper


def confirm_action(
    message: str = "Do you want to continue?",
    abort_message: str = "Operation cancelled.",
) -> Callable:
    """
    Decorator to prompt for confirmation before executing a command.

    The prompt is skipped when the command was given ``--yes``.
    """

    def decorator(f: Callable) -> Callable:
        @functools.wraps(f)
        def wrapper(*args, **kwargs):
            ctx = click.get_current_context()
            if ctx.params.get("yes", False):
                return f(*args, **kwargs)

            if not click.confirm(message):
                click.echo(abort_message)
                raise click.exceptions.Exit(0)

            return f(*args, **kwargs)

        return wrapper

    return decorator
