"""
Main CLI entry point for WP Bridge.

This module provides the command-line interface for migrating a WordPress
site's content into the destination store.
"""

import sys
from pathlib import Path

import click
from dotenv import load_dotenv

from wp_migration import __version__
from wp_migration.cli.commands import checkpoint as checkpoint_commands
from wp_migration.cli.commands import migrate as migrate_commands
from wp_migration.cli.context import MigrationContext
from wp_migration.utils.logging import configure_logging, get_logger

# Load environment variables from .env file
load_dotenv()

logger = get_logger(__name__)


@click.group()
@click.version_option(version=__version__, prog_name="wp-bridge")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
    envvar="WP_BRIDGE_CONFIG",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="INFO",
    help="Console logging level",
    envvar="WP_BRIDGE_LOG_LEVEL",
)
@click.option(
    "--log-file",
    type=click.Path(path_type=Path),
    help="Also write JSON logs to this file",
    envvar="WP_BRIDGE_LOG_FILE",
)
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    log_level: str,
    log_file: Path | None,
) -> None:
    """WP Bridge - Migrate WordPress content into a relational store.

    Examples:

        # Run the migration (resumes automatically)
        wp-bridge --config config.yaml migrate

        # Show progress
        wp-bridge --config config.yaml status
    """
    configure_logging(level=log_level, log_file=str(log_file) if log_file else None)

    ctx.obj = MigrationContext(
        config_path=config,
        log_level=log_level,
        log_file=log_file,
    )

    logger.debug("cli_initialized", config=str(config) if config else None, log_level=log_level)


cli.add_command(migrate_commands.migrate)
cli.add_command(migrate_commands.status)
cli.add_command(checkpoint_commands.checkpoint)


def main() -> int:
    """Main entry point for CLI."""
    try:
        # Without standalone mode, click returns the code of an Exit instead of raising
        rv = cli(standalone_mode=False)
        return rv if isinstance(rv, int) else 0
    except click.ClickException as e:
        e.show()
        return e.exit_code
    except click.exceptions.Abort:
        click.echo("Aborted!", err=True)
        return 1


if __name__ == "__main__":
    sys.exit(main())
