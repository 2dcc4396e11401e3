"""
Checkpoint management commands.

This module provides commands to inspect the checkpoint file and to clear
progress so that an entity type is imported again from its first page.
"""

import click

from wp_migration.cli.context import MigrationContext
from wp_migration.cli.decorators import (
    confirm_action,
    handle_errors,
    pass_context,
    requires_config,
)
from wp_migration.cli.utils import console, echo_success, echo_warning
from wp_migration.reporting.report import render_checkpoint
from wp_migration.resources import get_migration_order


@click.group(name="checkpoint")
def checkpoint() -> None:
    """Checkpoint management commands."""
    pass


@checkpoint.command(name="show")
@pass_context
@requires_config
@handle_errors
def show(ctx: MigrationContext) -> None:
    """Show the checkpoint file contents."""
    store = ctx.checkpoint_store
    if not store.path.exists():
        echo_warning(f"No checkpoint at {store.path}")
        return
    render_checkpoint(store.load(), console)


@checkpoint.command(name="reset")
@click.argument(
    "entity_type",
    type=click.Choice(get_migration_order()),
    required=False,
)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@pass_context
@requires_config
@handle_errors
@confirm_action("This clears migration progress. Continue?")
def reset(ctx: MigrationContext, entity_type: str | None, yes: bool) -> None:
    """Clear progress of ENTITY_TYPE, or of every entity type.

    Records already in the destination are kept; a rerun skips them.
    """
    ctx.checkpoint_store.reset(entity_type)
    echo_success(f"Checkpoint reset for {entity_type or 'all entity types'}")
