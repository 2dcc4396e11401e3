"""
Migration commands.

``migrate`` runs (or resumes) the migration; ``status`` shows how far the
checkpoint says it has got.
"""

import asyncio

import click

from wp_migration.cli.context import MigrationContext
from wp_migration.cli.decorators import handle_errors, pass_context, requires_config
from wp_migration.cli.utils import (
    console,
    echo_info,
    echo_success,
    echo_warning,
    format_duration,
)
from wp_migration.migration.coordinator import MigrationSummary
from wp_migration.reporting.report import MigrationReport, render_checkpoint, write_run_report
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)


async def _run_migration(ctx: MigrationContext, max_posts: int | None) -> MigrationSummary:
    async with ctx.coordinator() as coordinator:
        return await coordinator.run(max_posts=max_posts)


@click.command(name="migrate")
@click.argument("max_posts", type=click.IntRange(min=0), required=False)
@click.option(
    "--report/--no-report",
    default=True,
    show_default=True,
    help="Write a JSON run report to the report directory",
)
@pass_context
@requires_config
@handle_errors
def migrate(ctx: MigrationContext, max_posts: int | None, report: bool) -> None:
    """Migrate all content, resuming from the last checkpoint.

    MAX_POSTS bounds how many posts are imported in this run; without it
    everything remaining is imported.

    Examples:

        # Import everything
        wp-bridge --config config.yaml migrate

        # Staged run: at most 100 posts
        wp-bridge --config config.yaml migrate 100
    """
    if max_posts is not None:
        echo_info(f"Importing at most {max_posts} posts in this run")

    summary = asyncio.run(_run_migration(ctx, max_posts))

    MigrationReport(summary).render(console)

    if report:
        path = write_run_report(summary, ctx.config.paths.report_dir)
        echo_info(f"Report written to {path}")

    duration = format_duration(summary.duration_seconds)
    if summary.completed:
        echo_success(f"Migration completed in {duration}")
    else:
        echo_warning(
            f"Migration stopped after {duration} with work remaining; "
            "run the command again to continue"
        )


@click.command(name="status")
@pass_context
@requires_config
@handle_errors
def status(ctx: MigrationContext) -> None:
    """Show per-entity-type checkpoint progress."""
    store = ctx.checkpoint_store
    if not store.path.exists():
        echo_warning(f"No checkpoint at {store.path}; the migration has not started")
        return

    render_checkpoint(store.load(), console)
