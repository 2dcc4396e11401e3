"""Migration run reports.

A run ends with a structured summary: per-entity-type counts, the capped
error list and the references that had to be dropped. This module renders
that summary for the terminal (rich) and writes it as a JSON report.
"""

import json
from datetime import UTC, datetime
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from wp_migration.migration.checkpoint import MigrationState
from wp_migration.migration.coordinator import MigrationSummary
from wp_migration.resources import get_migration_order
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)

STATUS_STYLES = {
    "completed": "green",
    "already_completed": "green",
    "in_progress": "yellow",
    "limited": "yellow",
    "fetch_failed": "red",
    "blocked": "red",
    "disabled": "dim",
}


class MigrationReport:
    """Renders a MigrationSummary."""

    def __init__(self, summary: MigrationSummary):
        self.summary = summary
        self.generated_at = datetime.now(UTC)

    def generate_json(self, output_path: str | Path | None = None) -> str:
        """Generate JSON report.

        Args:
            output_path: Optional path to save report

        Returns:
            JSON report as string
        """
        report = {
            "report_version": "1.0",
            "generated_at": self.generated_at.isoformat(),
            **self.summary.to_dict(),
        }
        json_str = json.dumps(report, indent=2, default=str)

        if output_path:
            path = Path(output_path)
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json_str)
            logger.info("json_report_saved", path=str(path))

        return json_str

    def render(self, console: Console | None = None) -> None:
        """Print the summary tables."""
        console = console or Console()

        table = Table(title="Migration Summary")
        table.add_column("Entity type")
        table.add_column("Status")
        table.add_column("Imported", justify="right")
        table.add_column("Skipped", justify="right")
        table.add_column("Errors", justify="right")
        table.add_column("Pages", justify="right")

        for name, entity in self.summary.entities.items():
            style = STATUS_STYLES.get(entity.status, "white")
            table.add_row(
                name,
                f"[{style}]{entity.status}[/{style}]",
                f"{entity.imported:,}",
                f"{entity.skipped:,}",
                f"{entity.errors:,}",
                str(entity.pages),
            )
        console.print(table)

        if self.summary.errors:
            errors = Table(title=f"Errors ({self.summary.total_errors} total)")
            errors.add_column("Entity type")
            errors.add_column("Source ID", justify="right")
            errors.add_column("Message")
            for error in self.summary.errors:
                errors.add_row(
                    error.entity_type,
                    "-" if error.source_id is None else str(error.source_id),
                    escape(error.message),
                )
            console.print(errors)
            if self.summary.total_errors > len(self.summary.errors):
                console.print(
                    f"[dim]... {self.summary.total_errors - len(self.summary.errors)} "
                    f"more errors in the checkpoint file[/dim]"
                )

        if self.summary.unresolved_references:
            console.print(
                f"[yellow]{len(self.summary.unresolved_references)} references could not be "
                f"resolved and were dropped[/yellow]"
            )

        if self.summary.manifest_path:
            console.print(
                f"URL mappings: {self.summary.url_mappings} rows written to "
                f"{self.summary.manifest_path}"
            )


def write_run_report(summary: MigrationSummary, report_dir: str | Path) -> Path:
    """Write the JSON report of a run into ``report_dir``.

    Returns:
        Path of the report file
    """
    timestamp = datetime.now(UTC).strftime("%Y%m%d_%H%M%S")
    path = Path(report_dir) / f"migration_report_{timestamp}.json"
    MigrationReport(summary).generate_json(path)
    return path


def render_checkpoint(state: MigrationState, console: Console | None = None) -> None:
    """Print per-entity-type checkpoint records."""
    console = console or Console()
    table = Table(title="Checkpoint")
    table.add_column("Entity type")
    table.add_column("Completed")
    table.add_column("Imported", justify="right")
    table.add_column("Last page", justify="right")
    table.add_column("Total pages", justify="right")
    table.add_column("Updated")

    for name in get_migration_order():
        record = state.records.get(name)
        if record is None:
            table.add_row(name, "[dim]no[/dim]", "0", "0", "-", "-")
            continue
        table.add_row(
            name,
            "[green]yes[/green]" if record.completed else "[yellow]no[/yellow]",
            f"{record.count:,}",
            str(record.last_page),
            "-" if record.total_pages is None else str(record.total_pages),
            record.updated_at.strftime("%Y-%m-%d %H:%M:%S") if record.updated_at else "-",
        )
    console.print(table)
    console.print(f"Recorded errors: {len(state.errors)}")
