"""
Migration engine for WP Bridge.

This package holds the destination schema and store, the checkpoint store,
the entity importers and the coordinator that sequences them.
"""

from wp_migration.migration.checkpoint import CheckpointRecord, CheckpointStore, MigrationState
from wp_migration.migration.coordinator import (
    MigrationCoordinator,
    MigrationPhase,
    MigrationSummary,
)
from wp_migration.migration.errors import ErrorAccumulator, ImportErrorRecord
from wp_migration.migration.importer import ImportOutcome, ImportResult, create_importer
from wp_migration.migration.store import DestinationStore
from wp_migration.migration.url_mapping import UrlMappingLog, UrlMappingRow

__all__ = [
    # Checkpoints
    "CheckpointRecord",
    "CheckpointStore",
    "MigrationState",
    # Coordination
    "MigrationCoordinator",
    "MigrationPhase",
    "MigrationSummary",
    # Errors
    "ErrorAccumulator",
    "ImportErrorRecord",
    # Import
    "ImportOutcome",
    "ImportResult",
    "create_importer",
    # Destination
    "DestinationStore",
    # URL mapping
    "UrlMappingLog",
    "UrlMappingRow",
]
