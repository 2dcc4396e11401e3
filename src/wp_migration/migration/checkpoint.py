"""
Checkpoint and resume management for migrations.

This module persists per-entity-type progress in a single human-readable JSON
file. The file is rewritten after every committed page using a write-new,
rename-over-old sequence, so a crash mid-write leaves the previous checkpoint
intact.
"""

import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from wp_migration.client.exceptions import CheckpointError
from wp_migration.migration.errors import ImportErrorRecord
from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)

STATE_VERSION = 1


class CheckpointRecord(BaseModel):
    """Progress of one entity type."""

    completed: bool = False
    count: int = 0
    last_page: int = 0
    total_pages: int | None = None
    # Type-specific cursor, e.g. source IDs of media already downloaded
    cursor: list[int] = Field(default_factory=list)
    updated_at: datetime | None = None


class MigrationState(BaseModel):
    """Everything the migration needs to resume: per-type records and the error log."""

    version: int = STATE_VERSION
    records: dict[str, CheckpointRecord] = Field(default_factory=dict)
    errors: list[ImportErrorRecord] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime | None = None

    def record(self, entity_type: str) -> CheckpointRecord:
        """Get the record of an entity type, creating an empty one if needed."""
        if entity_type not in self.records:
            self.records[entity_type] = CheckpointRecord()
        return self.records[entity_type]

    def is_completed(self, entity_type: str) -> bool:
        return entity_type in self.records and self.records[entity_type].completed


class CheckpointStore:
    """
    Loads and saves MigrationState to a single JSON file.

    Usage:
        store = CheckpointStore("migration-state.json")
        state = store.load()
        state.record("posts").last_page = 3
        store.save(state)
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> MigrationState:
        """
        Load state from disk.

        A missing, unreadable or corrupt file yields a fresh state; the
        migration then starts over instead of failing.
        """
        if not self.path.exists():
            logger.info("checkpoint_not_found", path=str(self.path))
            return MigrationState()

        try:
            state = MigrationState.model_validate_json(self.path.read_bytes())
        except (OSError, PydanticValidationError, ValueError) as e:
            logger.warning("checkpoint_unreadable", path=str(self.path), error=str(e))
            return MigrationState()

        logger.info(
            "checkpoint_loaded",
            path=str(self.path),
            completed=[name for name, rec in state.records.items() if rec.completed],
            errors=len(state.errors),
        )
        return state

    def save(self, state: MigrationState) -> None:
        """
        Atomically persist state.

        Raises:
            CheckpointError: If the file cannot be written
        """
        state.updated_at = datetime.now(UTC)
        payload = state.model_dump_json(indent=2)

        tmp_name: str | None = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                fh.write(payload)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_name, self.path)
        except OSError as e:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            logger.error("checkpoint_save_failed", path=str(self.path), error=str(e))
            raise CheckpointError(f"Cannot write checkpoint {self.path}: {e}") from e

        logger.debug("checkpoint_written", path=str(self.path))

    def reset(self, entity_type: str | None = None) -> MigrationState:
        """
        Clear progress for one entity type, or everything.

        Returns:
            The state that was saved
        """
        if entity_type is None:
            state = MigrationState()
        else:
            state = self.load()
            state.records.pop(entity_type, None)
        self.save(state)
        logger.info("checkpoint_reset", entity_type=entity_type or "all")
        return state
