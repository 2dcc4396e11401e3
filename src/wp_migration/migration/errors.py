"""Error accumulator.

Per-record and per-page failures are collected here instead of aborting the
run. The accumulated list is persisted with the checkpoint and summarised at
the end of the run.
"""

from datetime import UTC, datetime

from pydantic import BaseModel, Field

from wp_migration.utils.logging import get_logger

logger = get_logger(__name__)


class ImportErrorRecord(BaseModel):
    """One failed record or page."""

    entity_type: str
    source_id: int | None = None
    message: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ErrorAccumulator:
    """Append-only collector of import errors.

    Errors go into ``errors`` (usually the persisted state's list, so they
    survive restarts). Errors recorded since this accumulator was created are
    counted separately so the run summary reports only the current run.
    """

    def __init__(self, errors: list[ImportErrorRecord] | None = None):
        self.errors: list[ImportErrorRecord] = errors if errors is not None else []
        self._run_start = len(self.errors)

    def add(self, entity_type: str, source_id: int | None, message: str) -> ImportErrorRecord:
        error = ImportErrorRecord(entity_type=entity_type, source_id=source_id, message=message)
        self.errors.append(error)
        logger.warning("record_failed", entity_type=entity_type, source_id=source_id, error=message)
        return error

    @property
    def run_errors(self) -> list[ImportErrorRecord]:
        """Errors recorded during the current run."""
        return self.errors[self._run_start :]

    def count(self, entity_type: str | None = None) -> int:
        errors = self.run_errors
        if entity_type is None:
            return len(errors)
        return sum(1 for e in errors if e.entity_type == entity_type)

    def summary(self, limit: int = 50) -> list[ImportErrorRecord]:
        """The first ``limit`` errors of the current run."""
        return self.run_errors[:limit]

    def __len__(self) -> int:
        return len(self.run_errors)
