"""Migration coordinator.

This module drives the whole migration: entity types are processed strictly
in dependency order, each one page at a time, with the checkpoint persisted
after every committed page. Per-record and per-page failures are absorbed by
the error accumulator; only fatal infrastructure errors (destination store
unreachable, checkpoint unwritable) abort the run.
"""

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from wp_migration.client.downloader import AssetDownloader
from wp_migration.client.exceptions import (
    APIError,
    CheckpointError,
    DestinationUnavailableError,
    NetworkError,
    RecordImportError,
    WPMigrationError,
)
from wp_migration.client.source_client import ContentSourceClient
from wp_migration.config import MigrationConfig
from wp_migration.migration.checkpoint import CheckpointStore, MigrationState
from wp_migration.migration.errors import ErrorAccumulator, ImportErrorRecord
from wp_migration.migration.importer import EntityImporter, ImportOutcome, create_importer
from wp_migration.migration.store import DestinationStore
from wp_migration.migration.url_mapping import UrlMappingLog
from wp_migration.resources import get_info, get_migration_order
from wp_migration.utils.logging import get_logger, log_checkpoint, log_migration_progress
from wp_migration.utils.retry import retry_download

logger = get_logger(__name__)


class MigrationPhase(str, Enum):
    """States of the migration state machine."""

    NOT_STARTED = "not_started"
    USERS = "users"
    CATEGORIES = "categories"
    TAGS = "tags"
    MEDIA = "media"
    POSTS = "posts"
    PAGES = "pages"
    DONE = "done"
    FAILED = "failed"


# Entity types whose records must be committed before a type starts
PREREQUISITES: dict[str, tuple[str, ...]] = {
    "users": (),
    "categories": (),
    "tags": (),
    "media": (),
    "posts": ("users", "categories", "tags", "media"),
    "pages": ("users",),
}

FATAL_ERRORS = (DestinationUnavailableError, CheckpointError)

# Outcome of an in-page record that was not attempted because of the post limit
DEFERRED = "deferred"


@dataclass
class EntitySummary:
    """Per-entity-type counters of one run."""

    entity_type: str
    status: str = "pending"
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    pages: int = 0
    completed: bool = False


@dataclass
class MigrationSummary:
    """Structured result of a run."""

    phase: MigrationPhase
    entities: dict[str, EntitySummary]
    errors: list[ImportErrorRecord]
    total_errors: int
    unresolved_references: list[dict[str, Any]] = field(default_factory=list)
    manifest_path: str | None = None
    url_mappings: int = 0
    started_at: datetime | None = None
    finished_at: datetime | None = None

    @property
    def completed(self) -> bool:
        return all(e.completed for e in self.entities.values())

    @property
    def duration_seconds(self) -> float:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "completed": self.completed,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "duration_seconds": round(self.duration_seconds, 2),
            "entities": {name: asdict(summary) for name, summary in self.entities.items()},
            "total_errors": self.total_errors,
            "errors": [e.model_dump(mode="json") for e in self.errors],
            "unresolved_references": self.unresolved_references,
            "manifest_path": self.manifest_path,
            "url_mappings": self.url_mappings,
        }


class MigrationCoordinator:
    """Coordinates the migration of every entity type.

    Usage:
        coordinator = MigrationCoordinator(config, source, store, checkpoints,
                                           url_log, downloader)
        summary = await coordinator.run(max_posts=100)
    """

    def __init__(
        self,
        config: MigrationConfig,
        source: ContentSourceClient,
        store: DestinationStore,
        checkpoints: CheckpointStore,
        url_log: UrlMappingLog,
        downloader: AssetDownloader,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self.source = source
        self.store = store
        self.checkpoints = checkpoints
        self.url_log = url_log
        self.downloader = downloader
        self._sleep = sleep

        self.phase = MigrationPhase.NOT_STARTED
        self.errors = ErrorAccumulator()
        self.entities: dict[str, EntitySummary] = {}
        self.unresolved_references: list[dict[str, Any]] = []

        self._max_posts: int | None = None
        self._posts_reserved = 0
        self._fetched_any = False
        self._download_lock = asyncio.Lock()
        self._last_download: float | None = None

    async def run(self, max_posts: int | None = None) -> MigrationSummary:
        """Run (or resume) the migration.

        Args:
            max_posts: Stop after this many posts were imported in this run;
                None imports everything remaining

        Returns:
            MigrationSummary of the run

        Raises:
            DestinationUnavailableError: The destination store is unreachable
            CheckpointError: The checkpoint file cannot be written
        """
        if max_posts is not None and max_posts < 0:
            raise ValueError("max_posts must be >= 0")

        started_at = datetime.now(UTC)
        self.phase = MigrationPhase.NOT_STARTED
        self._max_posts = max_posts
        self._posts_reserved = 0

        state = self.checkpoints.load()
        self.errors = ErrorAccumulator(state.errors)
        self.entities = {name: EntitySummary(name) for name in get_migration_order()}
        self.unresolved_references = []
        manifest_path: Path | None = None
        flushed = 0

        logger.info("migration_started", max_posts=max_posts, resumed=bool(state.records))

        try:
            for entity_type in get_migration_order():
                self.phase = MigrationPhase(entity_type)
                await self._run_entity_type(state, entity_type)
            self.phase = MigrationPhase.DONE
            self.checkpoints.save(state)
        except FATAL_ERRORS as e:
            self.phase = MigrationPhase.FAILED
            logger.error(
                "migration_aborted",
                error_type=type(e).__name__,
                error=str(e),
                entity_type=self._current_entity_type(),
            )
            raise
        finally:
            flushed = len(self.url_log)
            try:
                manifest_path = self.url_log.flush()
            except WPMigrationError as e:
                flushed = 0
                logger.error("url_mapping_flush_failed", error=str(e))

        summary = MigrationSummary(
            phase=self.phase,
            entities=self.entities,
            errors=self.errors.summary(self.config.summary_error_limit),
            total_errors=len(self.errors),
            unresolved_references=self.unresolved_references,
            manifest_path=str(manifest_path) if manifest_path else None,
            url_mappings=flushed,
            started_at=started_at,
            finished_at=datetime.now(UTC),
        )

        logger.info(
            "migration_finished",
            completed=summary.completed,
            imported={name: s.imported for name, s in self.entities.items()},
            errors=summary.total_errors,
            duration_seconds=round(summary.duration_seconds, 2),
        )
        return summary

    def _current_entity_type(self) -> str | None:
        if self.phase in (MigrationPhase.NOT_STARTED, MigrationPhase.DONE, MigrationPhase.FAILED):
            return None
        return self.phase.value

    def _post_limit_reached(self) -> bool:
        return self._max_posts is not None and self._posts_reserved >= self._max_posts

    async def _run_entity_type(self, state: MigrationState, entity_type: str) -> None:
        """Import every remaining page of one entity type."""
        info = get_info(entity_type)
        record = state.record(entity_type)
        summary = self.entities[entity_type]

        if not self.config.phases.is_enabled(entity_type):
            summary.status = "disabled"
            logger.info("entity_type_disabled", entity_type=entity_type)
            return

        if record.completed:
            summary.status = "already_completed"
            summary.completed = True
            logger.info("entity_type_already_completed", entity_type=entity_type)
            return

        missing = [
            name
            for name in PREREQUISITES.get(entity_type, ())
            if self.config.phases.is_enabled(name) and not state.is_completed(name)
        ]
        if missing:
            # References to unfinished types would fall back to defaults
            summary.status = "blocked"
            logger.warning("entity_type_blocked", entity_type=entity_type, missing=missing)
            return

        importer = create_importer(
            entity_type,
            self.store,
            self.config,
            download=self._download,
            downloaded=record.cursor,
        )

        page = record.last_page + 1
        exhausted = record.total_pages is not None and record.last_page >= record.total_pages
        summary.status = "in_progress"

        while not exhausted:
            if entity_type == "posts" and self._post_limit_reached():
                summary.status = "limited"
                break

            if self._fetched_any and self.config.performance.page_delay > 0:
                await self._sleep(self.config.performance.page_delay)
            self._fetched_any = True

            try:
                result = await self.source.fetch_page(
                    info.endpoint,
                    page,
                    self.config.performance.page_size,
                    info.query_params(),
                )
            except (APIError, NetworkError) as e:
                self.errors.add(entity_type, None, f"page {page} fetch failed: {e}")
                summary.errors += 1
                summary.status = "fetch_failed"
                self.checkpoints.save(state)
                break

            if not result.records and page > result.total_pages:
                # Past the last page: nothing to commit
                record.total_pages = result.total_pages
                exhausted = True
                break

            outcomes = await self._import_page(importer, result.records)
            imported = outcomes.count(ImportOutcome.IMPORTED.value)
            summary.imported += imported
            summary.skipped += outcomes.count(ImportOutcome.SKIPPED.value)
            summary.errors += outcomes.count("error")

            if DEFERRED in outcomes:
                # The page was cut short by the post limit; it is redone next run
                summary.status = "limited"
                record.count += imported
                self.checkpoints.save(state)
                break

            await importer.after_page()

            record.last_page = page
            record.total_pages = result.total_pages
            record.count += imported
            record.updated_at = datetime.now(UTC)
            self.checkpoints.save(state)
            summary.pages += 1

            log_checkpoint(logger, entity_type, page, record.count)
            log_migration_progress(logger, entity_type, page, result.total_pages, summary.imported)

            if page >= result.total_pages:
                exhausted = True
            else:
                page += 1

        self.unresolved_references.extend(importer.unresolved_references)

        if exhausted:
            await importer.finalize()
            record.completed = True
            record.updated_at = datetime.now(UTC)
            self.checkpoints.save(state)
            summary.completed = True
            summary.status = "completed"
            logger.info(
                "entity_type_completed",
                entity_type=entity_type,
                imported=summary.imported,
                skipped=summary.skipped,
                errors=summary.errors,
            )

    async def _import_page(
        self, importer: EntityImporter, records: list[dict[str, Any]]
    ) -> list[str]:
        """Import every record of a page.

        Records run through a bounded worker pool. The call only returns
        once every record has finished, and a fatal error from any record
        is re-raised after that.

        Returns:
            One outcome per record: "imported", "skipped", "error" or "deferred"
        """
        semaphore = asyncio.Semaphore(self.config.performance.max_concurrent_records)
        is_posts = importer.entity_type == "posts"

        async def import_one(raw: dict[str, Any]) -> str:
            async with semaphore:
                if is_posts:
                    if self._post_limit_reached():
                        return DEFERRED
                    self._posts_reserved += 1
                try:
                    result = await importer.import_record(raw)
                except RecordImportError as e:
                    if is_posts:
                        self._posts_reserved -= 1
                    self.errors.add(e.entity_type, e.source_id, e.message)
                    return "error"
                except BaseException:
                    if is_posts:
                        self._posts_reserved -= 1
                    raise

                if result.outcome is ImportOutcome.SKIPPED and is_posts:
                    self._posts_reserved -= 1
                if result.url_row is not None:
                    self.url_log.append(result.url_row)
                return result.outcome.value

        results = await asyncio.gather(
            *(import_one(raw) for raw in records), return_exceptions=True
        )

        for item in results:
            if isinstance(item, BaseException):
                raise item
        return list(results)

    async def _download(self, url: str, destination: Path) -> int:
        """Download one asset, pacing consecutive downloads and retrying failures."""
        perf = self.config.performance
        async with self._download_lock:
            if self._last_download is not None and perf.download_delay > 0:
                remaining = perf.download_delay - (time.monotonic() - self._last_download)
                if remaining > 0:
                    await self._sleep(remaining)
            try:
                return await retry_download(
                    self.downloader.download,
                    url,
                    destination,
                    max_attempts=1 + perf.download_retries,
                    min_wait=perf.retry_backoff_min,
                    max_wait=perf.retry_backoff_max,
                )
            finally:
                self._last_download = time.monotonic()
