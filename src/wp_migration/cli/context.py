"""
CLI context for WP Bridge.

This module provides the context object that is passed to all CLI commands.
It loads the configuration lazily and builds the collaborators of a run.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path

from wp_migration.client.downloader import AssetDownloader
from wp_migration.client.exceptions import ConfigurationError
from wp_migration.client.source_client import ContentSourceClient
from wp_migration.config import MigrationConfig, load_config_from_yaml
from wp_migration.migration.checkpoint import CheckpointStore
from wp_migration.migration.coordinator import MigrationCoordinator
from wp_migration.migration.store import DestinationStore
from wp_migration.migration.url_mapping import UrlMappingLog
from wp_migration.utils.logging import configure_logging, get_logger

logger = get_logger(__name__)


@dataclass
class MigrationContext:
    """
    Context object for CLI commands.

    Attributes:
        config_path: Path to configuration file
        log_level: Console logging level
        log_file: Log file given on the command line (overrides the config)
    """

    config_path: Path | None = None
    log_level: str = "INFO"
    log_file: Path | None = None

    _config: MigrationConfig | None = field(default=None, init=False, repr=False)

    @property
    def config(self) -> MigrationConfig:
        """Get or load migration configuration."""
        if self._config is None:
            if self.config_path is None:
                raise ConfigurationError(
                    "Configuration file path not provided. "
                    "Use --config option or set WP_BRIDGE_CONFIG environment variable."
                )

            self._config = load_config_from_yaml(self.config_path)
            logger.debug("config_loaded", config_path=str(self.config_path))

            log_config = self._config.logging
            if self.log_file is None and log_config.file:
                configure_logging(
                    level=self.log_level,
                    log_format=log_config.format,
                    log_file=log_config.file,
                    file_level=log_config.file_level,
                )

        return self._config

    @property
    def checkpoint_store(self) -> CheckpointStore:
        return CheckpointStore(self.config.paths.checkpoint_file)

    def create_source_client(self) -> ContentSourceClient:
        source = self.config.source
        perf = self.config.performance
        return ContentSourceClient(
            source.url,
            username=source.username,
            password=source.app_password,
            token=source.token,
            verify_ssl=source.verify_ssl,
            timeout=source.timeout,
            rate_limit=perf.rate_limit,
            max_connections=perf.max_connections,
            user_agent=source.user_agent,
            retry_attempts=perf.retry_attempts,
            retry_backoff_min=perf.retry_backoff_min,
            retry_backoff_max=perf.retry_backoff_max,
        )

    def create_store(self) -> DestinationStore:
        dest = self.config.destination
        return DestinationStore.from_url(dest.database_url, echo=dest.echo_sql)

    @asynccontextmanager
    async def coordinator(self) -> AsyncIterator[MigrationCoordinator]:
        """Build a coordinator and release its clients and store afterwards."""
        config = self.config
        store = self.create_store()
        try:
            async with self.create_source_client() as source, AssetDownloader(
                timeout=config.performance.download_timeout,
                verify_ssl=config.source.verify_ssl,
                user_agent=config.source.user_agent,
            ) as downloader:
                yield MigrationCoordinator(
                    config=config,
                    source=source,
                    store=store,
                    checkpoints=self.checkpoint_store,
                    url_log=UrlMappingLog(config.paths.url_mapping_file),
                    downloader=downloader,
                )
        finally:
            store.close()
