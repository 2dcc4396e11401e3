"""Configuration management for WP Bridge using Pydantic.

This module provides type-safe configuration models for the source content
API, the destination store, local paths, pacing and logging.
"""

import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from wp_migration.client.exceptions import ConfigurationError


class SourceConfig(BaseModel):
    """Configuration for the source content API."""

    url: str = Field(..., description="Collection base URL, e.g. https://site/wp-json/wp/v2")
    username: str | None = Field(default=None, description="Basic auth user name")
    app_password: str | None = Field(default=None, description="Application password")
    token: str | None = Field(default=None, description="Bearer token (alternative to basic auth)")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    timeout: float = Field(default=30, ge=1, le=600, description="Request timeout in seconds")
    user_agent: str | None = Field(default=None, description="User-Agent header override")

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate and normalize URL."""
        if not v.startswith(("http://", "https://")):
            raise ValueError("URL must start with http:// or https://")
        return v.rstrip("/")

    @model_validator(mode="after")
    def validate_credentials(self) -> "SourceConfig":
        if self.username and not self.app_password:
            raise ValueError("app_password is required when username is set")
        return self


class DestinationConfig(BaseModel):
    """Configuration for the destination store and the URLs it serves."""

    database_url: str = Field(
        default="sqlite:///wp_bridge.db",
        description="SQLAlchemy URL, or a bare path to a SQLite file",
    )
    site_url: str = Field(default="https://example.com", description="Base of the new URLs")
    post_path: str = Field(default="/blog/{slug}", description="New URL path template for posts")
    page_path: str = Field(default="/{slug}", description="New URL path template for pages")
    default_author_email: str = Field(default="wordpress-import@imported.local")
    default_author_name: str = Field(default="Imported Author")
    echo_sql: bool = Field(default=False, description="Log every SQL statement")

    @field_validator("database_url")
    @classmethod
    def normalize_database_url(cls, v: str) -> str:
        """Treat a bare path as a SQLite database file."""
        if "://" not in v:
            return f"sqlite:///{v}"
        return v

    @field_validator("site_url")
    @classmethod
    def strip_site_url(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("post_path", "page_path")
    @classmethod
    def validate_path_template(cls, v: str) -> str:
        if "{slug}" not in v:
            raise ValueError("Path template must contain {slug}")
        return v if v.startswith("/") else f"/{v}"


class PathConfig(BaseModel):
    """Configuration for local file paths."""

    media_dir: str = Field(default="media", description="Directory for downloaded assets")
    media_url_prefix: str = Field(default="/media", description="Public URL prefix of assets")
    checkpoint_file: str = Field(default="migration-state.json", description="Checkpoint file")
    url_mapping_file: str = Field(default="migration-log.csv", description="URL mapping manifest")
    report_dir: str = Field(default="reports", description="Directory for run reports")

    @field_validator("media_url_prefix")
    @classmethod
    def strip_prefix(cls, v: str) -> str:
        return v.rstrip("/")


class PerformanceConfig(BaseModel):
    """Pacing, retry and concurrency configuration."""

    page_size: int = Field(default=100, ge=1, le=100, description="Records per page")
    page_delay: float = Field(default=0.5, ge=0, description="Seconds between page fetches")
    download_delay: float = Field(default=0.5, ge=0, description="Seconds between downloads")
    rate_limit: float = Field(default=0, ge=0, description="Requests per second (0 = off)")
    max_concurrent_records: int = Field(
        default=1, ge=1, le=32, description="Records imported concurrently within one page"
    )
    max_connections: int = Field(default=10, ge=1, le=100, description="HTTP connection pool size")
    retry_attempts: int = Field(default=3, ge=1, le=10, description="Attempts per page fetch")
    retry_backoff_min: float = Field(default=1, ge=0, description="Minimum retry backoff")
    retry_backoff_max: float = Field(default=30, ge=0, description="Maximum retry backoff")
    download_retries: int = Field(
        default=1, ge=0, le=3, description="Extra attempts for a failed asset download"
    )
    download_timeout: float = Field(default=60, ge=1, description="Asset download timeout")


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Console log level")
    file_level: str = Field(default="DEBUG", description="File log level")
    format: str = Field(default="json", description="Log file format (json or console)")
    file: str | None = Field(default=None, description="Log file path")

    @field_validator("level", "file_level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Log level must be one of: {', '.join(valid_levels)}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_format(cls, v: str) -> str:
        """Validate log format."""
        v_lower = v.lower()
        if v_lower not in ("json", "console"):
            raise ValueError("Log format must be one of: json, console")
        return v_lower


class PhasesConfig(BaseModel):
    """Per-entity-type switches. A disabled type is skipped but never marked completed."""

    users: bool = Field(default=True)
    categories: bool = Field(default=True)
    tags: bool = Field(default=True)
    media: bool = Field(default=True)
    posts: bool = Field(default=True)
    pages: bool = Field(default=True)

    def is_enabled(self, entity_type: str) -> bool:
        return bool(getattr(self, entity_type, False))


class MigrationConfig(BaseSettings):
    """Main migration configuration.

    Environment variables override values from the YAML file, using ``__`` as
    the nesting delimiter (``PERFORMANCE__PAGE_DELAY=0``).
    """

    model_config = SettingsConfigDict(
        env_prefix="",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    source: SourceConfig = Field(..., description="Source content API configuration")
    destination: DestinationConfig = Field(
        default_factory=DestinationConfig, description="Destination store configuration"
    )
    paths: PathConfig = Field(default_factory=PathConfig, description="Path configuration")
    performance: PerformanceConfig = Field(
        default_factory=PerformanceConfig, description="Performance configuration"
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
    phases: PhasesConfig = Field(default_factory=PhasesConfig, description="Phase configuration")

    summary_error_limit: int = Field(
        default=50, ge=1, description="Maximum errors listed in the run summary"
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return env_settings, init_settings, file_secret_settings


def load_config_from_yaml(config_path: str | Path) -> MigrationConfig:
    """Load configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        MigrationConfig: Loaded configuration

    Raises:
        FileNotFoundError: If config file doesn't exist
        ConfigurationError: If config file is empty or invalid
    """
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path) as f:
        try:
            config_data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not config_data:
        raise ConfigurationError(f"Empty configuration file: {config_path}")

    config_data = _expand_env_vars(config_data)

    try:
        return MigrationConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration in {config_path}:\n{e}") from e


def _expand_env_vars(data):
    """Recursively expand ``${VAR_NAME}`` values from the environment.

    Raises:
        ConfigurationError: If a referenced variable is not set
    """
    if isinstance(data, dict):
        return {k: _expand_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_expand_env_vars(item) for item in data]
    elif isinstance(data, str) and data.startswith("${") and data.endswith("}"):
        var_name = data[2:-1]
        env_value = os.environ.get(var_name)
        if env_value is None:
            raise ConfigurationError(
                f"Environment variable '{var_name}' not found. "
                f"Please set it in your environment or .env file."
            )
        return env_value
    return data
