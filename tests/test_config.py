"""Tests for configuration loading."""

import pytest
import yaml
from pydantic import ValidationError

from wp_migration.client.exceptions import ConfigurationError
from wp_migration.config import MigrationConfig, load_config_from_yaml


def write_config(tmp_path, data) -> str:
    path = tmp_path / "config.yaml"
    path.write_text(yaml.safe_dump(data))
    return str(path)


class TestLoadConfig:
    def test_defaults(self, tmp_path):
        config = load_config_from_yaml(
            write_config(tmp_path, {"source": {"url": "https://blog.example.com/wp-json/wp/v2/"}})
        )

        assert config.source.url == "https://blog.example.com/wp-json/wp/v2"
        assert config.performance.page_size == 100
        assert config.performance.retry_attempts == 3
        assert config.destination.post_path == "/blog/{slug}"
        assert config.phases.is_enabled("media")
        assert config.summary_error_limit == 50

    def test_env_var_expansion(self, tmp_path, monkeypatch):
        monkeypatch.setenv("WP_APP_PASSWORD", "abcd efgh")
        path = write_config(
            tmp_path,
            {
                "source": {
                    "url": "https://blog.example.com/wp-json/wp/v2",
                    "username": "admin",
                    "app_password": "${WP_APP_PASSWORD}",
                }
            },
        )

        assert load_config_from_yaml(path).source.app_password == "abcd efgh"

    def test_missing_env_var(self, tmp_path, monkeypatch):
        monkeypatch.delenv("WP_APP_PASSWORD", raising=False)
        path = write_config(
            tmp_path,
            {"source": {"url": "https://blog.example.com", "token": "${WP_APP_PASSWORD}"}},
        )

        with pytest.raises(ConfigurationError):
            load_config_from_yaml(path)

    def test_environment_overrides_file(self, tmp_path, monkeypatch):
        monkeypatch.setenv("PERFORMANCE__PAGE_SIZE", "25")
        path = write_config(
            tmp_path,
            {
                "source": {"url": "https://blog.example.com"},
                "performance": {"page_size": 100, "page_delay": 2},
            },
        )

        config = load_config_from_yaml(path)

        assert config.performance.page_size == 25
        assert config.performance.page_delay == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config_from_yaml(tmp_path / "nope.yaml")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")

        with pytest.raises(ConfigurationError):
            load_config_from_yaml(path)

    def test_invalid_values(self, tmp_path):
        path = write_config(
            tmp_path,
            {"source": {"url": "https://blog.example.com"}, "performance": {"page_size": 500}},
        )

        with pytest.raises(ConfigurationError):
            load_config_from_yaml(path)


class TestSections:
    def test_source_url_scheme(self):
        with pytest.raises(ValidationError):
            MigrationConfig(source={"url": "blog.example.com"})

    def test_username_requires_password(self):
        with pytest.raises(ValidationError):
            MigrationConfig(source={"url": "https://blog.example.com", "username": "admin"})

    def test_bare_database_path_is_sqlite(self):
        config = MigrationConfig(
            source={"url": "https://blog.example.com"},
            destination={"database_url": "data/content.db"},
        )

        assert config.destination.database_url == "sqlite:///data/content.db"

    def test_path_template_needs_slug(self):
        with pytest.raises(ValidationError):
            MigrationConfig(
                source={"url": "https://blog.example.com"},
                destination={"post_path": "/blog/"},
            )

    def test_log_level_normalized(self):
        config = MigrationConfig(
            source={"url": "https://blog.example.com"}, logging={"level": "debug"}
        )

        assert config.logging.level == "DEBUG"

    def test_disabled_phase(self):
        config = MigrationConfig(source={"url": "https://blog.example.com"}, phases={"tags": False})

        assert not config.phases.is_enabled("tags")
        assert not config.phases.is_enabled("comments")
