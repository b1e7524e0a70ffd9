"""Tests for settings loading from defaults, YAML and environment."""

import pydantic
import pytest

from shareaudit.config import Settings, get_settings, load_yaml_config, reload_settings


@pytest.fixture
def clean_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:

    def test_defaults(self, settings):
        assert settings.database.url.startswith("sqlite+aiosqlite://")
        assert settings.scan.timeout_minutes == 10
        assert settings.scan.count_page_size == 1000
        assert settings.scan.folder_concurrency == 20
        assert settings.drive.requests_per_second == 10.0
        assert settings.logging.format == "text"

    def test_nested_environment_override(self, monkeypatch):
        monkeypatch.setenv("SHAREAUDIT_SCAN__TIMEOUT_MINUTES", "5")
        monkeypatch.setenv("SHAREAUDIT_LOGGING__FORMAT", "json")

        settings = Settings()

        assert settings.scan.timeout_minutes == 5
        assert settings.logging.format == "json"

    def test_validation(self):
        with pytest.raises(pydantic.ValidationError):
            Settings(scan={"scan_page_size": 5000})
        with pytest.raises(pydantic.ValidationError):
            Settings(drive={"requests_per_second": 0})


class TestYamlConfig:

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("scan:\n  max_files_per_user: 500\n")

        assert load_yaml_config(path) == {"scan": {"max_files_per_user": 500}}

    def test_missing_or_empty(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert load_yaml_config(tmp_path / "absent.yaml") == {}

        empty = tmp_path / "empty.yaml"
        empty.write_text("")
        assert load_yaml_config(empty) == {}

    def test_get_settings_reads_config_yaml(self, tmp_path, monkeypatch, clean_settings):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config.yaml").write_text(
            "database:\n  url: sqlite+aiosqlite:///./from-yaml.db\n"
        )

        assert get_settings().database.url == "sqlite+aiosqlite:///./from-yaml.db"
        assert get_settings() is get_settings()

        (tmp_path / "config.yaml").write_text("scan:\n  timeout_minutes: 3\n")
        reloaded = reload_settings()
        assert reloaded.scan.timeout_minutes == 3
        assert reloaded.database.url == "sqlite+aiosqlite:///./shareaudit.db"

    def test_environment_beats_config_yaml(self, tmp_path, monkeypatch, clean_settings):
        monkeypatch.chdir(tmp_path)
        (tmp_path / "config.yaml").write_text(
            "scan:\n  timeout_minutes: 3\n  folder_concurrency: 4\n"
        )
        monkeypatch.setenv("SHAREAUDIT_SCAN__TIMEOUT_MINUTES", "7")

        settings = get_settings()

        assert settings.scan.timeout_minutes == 7
        assert settings.scan.folder_concurrency == 4

    def test_unprefixed_environment_is_ignored(self, tmp_path, monkeypatch, clean_settings):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("TIMEOUT_MINUTES", "2")
        monkeypatch.setenv("URL", "postgresql+asyncpg://elsewhere/db")
        monkeypatch.setenv("FORMAT", "json")

        settings = get_settings()

        assert settings.scan.timeout_minutes == 10
        assert settings.database.url == "sqlite+aiosqlite:///./shareaudit.db"
        assert settings.logging.format == "text"
