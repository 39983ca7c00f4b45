# tests/test_config.py
"""
Configuration Tests
===================

Loading settings from defaults, files, environment variables and CLI
arguments, plus validation and logging setup.
"""

import json
import logging
import os

import pytest
import yaml

from stockerp.config import (
    AppSettings, ConfigurationLoader, ConfigurationManager, DatabaseEngine, DatabaseSettings,
    Environment, LoggingSettings, LogLevel, RetrySettings, configure_logging
)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """No STOCKERP_* variables and an empty working directory."""
    for name in list(os.environ):
        if name.startswith("STOCKERP_"):
            monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def loader() -> ConfigurationLoader:
    return ConfigurationLoader()


class TestDefaults:
    def test_default_settings_are_valid(self):
        settings = AppSettings()

        assert settings.is_valid()
        assert settings.get_validation_summary() == "Configuration is valid"
        assert settings.database.get_connection_url() == "sqlite:///stockerp.db"

    def test_development_is_the_default_environment(self, clean_env, loader):
        settings = loader.load_configuration()

        assert settings.environment == Environment.DEVELOPMENT
        assert settings.debug is True
        assert settings.database.sqlite_file == "stockerp_dev.db"

    def test_testing_environment_uses_memory_database(self, clean_env, loader, monkeypatch):
        monkeypatch.setenv("STOCKERP_ENV", "testing")

        settings = loader.load_configuration()

        assert settings.environment == Environment.TESTING
        assert settings.database.is_memory_database
        assert settings.retry.max_retries == 1
        assert settings.logging.file_enabled is False


class TestSources:
    """Priority of the configuration sources."""

    def test_yaml_file_overrides_defaults(self, clean_env, loader):
        config_file = clean_env / "stockerp.yml"
        config_file.write_text(yaml.safe_dump({
            "port": 9000,
            "database": {"sqlite_file": "custom.db"},
            "cache": {"warm_on_startup": False},
            "logging": {"level": "info"},
        }))

        settings = loader.load_configuration(config_file=str(config_file))

        assert settings.port == 9000
        assert settings.database.sqlite_file == "custom.db"
        assert settings.database.engine == DatabaseEngine.SQLITE
        assert settings.cache.warm_on_startup is False
        assert settings.logging.level == LogLevel.INFO

    def test_json_file_is_supported(self, clean_env, loader):
        config_file = clean_env / "settings.json"
        config_file.write_text(json.dumps({"retry": {"max_retries": 5}}))

        settings = loader.load_configuration(config_file=str(config_file))

        assert settings.retry.max_retries == 5

    def test_environment_variables_override_file(self, clean_env, loader, monkeypatch):
        config_file = clean_env / "stockerp.yml"
        config_file.write_text(yaml.safe_dump({"port": 9000}))
        monkeypatch.setenv("STOCKERP_PORT", "9200")
        monkeypatch.setenv("STOCKERP_CACHE_ENABLED", "false")

        settings = loader.load_configuration(config_file=str(config_file))

        assert settings.port == 9200
        assert settings.cache.enabled is False

    def test_cli_arguments_override_environment(self, clean_env, loader, monkeypatch):
        monkeypatch.setenv("STOCKERP_PORT", "9200")

        settings = loader.load_configuration(cli_args=["--port", "9300", "--log-level", "ERROR"])

        assert settings.port == 9300
        assert settings.logging.level == LogLevel.ERROR

    def test_dotenv_file_is_loaded(self, clean_env, loader, monkeypatch):
        # registered so monkeypatch removes the value loaded from the file
        monkeypatch.setenv("STOCKERP_RETRY_MAX_RETRIES", "0")
        env_file = clean_env / ".env"
        env_file.write_text("STOCKERP_RETRY_MAX_RETRIES=7\n")

        settings = loader.load_configuration(env_file=str(env_file))

        assert settings.retry.max_retries == 7

    def test_invalid_numeric_environment_value_is_ignored(self, clean_env, loader, monkeypatch):
        monkeypatch.setenv("STOCKERP_PORT", "not-a-port")

        settings = loader.load_configuration()

        assert settings.port == 8000

    def test_missing_config_file_raises(self, clean_env, loader):
        with pytest.raises(FileNotFoundError):
            loader.load_configuration(config_file=str(clean_env / "absent.yml"))

    def test_unknown_setting_is_rejected(self, clean_env, loader):
        config_file = clean_env / "stockerp.yml"
        config_file.write_text(yaml.safe_dump({"cache": {"ttl": 30}}))

        with pytest.raises(ValueError):
            loader.load_configuration(config_file=str(config_file))


class TestValidation:
    def test_invalid_port_is_reported(self):
        errors = AppSettings(port=70000).validate_configuration()

        assert [error.field for error in errors] == ["port"]

    def test_component_errors_are_prefixed(self):
        settings = AppSettings(retry=RetrySettings(max_retries=-1))

        assert [error.field for error in settings.validate_configuration()] == ["retry.max_retries"]

    def test_production_rejects_debug_and_memory_database(self):
        settings = AppSettings(
            environment=Environment.PRODUCTION,
            debug=True,
            database=DatabaseSettings(sqlite_file=":memory:")
        )

        fields = [error.field for error in settings.validate_configuration()]

        assert "debug" in fields
        assert "database.sqlite_file" in fields

    def test_server_databases_need_credentials(self):
        settings = AppSettings(database=DatabaseSettings(engine=DatabaseEngine.POSTGRESQL, username=""))

        assert not settings.is_valid()

    def test_manager_raises_on_invalid_configuration(self, clean_env):
        config_file = clean_env / "stockerp.yml"
        config_file.write_text(yaml.safe_dump({"port": 70000}))

        with pytest.raises(ValueError):
            ConfigurationManager().load_config(config_file=str(config_file))

    def test_manager_keeps_loaded_configuration(self, clean_env):
        manager = ConfigurationManager()

        settings = manager.load_config()

        assert manager.get_config() is settings
        assert "StockERP Configuration Summary" in manager.get_config_summary()


class TestSerialization:
    def test_to_dict_flattens_enums(self):
        data = AppSettings().to_dict()

        assert data["environment"] == "development"
        assert data["database"]["engine"] == "sqlite"
        assert data["logging"]["level"] == "INFO"

    def test_save_config_writes_yaml(self, clean_env):
        manager = ConfigurationManager()
        manager.set_config(AppSettings(port=8123))
        target = clean_env / "out" / "stockerp.yml"

        manager.save_config(str(target))

        saved = yaml.safe_load(target.read_text())
        assert saved["port"] == 8123
        assert saved["environment"] == "development"


class TestLogging:
    def test_configure_logging_installs_handlers(self, tmp_path):
        log_file = tmp_path / "logs" / "stockerp.log"
        settings = LoggingSettings(
            level=LogLevel.WARNING,
            file_path=str(log_file),
            logger_levels={"stockerp.cache": "DEBUG"}
        )

        try:
            configure_logging(settings)
            root = logging.getLogger()
            installed = [h for h in root.handlers if getattr(h, "_stockerp_handler", False)]

            assert len(installed) == 2
            assert root.level == logging.WARNING
            assert logging.getLogger("stockerp.cache").level == logging.DEBUG
            assert log_file.parent.exists()
        finally:
            configure_logging(LoggingSettings(file_enabled=False, console_enabled=False))
            for handler in logging.getLogger().handlers:
                handler.flush()
            logging.getLogger("stockerp.cache").setLevel(logging.NOTSET)

        remaining = [h for h in logging.getLogger().handlers if getattr(h, "_stockerp_handler", False)]
        assert remaining == []
