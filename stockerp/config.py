"""
StockERP Configuration Module
=============================

This module provides configuration management for the StockERP inventory backend,
supporting multiple configuration sources (YAML, JSON, .env files, environment variables,
CLI arguments) and environment-specific defaults with validation.

Author: StockERP Development Team
Version: 1.0.0
License: MIT
"""

import os
import json
import argparse
import logging
import logging.handlers
from dataclasses import dataclass, field, asdict
from typing import Dict, Any, Optional, List, Tuple, Union
from pathlib import Path
from enum import Enum

import yaml
from dotenv import load_dotenv, find_dotenv

# ==================== ENUMS AND CONSTANTS ====================

class Environment(Enum):
    """Supported environment types."""
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


class DatabaseEngine(Enum):
    """Supported database engines."""
    SQLITE = "sqlite"
    POSTGRESQL = "postgresql"
    MYSQL = "mysql"


class LogLevel(Enum):
    """Supported log levels."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


ENV_PREFIX = "STOCKERP_"

# Configuration file patterns
CONFIG_FILE_PATTERNS = [
    "stockerp.yml", "stockerp.yaml",
    "stockerp.json",
    f"stockerp.{Environment.DEVELOPMENT.value}.yml",
    f"stockerp.{Environment.TESTING.value}.yml",
    f"stockerp.{Environment.STAGING.value}.yml",
    f"stockerp.{Environment.PRODUCTION.value}.yml"
]

# Default configuration paths
DEFAULT_CONFIG_PATHS = [
    Path.cwd(),
    Path.cwd() / "config",
    Path.home() / ".stockerp",
]

# ==================== VALIDATION UTILITIES ====================

class ValidationError(Exception):
    """Configuration validation error."""

    def __init__(self, field: str, value: Any, message: str):
        self.field = field
        self.value = value
        self.message = message
        super().__init__(f"Validation error for field '{field}': {message}")


class ConfigValidator:
    """Configuration validation utilities."""

    @staticmethod
    def validate_port(port: int, field_name: str = "port") -> None:
        """Validate port number."""
        if not isinstance(port, int) or port < 1 or port > 65535:
            raise ValidationError(field_name, port, "Port must be between 1 and 65535")

    @staticmethod
    def validate_positive_int(value: int, field_name: str) -> None:
        if not isinstance(value, int) or value <= 0:
            raise ValidationError(field_name, value, "Must be a positive integer")

    @staticmethod
    def validate_non_negative_int(value: int, field_name: str) -> None:
        if not isinstance(value, int) or value < 0:
            raise ValidationError(field_name, value, "Must be a non-negative integer")

    @staticmethod
    def validate_positive_number(value: Union[int, float], field_name: str) -> None:
        if not isinstance(value, (int, float)) or value <= 0:
            raise ValidationError(field_name, value, "Must be a positive number")

    @staticmethod
    def validate_string_length(value: str, field_name: str, min_length: int = 0,
                               max_length: Optional[int] = None) -> None:
        """Validate string length."""
        if not isinstance(value, str):
            raise ValidationError(field_name, value, "Must be a string")

        if len(value) < min_length:
            raise ValidationError(field_name, value, f"Must be at least {min_length} characters")

        if max_length and len(value) > max_length:
            raise ValidationError(field_name, value, f"Must be no more than {max_length} characters")


# ==================== DATABASE SETTINGS ====================

@dataclass
class DatabaseSettings:
    """Database connection and configuration settings."""

    engine: DatabaseEngine = DatabaseEngine.SQLITE
    host: str = "localhost"
    port: int = 5432
    database: str = "stockerp"
    username: str = ""
    password: str = ""

    # SQLite specific
    sqlite_file: str = "stockerp.db"

    # Connection pool settings
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 3600
    pool_pre_ping: bool = True

    connect_timeout: int = 10

    # Development settings
    echo_queries: bool = False

    def validate(self) -> None:
        """Validate database settings."""
        if self.engine == DatabaseEngine.SQLITE:
            ConfigValidator.validate_string_length(self.sqlite_file, "sqlite_file", min_length=1)
        else:
            ConfigValidator.validate_string_length(self.host, "host", min_length=1)
            ConfigValidator.validate_port(self.port, "port")
            ConfigValidator.validate_string_length(self.database, "database", min_length=1)
            ConfigValidator.validate_string_length(self.username, "username", min_length=1)

        ConfigValidator.validate_positive_int(self.pool_size, "pool_size")
        ConfigValidator.validate_non_negative_int(self.max_overflow, "max_overflow")
        ConfigValidator.validate_positive_int(self.pool_timeout, "pool_timeout")
        ConfigValidator.validate_positive_int(self.pool_recycle, "pool_recycle")
        ConfigValidator.validate_positive_int(self.connect_timeout, "connect_timeout")

    @property
    def is_memory_database(self) -> bool:
        return self.engine == DatabaseEngine.SQLITE and self.sqlite_file == ":memory:"

    def get_connection_url(self) -> str:
        """Generate database connection URL."""
        if self.engine == DatabaseEngine.SQLITE:
            return f"sqlite:///{self.sqlite_file}"
        elif self.engine == DatabaseEngine.POSTGRESQL:
            password_part = f":{self.password}" if self.password else ""
            return f"postgresql://{self.username}{password_part}@{self.host}:{self.port}/{self.database}"
        elif self.engine == DatabaseEngine.MYSQL:
            password_part = f":{self.password}" if self.password else ""
            return f"mysql://{self.username}{password_part}@{self.host}:{self.port}/{self.database}"
        else:
            raise ValueError(f"Unsupported database engine: {self.engine}")


# ==================== CACHE SETTINGS ====================

@dataclass
class CacheSettings:
    """Entity cache settings."""

    enabled: bool = True
    warm_on_startup: bool = True

    # Fire a background refresh of every cache right after startup warming
    refresh_on_startup: bool = False

    def validate(self) -> None:
        if self.refresh_on_startup and not self.enabled:
            raise ValidationError("refresh_on_startup", True, "Cannot refresh a disabled cache")


# ==================== RETRY SETTINGS ====================

@dataclass
class RetrySettings:
    """Retry policy for transient backing-store failures."""

    max_retries: int = 3
    initial_delay: float = 0.5  # seconds
    backoff_multiplier: float = 2.0
    retry_on_timeouts: bool = True
    retry_on_connection_failures: bool = True

    def validate(self) -> None:
        ConfigValidator.validate_non_negative_int(self.max_retries, "max_retries")
        if not isinstance(self.initial_delay, (int, float)) or self.initial_delay < 0:
            raise ValidationError("initial_delay", self.initial_delay, "Must be a non-negative number")
        ConfigValidator.validate_positive_number(self.backoff_multiplier, "backoff_multiplier")


# ==================== LOGGING SETTINGS ====================

@dataclass
class LoggingSettings:
    """Logging configuration settings."""

    level: LogLevel = LogLevel.INFO
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"

    # File logging
    file_enabled: bool = True
    file_path: str = "logs/stockerp.log"
    file_max_size: int = 10 * 1024 * 1024  # 10MB
    file_backup_count: int = 5

    # Console logging
    console_enabled: bool = True
    console_format: str = "%(levelname)s - %(name)s - %(message)s"

    # Logger-specific levels
    logger_levels: Dict[str, str] = field(default_factory=dict)

    def validate(self) -> None:
        """Validate logging settings."""
        if self.file_enabled:
            ConfigValidator.validate_string_length(self.file_path, "file_path", min_length=1)
            ConfigValidator.validate_positive_int(self.file_max_size, "file_max_size")
            ConfigValidator.validate_positive_int(self.file_backup_count, "file_backup_count")

        valid_levels = {level.value for level in LogLevel}
        for logger_name, level in self.logger_levels.items():
            if level not in valid_levels:
                raise ValidationError(f"logger_levels.{logger_name}", level, f"Must be one of: {valid_levels}")


# ==================== MAIN APP SETTINGS ====================

@dataclass
class AppSettings:
    """Main application settings container."""

    environment: Environment = Environment.DEVELOPMENT
    debug: bool = False
    testing: bool = False
    app_name: str = "StockERP"
    app_version: str = "1.0.0"

    # Server settings
    host: str = "127.0.0.1"
    port: int = 8000
    workers: int = 1
    api_prefix: str = "/api"

    # Component settings
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    retry: RetrySettings = field(default_factory=RetrySettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def validate_configuration(self) -> List[ValidationError]:
        """Validate all configuration settings and return list of errors."""
        errors = []

        try:
            ConfigValidator.validate_port(self.port, "port")
            ConfigValidator.validate_positive_int(self.workers, "workers")
            ConfigValidator.validate_string_length(self.app_name, "app_name", min_length=1, max_length=100)
            if not self.api_prefix.startswith("/"):
                errors.append(ValidationError("api_prefix", self.api_prefix, "Must start with '/'"))
        except ValidationError as e:
            errors.append(e)

        components = {
            "database": self.database,
            "cache": self.cache,
            "retry": self.retry,
            "logging": self.logging,
        }
        for prefix, component in components.items():
            try:
                component.validate()
            except ValidationError as e:
                errors.append(ValidationError(f"{prefix}.{e.field}", e.value, e.message))

        if self.environment == Environment.PRODUCTION:
            if self.debug:
                errors.append(ValidationError("debug", True, "Debug mode should be disabled in production"))
            if self.database.is_memory_database:
                errors.append(ValidationError("database.sqlite_file", ":memory:",
                                              "In-memory database is not allowed in production"))

        return errors

    def is_valid(self) -> bool:
        """Check if configuration is valid."""
        return len(self.validate_configuration()) == 0

    def get_validation_summary(self) -> str:
        """Get a summary of validation results."""
        errors = self.validate_configuration()

        if not errors:
            return "Configuration is valid"

        summary = f"Configuration has {len(errors)} error(s):\n"
        for i, error in enumerate(errors, 1):
            summary += f"  {i}. {error}\n"

        return summary

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view with enums flattened to their values."""
        config_dict = asdict(self)
        config_dict["environment"] = self.environment.value
        config_dict["database"]["engine"] = self.database.engine.value
        config_dict["logging"]["level"] = self.logging.level.value
        return config_dict


# ==================== CONFIGURATION LOADER ====================

class ConfigurationLoader:
    """Loads configuration from multiple sources with priority order."""

    # env var -> (path..., key[, cast])
    ENV_MAPPINGS: Dict[str, Tuple] = {
        f"{ENV_PREFIX}ENV": ("environment",),
        f"{ENV_PREFIX}DEBUG": ("debug", bool),
        f"{ENV_PREFIX}HOST": ("host",),
        f"{ENV_PREFIX}PORT": ("port", int),
        f"{ENV_PREFIX}WORKERS": ("workers", int),

        f"{ENV_PREFIX}DATABASE_ENGINE": ("database", "engine"),
        f"{ENV_PREFIX}DATABASE_HOST": ("database", "host"),
        f"{ENV_PREFIX}DATABASE_PORT": ("database", "port", int),
        f"{ENV_PREFIX}DATABASE_NAME": ("database", "database"),
        f"{ENV_PREFIX}DATABASE_USER": ("database", "username"),
        f"{ENV_PREFIX}DATABASE_PASSWORD": ("database", "password"),
        f"{ENV_PREFIX}DATABASE_SQLITE_FILE": ("database", "sqlite_file"),

        f"{ENV_PREFIX}CACHE_ENABLED": ("cache", "enabled", bool),
        f"{ENV_PREFIX}CACHE_WARM_ON_STARTUP": ("cache", "warm_on_startup", bool),

        f"{ENV_PREFIX}RETRY_MAX_RETRIES": ("retry", "max_retries", int),
        f"{ENV_PREFIX}RETRY_INITIAL_DELAY": ("retry", "initial_delay", float),

        f"{ENV_PREFIX}LOG_LEVEL": ("logging", "level"),
        f"{ENV_PREFIX}LOG_FILE": ("logging", "file_path"),
    }

    def __init__(self):
        self.logger = logging.getLogger(__name__)

    def load_configuration(
        self,
        config_file: Optional[str] = None,
        env_file: Optional[str] = None,
        cli_args: Optional[List[str]] = None
    ) -> AppSettings:
        """
        Load configuration from multiple sources in priority order:
        1. CLI arguments (highest priority)
        2. Environment variables
        3. Configuration file (YAML/JSON)
        4. .env file
        5. Default values (lowest priority)
        """
        # .env first so it can select the environment defaults
        env_path = env_file or find_dotenv(usecwd=True)
        if env_path:
            self._load_env_file(env_path)
            self.logger.info(f"Loaded environment file: {env_path}")

        config_data = self._get_default_config()

        config_file_data = self._load_config_file(config_file)
        if config_file_data:
            config_data = self._deep_merge(config_data, config_file_data)
            self.logger.info("Loaded configuration file")

        env_data = self._load_from_env_vars()
        if env_data:
            config_data = self._deep_merge(config_data, env_data)
            self.logger.info("Loaded environment variables")

        if cli_args:
            cli_data = self._load_from_cli_args(cli_args)
            if cli_data:
                config_data = self._deep_merge(config_data, cli_data)
                self.logger.info("Loaded CLI arguments")

        return self._create_app_settings(config_data)

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration based on environment."""
        env = Environment(os.getenv(f"{ENV_PREFIX}ENV", "development"))

        if env == Environment.TESTING:
            return self._get_testing_config()
        elif env == Environment.STAGING:
            return self._get_staging_config()
        elif env == Environment.PRODUCTION:
            return self._get_production_config()
        return self._get_development_config()

    def _get_development_config(self) -> Dict[str, Any]:
        return {
            "environment": "development",
            "debug": True,
            "testing": False,
            "database": {
                "engine": "sqlite",
                "sqlite_file": "stockerp_dev.db",
                "echo_queries": False
            },
            "logging": {
                "level": "DEBUG",
                "console_enabled": True,
                "file_enabled": True,
                "file_path": "logs/stockerp_dev.log"
            }
        }

    def _get_testing_config(self) -> Dict[str, Any]:
        return {
            "environment": "testing",
            "debug": False,
            "testing": True,
            "port": 8001,
            "database": {
                "engine": "sqlite",
                "sqlite_file": ":memory:",
                "echo_queries": False
            },
            "cache": {
                "refresh_on_startup": False
            },
            "retry": {
                "max_retries": 1,
                "initial_delay": 0.0
            },
            "logging": {
                "level": "WARNING",
                "console_enabled": False,
                "file_enabled": False
            }
        }

    def _get_staging_config(self) -> Dict[str, Any]:
        return {
            "environment": "staging",
            "debug": False,
            "testing": False,
            "host": "0.0.0.0",
            "workers": 2,
            "database": {
                "engine": "postgresql",
                "host": "staging-db.internal",
                "database": "stockerp_staging"
            },
            "logging": {
                "level": "INFO",
                "file_path": "/var/log/stockerp/staging.log"
            }
        }

    def _get_production_config(self) -> Dict[str, Any]:
        return {
            "environment": "production",
            "debug": False,
            "testing": False,
            "host": "0.0.0.0",
            "workers": 4,
            "database": {
                "engine": "postgresql",
                "pool_size": 20,
                "echo_queries": False
            },
            "logging": {
                "level": "WARNING",
                "file_path": "/var/log/stockerp/production.log"
            }
        }

    def _load_env_file(self, env_file: str) -> None:
        """Load environment variables from .env file."""
        if env_file and Path(env_file).exists():
            load_dotenv(env_file, override=True)

    def _find_config_file(self, config_file: Optional[str] = None) -> Optional[Path]:
        """Find configuration file in standard locations."""
        if config_file:
            path = Path(config_file)
            if path.exists():
                return path
            raise FileNotFoundError(f"Configuration file not found: {config_file}")

        for search_path in DEFAULT_CONFIG_PATHS:
            for pattern in CONFIG_FILE_PATTERNS:
                config_path = search_path / pattern
                if config_path.exists():
                    return config_path

        return None

    def _load_config_file(self, config_file: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """Load configuration from YAML or JSON file."""
        config_path = self._find_config_file(config_file)

        if not config_path:
            return None

        with open(config_path, 'r', encoding='utf-8') as f:
            if config_path.suffix.lower() in ('.yml', '.yaml'):
                return yaml.safe_load(f) or {}
            elif config_path.suffix.lower() == '.json':
                return json.load(f)

        self.logger.warning(f"Unsupported config file format: {config_path}")
        return None

    def _load_from_env_vars(self) -> Dict[str, Any]:
        """Load configuration from environment variables."""
        config: Dict[str, Any] = {}

        for env_var, mapping in self.ENV_MAPPINGS.items():
            value = os.getenv(env_var)
            if value is None:
                continue

            cast = mapping[-1] if callable(mapping[-1]) else None
            config_path = mapping[:-1] if cast else mapping

            if cast is bool:
                value = value.lower() in ('true', '1', 'yes', 'on')
            elif cast is not None:
                try:
                    value = cast(value)
                except ValueError:
                    self.logger.warning(f"Invalid {cast.__name__} value for {env_var}: {value}")
                    continue

            self._set_nested_value(config, config_path[:-1], config_path[-1], value)

        return config

    def _load_from_cli_args(self, args: List[str]) -> Dict[str, Any]:
        """Load configuration from CLI arguments."""
        parser = argparse.ArgumentParser(description="StockERP Configuration")
        parser.add_argument("--env", choices=[e.value for e in Environment], help="Environment")
        parser.add_argument("--debug", action="store_true", help="Enable debug mode")
        parser.add_argument("--host", help="Host address")
        parser.add_argument("--port", type=int, help="Port number")
        parser.add_argument("--db-engine", choices=[e.value for e in DatabaseEngine], help="Database engine")
        parser.add_argument("--db-file", help="SQLite database file")
        parser.add_argument("--log-level", choices=[e.value for e in LogLevel], help="Log level")

        try:
            parsed_args, _ = parser.parse_known_args(args)
        except SystemExit:
            # argparse exits on --help or bad choices
            return {}

        config: Dict[str, Any] = {}
        if parsed_args.env:
            config["environment"] = parsed_args.env
        if parsed_args.debug:
            config["debug"] = True
        if parsed_args.host:
            config["host"] = parsed_args.host
        if parsed_args.port:
            config["port"] = parsed_args.port

        db_config = {}
        if parsed_args.db_engine:
            db_config["engine"] = parsed_args.db_engine
        if parsed_args.db_file:
            db_config["sqlite_file"] = parsed_args.db_file
        if db_config:
            config["database"] = db_config

        if parsed_args.log_level:
            config["logging"] = {"level": parsed_args.log_level}

        return config

    def _set_nested_value(self, config: Dict[str, Any], path: Tuple[str, ...], key: str, value: Any) -> None:
        current = config
        for part in path:
            current = current.setdefault(part, {})
        current[key] = value

    def _deep_merge(self, base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def _create_app_settings(self, config_data: Dict[str, Any]) -> AppSettings:
        """Create AppSettings object from configuration dictionary."""
        config_data = dict(config_data)
        try:
            if "environment" in config_data:
                config_data["environment"] = Environment(config_data["environment"])

            database_data = dict(config_data.pop("database", {}))
            cache_data = dict(config_data.pop("cache", {}))
            retry_data = dict(config_data.pop("retry", {}))
            logging_data = dict(config_data.pop("logging", {}))

            if "engine" in database_data:
                database_data["engine"] = DatabaseEngine(database_data["engine"])
            if "level" in logging_data:
                logging_data["level"] = LogLevel(str(logging_data["level"]).upper())

            return AppSettings(
                database=DatabaseSettings(**database_data),
                cache=CacheSettings(**cache_data),
                retry=RetrySettings(**retry_data),
                logging=LoggingSettings(**logging_data),
                **config_data
            )

        except (TypeError, ValueError) as e:
            self.logger.error(f"Error creating AppSettings: {e}")
            raise ValueError(f"Invalid configuration data: {e}") from e


# ==================== CONFIGURATION MANAGER ====================

class ConfigurationManager:
    """Process-wide configuration holder."""

    _instance: Optional['ConfigurationManager'] = None
    _config: Optional[AppSettings] = None

    def __new__(cls) -> 'ConfigurationManager':
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self.loader = ConfigurationLoader()

    def load_config(
        self,
        config_file: Optional[str] = None,
        env_file: Optional[str] = None,
        cli_args: Optional[List[str]] = None,
        validate: bool = True
    ) -> AppSettings:
        """Load and validate configuration."""
        config = self.loader.load_configuration(config_file, env_file, cli_args)

        if validate:
            errors = config.validate_configuration()
            if errors:
                error_messages = [str(error) for error in errors]
                self.logger.error(f"Configuration validation failed with {len(errors)} error(s)")
                raise ValueError("Configuration validation failed:\n" + "\n".join(error_messages))

        self._config = config
        self.logger.info(f"Configuration loaded successfully for environment: {config.environment.value}")
        return config

    def get_config(self) -> AppSettings:
        """Get the current configuration."""
        if self._config is None:
            raise RuntimeError("Configuration not loaded. Call load_config() first.")
        return self._config

    def set_config(self, config: AppSettings) -> None:
        self._config = config

    def save_config(self, file_path: str, format: str = "yaml") -> None:
        """Save current configuration to file."""
        if self._config is None:
            raise RuntimeError("No configuration to save")

        config_dict = self._config.to_dict()

        path = Path(file_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w', encoding='utf-8') as f:
            if format.lower() in ('yaml', 'yml'):
                yaml.safe_dump(config_dict, f, default_flow_style=False, indent=2)
            elif format.lower() == 'json':
                json.dump(config_dict, f, indent=2, default=str)
            else:
                raise ValueError(f"Unsupported format: {format}")

        self.logger.info(f"Configuration saved to: {file_path}")

    def get_config_summary(self) -> str:
        """Get a summary of current configuration."""
        if self._config is None:
            return "No configuration loaded"

        summary = f"""
StockERP Configuration Summary
==============================
Environment: {self._config.environment.value}
Debug Mode: {self._config.debug}
Host: {self._config.host}:{self._config.port}

Database: {self._config.database.engine.value} ({self._config.database.get_connection_url()})
Cache: {'enabled' if self._config.cache.enabled else 'disabled'}
Retries: {self._config.retry.max_retries} (initial delay {self._config.retry.initial_delay}s)
Log Level: {self._config.logging.level.value}

Validation Status: {self._config.get_validation_summary()}
"""
        return summary.strip()


# ==================== LOGGING SETUP ====================

def configure_logging(settings: LoggingSettings) -> None:
    """Install console and rotating-file handlers on the root logger."""
    root = logging.getLogger()
    root.setLevel(settings.level.value)

    for handler in list(root.handlers):
        if getattr(handler, "_stockerp_handler", False):
            root.removeHandler(handler)

    if settings.console_enabled:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(settings.console_format, settings.date_format))
        console._stockerp_handler = True
        root.addHandler(console)

    if settings.file_enabled:
        log_path = Path(settings.file_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=settings.file_max_size,
            backupCount=settings.file_backup_count,
            encoding="utf-8"
        )
        file_handler.setFormatter(logging.Formatter(settings.format, settings.date_format))
        file_handler._stockerp_handler = True
        root.addHandler(file_handler)

    for logger_name, level in settings.logger_levels.items():
        logging.getLogger(logger_name).setLevel(level)


def get_config() -> AppSettings:
    return ConfigurationManager().get_config()
