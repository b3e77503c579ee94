"""Tracker configuration module with file and environment loading."""

import json
import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .exceptions import ConfigurationError, ValidationError

logger = logging.getLogger(__name__)

TIMEFRAMES = ('30', '90', 'all')
REPORTER_TYPES = ('logging', 'tqdm', 'silent')


def _default_config_paths():
    return [
        Path.cwd() / "fitlog.json",
        Path.home() / ".fitlog" / "config.json",
        Path.home() / ".config" / "fitlog" / "config.json",
    ]


@dataclass
class TrackerConfig:
    """Configuration for the tracker store, gateway and CLI."""

    # Database settings
    database_path: str = "~/.fitlog/fitlog.db"
    echo_sql: bool = False

    # Identity settings
    session_path: str = "~/.fitlog/session.json"

    # Remote write settings
    max_retries: int = 0
    retry_delay: float = 0.5
    retry_exponential_base: float = 2.0

    # Display settings
    default_timeframe: str = "30"
    progress_reporter: str = "logging"

    # Logging settings
    log_level: str = "INFO"
    log_sql_queries: bool = False

    def __post_init__(self):
        """Post-initialization validation."""
        self.validate()

    @property
    def db_path(self) -> Path:
        """Get database path as an expanded Path object."""
        return Path(self.database_path).expanduser()

    @property
    def database_url(self) -> str:
        """Get SQLAlchemy database URL."""
        if "://" in self.database_path:
            return self.database_path
        return f"sqlite:///{self.db_path}"

    @property
    def session_file(self) -> Path:
        """Get session file path as an expanded Path object."""
        return Path(self.session_path).expanduser()

    def validate(self) -> None:
        """Validate configuration settings."""
        errors = []

        if not self.database_path:
            errors.append("database_path cannot be empty")

        if not self.session_path:
            errors.append("session_path cannot be empty")

        if self.max_retries < 0 or self.max_retries > 10:
            errors.append("max_retries must be between 0 and 10")

        if self.retry_delay < 0 or self.retry_delay > 300:
            errors.append("retry_delay must be between 0 and 300 seconds")

        if self.retry_exponential_base < 1:
            errors.append("retry_exponential_base must be at least 1")

        if self.default_timeframe not in TIMEFRAMES:
            errors.append(f"default_timeframe must be one of {list(TIMEFRAMES)}")

        if self.progress_reporter not in REPORTER_TYPES:
            errors.append(f"progress_reporter must be one of {list(REPORTER_TYPES)}")

        valid_log_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if self.log_level.upper() not in valid_log_levels:
            errors.append(f"log_level must be one of {valid_log_levels}")

        if errors:
            raise ValidationError(f"Configuration validation failed: {'; '.join(errors)}")

    def ensure_directories(self) -> None:
        """Create the directories holding the database and session files."""
        targets = [self.session_file.parent]
        if "://" not in self.database_path:
            targets.append(self.db_path.parent)
        for directory in targets:
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise ConfigurationError(f"Failed to create directory {directory}: {e}")

    @classmethod
    def from_file(cls, config_path: Optional[Union[str, Path]] = None) -> "TrackerConfig":
        """Load configuration from a JSON file."""
        if config_path is None:
            for path in _default_config_paths():
                if path.exists():
                    config_path = path
                    break
            else:
                logger.info("No configuration file found, using defaults")
                return cls()

        config_path = Path(config_path)
        if not config_path.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}",
                                     config_file=str(config_path))

        return cls._load_from_json(config_path)

    @classmethod
    def _load_from_json(cls, config_path: Path) -> "TrackerConfig":
        """Load configuration from JSON file."""
        try:
            with open(config_path, encoding='utf-8') as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in configuration file: {e}", config_file=str(config_path))
        except OSError as e:
            raise ConfigurationError(f"Failed to read configuration file: {e}", config_file=str(config_path))

        # Filter only valid fields
        valid_fields = {field.name for field in cls.__dataclass_fields__.values()}
        filtered_data = {k: v for k, v in data.items() if k in valid_fields}

        logger.info(f"Loaded configuration from {config_path}")
        return cls(**filtered_data)

    @classmethod
    def from_environment(cls) -> "TrackerConfig":
        """Load configuration from environment variables."""
        env_mapping = {
            'FITLOG_DB_PATH': 'database_path',
            'FITLOG_SESSION_PATH': 'session_path',
            'FITLOG_ECHO_SQL': 'echo_sql',
            'FITLOG_MAX_RETRIES': 'max_retries',
            'FITLOG_LOG_LEVEL': 'log_level',
            'FITLOG_PROGRESS': 'progress_reporter',
        }

        updates = {}
        for env_var, config_key in env_mapping.items():
            value = os.getenv(env_var)
            if value is None:
                continue
            field_type = cls.__dataclass_fields__[config_key].type
            try:
                if field_type in (bool, 'bool'):
                    updates[config_key] = value.lower() in ('true', '1', 'yes', 'on')
                elif field_type in (int, 'int'):
                    updates[config_key] = int(value)
                else:
                    updates[config_key] = value
            except (ValueError, TypeError) as e:
                logger.warning(f"Invalid value for {env_var}: {value}, error: {e}")

        if updates:
            logger.info(f"Updated configuration from environment variables: {list(updates.keys())}")
        return cls(**updates)

    @classmethod
    def default(cls, database_path: str = "~/.fitlog/fitlog.db") -> "TrackerConfig":
        """Create default configuration with specified database path."""
        return cls(database_path=str(database_path))

    def save_to_file(self, config_path: Union[str, Path]) -> None:
        """Save configuration to file."""
        config_path = Path(config_path)

        try:
            config_path.parent.mkdir(parents=True, exist_ok=True)
            with open(config_path, 'w', encoding='utf-8') as f:
                json.dump(asdict(self), f, indent=2, sort_keys=True)
        except OSError as e:
            raise ConfigurationError(f"Failed to save configuration to {config_path}: {e}",
                                     config_file=str(config_path))

        logger.info(f"Configuration saved to {config_path}")

    def update(self, **kwargs) -> "TrackerConfig":
        """Create a new configuration with updated values."""
        current_data = asdict(self)
        current_data.update(kwargs)
        return self.__class__(**current_data)

    def get_dict(self) -> Dict[str, Any]:
        """Get configuration as dictionary."""
        return asdict(self)

    def apply_logging_config(self) -> None:
        """Apply logging configuration."""
        logging.basicConfig(
            level=getattr(logging, self.log_level.upper()),
            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        if self.log_sql_queries:
            logging.getLogger('sqlalchemy.engine').setLevel(logging.INFO)

    def get_summary(self) -> str:
        """Get a human-readable configuration summary."""
        retries = f"{self.max_retries} retries" if self.max_retries else "no retries"
        lines = [
            "fitlog Configuration Summary:",
            f"  Database: {self.database_path}",
            f"  Session: {self.session_path}",
            f"  Remote writes: {retries}, base delay {self.retry_delay}s",
            f"  Trends: default timeframe {self.default_timeframe}",
            f"  Progress: {self.progress_reporter}",
            f"  Logging: {self.log_level}",
        ]
        return "\n".join(lines)


class ConfigManager:
    """Configuration manager with file and environment support."""

    def __init__(self):
        self._config: Optional[TrackerConfig] = None

    def get_config(self, config_path: Optional[Union[str, Path]] = None,
                   use_environment: bool = True) -> TrackerConfig:
        """Get configuration with priority: environment > file > defaults."""
        if self._config is not None:
            return self._config

        config = TrackerConfig.from_file(config_path)

        if use_environment:
            env_data = asdict(TrackerConfig.from_environment())
            default_data = asdict(TrackerConfig())

            # Only apply non-default environment values
            env_updates = {k: v for k, v in env_data.items() if v != default_data.get(k)}
            if env_updates:
                config = config.update(**env_updates)

        self._config = config
        logger.debug("Configuration loaded successfully")
        return config

    def reload_config(self, config_path: Optional[Union[str, Path]] = None) -> TrackerConfig:
        """Reload configuration, discarding cached version."""
        self._config = None
        return self.get_config(config_path)

    def set_config(self, config: TrackerConfig) -> None:
        """Set configuration manually."""
        config.validate()
        self._config = config


# Global configuration manager instance
config_manager = ConfigManager()
