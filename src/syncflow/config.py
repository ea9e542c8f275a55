"""
Configuration management for SyncFlow.

This module handles loading, validating, and saving application settings
(concurrency, rsync invocation, storage paths, logging), the "last used"
job settings, and logging setup.
"""

import os
import sys
import json
import yaml
import logging
import logging.handlers
from typing import Dict, List, Optional, Any
from dataclasses import dataclass, field, asdict
from enum import Enum

from rich.logging import RichHandler

from . import DEFAULT_MAX_CONCURRENT_JOBS
from .errors import SyncflowError
from .history import HISTORY_FILE_NAME

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "settings.yaml"
LAST_USED_FILE_NAME = "config.json"


class ConfigValidationError(SyncflowError):
    """Configuration validation error."""
    pass


class LogLevel(Enum):
    """Log level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


def get_default_storage_dir() -> str:
    """Get default storage directory."""
    if sys.platform == "win32":
        return os.path.expandvars(r"%APPDATA%\syncflow")
    return os.path.expanduser("~/.config/syncflow")


@dataclass
class JobSettings:
    """Scheduling settings."""
    max_concurrent_jobs: int = DEFAULT_MAX_CONCURRENT_JOBS
    smart_naming: bool = True

    def __post_init__(self):
        if self.max_concurrent_jobs < 1:
            raise ConfigValidationError("max_concurrent_jobs must be >= 1")


@dataclass
class RsyncSettings:
    """How rsync is invoked."""
    binary: str = "rsync"
    flags: List[str] = field(default_factory=lambda: [
        "-a", "-z", "--partial", "--progress", "--human-readable", "--stats"
    ])
    move_flag: str = "--remove-source-files"

    def __post_init__(self):
        if not self.binary:
            raise ConfigValidationError("rsync binary cannot be empty")


@dataclass
class PathSettings:
    """Where SyncFlow keeps its files."""
    storage_dir: str = ""

    def __post_init__(self):
        if not self.storage_dir:
            self.storage_dir = get_default_storage_dir()
        self.storage_dir = os.path.expanduser(self.storage_dir)

    @property
    def history_file(self) -> str:
        return os.path.join(self.storage_dir, HISTORY_FILE_NAME)

    @property
    def last_used_file(self) -> str:
        return os.path.join(self.storage_dir, LAST_USED_FILE_NAME)

    @property
    def log_dir(self) -> str:
        return os.path.join(self.storage_dir, "logs")


@dataclass
class LoggingSettings:
    """Logging configuration settings."""
    level: LogLevel = LogLevel.INFO
    file_logging: bool = True
    console_logging: bool = True
    max_file_size_mb: int = 10
    backup_count: int = 5
    format_string: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    def __post_init__(self):
        if isinstance(self.level, str):
            self.level = LogLevel(self.level.upper())
        if self.max_file_size_mb < 1:
            raise ConfigValidationError("max_file_size_mb must be >= 1")
        if self.backup_count < 0:
            raise ConfigValidationError("backup_count must be >= 0")


@dataclass
class SyncflowSettings:
    """Complete application settings."""
    jobs: JobSettings = field(default_factory=JobSettings)
    rsync: RsyncSettings = field(default_factory=RsyncSettings)
    paths: PathSettings = field(default_factory=PathSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)

    def validate(self) -> List[str]:
        """Validate the settings and return any errors."""
        errors = []

        if self.jobs.max_concurrent_jobs < 1:
            errors.append("jobs.max_concurrent_jobs must be >= 1")
        if not self.rsync.flags:
            errors.append("At least one rsync flag must be configured")
        if "--progress" not in self.rsync.flags and not any(
            flag.startswith("--info=progress") for flag in self.rsync.flags
        ):
            errors.append("rsync flags must request progress output (--progress)")
        if not self.paths.storage_dir:
            errors.append("paths.storage_dir cannot be empty")

        return errors


class SettingsManager:
    """Loads and saves SyncflowSettings as YAML."""

    def __init__(self, settings_file: Optional[str] = None):
        self.settings_file = settings_file or os.path.join(get_default_storage_dir(), SETTINGS_FILE_NAME)
        self.settings = SyncflowSettings()

    def load_settings(self) -> bool:
        """Load settings from file, creating it with defaults if missing."""
        try:
            if not os.path.exists(self.settings_file):
                logger.info("No settings file found, using defaults")
                self.settings = SyncflowSettings()
                return self.save_settings()

            with open(self.settings_file, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}

            self.settings = self._deserialize_settings(data)

            errors = self.settings.validate()
            for error in errors:
                logger.warning(f"Settings problem: {error}")

            logger.info(f"Loaded settings from {self.settings_file}")
            return True

        except (ConfigValidationError, TypeError, ValueError) as e:
            logger.error(f"Invalid settings in {self.settings_file}: {e}")
            self.settings = SyncflowSettings()
            return False
        except Exception as e:
            logger.error(f"Error loading settings: {e}")
            self.settings = SyncflowSettings()
            return False

    def save_settings(self) -> bool:
        """Save settings to file."""
        try:
            os.makedirs(os.path.dirname(self.settings_file) or ".", exist_ok=True)
            with open(self.settings_file, 'w', encoding='utf-8') as f:
                yaml.safe_dump(self._serialize_settings(self.settings), f,
                               default_flow_style=False, indent=2)

            logger.info(f"Settings saved to {self.settings_file}")
            return True

        except Exception as e:
            logger.error(f"Error saving settings: {e}")
            return False

    def _serialize_settings(self, settings: SyncflowSettings) -> Dict[str, Any]:
        return {
            'jobs': asdict(settings.jobs),
            'rsync': asdict(settings.rsync),
            'paths': asdict(settings.paths),
            'logging': {
                **asdict(settings.logging),
                'level': settings.logging.level.value
            }
        }

    def _deserialize_settings(self, data: Dict[str, Any]) -> SyncflowSettings:
        return SyncflowSettings(
            jobs=JobSettings(**data.get('jobs', {})),
            rsync=RsyncSettings(**data.get('rsync', {})),
            paths=PathSettings(**data.get('paths', {})),
            logging=LoggingSettings(**data.get('logging', {})),
        )

    def get_setting(self, key: str) -> Any:
        """Get a setting by dotted key, e.g. 'jobs.max_concurrent_jobs'."""
        section_name, _, attr = key.partition('.')
        section = getattr(self.settings, section_name, None)
        if section is None or not attr or not hasattr(section, attr):
            raise KeyError(key)
        value = getattr(section, attr)
        return value.value if isinstance(value, Enum) else value

    def set_setting(self, key: str, value: Any) -> bool:
        """Set a setting by dotted key; the value is coerced to the current type."""
        try:
            current = self.get_setting(key)
        except KeyError:
            logger.error(f"Unknown setting: {key}")
            return False

        section_name, _, attr = key.partition('.')
        section = getattr(self.settings, section_name)

        try:
            if isinstance(current, bool):
                coerced = str(value).lower() in ("1", "true", "yes", "on")
            elif isinstance(current, int):
                coerced = int(value)
            elif isinstance(current, list):
                coerced = value if isinstance(value, list) else str(value).split()
            else:
                coerced = value

            updated = type(section)(**{**asdict(section), attr: coerced})
        except (ConfigValidationError, TypeError, ValueError) as e:
            logger.error(f"Invalid value for {key}: {e}")
            return False

        setattr(self.settings, section_name, updated)
        logger.info(f"Setting {key} = {coerced}")
        return True


class LastUsedSettings:
    """The last job configuration (source, target, move flag) as JSON."""

    def __init__(self, path: str):
        self.path = path

    def load(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except Exception as e:
            logger.warning(f"Could not read last used settings: {e}")
            return None

        if not isinstance(data, dict):
            return None
        return {
            "source": data.get("source", ""),
            "target": data.get("target", ""),
            "isMove": bool(data.get("isMove", False)),
        }

    def save(self, source: str, target: str, is_move: bool) -> bool:
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            with open(self.path, 'w', encoding='utf-8') as f:
                json.dump({"source": source, "target": target, "isMove": is_move}, f, indent=2)
            return True
        except Exception as e:
            logger.warning(f"Could not save last used settings: {e}")
            return False


def setup_logging(settings: LoggingSettings, log_dir: Optional[str] = None,
                  verbose: bool = False) -> None:
    """Configure the root 'syncflow' logger from settings."""
    root = logging.getLogger("syncflow")
    root.setLevel(logging.DEBUG if verbose else getattr(logging, settings.level.value))

    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    if settings.console_logging:
        console_handler = RichHandler(show_path=False, rich_tracebacks=True)
        console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
        root.addHandler(console_handler)

    if settings.file_logging and log_dir:
        try:
            os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                os.path.join(log_dir, "syncflow.log"),
                maxBytes=settings.max_file_size_mb * 1024 * 1024,
                backupCount=settings.backup_count,
                encoding='utf-8',
            )
            file_handler.setFormatter(logging.Formatter(settings.format_string))
            root.addHandler(file_handler)
        except OSError as e:
            logger.warning(f"File logging disabled: {e}")
