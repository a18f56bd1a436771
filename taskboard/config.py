"""Config loading and validation for task-board.

Loads taskboard.config.json, applies defaults, expands ~ in paths and checks
field types. A missing default config file is not an error; defaults apply.
"""

import json
import os
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

CONFIG_FILENAME = "taskboard.config.json"


class ConfigError(Exception):
    """Raised when configuration is invalid."""


PATH_FIELDS = ["db_path"]

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]

DEFAULTS: dict[str, Any] = {
    "db_path": "~/.taskboard/taskboard.db",
    "timezone": "UTC",
    "scheduler_interval": 30,
    "host": "127.0.0.1",
    "port": 8765,
    "log_level": "INFO",
}

FIELD_TYPES: dict[str, type | tuple[type, ...]] = {
    "db_path": str,
    "timezone": str,
    "scheduler_interval": (int, float),
    "host": str,
    "port": int,
    "log_level": str,
}


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load and validate taskboard.config.json.

    Args:
        config_path: Path to config file. Defaults to $TASKBOARD_CONFIG, then
            ./taskboard.config.json. An explicitly named file must exist.

    Returns:
        Validated config dict with paths expanded and defaults applied.
        $TASKBOARD_DB, when set, overrides db_path.

    Raises:
        ConfigError: If the file is unreadable or has invalid content.
    """
    explicit = config_path is not None or "TASKBOARD_CONFIG" in os.environ
    if config_path is None:
        config_path = os.environ.get("TASKBOARD_CONFIG", Path.cwd() / CONFIG_FILENAME)
    config_path = Path(config_path)

    config: dict[str, Any] = {}
    if config_path.exists():
        try:
            config = json.loads(config_path.read_text())
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {config_path}: {e}") from e
        if not isinstance(config, dict):
            raise ConfigError(f"Config in {config_path} must be a JSON object")
    elif explicit:
        raise ConfigError(f"Config file not found: {config_path}")

    _apply_defaults(config)
    if os.environ.get("TASKBOARD_DB"):
        config["db_path"] = os.environ["TASKBOARD_DB"]
    _validate(config)
    _expand_paths(config)

    return config


def get_timezone(config: dict[str, Any]) -> ZoneInfo:
    """Return the configured zone used for recurrence arithmetic."""
    try:
        return ZoneInfo(config["timezone"])
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise ConfigError(f"Unknown timezone: '{config['timezone']}'") from e


def _validate(config: dict[str, Any]) -> None:
    """Check field types and values."""
    for field, expected in FIELD_TYPES.items():
        value = config[field]
        # bool is an int subclass; never a valid number here.
        if isinstance(value, bool) or not isinstance(value, expected):
            raise ConfigError(
                f"Config field '{field}' has invalid value {value!r}. "
                f"See {CONFIG_FILENAME} for the expected format."
            )

    if config["scheduler_interval"] < 0:
        raise ConfigError("Config field 'scheduler_interval' must be >= 0")
    if not 0 < config["port"] < 65536:
        raise ConfigError(f"Config field 'port' out of range: {config['port']}")
    if config["log_level"].upper() not in LOG_LEVELS:
        raise ConfigError(
            f"Config field 'log_level' must be one of {', '.join(LOG_LEVELS)}, "
            f"got {config['log_level']!r}"
        )
    get_timezone(config)


def _apply_defaults(config: dict[str, Any]) -> None:
    """Apply default values for optional fields."""
    for key, default in DEFAULTS.items():
        if key not in config:
            config[key] = default


def _expand_paths(config: dict[str, Any]) -> None:
    """Expand ~ in path fields to the user's home directory."""
    for field in PATH_FIELDS:
        if field in config and isinstance(config[field], str):
            config[field] = str(Path(config[field]).expanduser())
