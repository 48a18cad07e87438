"""Settings for the formlogic CLI and API server.

Settings live in formlogic.config.json in the working directory. Only
``db_path`` is required; every other key falls back to the default in
``FIELDS``. Each known key is type-checked on load; unknown keys pass
through untouched.
"""

import json
import logging
from collections.abc import Callable
from pathlib import Path
from typing import Any


class ConfigError(Exception):
    """Raised when configuration is invalid or missing required fields."""


CONFIG_FILENAME = "formlogic.config.json"

STARTER_DB_PATH = "~/.formlogic/formlogic.db"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _path(key: str, value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"'{key}' must be a non-empty path, got {value!r}")
    return str(Path(value).expanduser())


def _host(key: str, value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise ConfigError(f"'{key}' must be a non-empty string, got {value!r}")
    return value


def _port(key: str, value: Any) -> int:
    if not _is_int(value) or not 0 < value < 65536:
        raise ConfigError(f"'{key}' must be a port number between 1 and 65535, got {value!r}")
    return value


def _flag(key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"'{key}' must be true or false, got {value!r}")
    return value


def _workers(key: str, value: Any) -> int | None:
    if value is not None and (not _is_int(value) or value < 1):
        raise ConfigError(f"'{key}' must be a positive integer or null, got {value!r}")
    return value


def _log_level(key: str, value: Any) -> str:
    level = str(value).upper()
    if level not in LOG_LEVELS:
        raise ConfigError(f"Invalid {key} '{value}'. Expected one of: {', '.join(LOG_LEVELS)}")
    return level


_REQUIRED = object()

# key -> (checker, default)
FIELDS: dict[str, tuple[Callable[[str, Any], Any], Any]] = {
    "db_path": (_path, _REQUIRED),
    "host": (_host, "127.0.0.1"),
    "port": (_port, 8000),
    "log_level": (_log_level, "INFO"),
    "strict_tree": (_flag, False),
    "online": (_flag, True),
    "max_workers": (_workers, None),
}


def starter_config() -> dict[str, Any]:
    """The config written by ``formlogic init``."""
    starter = {key: default for key, (_, default) in FIELDS.items()}
    starter["db_path"] = STARTER_DB_PATH
    return starter


def check_config(raw: dict[str, Any]) -> dict[str, Any]:
    """Type-check known keys and fill in defaults.

    Raises:
        ConfigError: If a required key is missing or a value has the wrong type.
    """
    config = dict(raw)
    for key, (checker, default) in FIELDS.items():
        if key in raw:
            config[key] = checker(key, raw[key])
        elif default is _REQUIRED:
            raise ConfigError(
                f"Missing required config field: '{key}'. "
                f"Run 'formlogic init' to create a starter {CONFIG_FILENAME}."
            )
        else:
            config[key] = default
    return config


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Load and check formlogic.config.json.

    Args:
        config_path: Path to config file. Defaults to ./formlogic.config.json.

    Raises:
        ConfigError: If the file is missing, not a JSON object, or has bad values.
    """
    path = Path(config_path) if config_path is not None else Path.cwd() / CONFIG_FILENAME
    try:
        raw = json.loads(path.read_text())
    except FileNotFoundError as e:
        raise ConfigError(f"Config file not found: {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {path}: {e}") from e

    if not isinstance(raw, dict):
        raise ConfigError(f"Config in {path} must be a JSON object")
    return check_config(raw)


def configure_logging(config: dict[str, Any]) -> None:
    """Apply the configured log level to the root logger."""
    logging.basicConfig(
        level=getattr(logging, config.get("log_level", "INFO")),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
