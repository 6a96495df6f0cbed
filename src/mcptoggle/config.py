# Tool settings for mcp-toggle (~/.mcp-toggle/settings.toml)
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

import tomli
import tomli_w

from mcptoggle.utils.env import expand_env_vars, expand_path

# ABOUTME: Environment variable overriding the settings file location
SETTINGS_ENV_VAR = "MCP_TOGGLE_SETTINGS"

SETTINGS_DIR_NAME = ".mcp-toggle"
SETTINGS_FILE_NAME = "settings.toml"

# ABOUTME: All settings live under this table
SETTINGS_TABLE = "mcp-toggle"

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
DEFAULT_LOG_LEVEL = "WARNING"


@dataclass(frozen=True)
class Settings:
    """Settings read once by the CLI and passed down as explicit arguments.

    ABOUTME: home_dir locates the user scope, backup_dir the migration backups
    ABOUTME: None means "use the default derived from home_dir"
    """
    home_dir: Path | None = None
    log_level: str = DEFAULT_LOG_LEVEL
    backup_dir: Path | None = None

    def resolved_home(self) -> Path:
        return self.home_dir if self.home_dir is not None else Path.home()


def get_settings_path(environ: dict[str, str] | None = None) -> Path:
    """Return the settings file path.

    ABOUTME: MCP_TOGGLE_SETTINGS wins, otherwise ~/.mcp-toggle/settings.toml
    ABOUTME: File may not exist yet
    """
    source = os.environ if environ is None else environ
    override = source.get(SETTINGS_ENV_VAR)
    if override:
        return expand_path(override, source)
    return Path.home() / SETTINGS_DIR_NAME / SETTINGS_FILE_NAME


def load_settings(path: Path, environ: dict[str, str] | None = None) -> Settings:
    """Load settings from a TOML file.

    ABOUTME: Missing file returns defaults
    ABOUTME: String values expand ${VAR} references

    Raises:
        ValueError: If the TOML is invalid or a value has the wrong type
    """
    if not path.exists():
        return Settings()

    try:
        with open(path, "rb") as f:
            data = tomli.load(f)
    except tomli.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {path}: {e}") from e

    table = data.get(SETTINGS_TABLE, {})
    if not isinstance(table, dict):
        raise ValueError(f"'{SETTINGS_TABLE}' in {path} must be a table")

    for key in ("home_dir", "log_level", "backup_dir"):
        if key in table and not isinstance(table[key], str):
            raise ValueError(f"'{key}' in {path} must be a string")

    log_level = expand_env_vars(table.get("log_level", DEFAULT_LOG_LEVEL), environ).upper()
    if log_level not in LOG_LEVELS:
        raise ValueError(
            f"Invalid log_level '{log_level}' in {path}. Must be one of: {', '.join(LOG_LEVELS)}"
        )

    home_dir = table.get("home_dir")
    backup_dir = table.get("backup_dir")

    return Settings(
        home_dir=expand_path(home_dir, environ) if home_dir else None,
        log_level=log_level,
        backup_dir=expand_path(backup_dir, environ) if backup_dir else None,
    )


def save_settings(path: Path, settings: Settings) -> None:
    """Write settings to a TOML file, creating the parent directory.

    ABOUTME: Unset paths are omitted so defaults keep applying

    Raises:
        OSError: If the file cannot be written
    """
    table: dict[str, Any] = {"log_level": settings.log_level}
    if settings.home_dir is not None:
        table["home_dir"] = str(settings.home_dir)
    if settings.backup_dir is not None:
        table["backup_dir"] = str(settings.backup_dir)

    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "wb") as f:
        tomli_w.dump({SETTINGS_TABLE: table}, f)
