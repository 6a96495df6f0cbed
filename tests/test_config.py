# Tests for settings loading and saving
from pathlib import Path

import pytest
import tomli

from mcptoggle.config import (
    DEFAULT_LOG_LEVEL,
    Settings,
    get_settings_path,
    load_settings,
    save_settings,
)


def test_get_settings_path_default():
    """Test default settings file location."""
    path = get_settings_path({})
    assert path == Path.home() / ".mcp-toggle" / "settings.toml"


def test_get_settings_path_override(tmp_path):
    """Test that MCP_TOGGLE_SETTINGS overrides the location."""
    path = get_settings_path({"MCP_TOGGLE_SETTINGS": str(tmp_path / "custom.toml")})
    assert path == tmp_path / "custom.toml"


def test_load_missing_file_returns_defaults(tmp_path):
    settings = load_settings(tmp_path / "settings.toml")
    assert settings == Settings()
    assert settings.log_level == DEFAULT_LOG_LEVEL


def test_load_valid_settings(tmp_path):
    """Test loading settings with ${VAR} expansion."""
    path = tmp_path / "settings.toml"
    path.write_text(
        '[mcp-toggle]\n'
        'home_dir = "${BASE}/home"\n'
        'backup_dir = "${BASE}/backups"\n'
        'log_level = "debug"\n'
    )

    settings = load_settings(path, {"BASE": str(tmp_path)})

    assert settings.home_dir == tmp_path / "home"
    assert settings.backup_dir == tmp_path / "backups"
    assert settings.log_level == "DEBUG"
    assert settings.resolved_home() == tmp_path / "home"


def test_load_invalid_toml(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text("[mcp-toggle\nlog_level = ")

    with pytest.raises(ValueError, match="Invalid TOML"):
        load_settings(path)


def test_load_invalid_log_level(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text('[mcp-toggle]\nlog_level = "loud"\n')

    with pytest.raises(ValueError, match="Invalid log_level"):
        load_settings(path)


def test_load_non_string_value(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text("[mcp-toggle]\nhome_dir = 42\n")

    with pytest.raises(ValueError, match="home_dir"):
        load_settings(path)


def test_resolved_home_defaults_to_user_home():
    assert Settings().resolved_home() == Path.home()


def test_save_settings(tmp_path):
    """Test that saved settings are valid TOML under the mcp-toggle table."""
    path = tmp_path / "nested" / "settings.toml"
    save_settings(path, Settings(home_dir=tmp_path / "home", log_level="INFO"))

    with open(path, "rb") as f:
        data = tomli.load(f)

    assert data == {"mcp-toggle": {"log_level": "INFO", "home_dir": str(tmp_path / "home")}}
    assert load_settings(path).home_dir == tmp_path / "home"
