# ABOUTME: Structured validators for server entries, config sources and discovered files
# ABOUTME: One validator per variant; each returns a list of errors instead of raising
import re
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from mcptoggle.models import (
    BLOCKED_AT_KEY,
    BLOCKED_KEY,
    ORIGINAL_KEY,
    SENTINEL_COMMAND,
    ConfigSource,
    MCPServer,
    MemoryFile,
    is_blocked,
)

# ABOUTME: Names the tool creates (rename resolutions) must match this pattern
SERVER_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_SERVER_NAME_LENGTH = 64

MEMORY_SUFFIX = ".md"


@dataclass(frozen=True)
class ValidationError:
    """Represents a validation error or warning.

    ABOUTME: Uses frozen dataclass for immutability
    ABOUTME: Severity level distinguishes between blocking errors and warnings
    """
    server_name: str
    message: str
    severity: str  # 'error' or 'warning'


def _error(name: str, message: str) -> ValidationError:
    return ValidationError(server_name=name, message=message, severity="error")


def has_errors(errors: list[ValidationError]) -> bool:
    return any(e.severity == "error" for e in errors)


def is_valid_server_name(name: str) -> bool:
    """Check a server name against the naming rules.

    Examples:
        >>> is_valid_server_name("github-mcp_2")
        True
        >>> is_valid_server_name("bad name")
        False
    """
    return (
        isinstance(name, str)
        and 0 < len(name) <= MAX_SERVER_NAME_LENGTH
        and SERVER_NAME_PATTERN.match(name) is not None
    )


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string, accepting a trailing 'Z'. Returns None if invalid."""
    if not isinstance(value, str) or not value:
        return None
    text = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def validate_server_config(data: Any, name: str = "") -> list[ValidationError]:
    """Validate a raw, unblocked server definition.

    ABOUTME: command must be a non-empty string after trimming
    ABOUTME: args must be a list of strings, env a string-to-string mapping

    Args:
        data: Decoded JSON value for one server
        name: Server name used in messages

    Returns:
        List of ValidationError instances (empty if valid)
    """
    if not isinstance(data, dict):
        return [_error(name, f"Server '{name}' must be a JSON object")]

    errors: list[ValidationError] = []

    command = data.get("command")
    if not isinstance(command, str) or not command.strip():
        errors.append(_error(name, f"Server '{name}' command must be a non-empty string"))

    if "args" in data:
        args = data["args"]
        if not isinstance(args, list) or any(not isinstance(a, str) for a in args):
            errors.append(_error(name, f"Server '{name}' args must be a list of strings"))

    if "env" in data:
        env = data["env"]
        if not isinstance(env, dict) or any(
            not isinstance(k, str) or not isinstance(v, str) for k, v in env.items()
        ):
            errors.append(_error(name, f"Server '{name}' env must map strings to strings"))

    return errors


def validate_blocked_server_config(data: Any, name: str = "") -> list[ValidationError]:
    """Validate an override entry carrying blocking metadata.

    ABOUTME: Checks the sentinel command, marker, timestamp and nested original
    """
    errors = validate_server_config(data, name)
    if not isinstance(data, dict):
        return errors

    if data.get("command") != SENTINEL_COMMAND:
        errors.append(_error(name, f"Blocked server '{name}' command must be '{SENTINEL_COMMAND}'"))

    if data.get(BLOCKED_KEY) is not True:
        errors.append(_error(name, f"Blocked server '{name}' {BLOCKED_KEY} must be exactly true"))

    if parse_timestamp(data.get(BLOCKED_AT_KEY)) is None:
        errors.append(
            _error(name, f"Blocked server '{name}' {BLOCKED_AT_KEY} must be an ISO-8601 timestamp")
        )

    original = data.get(ORIGINAL_KEY)
    if not isinstance(original, dict):
        errors.append(_error(name, f"Blocked server '{name}' {ORIGINAL_KEY} must be a server config"))
    else:
        for err in validate_server_config(original, name):
            errors.append(_error(name, f"{ORIGINAL_KEY}: {err.message}"))

    return errors


def validate_server_entry(data: Any, name: str = "") -> list[ValidationError]:
    """Dispatch to the blocked or unblocked validator using the blocked marker."""
    if isinstance(data, dict) and is_blocked(data):
        return validate_blocked_server_config(data, name)
    return validate_server_config(data, name)


def validate_config_source(source: ConfigSource) -> list[ValidationError]:
    errors: list[ValidationError] = []
    label = str(source.path)

    if not source.path.is_absolute():
        errors.append(_error(label, "ConfigSource path must be absolute"))
    if source.hierarchy_level < 0:
        errors.append(_error(label, "ConfigSource hierarchy_level must be >= 0"))
    if not source.exists and source.is_readable:
        errors.append(_error(label, "ConfigSource is_readable must be False when exists is False"))
    if source.exists and source.last_modified is None:
        errors.append(_error(label, "ConfigSource last_modified must be set when exists is True"))
    if not source.exists and source.last_modified is not None:
        errors.append(_error(label, "ConfigSource last_modified must be unset when exists is False"))

    return errors


def validate_mcp_server(server: MCPServer) -> list[ValidationError]:
    errors: list[ValidationError] = []
    name = server.name

    if not name or not name.strip():
        errors.append(_error(name, "MCPServer name must be a non-empty string"))
    if not server.command or not server.command.strip():
        errors.append(_error(name, f"MCPServer '{name}' command must be a non-empty string"))
    if not server.source_path.is_absolute():
        errors.append(_error(name, f"MCPServer '{name}' source_path must be absolute"))
    if server.hierarchy_level < 0:
        errors.append(_error(name, f"MCPServer '{name}' hierarchy_level must be >= 0"))
    if server.is_blocked and server.blocked_at is None:
        errors.append(_error(name, f"MCPServer '{name}' blocked_at must be set when blocked"))
    if not server.is_blocked and server.blocked_at is not None:
        errors.append(_error(name, f"MCPServer '{name}' blocked_at must be unset when not blocked"))

    return errors


def validate_memory_file(memory: MemoryFile) -> list[ValidationError]:
    errors: list[ValidationError] = []
    name = memory.name

    if not name.endswith(MEMORY_SUFFIX):
        errors.append(_error(name, f"MemoryFile name must end with {MEMORY_SUFFIX}"))
    if not memory.path.is_absolute():
        errors.append(_error(name, "MemoryFile path must be absolute"))
    if not memory.source_path.is_absolute():
        errors.append(_error(name, "MemoryFile source_path must be absolute"))
    if memory.relative_path.startswith("/"):
        errors.append(_error(name, "MemoryFile relative_path must be relative"))
    if memory.hierarchy_level < 0:
        errors.append(_error(name, "MemoryFile hierarchy_level must be >= 0"))
    if memory.is_symlink != (memory.symlink_target is not None):
        errors.append(_error(name, "MemoryFile symlink_target must be set iff is_symlink"))
    if memory.is_blocked != (memory.blocked_at is not None):
        errors.append(_error(name, "MemoryFile blocked_at must be set iff is_blocked"))

    return errors
