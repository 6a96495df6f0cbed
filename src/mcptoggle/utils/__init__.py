# ABOUTME: Utility modules for mcp-toggle
# ABOUTME: Exports JSON parsing, validation, env expansion and backup helpers

from mcptoggle.utils.backup import create_backup, get_backup_dir, restore_backup
from mcptoggle.utils.env import expand_env_vars, expand_path
from mcptoggle.utils.json_parser import ParseResult, parse, parse_and_validate, stringify
from mcptoggle.utils.validation import (
    ValidationError,
    is_valid_server_name,
    validate_blocked_server_config,
    validate_server_config,
    validate_server_entry,
)

__all__ = [
    "ParseResult",
    "ValidationError",
    "create_backup",
    "expand_env_vars",
    "expand_path",
    "get_backup_dir",
    "is_valid_server_name",
    "parse",
    "parse_and_validate",
    "restore_backup",
    "stringify",
    "validate_blocked_server_config",
    "validate_server_config",
    "validate_server_entry",
]
