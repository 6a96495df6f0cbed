# mcp-toggle - Per-project blocking of MCP servers and memory files
# ABOUTME: Version information
__version__ = "0.1.0"

# ABOUTME: Export core data models and errors
from mcptoggle.errors import (
    InvalidMigrationError,
    MalformedConfigError,
    McpToggleError,
    NotBlockedError,
    NotFoundError,
    ValidationFailureError,
    WriteFailureError,
)
from mcptoggle.models import (
    Agent,
    BlockedServerConfig,
    ClaudeJson,
    ConfigSource,
    LegacyMigrationResult,
    MCPServer,
    MemoryFile,
    ProjectContext,
    ServerConfig,
    UnblockResult,
    is_blocked,
)

# ABOUTME: Export the config engine and operations
from mcptoggle.claude_json import ConfigFileStore, read_claude_json, write_claude_json
from mcptoggle.blocking import (
    block_inherited_server,
    block_local_server,
    block_memory_file,
    create_dummy_override,
    extract_original,
    restore_local_server,
    save_changes,
    unblock_inherited_server,
    unblock_local_server,
    unblock_memory_file,
)
from mcptoggle.agents import block_agent, discover_agents, unblock_agent
from mcptoggle.legacy import migrate_legacy
from mcptoggle.loader import build_project_context

__all__ = [
    "__version__",
    "Agent",
    "BlockedServerConfig",
    "ClaudeJson",
    "ConfigFileStore",
    "ConfigSource",
    "InvalidMigrationError",
    "LegacyMigrationResult",
    "MCPServer",
    "MalformedConfigError",
    "McpToggleError",
    "MemoryFile",
    "NotBlockedError",
    "NotFoundError",
    "ProjectContext",
    "ServerConfig",
    "UnblockResult",
    "ValidationFailureError",
    "WriteFailureError",
    "block_agent",
    "block_inherited_server",
    "block_local_server",
    "block_memory_file",
    "build_project_context",
    "create_dummy_override",
    "discover_agents",
    "extract_original",
    "is_blocked",
    "migrate_legacy",
    "read_claude_json",
    "restore_local_server",
    "save_changes",
    "unblock_agent",
    "unblock_inherited_server",
    "unblock_local_server",
    "unblock_memory_file",
    "write_claude_json",
]
