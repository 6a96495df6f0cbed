# Core data models for mcp-toggle
import copy
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Literal

# ABOUTME: Keys of the blocking metadata written into an override entry
BLOCKED_KEY = "_blocked"
BLOCKED_AT_KEY = "_blockedAt"
ORIGINAL_KEY = "_original"

# ABOUTME: Inert command used by every override entry
SENTINEL_COMMAND = "echo"

SourceType = Literal["local", "inherited"]
SourceKind = Literal["mcp", "memory"]
ResolutionType = Literal["skip", "overwrite", "rename"]
DenyType = Literal["agent", "memory"]

AGENT_DENY: DenyType = "agent"

_SERVER_KEYS = ("command", "args", "env")


@dataclass(frozen=True)
class ServerConfig:
    """One MCP server definition as stored in a config file.

    ABOUTME: Unknown keys (type, url, ...) are carried verbatim in extra
    ABOUTME: args/env stay None when the source document omitted them
    """
    command: str
    args: list[str] | None = None
    env: dict[str, str] | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"command": self.command}
        if self.args is not None:
            result["args"] = list(self.args)
        if self.env is not None:
            result["env"] = dict(self.env)
        for key, value in self.extra.items():
            result[key] = copy.deepcopy(value)
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ServerConfig":
        args = data.get("args")
        env = data.get("env")
        return cls(
            command=data["command"],
            args=list(args) if args is not None else None,
            env=dict(env) if env is not None else None,
            extra={
                key: copy.deepcopy(value)
                for key, value in data.items()
                if key not in _SERVER_KEYS
            },
        )


@dataclass(frozen=True)
class BlockedServerConfig:
    """Override entry that suppresses an inherited server.

    ABOUTME: command is always the sentinel, the real definition lives in original
    """
    blocked_at: str
    original: ServerConfig
    args: list[str] = field(default_factory=list)
    command: str = SENTINEL_COMMAND

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.command,
            "args": list(self.args),
            BLOCKED_KEY: True,
            BLOCKED_AT_KEY: self.blocked_at,
            ORIGINAL_KEY: self.original.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BlockedServerConfig":
        return cls(
            command=data["command"],
            args=list(data.get("args", [])),
            blocked_at=data[BLOCKED_AT_KEY],
            original=ServerConfig.from_dict(data[ORIGINAL_KEY]),
        )


ServerEntry = ServerConfig | BlockedServerConfig


def is_blocked(config: ServerEntry | dict[str, Any]) -> bool:
    """Return True iff the entry carries `_blocked: true`.

    ABOUTME: The blocked marker is the only discriminator; the sentinel
    ABOUTME: command alone never makes an entry blocked
    """
    if isinstance(config, BlockedServerConfig):
        return True
    if isinstance(config, ServerConfig):
        return config.extra.get(BLOCKED_KEY) is True
    if isinstance(config, dict):
        return BLOCKED_KEY in config and config[BLOCKED_KEY] is True
    return False


@dataclass
class ClaudeJson:
    """One config document (.claude.json or .mcp.json).

    ABOUTME: servers holds the parsed server map, extra every other top-level key
    """
    servers: dict[str, ServerEntry] = field(default_factory=dict)
    extra: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "ClaudeJson":
        return ClaudeJson(servers=dict(self.servers), extra=copy.deepcopy(self.extra))


@dataclass(frozen=True)
class ConfigSource:
    """A physical location contributing configuration."""
    path: Path
    kind: SourceKind
    source_type: SourceType
    hierarchy_level: int
    exists: bool
    is_readable: bool
    last_modified: datetime | None = None


@dataclass
class MCPServer:
    """Merged view of one server across all scopes.

    ABOUTME: Rebuilt on every resolution pass, never persisted directly
    """
    name: str
    command: str
    source_path: Path
    source_type: SourceType
    hierarchy_level: int
    args: list[str] | None = None
    env: dict[str, str] | None = None
    is_blocked: bool = False
    blocked_at: datetime | None = None
    estimated_tokens: int | None = None

    def to_server_config(self) -> ServerConfig:
        return ServerConfig(
            command=self.command,
            args=list(self.args) if self.args is not None else None,
            env=dict(self.env) if self.env is not None else None,
        )


@dataclass
class MemoryFile:
    """A discovered memory note.

    ABOUTME: name is the logical .md name; path is the real on-disk path,
    ABOUTME: which ends in .md.blocked while the file is blocked
    ABOUTME: blocked_at is the inode change time; the rename that blocks a file
    ABOUTME: updates it, while the modification time still tracks the content
    """
    name: str
    path: Path
    relative_path: str
    source_path: Path
    source_type: SourceType
    hierarchy_level: int
    size: int
    content_preview: str | None = None
    is_symlink: bool = False
    symlink_target: str | None = None
    is_blocked: bool = False
    blocked_at: datetime | None = None
    estimated_tokens: int | None = None


@dataclass(frozen=True)
class DenyPattern:
    """One typed entry of permissions.deny in .claude/settings.json."""
    type: DenyType
    pattern: str


@dataclass
class Agent:
    """A discovered subagent file under .claude/agents/."""
    name: str
    path: Path
    source_type: SourceType
    hierarchy_level: int
    is_blocked: bool = False
    estimated_tokens: int | None = None


@dataclass
class ProjectContext:
    """Everything visible from one project directory."""
    project_dir: Path
    mcp_servers: list[MCPServer] = field(default_factory=list)
    memory_files: list[MemoryFile] = field(default_factory=list)
    config_sources: list[ConfigSource] = field(default_factory=list)

    @property
    def blocked_servers(self) -> list[MCPServer]:
        return [s for s in self.mcp_servers if s.is_blocked]

    @property
    def blocked_memory_files(self) -> list[MemoryFile]:
        return [f for f in self.memory_files if f.is_blocked]

    def find_server(self, name: str) -> MCPServer | None:
        for server in self.mcp_servers:
            if server.name == name:
                return server
        return None


@dataclass(frozen=True)
class UnblockResult:
    success: bool
    requires_manual_add: bool
    message: str


@dataclass
class LegacyMigrationResult:
    """Outcome of converting the legacy blocked.md marker.

    ABOUTME: warnings collects names that could not be located (soft failures)
    """
    migrated: bool
    reason: str | None = None
    servers_count: int = 0
    memory_count: int = 0
    agents_count: int = 0
    warnings: list[str] = field(default_factory=list)

    def add_warning(self, warning: str) -> None:
        self.warnings.append(warning)
