# Tests for core data models and their validators
from datetime import datetime, timezone
from pathlib import Path

import pytest

from mcptoggle.models import (
    BlockedServerConfig,
    ClaudeJson,
    ConfigSource,
    LegacyMigrationResult,
    MCPServer,
    MemoryFile,
    ProjectContext,
    ServerConfig,
    is_blocked,
)
from mcptoggle.utils.validation import (
    ValidationError,
    has_errors,
    is_valid_server_name,
    parse_timestamp,
    validate_blocked_server_config,
    validate_config_source,
    validate_mcp_server,
    validate_memory_file,
    validate_server_config,
    validate_server_entry,
)

BLOCKED_ENTRY = {
    "command": "echo",
    "args": ["[mcp-toggle] Server 'gh' is blocked"],
    "_blocked": True,
    "_blockedAt": "2025-01-15T10:30:00.000Z",
    "_original": {"command": "npx", "args": ["-y", "gh"]},
}


class TestServerConfig:
    """Tests for ServerConfig serialization."""

    def test_from_dict_keeps_unknown_keys(self):
        """Test that keys other than command/args/env are carried in extra."""
        config = ServerConfig.from_dict({"command": "node", "type": "stdio", "timeout": 30})
        assert config.command == "node"
        assert config.args is None
        assert config.env is None
        assert config.extra == {"type": "stdio", "timeout": 30}

    def test_to_dict_omits_missing_args_and_env(self):
        assert ServerConfig(command="node").to_dict() == {"command": "node"}

    def test_dict_round_trip(self):
        data = {"command": "npx", "args": ["-y", "pkg"], "env": {"TOKEN": "x"}, "type": "stdio"}
        assert ServerConfig.from_dict(data).to_dict() == data

    def test_immutability(self):
        """Test that ServerConfig is frozen (immutable)."""
        config = ServerConfig(command="node")
        with pytest.raises(AttributeError):
            config.command = "python"  # type: ignore[misc]


class TestBlockedServerConfig:
    def test_from_dict(self):
        blocked = BlockedServerConfig.from_dict(BLOCKED_ENTRY)
        assert blocked.command == "echo"
        assert blocked.blocked_at == "2025-01-15T10:30:00.000Z"
        assert blocked.original == ServerConfig(command="npx", args=["-y", "gh"])

    def test_to_dict_shape(self):
        assert BlockedServerConfig.from_dict(BLOCKED_ENTRY).to_dict() == BLOCKED_ENTRY


class TestIsBlocked:
    """Tests for the blocked discriminator."""

    @pytest.mark.parametrize(
        ("entry", "expected"),
        [
            ({"command": "echo", "_blocked": True}, True),
            ({"_blocked": True}, True),
            ({"command": "echo"}, False),
            ({"command": "echo", "_blocked": "true"}, False),
            ({"command": "echo", "_blocked": 1}, False),
            ({"command": "echo", "_blocked": False, "_original": {"command": "x"}}, False),
            ({"command": "node", "_blockedAt": "2025-01-01T00:00:00Z"}, False),
        ],
    )
    def test_only_blocked_marker_decides(self, entry, expected):
        assert is_blocked(entry) is expected

    def test_model_instances(self):
        assert is_blocked(BlockedServerConfig.from_dict(BLOCKED_ENTRY))
        assert not is_blocked(ServerConfig(command="echo"))

    def test_non_config_values(self):
        assert not is_blocked(None)  # type: ignore[arg-type]
        assert not is_blocked(["_blocked"])  # type: ignore[arg-type]


def test_claude_json_copy_is_independent():
    """Test that copying a config does not share the server map."""
    config = ClaudeJson(servers={"a": ServerConfig(command="node")}, extra={"theme": {"x": 1}})
    clone = config.copy()
    del clone.servers["a"]
    clone.extra["theme"]["x"] = 2

    assert "a" in config.servers
    assert config.extra["theme"]["x"] == 1


def test_project_context_helpers(tmp_path):
    blocked = MCPServer(
        name="gh",
        command="npx",
        source_path=tmp_path / ".claude.json",
        source_type="inherited",
        hierarchy_level=2,
        is_blocked=True,
        blocked_at=datetime.now(timezone.utc),
    )
    active = MCPServer(
        name="fs",
        command="node",
        source_path=tmp_path / ".mcp.json",
        source_type="inherited",
        hierarchy_level=1,
    )
    context = ProjectContext(project_dir=tmp_path, mcp_servers=[blocked, active])

    assert context.blocked_servers == [blocked]
    assert context.find_server("fs") is active
    assert context.find_server("missing") is None


def test_legacy_migration_result_warnings():
    result = LegacyMigrationResult(migrated=True)
    result.add_warning("Server 'ghost' not found")
    assert result.warnings == ["Server 'ghost' not found"]
    assert result.servers_count == 0


class TestValidateServerConfig:
    """Tests for validate_server_config function."""

    def test_valid_config(self):
        errors = validate_server_config({"command": "npx", "args": ["-y"], "env": {"A": "b"}}, "x")
        assert errors == []

    def test_blank_command(self):
        errors = validate_server_config({"command": "   "}, "x")
        assert len(errors) == 1
        assert errors[0].severity == "error"
        assert "'x'" in errors[0].message

    def test_missing_command(self):
        assert has_errors(validate_server_config({"args": []}, "x"))

    def test_non_string_args(self):
        errors = validate_server_config({"command": "node", "args": ["a", 1]}, "x")
        assert any("args" in e.message for e in errors)

    def test_non_string_env_value(self):
        errors = validate_server_config({"command": "node", "env": {"PORT": 80}}, "x")
        assert any("env" in e.message for e in errors)

    def test_not_an_object(self):
        errors = validate_server_config(["node"], "x")
        assert errors == [ValidationError("x", "Server 'x' must be a JSON object", "error")]


class TestValidateBlockedServerConfig:
    def test_valid_entry(self):
        assert validate_blocked_server_config(BLOCKED_ENTRY, "gh") == []

    def test_wrong_sentinel(self):
        entry = dict(BLOCKED_ENTRY, command="node")
        errors = validate_blocked_server_config(entry, "gh")
        assert any("'echo'" in e.message for e in errors)

    def test_bad_timestamp(self):
        entry = dict(BLOCKED_ENTRY, _blockedAt="yesterday")
        errors = validate_blocked_server_config(entry, "gh")
        assert any("_blockedAt" in e.message for e in errors)

    def test_missing_original(self):
        entry = {k: v for k, v in BLOCKED_ENTRY.items() if k != "_original"}
        errors = validate_blocked_server_config(entry, "gh")
        assert any("_original" in e.message for e in errors)

    def test_invalid_nested_original(self):
        entry = dict(BLOCKED_ENTRY, _original={"command": ""})
        errors = validate_blocked_server_config(entry, "gh")
        assert any(e.message.startswith("_original:") for e in errors)


def test_validate_server_entry_dispatches_on_marker():
    """Test that the blocked validator only runs for entries marked blocked."""
    # Sentinel command alone is a perfectly valid plain server
    assert validate_server_entry({"command": "echo"}, "x") == []
    assert has_errors(validate_server_entry({"command": "echo", "_blocked": True}, "x"))


@pytest.mark.parametrize(
    ("name", "valid"),
    [
        ("github", True),
        ("my_server-2", True),
        ("a" * 64, True),
        ("a" * 65, False),
        ("", False),
        ("has space", False),
        ("dots.not.allowed", False),
    ],
)
def test_is_valid_server_name(name, valid):
    assert is_valid_server_name(name) is valid


def test_parse_timestamp():
    parsed = parse_timestamp("2025-01-15T10:30:00.000Z")
    assert parsed == datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None


class TestValidateRecords:
    """Tests for the ConfigSource, MCPServer and MemoryFile validators."""

    def test_config_source_missing_file(self, tmp_path):
        source = ConfigSource(
            path=tmp_path / ".mcp.json",
            kind="mcp",
            source_type="inherited",
            hierarchy_level=1,
            exists=False,
            is_readable=False,
        )
        assert validate_config_source(source) == []

    def test_config_source_readable_but_missing(self, tmp_path):
        source = ConfigSource(
            path=tmp_path / ".mcp.json",
            kind="mcp",
            source_type="inherited",
            hierarchy_level=1,
            exists=False,
            is_readable=True,
        )
        assert has_errors(validate_config_source(source))

    def test_config_source_relative_path(self):
        source = ConfigSource(
            path=Path("relative/.mcp.json"),
            kind="mcp",
            source_type="inherited",
            hierarchy_level=1,
            exists=False,
            is_readable=False,
        )
        errors = validate_config_source(source)
        assert any("absolute" in e.message for e in errors)

    def test_mcp_server_blocked_needs_timestamp(self, tmp_path):
        server = MCPServer(
            name="gh",
            command="npx",
            source_path=tmp_path / ".claude.json",
            source_type="inherited",
            hierarchy_level=2,
            is_blocked=True,
        )
        errors = validate_mcp_server(server)
        assert any("blocked_at" in e.message for e in errors)

    def test_mcp_server_valid(self, tmp_path):
        server = MCPServer(
            name="gh",
            command="npx",
            source_path=tmp_path / ".claude.json",
            source_type="local",
            hierarchy_level=0,
        )
        assert validate_mcp_server(server) == []

    def test_memory_file_symlink_target_iff_symlink(self, tmp_path):
        memory = MemoryFile(
            name="notes.md",
            path=tmp_path / "notes.md",
            relative_path="notes.md",
            source_path=tmp_path,
            source_type="local",
            hierarchy_level=0,
            size=10,
            symlink_target="/elsewhere/notes.md",
        )
        errors = validate_memory_file(memory)
        assert any("symlink_target" in e.message for e in errors)

    def test_memory_file_name_suffix(self, tmp_path):
        memory = MemoryFile(
            name="notes.txt",
            path=tmp_path / "notes.txt",
            relative_path="notes.txt",
            source_path=tmp_path,
            source_type="local",
            hierarchy_level=0,
            size=0,
        )
        errors = validate_memory_file(memory)
        assert any(".md" in e.message for e in errors)
