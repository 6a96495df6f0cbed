# ABOUTME: Tests for the mcp-toggle CLI commands and exit codes
# ABOUTME: Runs main() in-process plus one subprocess smoke test
import json
import os
import subprocess
import sys
from pathlib import Path

import pytest

from mcptoggle.cli import (
    EXIT_CONFIG_ERROR,
    EXIT_PARTIAL,
    EXIT_SUCCESS,
    main,
)
from mcptoggle.models import is_blocked

SRC_DIR = Path(__file__).resolve().parent.parent / "src"


def write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")


def read_json(path: Path) -> dict:
    return json.loads(path.read_text(encoding="utf-8"))


@pytest.fixture
def env(tmp_path, monkeypatch):
    """Project with local and inherited servers plus a memory file."""
    project = tmp_path / "project"
    home = tmp_path / "home"
    write_json(project / ".claude.json", {"mcpServers": {"alpha": {"command": "node"}}})
    write_json(project / ".mcp.json", {"mcpServers": {"fs": {"command": "npx", "args": ["-y", "fs"]}}})
    write_json(home / ".claude.json", {"mcpServers": {"gh": {"command": "npx"}}})
    memories = project / ".claude" / "memories"
    memories.mkdir(parents=True)
    (memories / "notes.md").write_text("# Notes\n")

    monkeypatch.setenv("MCP_TOGGLE_SETTINGS", str(tmp_path / "settings.toml"))
    monkeypatch.delenv("MCP_TOGGLE_DEBUG", raising=False)
    return project, home


def run(env, *args: str) -> int:
    project, home = env
    return main(["--project", str(project), "--home", str(home), *args])


def test_no_command_shows_help(env, capsys):
    assert run(env) == EXIT_SUCCESS
    assert "usage" in capsys.readouterr().out.lower()


def test_list(env, capsys):
    assert run(env, "list") == EXIT_SUCCESS

    out = capsys.readouterr().out
    assert "alpha [active]" in out
    assert "fs [active]" in out
    assert "gh [active]" in out
    assert "notes.md [active]" in out
    assert "Total: 3 server(s) (0 blocked)" in out


def test_block_and_unblock_inherited(env, capsys):
    project, _home = env

    assert run(env, "block", "gh") == EXIT_SUCCESS
    assert is_blocked(read_json(project / ".claude.json")["mcpServers"]["gh"])

    run(env, "list")
    assert "gh [blocked]" in capsys.readouterr().out

    assert run(env, "unblock", "gh") == EXIT_SUCCESS
    assert "gh" not in read_json(project / ".claude.json")["mcpServers"]


def test_block_local_then_unblock_needs_manual_add(env, capsys):
    project, _home = env

    assert run(env, "block", "alpha") == EXIT_SUCCESS
    assert read_json(project / ".claude.json")["mcpServers"] == {}

    assert run(env, "unblock", "alpha") == EXIT_PARTIAL
    assert "manually add" in capsys.readouterr().out


def test_block_unknown_server(env, capsys):
    assert run(env, "block", "missing") == EXIT_CONFIG_ERROR
    assert "not found" in capsys.readouterr().out


def test_unblock_active_server(env):
    assert run(env, "unblock", "fs") == EXIT_CONFIG_ERROR


def test_block_with_malformed_local_config(env, capsys):
    """Test that a malformed local file is reported, not overwritten."""
    project, _home = env
    (project / ".claude.json").write_text("{invalid json}")

    assert run(env, "block", "gh") == EXIT_CONFIG_ERROR
    assert "Malformed config" in capsys.readouterr().out
    assert (project / ".claude.json").read_text() == "{invalid json}"


def test_block_and_unblock_memory(env):
    project, _home = env
    memories = project / ".claude" / "memories"

    assert run(env, "block-memory", "notes.md") == EXIT_SUCCESS
    assert (memories / "notes.md.blocked").exists()

    assert run(env, "unblock-memory", "notes.md") == EXIT_SUCCESS
    assert (memories / "notes.md").exists()


def test_block_unknown_memory(env):
    assert run(env, "block-memory", "missing.md") == EXIT_CONFIG_ERROR


def test_migrate_legacy_without_marker(env, capsys):
    assert run(env, "migrate-legacy") == EXIT_SUCCESS
    assert "Nothing to migrate" in capsys.readouterr().out


def test_migrate_legacy_with_warning(env, capsys):
    project, _home = env
    (project / ".claude" / "blocked.md").write_text("mcp: gh\nmcp: ghost\n")

    assert run(env, "migrate-legacy") == EXIT_PARTIAL

    out = capsys.readouterr().out
    assert "Migrated 1 server(s)" in out
    assert "ghost" in out
    assert is_blocked(read_json(project / ".claude.json")["mcpServers"]["gh"])


def test_unblock_after_legacy_migration_restores_local_server(env, capsys):
    project, _home = env
    (project / ".claude" / "blocked.md").write_text("mcp: alpha\n")

    assert run(env, "migrate-legacy") == EXIT_SUCCESS
    assert is_blocked(read_json(project / ".claude.json")["mcpServers"]["alpha"])

    run(env, "list")
    assert f"source: local ({project / '.claude.json'})" in capsys.readouterr().out

    assert run(env, "unblock", "alpha") == EXIT_SUCCESS
    assert "Restored local server 'alpha'" in capsys.readouterr().out
    assert read_json(project / ".claude.json")["mcpServers"]["alpha"] == {"command": "node"}


def test_block_and_unblock_agent(env, capsys):
    project, _home = env
    agents = project / ".claude" / "agents"
    agents.mkdir(parents=True)
    (agents / "helper.md").write_text("---\nname: helper\n---\n")

    assert run(env, "block-agent", "helper") == EXIT_SUCCESS
    assert read_json(project / ".claude" / "settings.json")["permissions"]["deny"] == [
        {"type": "agent", "pattern": "helper.md"}
    ]

    run(env, "list")
    assert "helper [blocked] (local)" in capsys.readouterr().out

    assert run(env, "unblock-agent", "helper") == EXIT_SUCCESS
    assert run(env, "unblock-agent", "helper") == EXIT_CONFIG_ERROR


def test_migrate_legacy_agent_rules(env, capsys):
    project, _home = env
    (project / ".claude" / "blocked.md").write_text("agent: helper\n")

    assert run(env, "migrate-legacy") == EXIT_SUCCESS
    assert "1 agent(s)" in capsys.readouterr().out
    assert read_json(project / ".claude" / "settings.json")["permissions"]["deny"] == [
        {"type": "agent", "pattern": "helper.md"}
    ]


def test_migrate_legacy_non_utf8_marker(env, capsys):
    project, _home = env
    (project / ".claude" / "blocked.md").write_bytes(b"mcp: \xff\n")

    assert run(env, "migrate-legacy") == EXIT_CONFIG_ERROR
    assert "blocked.md" in capsys.readouterr().out


def test_promote(env, tmp_path):
    project, home = env

    assert run(env, "promote", "fs") == EXIT_SUCCESS

    assert "fs" in read_json(home / ".claude.json")["mcpServers"]
    assert read_json(project / ".mcp.json")["mcpServers"] == {}


def test_promote_local_server_is_rejected(env, capsys):
    assert run(env, "promote", "alpha") == EXIT_CONFIG_ERROR
    assert "hierarchy level 0" in capsys.readouterr().out


def test_promote_with_rename(env):
    project, home = env
    write_json(project / ".mcp.json", {"mcpServers": {"gh": {"command": "uvx"}}})

    assert run(env, "promote", "gh", "--rename", "gh=gh-project") == EXIT_SUCCESS

    global_servers = read_json(home / ".claude.json")["mcpServers"]
    assert global_servers["gh"] == {"command": "npx"}
    assert global_servers["gh-project"] == {"command": "uvx"}


def test_init_settings(env, tmp_path, capsys):
    settings_path = tmp_path / "settings.toml"

    assert run(env, "init-settings") == EXIT_SUCCESS
    assert settings_path.exists()

    assert run(env, "init-settings") == EXIT_CONFIG_ERROR
    assert run(env, "init-settings", "--force") == EXIT_SUCCESS


def test_invalid_settings_file(env, tmp_path, capsys):
    (tmp_path / "settings.toml").write_text("[mcp-toggle\n")

    assert run(env, "list") == EXIT_CONFIG_ERROR
    assert "Invalid TOML" in capsys.readouterr().out


def test_cli_version_subprocess():
    """Test that the module entry point runs and prints the version."""
    environ = os.environ.copy()
    environ["PYTHONPATH"] = os.pathsep.join(
        p for p in (str(SRC_DIR), environ.get("PYTHONPATH", "")) if p
    )

    result = subprocess.run(
        [sys.executable, "-m", "mcptoggle", "--version"],
        capture_output=True,
        text=True,
        timeout=10,
        env=environ,
    )

    assert result.returncode == 0
    assert "mcp-toggle v" in result.stdout
