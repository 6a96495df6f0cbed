# ABOUTME: One-time conversion of the legacy .claude/blocked.md marker
# ABOUTME: into override entries (servers), .md.blocked renames (memory files)
# ABOUTME: and settings.json deny patterns (agents)
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from mcptoggle.agents import add_deny_pattern, agent_pattern, load_deny_patterns, settings_json_path
from mcptoggle.blocking import BLOCKED_SUFFIX, create_dummy_override
from mcptoggle.claude_json import CLAUDE_DIR, DEFAULT_STORE, ConfigFileStore, restore_snapshot, snapshot
from mcptoggle.errors import MalformedConfigError, McpToggleError, ValidationFailureError, WriteFailureError
from mcptoggle.loader import MEMORIES_DIR, mcp_scopes, read_scope
from mcptoggle.models import AGENT_DENY, BlockedServerConfig, ClaudeJson, LegacyMigrationResult

logger = logging.getLogger(__name__)

LEGACY_MARKER = "blocked.md"

# ABOUTME: Marker lines look like "mcp: name", "memory: file.md" or "agent: name"
RULE_PATTERN = re.compile(r"^(mcp|memory|agent):\s*(.+)$")

RuleType = Literal["mcp", "memory", "agent"]


@dataclass(frozen=True)
class BlockingRule:
    type: RuleType
    name: str


def legacy_marker_path(project_dir: Path) -> Path:
    return Path(project_dir) / CLAUDE_DIR / LEGACY_MARKER


def parse_legacy_marker(content: str) -> list[BlockingRule]:
    """Parse blocked.md content into rules.

    ABOUTME: Blank lines, '#' comments and unknown lines are skipped
    ABOUTME: Duplicate rules are reported once

    Examples:
        >>> parse_legacy_marker("# blocked\\nmcp: github\\nmemory:notes.md\\n")
        [BlockingRule(type='mcp', name='github'), BlockingRule(type='memory', name='notes.md')]
    """
    rules: list[BlockingRule] = []
    for line in content.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#"):
            continue

        # Older files wrote list items ("- mcp: name")
        if stripped.startswith("- "):
            stripped = stripped[2:].strip()

        match = RULE_PATTERN.match(stripped)
        if not match:
            logger.debug(f"Ignoring unrecognized legacy marker line: {stripped!r}")
            continue

        rule = BlockingRule(type=match.group(1), name=match.group(2).strip())  # type: ignore[arg-type]
        if rule not in rules:
            rules.append(rule)

    return rules


def read_legacy_marker(path: Path) -> list[BlockingRule]:
    """Read and parse a blocked.md marker.

    Raises:
        MalformedConfigError: If the marker is not valid UTF-8
    """
    try:
        content = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedConfigError(path, f"not valid UTF-8: {e}") from e
    return parse_legacy_marker(content)


def _plan_servers(
    project_dir: Path,
    home_dir: Path | None,
    names: list[str],
    store: ConfigFileStore,
    result: LegacyMigrationResult,
) -> tuple[ClaudeJson, bool]:
    """Compute the converted local config without writing it.

    Returns:
        (converted config, whether anything changed)
    """
    after = store.read(project_dir).copy()
    changed = False

    ancestors = [
        (scope, read_scope(scope))
        for scope in mcp_scopes(project_dir, home_dir)
        if scope.hierarchy_level > 0
    ]

    for name in names:
        entry = after.servers.get(name)

        if isinstance(entry, BlockedServerConfig):
            result.servers_count += 1
            continue

        if entry is not None:
            after.servers[name] = create_dummy_override(name, entry)
            result.servers_count += 1
            changed = True
            continue

        for scope, config in ancestors:
            if config is None or name not in config.servers:
                continue
            inherited = config.servers[name]
            original = inherited.original if isinstance(inherited, BlockedServerConfig) else inherited
            after.servers[name] = create_dummy_override(name, original)
            result.servers_count += 1
            changed = True
            logger.debug(f"Legacy server '{name}' found in {scope.name} scope")
            break
        else:
            warning = f"Server '{name}' listed in {LEGACY_MARKER} was not found in any scope"
            logger.warning(warning)
            result.add_warning(warning)

    return after, changed


def _plan_memory(
    project_dir: Path,
    home_dir: Path | None,
    names: list[str],
    result: LegacyMigrationResult,
) -> list[tuple[Path, Path]]:
    """Work out which memory files need renaming."""
    roots = [Path(project_dir) / MEMORIES_DIR]
    if home_dir is not None and Path(home_dir).absolute() != Path(project_dir).absolute():
        roots.append(Path(home_dir) / MEMORIES_DIR)

    renames: list[tuple[Path, Path]] = []
    for name in names:
        for root in roots:
            source = root / name
            target = source.with_name(source.name + BLOCKED_SUFFIX)
            if os.path.lexists(source):
                if os.path.lexists(target):
                    raise McpToggleError(
                        f"Cannot migrate memory file {source}: {target} already exists"
                    )
                renames.append((source, target))
                result.memory_count += 1
                break
            if os.path.lexists(target):
                result.memory_count += 1
                break
        else:
            warning = f"Memory file '{name}' listed in {LEGACY_MARKER} was not found"
            logger.warning(warning)
            result.add_warning(warning)

    return renames


def _plan_agents(project_dir: Path, names: list[str], result: LegacyMigrationResult) -> list[str]:
    """Turn agent names into deny patterns, checking settings.json is usable first.

    Raises:
        MalformedConfigError: If .claude/settings.json cannot be parsed
    """
    patterns: list[str] = []
    for name in names:
        try:
            pattern = agent_pattern(name)
        except ValidationFailureError as e:
            warning = f"Agent '{name}' listed in {LEGACY_MARKER} was skipped: {e}"
            logger.warning(warning)
            result.add_warning(warning)
            continue
        if pattern not in patterns:
            patterns.append(pattern)

    if patterns:
        load_deny_patterns(project_dir)
    return patterns


def migrate_legacy(
    project_dir: Path,
    home_dir: Path | None = None,
    store: ConfigFileStore = DEFAULT_STORE,
) -> LegacyMigrationResult:
    """Convert .claude/blocked.md into the current blocking representation.

    ABOUTME: No marker -> migrated=False with zero counts; safe on every startup
    ABOUTME: All-or-nothing: on failure the local config, memory files and
    ABOUTME: settings.json are put back byte for byte and the marker is kept
    ABOUTME: Names that no longer exist are skipped with a warning

    Args:
        project_dir: Project directory holding .claude/blocked.md
        home_dir: Home directory for the user scope (None skips it)

    Returns:
        LegacyMigrationResult with server, memory and agent counts

    Raises:
        MalformedConfigError: If the marker, local config or settings.json cannot be read
        McpToggleError: If any change fails (everything already rolled back)
        WriteFailureError: If the marker cannot be removed after a successful migration
    """
    marker = legacy_marker_path(project_dir)
    if not marker.is_file():
        return LegacyMigrationResult(migrated=False, reason="no-legacy-file")

    rules = read_legacy_marker(marker)
    server_names = [r.name for r in rules if r.type == "mcp"]
    memory_names = [r.name for r in rules if r.type == "memory"]
    agent_names = [r.name for r in rules if r.type == "agent"]

    result = LegacyMigrationResult(migrated=True)
    after, changed = _plan_servers(project_dir, home_dir, server_names, store, result)
    renames = _plan_memory(project_dir, home_dir, memory_names, result)
    patterns = _plan_agents(project_dir, agent_names, result)

    config_path = store.path_for(project_dir)
    settings_path = settings_json_path(project_dir)
    config_before = snapshot(config_path) if changed else None
    settings_before = snapshot(settings_path) if patterns else None

    done: list[tuple[Path, Path]] = []
    try:
        if changed:
            store.write(project_dir, after)
        for source, target in renames:
            os.rename(source, target)
            done.append((source, target))
        for pattern in patterns:
            add_deny_pattern(project_dir, AGENT_DENY, pattern)
            result.agents_count += 1
    except (McpToggleError, OSError) as e:
        for source, target in reversed(done):
            os.rename(target, source)
        if patterns:
            restore_snapshot(settings_path, settings_before)
        if changed:
            restore_snapshot(config_path, config_before)
        raise McpToggleError(f"Legacy migration failed, nothing was changed: {e}") from e

    try:
        marker.unlink()
    except OSError as e:
        raise WriteFailureError(marker, f"migration applied but marker could not be removed: {e}") from e

    logger.info(
        f"Migrated {result.servers_count} server(s), {result.memory_count} "
        f"memory file(s) and {result.agents_count} agent(s) from {marker}"
    )
    return result
