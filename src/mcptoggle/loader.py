# ABOUTME: Resolves the fixed scope hierarchy into one merged view with provenance
# ABOUTME: Lenient: malformed or unreadable scope files contribute nothing
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path

from mcptoggle.claude_json import CLAUDE_DIR, CLAUDE_JSON, DEFAULT_STORE, MCP_JSON, ConfigFileStore
from mcptoggle.errors import MalformedConfigError, NotFoundError, ValidationFailureError
from mcptoggle.models import (
    BlockedServerConfig,
    ClaudeJson,
    ConfigSource,
    MCPServer,
    MemoryFile,
    ProjectContext,
    SourceKind,
    SourceType,
)
from mcptoggle.utils.tokens import estimate_json_tokens, estimate_markdown_tokens
from mcptoggle.utils.validation import parse_timestamp

logger = logging.getLogger(__name__)

# ABOUTME: Stores for the project-shared and user-global scopes
PROJECT_STORE = ConfigFileStore(MCP_JSON)
USER_STORE = ConfigFileStore(CLAUDE_JSON)

MEMORIES_DIR = Path(CLAUDE_DIR) / "memories"
MEMORY_SUFFIX = ".md"
BLOCKED_MEMORY_SUFFIX = ".md.blocked"
PREVIEW_LENGTH = 200

# ABOUTME: Enumeration slower than this is reported as a warning
SLOW_ENUMERATION_SECONDS = 2.0


@dataclass(frozen=True)
class Scope:
    """One entry of the fixed MCP scope hierarchy.

    ABOUTME: Level 0 is the most local scope; higher levels are more global
    """
    name: str
    directory: Path
    store: ConfigFileStore
    hierarchy_level: int
    source_type: SourceType

    @property
    def path(self) -> Path:
        return self.store.path_for(self.directory)


def mcp_scopes(project_dir: Path, home_dir: Path | None = None) -> list[Scope]:
    """Return the MCP scopes visible from project_dir, most local first.

    ABOUTME: local = <project>/.claude.json, project = <project>/.mcp.json,
    ABOUTME: user = <home>/.claude.json (omitted when home_dir is None or equals project_dir)
    """
    project_dir = Path(project_dir)
    scopes = [
        Scope("local", project_dir, DEFAULT_STORE, 0, "local"),
        Scope("project", project_dir, PROJECT_STORE, 1, "inherited"),
    ]
    if home_dir is not None and Path(home_dir).absolute() != project_dir.absolute():
        scopes.append(Scope("user", Path(home_dir), USER_STORE, 2, "inherited"))
    return scopes


def read_scope(scope: Scope) -> ClaudeJson | None:
    """Read one scope's config, returning None when it cannot contribute."""
    try:
        return scope.store.read(scope.directory)
    except MalformedConfigError as e:
        logger.warning(f"Ignoring {scope.name} scope: {e}")
    except OSError as e:
        logger.warning(f"Ignoring {scope.name} scope, cannot read {scope.path}: {e}")
    return None


def load_mcp_servers(project_dir: Path, home_dir: Path | None = None) -> list[MCPServer]:
    """Merge servers from all scopes; the lowest hierarchy level wins.

    ABOUTME: A blocked override reports the provenance of the definition it suppresses
    ABOUTME: An override with no defining ancestor (a converted local entry) stays local
    """
    scoped = [(scope, read_scope(scope)) for scope in mcp_scopes(project_dir, home_dir)]

    def defining_ancestor(name: str, level: int) -> Scope | None:
        for scope, config in scoped:
            if config is not None and scope.hierarchy_level > level and name in config.servers:
                return scope
        return None

    merged: dict[str, MCPServer] = {}
    for scope, config in scoped:
        if config is None:
            continue

        for name, entry in config.servers.items():
            if name in merged:
                continue

            if isinstance(entry, BlockedServerConfig):
                original = entry.original
                owner = defining_ancestor(name, scope.hierarchy_level) or scope
                merged[name] = MCPServer(
                    name=name,
                    command=original.command,
                    args=original.args,
                    env=original.env,
                    source_path=owner.path,
                    source_type=owner.source_type,
                    hierarchy_level=owner.hierarchy_level,
                    is_blocked=True,
                    blocked_at=parse_timestamp(entry.blocked_at) or datetime.now(timezone.utc),
                    estimated_tokens=estimate_json_tokens(original.to_dict()),
                )
            else:
                merged[name] = MCPServer(
                    name=name,
                    command=entry.command,
                    args=entry.args,
                    env=entry.env,
                    source_path=scope.path,
                    source_type=scope.source_type,
                    hierarchy_level=scope.hierarchy_level,
                    estimated_tokens=estimate_json_tokens(entry.to_dict()),
                )

    return list(merged.values())


def memory_roots(project_dir: Path, home_dir: Path | None = None) -> list[tuple[Path, SourceType, int]]:
    """Return (memories directory, source type, level) for each memory scope."""
    roots: list[tuple[Path, SourceType, int]] = [(Path(project_dir) / MEMORIES_DIR, "local", 0)]
    if home_dir is not None and Path(home_dir).absolute() != Path(project_dir).absolute():
        roots.append((Path(home_dir) / MEMORIES_DIR, "inherited", 1))
    return roots


def discover_memory_files(
    root: Path, source_type: SourceType, hierarchy_level: int
) -> list[MemoryFile]:
    """List memory files under root, deriving blocked state from the suffix.

    ABOUTME: *.md files are active, *.md.blocked files are blocked
    ABOUTME: Nothing is cached; the listing is the only source of truth
    """
    if not root.is_dir():
        return []

    files: list[MemoryFile] = []
    for path in sorted(root.rglob("*")):
        if path.name.endswith(BLOCKED_MEMORY_SUFFIX):
            is_blocked = True
        elif path.name.endswith(MEMORY_SUFFIX):
            is_blocked = False
        else:
            continue

        try:
            stats = path.lstat()
            if path.is_dir():
                continue
        except OSError as e:
            logger.warning(f"Skipping inaccessible memory file {path}: {e}")
            continue

        relative = path.relative_to(root).as_posix()
        if is_blocked:
            relative = relative[: -len(".blocked")]

        memory = MemoryFile(
            name=relative.rsplit("/", 1)[-1],
            path=path.absolute(),
            relative_path=relative,
            source_path=root.parent.absolute(),
            source_type=source_type,
            hierarchy_level=hierarchy_level,
            size=stats.st_size,
            is_blocked=is_blocked,
            blocked_at=datetime.fromtimestamp(stats.st_ctime, tz=timezone.utc) if is_blocked else None,
        )

        if path.is_symlink():
            memory.is_symlink = True
            try:
                memory.symlink_target = os.readlink(path)
            except OSError:
                memory.symlink_target = ""

        try:
            content = path.read_text(encoding="utf-8", errors="replace")
            memory.content_preview = content[:PREVIEW_LENGTH]
            memory.estimated_tokens = estimate_markdown_tokens(content)
        except OSError as e:
            logger.debug(f"No preview for {path}: {e}")

        files.append(memory)

    return files


def load_memory_files(project_dir: Path, home_dir: Path | None = None) -> list[MemoryFile]:
    files: list[MemoryFile] = []
    for root, source_type, level in memory_roots(project_dir, home_dir):
        files.extend(discover_memory_files(root, source_type, level))
    return files


def _describe_source(path: Path, kind: SourceKind, source_type: SourceType, level: int) -> ConfigSource:
    exists = path.exists()
    is_readable = exists and os.access(path, os.R_OK)
    last_modified = None
    if exists:
        last_modified = datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)
    return ConfigSource(
        path=path.absolute(),
        kind=kind,
        source_type=source_type,
        hierarchy_level=level,
        exists=exists,
        is_readable=is_readable,
        last_modified=last_modified,
    )


def collect_config_sources(project_dir: Path, home_dir: Path | None = None) -> list[ConfigSource]:
    """Describe every physical location that can contribute configuration."""
    sources = [
        _describe_source(scope.path, "mcp", scope.source_type, scope.hierarchy_level)
        for scope in mcp_scopes(project_dir, home_dir)
    ]
    sources.extend(
        _describe_source(root, "memory", source_type, level)
        for root, source_type, level in memory_roots(project_dir, home_dir)
    )
    return sources


def build_project_context(project_dir: Path, home_dir: Path | None = None) -> ProjectContext:
    """Load servers, memory files and config sources for a project.

    Args:
        project_dir: Absolute path of the project directory
        home_dir: User home directory for the global scope (None skips it)

    Raises:
        ValidationFailureError: If project_dir is not absolute
        NotFoundError: If project_dir does not exist
    """
    project_dir = Path(project_dir)
    if not project_dir.is_absolute():
        raise ValidationFailureError(f"Project directory must be an absolute path: {project_dir}")
    if not project_dir.is_dir():
        raise NotFoundError(f"Project directory does not exist: {project_dir}")

    started = time.monotonic()

    context = ProjectContext(
        project_dir=project_dir,
        mcp_servers=load_mcp_servers(project_dir, home_dir),
        memory_files=load_memory_files(project_dir, home_dir),
        config_sources=collect_config_sources(project_dir, home_dir),
    )

    elapsed = time.monotonic() - started
    logger.debug(
        f"Loaded {len(context.mcp_servers)} server(s) and "
        f"{len(context.memory_files)} memory file(s) in {elapsed:.3f}s"
    )
    if elapsed > SLOW_ENUMERATION_SECONDS:
        logger.warning(f"Enumeration took {elapsed:.1f}s (threshold {SLOW_ENUMERATION_SECONDS}s)")

    return context
