# ABOUTME: Subagent discovery and blocking through .claude/settings.json deny patterns
# ABOUTME: Agent files are never renamed; blocking only edits permissions.deny
import logging
from pathlib import Path
from typing import Any, Callable, TypeVar

from mcptoggle.claude_json import CLAUDE_DIR, DIR_MODE, atomic_write, path_lock
from mcptoggle.errors import MalformedConfigError, ValidationFailureError, WriteFailureError
from mcptoggle.models import AGENT_DENY, Agent, DenyPattern, DenyType, SourceType
from mcptoggle.utils.json_parser import is_plain_object, parse_and_validate, stringify
from mcptoggle.utils.tokens import estimate_markdown_tokens

logger = logging.getLogger(__name__)

SETTINGS_JSON = "settings.json"
AGENTS_DIR = Path(CLAUDE_DIR) / "agents"
AGENT_SUFFIX = ".md"

T = TypeVar("T")


def settings_json_path(project_dir: Path) -> Path:
    return Path(project_dir) / CLAUDE_DIR / SETTINGS_JSON


def _read_settings(path: Path) -> dict[str, Any]:
    """Read settings.json, filling in an empty permissions.deny list.

    ABOUTME: Deny entries of other shapes (plain strings, rules added by
    ABOUTME: other tools) are kept as they are and written back untouched

    Raises:
        MalformedConfigError: If the file or its permissions block is not an object
    """
    if not path.exists():
        return {"permissions": {"deny": []}}

    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise MalformedConfigError(path, f"not valid UTF-8: {e}") from e

    result = parse_and_validate(text, is_plain_object, "top-level value must be a JSON object")
    if not result.ok:
        raise MalformedConfigError(path, result.error or "unknown parse error")

    settings: dict[str, Any] = result.value
    permissions = settings.setdefault("permissions", {})
    if not isinstance(permissions, dict):
        raise MalformedConfigError(path, "'permissions' must be a JSON object")
    deny = permissions.setdefault("deny", [])
    if not isinstance(deny, list):
        raise MalformedConfigError(path, "'permissions.deny' must be a JSON array")
    return settings


def _write_settings(path: Path, settings: dict[str, Any]) -> None:
    result = stringify(settings, pretty=True)
    if not result.ok:
        raise WriteFailureError(path, result.error or "cannot serialize settings")
    if not path.parent.exists():
        path.parent.mkdir(mode=DIR_MODE, parents=True)
    atomic_write(path, result.value + "\n")


def _update_settings(project_dir: Path, mutate: Callable[[list[Any]], T]) -> T:
    """Read, edit permissions.deny in place and write back under the path lock."""
    path = settings_json_path(project_dir)
    with path_lock(path):
        settings = _read_settings(path)
        deny = settings["permissions"]["deny"]
        before = list(deny)
        result = mutate(deny)
        if deny != before:
            _write_settings(path, settings)
        return result


def _matches(entry: Any, deny_type: DenyType, pattern: str) -> bool:
    return isinstance(entry, dict) and entry.get("type") == deny_type and entry.get("pattern") == pattern


def load_deny_patterns(project_dir: Path) -> list[DenyPattern]:
    """Return the typed deny patterns of a project.

    Raises:
        MalformedConfigError: If settings.json cannot be parsed
    """
    settings = _read_settings(settings_json_path(project_dir))
    patterns: list[DenyPattern] = []
    for entry in settings["permissions"]["deny"]:
        if (
            isinstance(entry, dict)
            and entry.get("type") in ("agent", "memory")
            and isinstance(entry.get("pattern"), str)
        ):
            patterns.append(DenyPattern(type=entry["type"], pattern=entry["pattern"]))
    return patterns


def add_deny_pattern(project_dir: Path, deny_type: DenyType, pattern: str) -> bool:
    """Add a deny pattern unless an identical one exists.

    Returns:
        True if the pattern was added
    """

    def add(deny: list[Any]) -> bool:
        if any(_matches(entry, deny_type, pattern) for entry in deny):
            return False
        deny.append({"type": deny_type, "pattern": pattern})
        return True

    return _update_settings(project_dir, add)


def remove_deny_pattern(project_dir: Path, deny_type: DenyType, pattern: str) -> bool:
    """Remove every deny pattern matching both type and pattern.

    Returns:
        True if anything was removed
    """

    def remove(deny: list[Any]) -> bool:
        kept = [entry for entry in deny if not _matches(entry, deny_type, pattern)]
        removed = len(kept) != len(deny)
        deny[:] = kept
        return removed

    return _update_settings(project_dir, remove)


def is_denied(project_dir: Path, deny_type: DenyType, pattern: str) -> bool:
    """Check a deny pattern; unreadable settings deny nothing."""
    try:
        patterns = load_deny_patterns(project_dir)
    except (MalformedConfigError, OSError) as e:
        logger.warning(f"Ignoring deny patterns: {e}")
        return False
    return DenyPattern(type=deny_type, pattern=pattern) in patterns


def agent_pattern(agent_name: str) -> str:
    """Deny pattern for an agent name; a trailing .md is accepted.

    Raises:
        ValidationFailureError: If the name is empty or absolute
    """
    if not isinstance(agent_name, str) or not agent_name.strip():
        raise ValidationFailureError("agent name must be a non-empty string")
    name = agent_name.strip()
    if name.startswith("/"):
        raise ValidationFailureError(f"agent name must be relative: {agent_name}")
    if name.endswith(AGENT_SUFFIX):
        name = name[: -len(AGENT_SUFFIX)]
    return name + AGENT_SUFFIX


def block_agent(project_dir: Path, agent_name: str) -> bool:
    """Block an agent by adding an agent deny pattern.

    Returns:
        False if the agent was already blocked
    """
    pattern = agent_pattern(agent_name)
    added = add_deny_pattern(project_dir, AGENT_DENY, pattern)
    if added:
        logger.info(f"Blocked agent '{pattern}' in {project_dir}")
    return added


def unblock_agent(project_dir: Path, agent_name: str) -> bool:
    """Unblock an agent by removing its deny pattern.

    Returns:
        False if the agent was not blocked
    """
    pattern = agent_pattern(agent_name)
    removed = remove_deny_pattern(project_dir, AGENT_DENY, pattern)
    if removed:
        logger.info(f"Unblocked agent '{pattern}' in {project_dir}")
    return removed


def agent_roots(project_dir: Path, home_dir: Path | None = None) -> list[tuple[Path, SourceType, int]]:
    roots: list[tuple[Path, SourceType, int]] = [(Path(project_dir) / AGENTS_DIR, "local", 0)]
    if home_dir is not None and Path(home_dir).absolute() != Path(project_dir).absolute():
        roots.append((Path(home_dir) / AGENTS_DIR, "inherited", 1))
    return roots


def discover_agents(project_dir: Path, home_dir: Path | None = None) -> list[Agent]:
    """List agent files; a project agent hides a user agent of the same name.

    ABOUTME: Blocked state comes from the project's settings.json
    """
    try:
        denied = {p.pattern for p in load_deny_patterns(project_dir) if p.type == AGENT_DENY}
    except (MalformedConfigError, OSError) as e:
        logger.warning(f"Ignoring deny patterns: {e}")
        denied = set()

    agents: dict[str, Agent] = {}
    for root, source_type, level in agent_roots(project_dir, home_dir):
        if not root.is_dir():
            continue
        for path in sorted(root.rglob("*" + AGENT_SUFFIX)):
            if not path.is_file():
                continue
            name = path.relative_to(root).as_posix()[: -len(AGENT_SUFFIX)]
            if name in agents:
                logger.debug(f"Agent '{name}' in {root} is overridden by a more local agent")
                continue

            try:
                tokens = estimate_markdown_tokens(path.read_text(encoding="utf-8", errors="replace"))
            except OSError as e:
                logger.warning(f"Skipping unreadable agent file {path}: {e}")
                continue

            agents[name] = Agent(
                name=name,
                path=path.absolute(),
                source_type=source_type,
                hierarchy_level=level,
                is_blocked=name + AGENT_SUFFIX in denied,
                estimated_tokens=tokens,
            )

    return list(agents.values())
