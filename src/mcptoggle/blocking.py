# ABOUTME: Block/unblock operations for MCP servers and memory files
# ABOUTME: Local servers are removed, inherited servers get a dummy override entry
import copy
import logging
import os
from datetime import datetime, timezone
from pathlib import Path

from mcptoggle.claude_json import DEFAULT_STORE, ConfigFileStore
from mcptoggle.errors import NotBlockedError, NotFoundError, ValidationFailureError, WriteFailureError
from mcptoggle.models import (
    BlockedServerConfig,
    ClaudeJson,
    MCPServer,
    ServerConfig,
    ServerEntry,
    UnblockResult,
    is_blocked,
)
from mcptoggle.utils.validation import has_errors, validate_server_config

logger = logging.getLogger(__name__)

# ABOUTME: Suffix appended to a memory file while it is blocked
BLOCKED_SUFFIX = ".blocked"
MEMORY_SUFFIX = ".md"

TOOL_TAG = "[mcp-toggle]"

__all__ = [
    "BLOCKED_SUFFIX",
    "block_inherited_server",
    "block_local_server",
    "block_memory_file",
    "create_dummy_override",
    "extract_original",
    "is_blocked",
    "restore_local_server",
    "save_changes",
    "strip_blocking_metadata",
    "unblock_inherited_server",
    "unblock_local_server",
    "unblock_memory_file",
]


def _require_name(server_name: str) -> None:
    if not isinstance(server_name, str) or not server_name.strip():
        raise ValidationFailureError("server name must be a non-empty string")


def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def create_dummy_override(server_name: str, original: ServerConfig) -> BlockedServerConfig:
    """Build the override entry that suppresses an inherited server.

    ABOUTME: The sentinel echo command exits immediately with no side effects
    ABOUTME: original is deep-copied so later edits cannot leak into the override

    Args:
        server_name: Name of the server being blocked
        original: Definition active before blocking

    Returns:
        BlockedServerConfig carrying the original definition

    Raises:
        ValidationFailureError: If original is not a valid server config
    """
    errors = validate_server_config(original.to_dict(), server_name)
    if has_errors(errors):
        raise ValidationFailureError(
            f"Cannot block '{server_name}': original config is invalid", errors
        )

    return BlockedServerConfig(
        args=[f"{TOOL_TAG} Server '{server_name}' is blocked"],
        blocked_at=now_iso(),
        original=copy.deepcopy(original),
    )


def extract_original(blocked: ServerEntry) -> ServerConfig:
    """Return the definition preserved inside an override entry.

    Raises:
        NotBlockedError: If the entry has no blocking metadata
    """
    if not isinstance(blocked, BlockedServerConfig):
        raise NotBlockedError("Server configuration is not blocked (no _original to extract)")
    return copy.deepcopy(blocked.original)


def strip_blocking_metadata(config: ServerEntry) -> ServerConfig:
    """Return the unblocked definition: the original for overrides, the input otherwise."""
    if isinstance(config, BlockedServerConfig):
        return extract_original(config)
    return config


def block_local_server(
    project_dir: Path, server_name: str, store: ConfigFileStore = DEFAULT_STORE
) -> None:
    """Block a server defined in the project's own config by deleting it.

    ABOUTME: Destructive: the definition is not kept anywhere
    ABOUTME: Re-enabling requires the user to add the definition again

    Raises:
        NotFoundError: If the server is not in the local config
        ValidationFailureError: If the entry is an override for an inherited server
    """
    _require_name(server_name)

    def remove(config: ClaudeJson) -> None:
        entry = config.servers.get(server_name)
        if entry is None:
            raise NotFoundError(
                f"Server '{server_name}' not found in {store.path_for(project_dir)}"
            )
        if is_blocked(entry):
            raise ValidationFailureError(
                f"Server '{server_name}' is an inherited server with an override, "
                "cannot block as local"
            )
        del config.servers[server_name]

    store.update(project_dir, remove)
    logger.info(f"Blocked local server '{server_name}' in {project_dir}")


def block_inherited_server(
    project_dir: Path, server: MCPServer, store: ConfigFileStore = DEFAULT_STORE
) -> BlockedServerConfig:
    """Block an inherited server by writing an override into the local config.

    ABOUTME: Any existing local entry with the same name is overwritten

    Raises:
        ValidationFailureError: If the server is not inherited or its config is invalid
    """
    _require_name(server.name)
    if server.source_type != "inherited":
        raise ValidationFailureError(
            f"Server '{server.name}' is not inherited (source_type: {server.source_type})"
        )

    override = create_dummy_override(server.name, server.to_server_config())

    def put(config: ClaudeJson) -> None:
        if server.name in config.servers:
            logger.debug(f"Overwriting existing entry '{server.name}' with override")
        config.servers[server.name] = override

    store.update(project_dir, put)
    logger.info(f"Blocked inherited server '{server.name}' in {project_dir}")
    return override


def unblock_local_server(project_dir: Path, server_name: str) -> UnblockResult:
    """Report that a locally blocked server must be re-added by hand.

    ABOUTME: Performs no file mutation; the definition was discarded at block time
    """
    _require_name(server_name)
    config_path = DEFAULT_STORE.path_for(project_dir)
    message = (
        f"Local server '{server_name}' has been unblocked.\n"
        f"You must manually add its configuration to {config_path} to use it again.\n"
        "\n"
        "Example configuration:\n"
        "{\n"
        '  "mcpServers": {\n'
        f'    "{server_name}": {{\n'
        '      "command": "npx",\n'
        '      "args": ["-y", "@package/name"]\n'
        "    }\n"
        "  }\n"
        "}"
    )
    return UnblockResult(success=True, requires_manual_add=True, message=message)


def unblock_inherited_server(
    project_dir: Path, server_name: str, store: ConfigFileStore = DEFAULT_STORE
) -> ServerConfig:
    """Remove an override so the ancestor definition applies again.

    Returns:
        The original definition that was preserved in the override

    Raises:
        NotFoundError: If no override entry for server_name exists
    """
    _require_name(server_name)

    def remove(config: ClaudeJson) -> ServerConfig:
        entry = config.servers.get(server_name)
        if entry is None or not isinstance(entry, BlockedServerConfig):
            raise NotFoundError(
                f"No blocking override for '{server_name}' in {store.path_for(project_dir)}"
            )
        del config.servers[server_name]
        return extract_original(entry)

    original = store.update(project_dir, remove)
    logger.info(f"Unblocked inherited server '{server_name}' in {project_dir}")
    return original


def restore_local_server(
    project_dir: Path, server_name: str, store: ConfigFileStore = DEFAULT_STORE
) -> ServerConfig:
    """Replace an override that suppresses no ancestor with its preserved definition.

    ABOUTME: Used for local entries converted in place from the legacy marker,
    ABOUTME: where removing the override would lose the only copy of the definition

    Returns:
        The restored definition

    Raises:
        NotFoundError: If no override entry for server_name exists
    """
    _require_name(server_name)

    def restore(config: ClaudeJson) -> ServerConfig:
        entry = config.servers.get(server_name)
        if entry is None or not isinstance(entry, BlockedServerConfig):
            raise NotFoundError(
                f"No blocking override for '{server_name}' in {store.path_for(project_dir)}"
            )
        original = extract_original(entry)
        config.servers[server_name] = original
        return original

    original = store.update(project_dir, restore)
    logger.info(f"Restored local server '{server_name}' in {project_dir}")
    return original


def _check_memory_path(file_path: Path, suffix: str) -> Path:
    path = Path(file_path)
    if not path.is_absolute():
        raise ValidationFailureError(f"Memory file path must be absolute: {path}")
    if not path.name.endswith(suffix):
        raise ValidationFailureError(f"Memory file path must end with {suffix}: {path}")
    return path


def _rename(source: Path, target: Path) -> None:
    if not os.path.lexists(source):
        raise NotFoundError(f"Memory file not found: {source}")
    if os.path.lexists(target):
        raise ValidationFailureError(f"Cannot rename {source}: {target} already exists")
    # Single rename syscall; no copy+delete fallback
    os.rename(source, target)


def block_memory_file(file_path: Path) -> Path:
    """Block a memory file by appending the .blocked suffix.

    Returns:
        New path of the file

    Raises:
        NotFoundError: If the file does not exist
        ValidationFailureError: If the path is not an absolute .md path or already blocked
    """
    path = _check_memory_path(file_path, MEMORY_SUFFIX)
    blocked_path = path.with_name(path.name + BLOCKED_SUFFIX)
    _rename(path, blocked_path)
    logger.info(f"Blocked memory file {path}")
    return blocked_path


def unblock_memory_file(file_path: Path) -> Path:
    """Unblock a memory file by stripping the .blocked suffix.

    Returns:
        New path of the file

    Raises:
        NotFoundError: If the blocked file does not exist
        ValidationFailureError: If the path is not an absolute .md.blocked path
            or the unblocked name is taken
    """
    path = _check_memory_path(file_path, MEMORY_SUFFIX + BLOCKED_SUFFIX)
    unblocked_path = path.with_name(path.name[: -len(BLOCKED_SUFFIX)])
    _rename(path, unblocked_path)
    logger.info(f"Unblocked memory file {unblocked_path}")
    return unblocked_path


def save_changes(
    project_dir: Path, changes: list[str], store: ConfigFileStore = DEFAULT_STORE
) -> bool:
    """Record a batch of already applied changes and rewrite the config atomically.

    ABOUTME: Not a mutation path: the current config is written back unchanged
    ABOUTME: Returns False instead of raising when the write fails

    Args:
        project_dir: Project directory
        changes: Human-readable descriptions of the applied changes

    Returns:
        True if the config was durably written
    """
    if not isinstance(changes, list):
        raise ValidationFailureError("changes must be a list of descriptions")

    for change in changes:
        logger.info(f"{project_dir}: {change}")

    try:
        store.update(project_dir, lambda config: None)
    except WriteFailureError as e:
        logger.error(f"Saving {len(changes)} change(s) failed: {e}")
        return False

    return True
