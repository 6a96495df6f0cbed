# CLI interface for mcp-toggle
import argparse
import logging
import os
import sys
from pathlib import Path

from mcptoggle import __version__
from mcptoggle.agents import block_agent, discover_agents, unblock_agent
from mcptoggle.blocking import (
    block_inherited_server,
    block_local_server,
    block_memory_file,
    restore_local_server,
    unblock_inherited_server,
    unblock_local_server,
    unblock_memory_file,
)
from mcptoggle.config import Settings, get_settings_path, load_settings, save_settings
from mcptoggle.errors import (
    InvalidMigrationError,
    MalformedConfigError,
    McpToggleError,
    NotBlockedError,
    NotFoundError,
    ValidationFailureError,
)
from mcptoggle.legacy import migrate_legacy
from mcptoggle.loader import build_project_context
from mcptoggle.migration import execute_migration, initiate_migration
from mcptoggle.models import MemoryFile, ProjectContext
from mcptoggle.utils.tokens import format_token_count

# ABOUTME: Exit codes
# 0 = success, 1 = partial success, 2 = config/user error, 3 = fatal
EXIT_SUCCESS = 0
EXIT_PARTIAL = 1
EXIT_CONFIG_ERROR = 2
EXIT_FATAL = 3

# ABOUTME: Setting this to 1 forces DEBUG logging regardless of settings
DEBUG_ENV_VAR = "MCP_TOGGLE_DEBUG"

# ABOUTME: Errors caused by user input or config content rather than the system
USER_ERRORS = (
    InvalidMigrationError,
    MalformedConfigError,
    NotBlockedError,
    NotFoundError,
    ValidationFailureError,
)

logger = logging.getLogger("mcptoggle")


def configure_logging(settings: Settings, verbose: bool = False) -> None:
    level = "DEBUG" if verbose or os.environ.get(DEBUG_ENV_VAR) == "1" else settings.log_level
    logging.basicConfig(
        level=getattr(logging, level),
        format="%(levelname)s %(name)s: %(message)s",
    )


def _project_dir(args: argparse.Namespace) -> Path:
    return Path(args.project).expanduser().absolute()


def _home_dir(args: argparse.Namespace) -> Path:
    if args.home:
        return Path(args.home).expanduser().absolute()
    return args.settings.resolved_home()


def _load_context(args: argparse.Namespace) -> ProjectContext:
    return build_project_context(_project_dir(args), _home_dir(args))


def _find_memory(context: ProjectContext, name: str, blocked: bool) -> MemoryFile | None:
    for memory in context.memory_files:
        if memory.is_blocked == blocked and name in (memory.name, memory.relative_path):
            return memory
    return None


def cmd_list(args: argparse.Namespace) -> int:
    """Execute list command.

    ABOUTME: Shows merged servers, memory files and agents with provenance
    """
    print(f"mcp-toggle list v{__version__}")
    print()

    context = _load_context(args)

    print(f"MCP Servers for {context.project_dir}:")
    print()
    for server in sorted(context.mcp_servers, key=lambda s: s.name):
        state = "blocked" if server.is_blocked else "active"
        print(f"  {server.name} [{state}]")
        print(f"    source: {server.source_type} ({server.source_path})")
        print(f"    command: {server.command}")
        if server.args:
            print(f"    args: {' '.join(server.args)}")
        if server.estimated_tokens is not None:
            print(f"    tokens: ~{format_token_count(server.estimated_tokens)}")
    if not context.mcp_servers:
        print("  (none)")

    print()
    print("Memory files:")
    print()
    for memory in context.memory_files:
        state = "blocked" if memory.is_blocked else "active"
        print(f"  {memory.relative_path} [{state}] ({memory.source_type}, {memory.size} bytes)")
    if not context.memory_files:
        print("  (none)")

    agents = discover_agents(context.project_dir, _home_dir(args))
    print()
    print("Agents:")
    print()
    for agent in agents:
        state = "blocked" if agent.is_blocked else "active"
        print(f"  {agent.name} [{state}] ({agent.source_type})")
    if not agents:
        print("  (none)")

    print()
    print(
        f"Total: {len(context.mcp_servers)} server(s) "
        f"({len(context.blocked_servers)} blocked), "
        f"{len(context.memory_files)} memory file(s) "
        f"({len(context.blocked_memory_files)} blocked)"
    )
    return EXIT_SUCCESS


def cmd_block(args: argparse.Namespace) -> int:
    """Execute block command.

    ABOUTME: Local servers are deleted, inherited servers get an override
    """
    project_dir = _project_dir(args)
    context = _load_context(args)
    server = context.find_server(args.name)

    if server is None:
        print(f"Server '{args.name}' not found in any scope.")
        return EXIT_CONFIG_ERROR

    if server.is_blocked:
        print(f"Server '{args.name}' is already blocked.")
        return EXIT_SUCCESS

    if server.source_type == "local":
        block_local_server(project_dir, server.name)
        print(f"Removed local server '{server.name}' from {server.source_path}")
        print("Its definition was not kept; re-add it by hand to use it again.")
    else:
        block_inherited_server(project_dir, server)
        print(f"Blocked inherited server '{server.name}' (defined in {server.source_path})")
    return EXIT_SUCCESS


def cmd_unblock(args: argparse.Namespace) -> int:
    """Execute unblock command.

    ABOUTME: Removes an override; an override with no ancestor gets its definition back
    ABOUTME: A deleted local server only gets instructions
    """
    project_dir = _project_dir(args)
    context = _load_context(args)
    server = context.find_server(args.name)

    if server is not None and server.is_blocked and server.source_type == "local":
        restore_local_server(project_dir, server.name)
        print(f"Restored local server '{server.name}' in {server.source_path}")
        return EXIT_SUCCESS

    if server is not None and server.is_blocked:
        unblock_inherited_server(project_dir, server.name)
        print(f"Unblocked inherited server '{server.name}'")
        return EXIT_SUCCESS

    if server is not None:
        print(f"Server '{args.name}' is not blocked.")
        return EXIT_CONFIG_ERROR

    result = unblock_local_server(project_dir, args.name)
    print(result.message)
    return EXIT_PARTIAL if result.requires_manual_add else EXIT_SUCCESS


def cmd_block_memory(args: argparse.Namespace) -> int:
    context = _load_context(args)
    memory = _find_memory(context, args.name, blocked=False)
    if memory is None:
        print(f"Active memory file '{args.name}' not found.")
        return EXIT_CONFIG_ERROR

    new_path = block_memory_file(memory.path)
    print(f"Blocked memory file {memory.relative_path} -> {new_path.name}")
    return EXIT_SUCCESS


def cmd_unblock_memory(args: argparse.Namespace) -> int:
    context = _load_context(args)
    memory = _find_memory(context, args.name, blocked=True)
    if memory is None:
        print(f"Blocked memory file '{args.name}' not found.")
        return EXIT_CONFIG_ERROR

    new_path = unblock_memory_file(memory.path)
    print(f"Unblocked memory file {new_path.name}")
    return EXIT_SUCCESS


def cmd_block_agent(args: argparse.Namespace) -> int:
    """Execute block-agent command.

    ABOUTME: Adds an agent deny pattern to .claude/settings.json
    """
    if block_agent(_project_dir(args), args.name):
        print(f"Blocked agent '{args.name}'")
    else:
        print(f"Agent '{args.name}' is already blocked.")
    return EXIT_SUCCESS


def cmd_unblock_agent(args: argparse.Namespace) -> int:
    if not unblock_agent(_project_dir(args), args.name):
        print(f"Agent '{args.name}' is not blocked.")
        return EXIT_CONFIG_ERROR
    print(f"Unblocked agent '{args.name}'")
    return EXIT_SUCCESS


def cmd_migrate_legacy(args: argparse.Namespace) -> int:
    """Execute migrate-legacy command.

    ABOUTME: Converts .claude/blocked.md; no-op when the marker is absent
    """
    result = migrate_legacy(_project_dir(args), _home_dir(args))

    if not result.migrated:
        print(f"Nothing to migrate ({result.reason}).")
        return EXIT_SUCCESS

    print(
        f"Migrated {result.servers_count} server(s), "
        f"{result.memory_count} memory file(s) and {result.agents_count} agent(s)."
    )
    for warning in result.warnings:
        print(f"  Warning: {warning}")
    return EXIT_PARTIAL if result.warnings else EXIT_SUCCESS


def _parse_renames(pairs: list[str]) -> dict[str, str]:
    renames: dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise ValidationFailureError(f"Invalid rename '{pair}'. Use OLD=NEW.")
        old, new = pair.split("=", 1)
        renames[old.strip()] = new.strip()
    return renames


def cmd_promote(args: argparse.Namespace) -> int:
    """Execute promote command.

    ABOUTME: Moves project .mcp.json servers into the user-global config
    ABOUTME: Conflicts are skipped unless --overwrite or --rename says otherwise
    """
    print(f"mcp-toggle promote v{__version__}")
    print()

    context = _load_context(args)
    selected = []
    for name in args.names:
        server = context.find_server(name)
        if server is None:
            print(f"Server '{name}' not found in any scope.")
            return EXIT_CONFIG_ERROR
        selected.append(server)

    renames = _parse_renames(args.rename or [])
    overwrite = set(args.overwrite or [])

    operation = initiate_migration(context.project_dir, selected, _home_dir(args))
    for conflict in operation.conflicts:
        if conflict.server_name in renames:
            conflict.resolution = "rename"
            conflict.new_name = renames[conflict.server_name]
        elif conflict.server_name in overwrite:
            conflict.resolution = "overwrite"
        print(f"  Conflict: '{conflict.server_name}' exists globally -> {conflict.resolution}")
    operation.state = "ready"

    operation = execute_migration(operation, args.settings.backup_dir)
    result = operation.result

    print()
    if result is None or not result.success:
        for error in result.errors if result else []:
            print(f"  Error ({error.phase}): {error.message}")
        print("Promotion failed; both config files were restored.")
        return EXIT_FATAL

    print(f"Promoted {result.migrated_count} server(s), {result.skipped_count} skipped.")
    return EXIT_PARTIAL if result.skipped_count else EXIT_SUCCESS


def cmd_init_settings(args: argparse.Namespace) -> int:
    path = get_settings_path()
    if path.exists() and not args.force:
        print(f"Settings already exist at {path} (use --force to overwrite)")
        return EXIT_CONFIG_ERROR

    save_settings(path, Settings())
    print(f"Wrote default settings to {path}")
    return EXIT_SUCCESS


COMMANDS = {
    "list": cmd_list,
    "block": cmd_block,
    "unblock": cmd_unblock,
    "block-memory": cmd_block_memory,
    "unblock-memory": cmd_unblock_memory,
    "block-agent": cmd_block_agent,
    "unblock-agent": cmd_unblock_agent,
    "migrate-legacy": cmd_migrate_legacy,
    "promote": cmd_promote,
    "init-settings": cmd_init_settings,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mcp-toggle",
        description="Block and unblock MCP servers and memory files per project"
    )

    parser.add_argument(
        "--version", "-V",
        action="version",
        version=f"mcp-toggle v{__version__}"
    )
    parser.add_argument(
        "--project", "-p",
        default=".",
        help="Project directory (default: current directory)"
    )
    parser.add_argument(
        "--home",
        help="Home directory holding the user-global .claude.json"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("list", help="List servers and memory files with their state")

    block_parser = subparsers.add_parser("block", help="Block an MCP server")
    block_parser.add_argument("name", help="Name of the server to block")

    unblock_parser = subparsers.add_parser("unblock", help="Unblock an MCP server")
    unblock_parser.add_argument("name", help="Name of the server to unblock")

    block_memory_parser = subparsers.add_parser("block-memory", help="Block a memory file")
    block_memory_parser.add_argument("name", help="Memory file name or path under memories/")

    unblock_memory_parser = subparsers.add_parser("unblock-memory", help="Unblock a memory file")
    unblock_memory_parser.add_argument("name", help="Memory file name or path under memories/")

    block_agent_parser = subparsers.add_parser("block-agent", help="Block a subagent")
    block_agent_parser.add_argument("name", help="Agent name (file name under .claude/agents/)")

    unblock_agent_parser = subparsers.add_parser("unblock-agent", help="Unblock a subagent")
    unblock_agent_parser.add_argument("name", help="Agent name (file name under .claude/agents/)")

    subparsers.add_parser("migrate-legacy", help="Convert a legacy .claude/blocked.md file")

    promote_parser = subparsers.add_parser(
        "promote",
        help="Move project .mcp.json servers into the user-global config"
    )
    promote_parser.add_argument("names", nargs="+", help="Servers to promote")
    promote_parser.add_argument(
        "--overwrite",
        action="append",
        metavar="NAME",
        help="Replace the global definition of NAME on conflict"
    )
    promote_parser.add_argument(
        "--rename",
        action="append",
        metavar="OLD=NEW",
        help="Promote OLD under the name NEW on conflict"
    )

    init_parser = subparsers.add_parser("init-settings", help="Write a default settings file")
    init_parser.add_argument("--force", action="store_true", help="Overwrite existing settings")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point.

    ABOUTME: Parses args and dispatches to appropriate command
    ABOUTME: Returns exit code for sys.exit()
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        args.settings = load_settings(get_settings_path())
    except ValueError as e:
        print(f"Error: {e}")
        return EXIT_CONFIG_ERROR

    configure_logging(args.settings, args.verbose)

    handler = COMMANDS.get(args.command)
    if handler is None:
        # No command specified, show help
        parser.print_help()
        return EXIT_SUCCESS

    try:
        return handler(args)
    except USER_ERRORS as e:
        print(f"Error: {e}")
        for error in getattr(e, "errors", []):
            print(f"  {getattr(error, 'message', error)}")
        return EXIT_CONFIG_ERROR
    except McpToggleError as e:
        print(f"Error: {e}")
        return EXIT_FATAL
    except Exception as e:
        logger.debug("Unhandled error", exc_info=True)
        print(f"Fatal error: {e}")
        return EXIT_FATAL


if __name__ == "__main__":
    sys.exit(main())
