# ABOUTME: Promotes servers from the project .mcp.json into the user-global .claude.json
# ABOUTME: Conflicts are resolved per server; both files are backed up and rolled back on failure
import logging
import time
from dataclasses import dataclass, field, replace
from datetime import datetime
from pathlib import Path
from typing import Literal

from mcptoggle.errors import InvalidMigrationError, McpToggleError
from mcptoggle.loader import PROJECT_STORE, USER_STORE
from mcptoggle.models import MCPServer, ResolutionType, ServerEntry, is_blocked
from mcptoggle.utils.backup import create_backup, get_backup_dir, restore_backup
from mcptoggle.utils.validation import is_valid_server_name

logger = logging.getLogger(__name__)

MIN_SERVERS = 1
MAX_SERVERS = 50

# ABOUTME: Only servers from the project-shared scope can be promoted
REQUIRED_HIERARCHY_LEVEL = 1

RESOLUTIONS = ("skip", "overwrite", "rename")

MigrationState = Literal[
    "validating", "conflict_resolution", "ready", "executing", "complete", "error"
]
MigrationPhase = Literal["validation", "backup", "write", "verification", "rollback"]


@dataclass(frozen=True)
class ConfigDiff:
    """What changes between the project and global definitions of a server."""
    command: tuple[str, str]
    args: tuple[list[str] | None, list[str] | None]
    env: tuple[dict[str, str] | None, dict[str, str] | None]
    blocked: tuple[bool, bool]

    @property
    def identical(self) -> bool:
        return (
            self.command[0] == self.command[1]
            and self.args[0] == self.args[1]
            and self.env[0] == self.env[1]
            and self.blocked[0] == self.blocked[1]
        )


@dataclass
class ConflictResolution:
    """Name collision between a selected server and the global config.

    ABOUTME: resolution defaults to skip, which keeps the global definition
    ABOUTME: rename requires new_name to be a valid, unused server name
    """
    server_name: str
    project_config: ServerEntry
    global_config: ServerEntry
    resolution: ResolutionType = "skip"
    new_name: str | None = None
    config_diff: ConfigDiff | None = None


@dataclass(frozen=True)
class BackupPaths:
    """Locations of both config files and their backups.

    ABOUTME: A backup is None when its file did not exist before migration
    """
    project_config: Path
    global_config: Path
    project_backup: Path | None
    global_backup: Path | None


@dataclass(frozen=True)
class MigrationError:
    server_name: str
    phase: MigrationPhase
    message: str


@dataclass
class MigrationResult:
    success: bool
    migrated_count: int = 0
    skipped_count: int = 0
    errors: list[MigrationError] = field(default_factory=list)
    backups_retained: bool = False
    duration: float = 0.0

    def add_error(self, error: MigrationError) -> None:
        self.errors.append(error)


@dataclass
class MigrationOperation:
    """State of one promotion from the project scope to the global scope.

    ABOUTME: Lives for a single invocation, nothing is persisted
    """
    id: str
    project_dir: Path
    home_dir: Path
    selected_servers: list[MCPServer]
    state: MigrationState = "validating"
    conflicts: list[ConflictResolution] = field(default_factory=list)
    created_at: datetime = field(default_factory=datetime.now)
    completed_at: datetime | None = None
    backup_paths: BackupPaths | None = None
    result: MigrationResult | None = None
    error: Exception | None = None


def _diff(project: ServerEntry, global_: ServerEntry) -> ConfigDiff:
    return ConfigDiff(
        command=(project.command, global_.command),
        args=(project.args, global_.args),
        env=(getattr(project, "env", None), getattr(global_, "env", None)),
        blocked=(is_blocked(project), is_blocked(global_)),
    )


def _selection_errors(selected: list[MCPServer]) -> list[str]:
    errors: list[str] = []
    if not MIN_SERVERS <= len(selected) <= MAX_SERVERS:
        errors.append(
            f"Select between {MIN_SERVERS} and {MAX_SERVERS} servers (got {len(selected)})"
        )
    for server in selected:
        if server.hierarchy_level != REQUIRED_HIERARCHY_LEVEL:
            errors.append(
                f"Server '{server.name}' is not from the project scope "
                f"(hierarchy level {server.hierarchy_level})"
            )
    names = [server.name for server in selected]
    for name in sorted({n for n in names if names.count(n) > 1}):
        errors.append(f"Server '{name}' selected more than once")
    return errors


def detect_conflicts(
    project_dir: Path, home_dir: Path, selected: list[MCPServer]
) -> list[ConflictResolution]:
    """Find selected servers whose names already exist in the global config.

    Raises:
        MalformedConfigError: If either config file is malformed
    """
    project = PROJECT_STORE.read(project_dir)
    global_config = USER_STORE.read(home_dir)

    conflicts: list[ConflictResolution] = []
    for server in selected:
        existing = global_config.servers.get(server.name)
        if existing is None:
            continue
        project_entry = project.servers.get(server.name) or server.to_server_config()
        conflicts.append(
            ConflictResolution(
                server_name=server.name,
                project_config=project_entry,
                global_config=existing,
                config_diff=_diff(project_entry, existing),
            )
        )
    return conflicts


def initiate_migration(
    project_dir: Path, selected: list[MCPServer], home_dir: Path
) -> MigrationOperation:
    """Create a migration operation and detect conflicts.

    Returns:
        Operation in state 'conflict_resolution' if there are conflicts, else 'ready'

    Raises:
        InvalidMigrationError: If the selection is empty, too large or
            contains servers outside the project scope
    """
    errors = _selection_errors(selected)
    if errors:
        raise InvalidMigrationError("Invalid migration selection", errors)

    operation = MigrationOperation(
        id=f"migration-{int(time.time() * 1000)}",
        project_dir=Path(project_dir),
        home_dir=Path(home_dir),
        selected_servers=list(selected),
    )

    try:
        operation.conflicts = detect_conflicts(project_dir, home_dir, selected)
    except McpToggleError as e:
        operation.state = "error"
        operation.error = e
        raise

    operation.state = "conflict_resolution" if operation.conflicts else "ready"
    logger.debug(
        f"Migration {operation.id}: {len(selected)} server(s), "
        f"{len(operation.conflicts)} conflict(s)"
    )
    return operation


def validate_resolutions(
    conflicts: list[ConflictResolution], taken_names: set[str] | None = None
) -> list[str]:
    """Check every conflict carries a well-formed resolution.

    ABOUTME: rename targets must be valid names not in taken_names and not reused

    Returns:
        List of problems (empty means all resolutions are acceptable)
    """
    taken = set(taken_names or ())
    errors: list[str] = []
    for conflict in conflicts:
        if conflict.resolution not in RESOLUTIONS:
            errors.append(
                f"Server '{conflict.server_name}': unknown resolution '{conflict.resolution}'"
            )
            continue
        if conflict.resolution != "rename":
            continue
        if not conflict.new_name:
            errors.append(f"Server '{conflict.server_name}': rename requires a new name")
        elif not is_valid_server_name(conflict.new_name):
            errors.append(
                f"Server '{conflict.server_name}': invalid new name '{conflict.new_name}'"
            )
        elif conflict.new_name in taken:
            errors.append(
                f"Server '{conflict.server_name}': new name '{conflict.new_name}' is already in use"
            )
        else:
            taken.add(conflict.new_name)
    return errors


def validate_migration_operation(operation: MigrationOperation) -> list[str]:
    """Return every reason the operation cannot be executed."""
    errors = _selection_errors(operation.selected_servers)

    try:
        global_names = set(USER_STORE.read(operation.home_dir).servers)
    except McpToggleError as e:
        errors.append(str(e))
        global_names = set()

    taken = global_names | {server.name for server in operation.selected_servers}
    errors.extend(validate_resolutions(operation.conflicts, taken))
    return errors


def apply_resolutions(
    servers: list[MCPServer], conflicts: list[ConflictResolution]
) -> list[tuple[str, MCPServer]]:
    """Return (source name, server to write) pairs after applying resolutions.

    ABOUTME: skip drops the server, overwrite keeps it, rename changes its name
    """
    resolved: list[tuple[str, MCPServer]] = []
    for server in servers:
        conflict = next((c for c in conflicts if c.server_name == server.name), None)
        if conflict is None or conflict.resolution == "overwrite":
            resolved.append((server.name, server))
        elif conflict.resolution == "rename" and conflict.new_name:
            resolved.append((server.name, replace(server, name=conflict.new_name)))
    return resolved


def create_backups(project_dir: Path, home_dir: Path, backup_dir: Path | None = None) -> BackupPaths:
    """Take timestamped backups of both config files.

    Raises:
        OSError: If a backup cannot be written
    """
    project_config = PROJECT_STORE.path_for(project_dir)
    global_config = USER_STORE.path_for(home_dir)
    backup_dir = backup_dir or get_backup_dir(Path(home_dir))

    project_backup = (
        create_backup(project_config, backup_dir, "project") if project_config.exists() else None
    )
    global_backup = (
        create_backup(global_config, backup_dir, "global") if global_config.exists() else None
    )

    return BackupPaths(
        project_config=project_config,
        global_config=global_config,
        project_backup=project_backup,
        global_backup=global_backup,
    )


def rollback_migration(backup_paths: BackupPaths) -> None:
    """Restore both config files to their state before migration.

    ABOUTME: A file that had no backup did not exist before and is removed
    """
    for backup, target in (
        (backup_paths.project_backup, backup_paths.project_config),
        (backup_paths.global_backup, backup_paths.global_config),
    ):
        if backup is not None:
            restore_backup(backup, target)
        elif target.exists():
            target.unlink()
            logger.info(f"Removed {target} created during failed migration")


def _discard_backups(backup_paths: BackupPaths) -> None:
    for backup in (backup_paths.project_backup, backup_paths.global_backup):
        if backup is None:
            continue
        try:
            backup.unlink(missing_ok=True)
        except OSError as e:
            logger.warning(f"Failed to delete backup {backup}: {e}")


def execute_migration(
    operation: MigrationOperation, backup_dir: Path | None = None
) -> MigrationOperation:
    """Move the resolved servers into the global config.

    ABOUTME: Global file is written first, then the project file; both are read back
    ABOUTME: On failure both files are restored and backups are kept

    Raises:
        InvalidMigrationError: If the operation is not ready or fails validation
    """
    if operation.state != "ready":
        raise InvalidMigrationError(
            f"Cannot execute migration: state is '{operation.state}', expected 'ready'"
        )

    errors = validate_migration_operation(operation)
    if errors:
        raise InvalidMigrationError("Migration operation is invalid", errors)

    started = time.monotonic()
    operation.state = "executing"
    skipped = sum(1 for c in operation.conflicts if c.resolution == "skip")
    result = MigrationResult(success=False, skipped_count=skipped)
    phase: MigrationPhase = "backup"

    try:
        operation.backup_paths = create_backups(operation.project_dir, operation.home_dir, backup_dir)

        phase = "write"
        to_migrate = apply_resolutions(operation.selected_servers, operation.conflicts)
        project = PROJECT_STORE.read(operation.project_dir)
        global_config = USER_STORE.read(operation.home_dir)

        for source_name, server in to_migrate:
            entry = project.servers.pop(source_name, None) or server.to_server_config()
            global_config.servers[server.name] = entry
            logger.debug(f"Moving '{source_name}' to global config as '{server.name}'")

        USER_STORE.write(operation.home_dir, global_config)
        PROJECT_STORE.write(operation.project_dir, project)

        phase = "verification"
        written = USER_STORE.read(operation.home_dir)
        missing = [server.name for _, server in to_migrate if server.name not in written.servers]
        if missing:
            raise McpToggleError(f"Servers missing from global config after write: {', '.join(missing)}")
    except (McpToggleError, OSError) as e:
        result.add_error(MigrationError(server_name="migration", phase=phase, message=str(e)))
        logger.error(f"Migration {operation.id} failed during {phase}: {e}")

        if operation.backup_paths is not None:
            try:
                rollback_migration(operation.backup_paths)
            except OSError as rollback_error:
                result.add_error(
                    MigrationError(server_name="migration", phase="rollback", message=str(rollback_error))
                )
                logger.error(f"Rollback of migration {operation.id} failed: {rollback_error}")
            result.backups_retained = True

        result.skipped_count = len(operation.selected_servers)
        result.duration = time.monotonic() - started
        operation.state = "error"
        operation.error = e
        operation.completed_at = datetime.now()
        operation.result = result
        return operation

    _discard_backups(operation.backup_paths)

    result.success = True
    result.migrated_count = len(to_migrate)
    result.duration = time.monotonic() - started
    operation.state = "complete"
    operation.completed_at = datetime.now()
    operation.result = result
    logger.info(
        f"Migrated {result.migrated_count} server(s) to {operation.backup_paths.global_config} "
        f"({result.skipped_count} skipped)"
    )
    return operation
