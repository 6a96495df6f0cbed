# Atomic reads and writes of .claude.json / .mcp.json config files
import logging
import os
import shutil
import threading
from pathlib import Path
from typing import Any, Callable, TypeVar

from mcptoggle.errors import MalformedConfigError, WriteFailureError
from mcptoggle.models import BlockedServerConfig, ClaudeJson, ServerConfig, ServerEntry, is_blocked
from mcptoggle.utils.json_parser import is_plain_object, parse_and_validate, stringify
from mcptoggle.utils.validation import has_errors, validate_server_entry

logger = logging.getLogger(__name__)

# ABOUTME: File names of the two config documents the tool knows about
CLAUDE_JSON = ".claude.json"
MCP_JSON = ".mcp.json"

# ABOUTME: Namespacing directory created next to the config file
CLAUDE_DIR = ".claude"

DEFAULT_SERVERS_KEY = "mcpServers"

BACKUP_SUFFIX = ".backup"
TEMP_SUFFIX = ".tmp"
FILE_MODE = 0o644
DIR_MODE = 0o755

T = TypeVar("T")

# ABOUTME: One re-entrant lock per resolved config path serializes writers
_path_locks: dict[Path, threading.RLock] = {}
_path_locks_guard = threading.Lock()


def path_lock(path: Path) -> threading.RLock:
    key = path.absolute()
    with _path_locks_guard:
        lock = _path_locks.get(key)
        if lock is None:
            lock = threading.RLock()
            _path_locks[key] = lock
        return lock


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError as e:
        logger.debug(f"Could not remove {path}: {e}")


def atomic_write(path: Path, content: str | bytes) -> None:
    """Replace a file's content atomically.

    ABOUTME: backup -> temp file -> os.replace -> chmod 0644
    ABOUTME: A failure restores the backup before raising; .tmp never survives

    Raises:
        WriteFailureError: If any step fails
    """
    path = Path(path)
    backup_path = path.with_name(path.name + BACKUP_SUFFIX)
    temp_path = path.with_name(path.name + TEMP_SUFFIX)

    with path_lock(path):
        if path.exists():
            try:
                shutil.copy2(path, backup_path)
            except OSError as e:
                _discard(backup_path)
                raise WriteFailureError(path, f"could not create backup: {e}") from e

        try:
            if isinstance(content, bytes):
                temp_path.write_bytes(content)
            else:
                temp_path.write_text(content, encoding="utf-8")
            os.replace(temp_path, path)
            os.chmod(path, FILE_MODE)
        except (OSError, ValueError) as e:
            if backup_path.exists():
                try:
                    os.replace(backup_path, path)
                    logger.warning(f"Write to {path} failed, previous content restored")
                except OSError as restore_error:
                    logger.error(f"Could not restore {path} from {backup_path}: {restore_error}")
            raise WriteFailureError(path, str(e)) from e
        finally:
            _discard(temp_path)

        _discard(backup_path)


def snapshot(path: Path) -> bytes | None:
    """Raw content of a file, or None when it does not exist."""
    try:
        return Path(path).read_bytes()
    except FileNotFoundError:
        return None


def restore_snapshot(path: Path, content: bytes | None) -> None:
    """Put a file back to a state captured by snapshot().

    ABOUTME: None removes the file, since it did not exist when captured

    Raises:
        WriteFailureError: If the file cannot be restored
    """
    path = Path(path)
    if content is None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            raise WriteFailureError(path, f"could not remove: {e}") from e
        return
    atomic_write(path, content)


def parse_entry(name: str, data: dict[str, Any]) -> ServerEntry:
    """Build the model for an already validated raw entry."""
    if is_blocked(data):
        return BlockedServerConfig.from_dict(data)
    return ServerConfig.from_dict(data)


class ConfigFileStore:
    """Reads and writes one config file per directory.

    ABOUTME: The only component that writes config files to disk
    ABOUTME: Writes go backup -> temp file -> atomic rename -> chmod
    ABOUTME: A failed write restores the backup before raising
    """

    def __init__(self, filename: str = CLAUDE_JSON, servers_key: str = DEFAULT_SERVERS_KEY) -> None:
        self.filename = filename
        self.servers_key = servers_key

    def path_for(self, directory: Path) -> Path:
        return Path(directory) / self.filename

    def exists(self, directory: Path) -> bool:
        return self.path_for(directory).is_file()

    def read(self, directory: Path) -> ClaudeJson:
        """Read and validate the config file in a directory.

        ABOUTME: Missing file returns an empty config
        ABOUTME: Unparsable or invalid content raises MalformedConfigError

        Raises:
            MalformedConfigError: If the file is not valid JSON or an entry is invalid
        """
        path = self.path_for(directory)
        if not path.exists():
            return ClaudeJson()

        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as e:
            raise MalformedConfigError(path, f"not valid UTF-8: {e}") from e

        return self.loads(text, path)

    def loads(self, text: str, path: Path) -> ClaudeJson:
        result = parse_and_validate(text, is_plain_object, "top-level value must be a JSON object")
        if not result.ok:
            raise MalformedConfigError(path, result.error or "unknown parse error")

        data: dict[str, Any] = result.value
        raw_servers = data.get(self.servers_key)
        if raw_servers is None:
            raw_servers = {}
        if not isinstance(raw_servers, dict):
            raise MalformedConfigError(path, f"'{self.servers_key}' must be a JSON object")

        servers: dict[str, ServerEntry] = {}
        problems: list[str] = []
        for name, entry in raw_servers.items():
            if not name.strip():
                problems.append("server name must be a non-empty string")
                continue
            errors = validate_server_entry(entry, name)
            if has_errors(errors):
                problems.extend(e.message for e in errors if e.severity == "error")
                continue
            servers[name] = parse_entry(name, entry)

        if problems:
            raise MalformedConfigError(path, "; ".join(problems))

        extra = {key: value for key, value in data.items() if key != self.servers_key}
        return ClaudeJson(servers=servers, extra=extra)

    def to_document(self, config: ClaudeJson) -> dict[str, Any]:
        document: dict[str, Any] = dict(config.extra)
        document[self.servers_key] = {
            name: entry.to_dict() for name, entry in config.servers.items()
        }
        return document

    def dumps(self, config: ClaudeJson) -> str:
        """Serialize a config: 2-space indent, UTF-8, trailing newline.

        Raises:
            ValueError: If the document cannot be serialized
        """
        result = stringify(self.to_document(config), pretty=True)
        if not result.ok:
            raise ValueError(result.error)
        return result.value + "\n"

    def write(self, directory: Path, config: ClaudeJson) -> None:
        """Write a config file atomically.

        ABOUTME: Live file is always either the old or the new content
        ABOUTME: .tmp never survives the call; .backup only survives a failed restore

        Raises:
            WriteFailureError: If any step fails (prior content restored first)
        """
        path = self.path_for(directory)
        try:
            content = self.dumps(config)
        except ValueError as e:
            raise WriteFailureError(path, str(e)) from e

        atomic_write(path, content)
        logger.debug(f"Wrote {len(config.servers)} server(s) to {path}")

    def update(self, directory: Path, mutate: Callable[[ClaudeJson], T]) -> T:
        """Read, mutate and write back while holding the path lock.

        ABOUTME: mutate edits the config in place; its return value is passed through
        ABOUTME: Exceptions from mutate abort without touching the file
        """
        with path_lock(self.path_for(directory)):
            config = self.read(directory)
            result = mutate(config)
            self.write(directory, config)
            return result

    def ensure_directory(self, directory: Path) -> Path:
        """Create the .claude/ namespacing directory if missing."""
        claude_dir = Path(directory) / CLAUDE_DIR
        if not claude_dir.exists():
            claude_dir.mkdir(mode=DIR_MODE, parents=True)
        return claude_dir

    def ensure_config_file(self, directory: Path) -> Path:
        """Create a minimal config file if missing."""
        path = self.path_for(directory)
        if not path.exists():
            self.write(directory, ClaudeJson())
        return path


# ABOUTME: Default store for the local .claude.json scope
DEFAULT_STORE = ConfigFileStore()


def read_claude_json(project_dir: Path) -> ClaudeJson:
    return DEFAULT_STORE.read(project_dir)


def write_claude_json(project_dir: Path, config: ClaudeJson) -> None:
    DEFAULT_STORE.write(project_dir, config)


def claude_json_exists(project_dir: Path) -> bool:
    return DEFAULT_STORE.exists(project_dir)


def ensure_claude_directory(project_dir: Path) -> Path:
    return DEFAULT_STORE.ensure_directory(project_dir)


def ensure_claude_json(project_dir: Path) -> Path:
    return DEFAULT_STORE.ensure_config_file(project_dir)
