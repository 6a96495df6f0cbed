# ABOUTME: Timestamped backups of config files taken before multi-file migrations
# ABOUTME: Keeps the most recent backups per label and restores them on rollback
import logging
import re
import shutil
from datetime import datetime
from pathlib import Path

logger = logging.getLogger(__name__)

# ABOUTME: Backup format: {label}_{YYYYMMDD}_{HHMMSS}_{microseconds}{ext}
BACKUP_PATTERN = re.compile(r"^(.+?)_(\d{8}_\d{6}_\d{6})(\..+)?$")

MAX_BACKUPS_PER_LABEL = 5


def get_backup_dir(home_dir: Path) -> Path:
    """Return the backup directory under the given home directory.

    ABOUTME: Does not create the directory

    Examples:
        >>> get_backup_dir(Path("/home/ada"))
        PosixPath('/home/ada/.mcp-toggle/backups')
    """
    return home_dir / ".mcp-toggle" / "backups"


def create_backup(source_path: Path, backup_dir: Path, label: str) -> Path:
    """Create a timestamped backup copy of a file.

    ABOUTME: Uses shutil.copy2() to preserve file metadata
    ABOUTME: Creates backup_dir if it doesn't exist

    Args:
        source_path: File to back up
        backup_dir: Directory where the backup is created
        label: Prefix identifying the scope (e.g. "project", "global")

    Returns:
        Path to the created backup

    Raises:
        FileNotFoundError: If source_path doesn't exist
        OSError: If the copy fails
    """
    if not source_path.exists():
        raise FileNotFoundError(f"Source file not found: {source_path}")

    backup_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    backup_path = backup_dir / f"{label}_{timestamp}{source_path.suffix}"

    shutil.copy2(source_path, backup_path)
    logger.debug(f"Backed up {source_path} to {backup_path}")

    cleanup_old_backups(backup_dir)

    return backup_path


def restore_backup(backup_path: Path, target_path: Path) -> None:
    """Copy a backup over its original location.

    Raises:
        FileNotFoundError: If the backup is missing
    """
    if not backup_path.exists():
        raise FileNotFoundError(f"Backup file not found: {backup_path}")

    shutil.copy2(backup_path, target_path)
    logger.info(f"Restored {target_path} from {backup_path}")


def cleanup_old_backups(backup_dir: Path, max_backups_per_label: int = MAX_BACKUPS_PER_LABEL) -> list[Path]:
    """Remove old backup files, keeping only the most recent per label.

    ABOUTME: Logs warnings on errors but does not raise exceptions

    Returns:
        List of paths that were deleted
    """
    deleted_files: list[Path] = []

    if not backup_dir.exists():
        return deleted_files

    backups_by_label: dict[str, list[tuple[str, Path]]] = {}

    for file_path in backup_dir.iterdir():
        if not file_path.is_file():
            continue

        match = BACKUP_PATTERN.match(file_path.name)
        if not match:
            continue

        backups_by_label.setdefault(match.group(1), []).append((match.group(2), file_path))

    for backups in backups_by_label.values():
        # Newest first
        backups.sort(key=lambda x: x[0], reverse=True)

        for _timestamp, file_path in backups[max_backups_per_label:]:
            try:
                file_path.unlink()
                deleted_files.append(file_path)
                logger.debug(f"Deleted old backup: {file_path}")
            except OSError as e:
                logger.warning(f"Failed to delete old backup {file_path}: {e}")

    return deleted_files
