# ABOUTME: Tests for backup utilities.
# ABOUTME: Covers create_backup, restore_backup, get_backup_dir, and cleanup_old_backups functions.
import re
from pathlib import Path

import pytest

from mcptoggle.utils.backup import (
    cleanup_old_backups,
    create_backup,
    get_backup_dir,
    restore_backup,
)


class TestGetBackupDir:
    """Tests for get_backup_dir function."""

    def test_backup_dir_location(self, tmp_path):
        """Test that backup dir is under the given home directory."""
        backup_dir = get_backup_dir(tmp_path)
        assert backup_dir == tmp_path / ".mcp-toggle" / "backups"

    def test_does_not_create_directory(self, tmp_path):
        assert not get_backup_dir(tmp_path).exists()


class TestCreateBackup:
    """Tests for create_backup function."""

    def test_backup_preserves_content(self, tmp_path):
        """Test that backup preserves file content."""
        source = tmp_path / ".mcp.json"
        original_content = '{"mcpServers": {"test": {"command": "node"}}}'
        source.write_text(original_content)

        backup_path = create_backup(source, tmp_path / "backups", "project")

        assert backup_path.read_text() == original_content

    def test_backup_filename_format(self, tmp_path):
        """Test that backup filename follows format: {label}_{YYYYMMDD}_{HHMMSS}_{micro}{ext}"""
        source = tmp_path / ".claude.json"
        source.write_text("{}")

        backup_path = create_backup(source, tmp_path / "backups", "global")

        assert re.match(r"^global_\d{8}_\d{6}_\d{6}\.json$", backup_path.name)

    def test_creates_backup_dir_if_missing(self, tmp_path):
        """Test that backup directory is created if it doesn't exist."""
        source = tmp_path / "test.json"
        source.write_text("{}")

        backup_dir = tmp_path / "new_backups" / "nested"
        backup_path = create_backup(source, backup_dir, "project")

        assert backup_dir.is_dir()
        assert backup_path.parent == backup_dir

    def test_missing_source_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            create_backup(tmp_path / "missing.json", tmp_path / "backups", "project")


class TestRestoreBackup:
    def test_restores_content(self, tmp_path):
        source = tmp_path / ".mcp.json"
        source.write_text("before")
        backup_path = create_backup(source, tmp_path / "backups", "project")
        source.write_text("after")

        restore_backup(backup_path, source)

        assert source.read_text() == "before"

    def test_missing_backup_raises(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            restore_backup(tmp_path / "missing.json", tmp_path / ".mcp.json")


class TestCleanupOldBackups:
    """Tests for cleanup_old_backups function."""

    def make_backups(self, backup_dir: Path, label: str, count: int) -> list[Path]:
        backup_dir.mkdir(parents=True, exist_ok=True)
        paths = []
        for i in range(count):
            path = backup_dir / f"{label}_20250101_1200{i:02d}_000000.json"
            path.write_text("{}")
            paths.append(path)
        return paths

    def test_keeps_five_most_recent_per_label(self, tmp_path):
        backup_dir = tmp_path / "backups"
        project = self.make_backups(backup_dir, "project", 7)
        global_ = self.make_backups(backup_dir, "global", 3)

        deleted = cleanup_old_backups(backup_dir)

        assert sorted(deleted) == sorted(project[:2])
        assert all(p.exists() for p in project[2:])
        assert all(p.exists() for p in global_)

    def test_ignores_unrelated_files(self, tmp_path):
        backup_dir = tmp_path / "backups"
        backup_dir.mkdir()
        (backup_dir / "notes.txt").write_text("keep")

        assert cleanup_old_backups(backup_dir, max_backups_per_label=0) == []
        assert (backup_dir / "notes.txt").exists()

    def test_missing_dir(self, tmp_path):
        assert cleanup_old_backups(tmp_path / "missing") == []
