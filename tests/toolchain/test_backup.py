"""
Unit tests for core library backups.
"""

import os
import zipfile
from datetime import datetime

import pytest

from multimoon.core.exceptions import (
    ArchiveError,
    BackupError,
    BackupExistsError,
    BackupNotFoundError,
)
from multimoon.toolchain.backup import (
    BackupManager,
    default_backup_name,
    normalize_backup_name,
)


@pytest.fixture
def manager(config):
    return BackupManager(config)


class TestBackupNames:
    """Test backup naming helpers."""

    def test_default_name_format(self):
        assert default_backup_name(datetime(2024, 5, 7, 9, 3, 1)) == "2024-05-07-09_03_01"

    def test_default_names_sort_chronologically(self):
        """Test later times produce distinct, lexicographically larger names."""
        earlier = default_backup_name(datetime(2024, 5, 7, 9, 59, 59))
        later = default_backup_name(datetime(2024, 5, 7, 10, 0, 0))
        assert earlier != later
        assert earlier < later

    @pytest.mark.parametrize(
        "name, expected",
        [("v1", "v1"), ("v1.zip", "v1"), ("v1.zip.zip", "v1.zip"), ("zip", "zip")],
    )
    def test_normalize(self, name, expected):
        assert normalize_backup_name(name) == expected


class TestBackup:
    """Test BackupManager.backup()."""

    def test_named_backup(self, config, core_tree, manager):
        """Test a named backup is written as <name>.zip."""
        assert manager.backup("v1") == "v1"

        path = config.backups_dir / "v1.zip"
        with zipfile.ZipFile(path) as zf:
            assert "core/moon.mod.json" in zf.namelist()

    def test_zip_suffix_stripped(self, config, core_tree, manager):
        """Test 'v1.zip' is stored as v1.zip, not v1.zip.zip."""
        assert manager.backup("v1.zip") == "v1"
        assert (config.backups_dir / "v1.zip").is_file()
        assert not (config.backups_dir / "v1.zip.zip").exists()

    def test_default_name(self, config, core_tree, manager):
        name = manager.backup()
        assert (config.backups_dir / f"{name}.zip").is_file()

    def test_consecutive_default_names(self, config, core_tree, manager):
        """Test back-to-back unnamed backups get distinct, ordered names."""
        first = manager.backup()
        second = manager.backup()

        assert first != second
        assert first < second
        assert (config.backups_dir / f"{first}.zip").is_file()
        assert (config.backups_dir / f"{second}.zip").is_file()

    def test_default_name_collision_suffix(self, config, core_tree, manager, monkeypatch):
        """Test a taken timestamp name gets a counter that sorts after it."""
        monkeypatch.setattr(
            "multimoon.toolchain.backup.default_backup_name", lambda: "2024-05-07-09_03_01"
        )

        names = [manager.backup() for _ in range(3)]

        assert names == [
            "2024-05-07-09_03_01",
            "2024-05-07-09_03_01-001",
            "2024-05-07-09_03_01-002",
        ]
        assert names == sorted(names)
        assert default_backup_name(datetime(2024, 5, 7, 9, 3, 2)) > names[-1]

    @pytest.mark.parametrize("name", ["../escaped", "sub/v1", "..\\v1", "..", ""])
    def test_invalid_name(self, config, core_tree, manager, name):
        """Test names that would leave the backup directory are rejected."""
        with pytest.raises(BackupError, match="invalid backup name"):
            manager.backup(name)

        assert not (config.multimoonhome / "escaped.zip").exists()

    def test_existing_backup_not_overwritten(self, config, core_tree, manager):
        manager.backup("v1")
        before = (config.backups_dir / "v1.zip").read_bytes()
        (core_tree / "moon.mod.json").write_bytes(b"changed")

        with pytest.raises(BackupExistsError):
            manager.backup("v1.zip")

        assert (config.backups_dir / "v1.zip").read_bytes() == before

    def test_missing_core(self, config, manager):
        config.lib_dir.mkdir(parents=True)
        with pytest.raises(ArchiveError):
            manager.backup("v1")


class TestRestore:
    """Test BackupManager.restore()."""

    @pytest.mark.parametrize("name", ["v1", "v1.zip"])
    def test_restore(self, core_tree, manager, name):
        """Test a backup is addressable with or without '.zip'."""
        original = (core_tree / "moon.mod.json").read_bytes()
        manager.backup("v1")
        (core_tree / "moon.mod.json").write_bytes(b"changed")

        manager.restore(name)

        assert (core_tree / "moon.mod.json").read_bytes() == original

    def test_missing_backup(self, manager):
        with pytest.raises(BackupNotFoundError, match="v9"):
            manager.restore("v9")

    def test_restore_rejects_path(self, manager):
        with pytest.raises(BackupError, match="invalid backup name"):
            manager.restore("../v1")


class TestList:
    """Test BackupManager.list()."""

    def test_no_backup_directory(self, manager):
        assert manager.list() == []

    def test_ordered_by_creation_time(self, config, manager):
        """Test oldest first, regardless of name order."""
        config.backups_dir.mkdir(parents=True)
        for name, mtime in (("b", 3000), ("c", 1000), ("a", 2000)):
            path = config.backups_dir / f"{name}.zip"
            path.write_bytes(b"")
            os.utime(path, (mtime, mtime))

        assert manager.list() == ["c", "a", "b"]

    def test_non_zip_excluded(self, config, manager):
        config.backups_dir.mkdir(parents=True)
        (config.backups_dir / "v1.zip").write_bytes(b"")
        (config.backups_dir / "notes.txt").write_bytes(b"")
        (config.backups_dir / "dir.zip").mkdir()

        assert manager.list() == ["v1"]

    def test_lists_created_backups(self, core_tree, manager):
        manager.backup("first")
        manager.backup("second")
        assert sorted(manager.list()) == ["first", "second"]
