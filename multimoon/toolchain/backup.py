"""
Named snapshots of the MoonBit core library.

A backup is a zip archive of `<moonhome>/lib/core` (minus its build
cache) stored as `<multimoonhome>/core-backups/<name>.zip`. Backups are
never overwritten, and restoring one performs no version check: it
simply replaces the files of the current core library.

Example:
    >>> manager = BackupManager(load_config())
    >>> name = manager.backup()
    >>> manager.restore(name)
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import Iterator, List, Optional, Tuple

from multimoon.core.archive import ExtractOptions, pack, unpack
from multimoon.core.config import ManagerConfig
from multimoon.core.exceptions import BackupError, BackupExistsError, BackupNotFoundError
from multimoon.core.filesystem import ensure_directory, is_plain_file_name

logger = logging.getLogger(__name__)

BACKUP_SUFFIX = ".zip"
BACKUP_NAME_FORMAT = "%Y-%m-%d-%H_%M_%S"
MAX_NAME_COUNTER = 999


def default_backup_name(now: Optional[datetime] = None) -> str:
    """
    Generate a backup name from the local time.

    Names sort lexicographically in chronological order.

    Example:
        >>> default_backup_name(datetime(2024, 5, 7, 13, 4, 5))
        '2024-05-07-13_04_05'
    """
    now = now or datetime.now()
    return now.strftime(BACKUP_NAME_FORMAT)


def normalize_backup_name(name: str) -> str:
    """Strip one trailing '.zip' so 'v1' and 'v1.zip' address the same backup."""
    if name.endswith(BACKUP_SUFFIX):
        return name[: -len(BACKUP_SUFFIX)]
    return name


def _numbered_names(base: str) -> Iterator[str]:
    """Yield `base`, then `base-001` through `base-999`, in sort order."""
    yield base
    for counter in range(1, MAX_NAME_COUNTER + 1):
        yield f"{base}-{counter:03d}"


class BackupManager:
    """Creates, restores and lists core library backups."""

    def __init__(self, config: ManagerConfig):
        self.config = config

    @property
    def backups_dir(self) -> Path:
        return self.config.backups_dir

    def backup_path(self, name: str) -> Path:
        """
        Path of the archive for a backup name.

        Raises:
            BackupError: If the name contains a path separator or is empty
        """
        backup_name = normalize_backup_name(name)
        if not is_plain_file_name(backup_name):
            raise BackupError(f"invalid backup name {name!r}")
        return self.backups_dir / f"{backup_name}{BACKUP_SUFFIX}"

    def backup(self, name: Optional[str] = None) -> str:
        """
        Archive the current core library.

        Without a name, the backup is named after the current local time.
        If that name is already taken, a counter suffix (`-001`, `-002`,
        ...) is appended so later backups still sort after earlier ones.

        Args:
            name: Backup name (default: current local time); a trailing
                '.zip' is stripped

        Returns:
            Normalized backup name

        Raises:
            BackupExistsError: If a backup with the given name already exists
            ArchiveError: If the core library is missing or invalid
            BackupError: If the name is invalid or the backup file can't be
                written
        """
        generated = name is None
        backup_name = normalize_backup_name(default_backup_name() if generated else name)
        path = self.backup_path(backup_name)

        logger.info(f"MultiMoon storage dir: {self.config.multimoonhome}")
        try:
            ensure_directory(self.backups_dir)
        except OSError as e:
            raise BackupError(f"cannot create backup directory {self.backups_dir}: {e}") from e

        if not generated and path.exists():
            raise BackupExistsError(backup_name)

        data = pack(self.config.lib_dir, verbose=self.config.verbose)

        candidates = _numbered_names(backup_name) if generated else [backup_name]
        for candidate in candidates:
            path = self.backup_path(candidate)
            logger.info(f"writing backup file {path}")
            try:
                # Exclusive create: an existing backup is never clobbered
                with open(path, "xb") as f:
                    f.write(data)
            except FileExistsError as e:
                if not generated:
                    raise BackupExistsError(candidate) from e
                logger.debug(f"backup {candidate} already exists, trying next name")
                continue
            except OSError as e:
                raise BackupError(f"cannot write backup file {path}: {e}") from e

            logger.info(f"core backup complete. backup name: {candidate}")
            return candidate

        raise BackupExistsError(backup_name)

    def restore(self, name: str) -> int:
        """
        Replace the current core library with a backup.

        Args:
            name: Backup name, with or without '.zip'

        Returns:
            Number of files restored

        Raises:
            BackupNotFoundError: If the backup doesn't exist
            BackupError: If the name contains a path separator
            ArchiveError: If the backup can't be extracted
        """
        backup_name = normalize_backup_name(name)
        path = self.backup_path(backup_name)
        if not path.is_file():
            raise BackupNotFoundError(backup_name)

        logger.info(f"restoring core backup {backup_name} from {path}")
        try:
            fallback = path.stat().st_mtime
        except OSError as e:
            raise BackupNotFoundError(backup_name) from e

        restored = unpack(
            path,
            self.config.lib_dir,
            ExtractOptions(fallback_timestamp=fallback, verbose=self.config.verbose),
        )
        logger.info(f"core restore complete. backup name: {backup_name}")
        return restored

    def list(self) -> List[str]:
        """
        List backup names, oldest first.

        Files that can't be inspected are skipped with a warning.
        """
        if not self.backups_dir.is_dir():
            return []

        found: List[Tuple[float, str]] = []
        for entry in self.backups_dir.iterdir():
            if not entry.name.endswith(BACKUP_SUFFIX):
                continue
            try:
                if not entry.is_file():
                    continue
                mtime = entry.stat().st_mtime
            except OSError as e:
                logger.warning(f"ignoring a file due to error: {e}")
                continue
            found.append((mtime, normalize_backup_name(entry.name)))

        found.sort()
        return [name for _, name in found]
