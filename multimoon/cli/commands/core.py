"""
Core library command implementations (list, backup, restore).
"""

import logging

from multimoon.cli.utils import config_from_args, safe_print
from multimoon.toolchain.backup import BackupManager

logger = logging.getLogger(__name__)


def run_list(args) -> int:
    """Print backup names, oldest first."""
    backups = BackupManager(config_from_args(args)).list()
    if not backups:
        logger.info("no core backups found.")
    for name in backups:
        safe_print(name)
    return 0


def run_backup(args) -> int:
    """
    Back up the current core library.

    Args:
        args: Parsed command-line arguments with:
            - name: Optional backup name

    Returns:
        Exit code (0 for success)
    """
    BackupManager(config_from_args(args)).backup(args.name)
    return 0


def run_restore(args) -> int:
    """Restore the core library from a named backup."""
    BackupManager(config_from_args(args)).restore(args.name)
    return 0
