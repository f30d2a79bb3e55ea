"""
Toolchain command implementations.

Handles `show`, `update`, and the `toolchain` sub-commands.
"""

import logging

from multimoon.cli.utils import config_from_args, safe_print
from multimoon.toolchain.manager import ToolchainManager

logger = logging.getLogger(__name__)


def _manager(args) -> ToolchainManager:
    return ToolchainManager(config_from_args(args))


def run_show(args) -> int:
    """Print the installed toolchain."""
    current = _manager(args).show()
    if current is None:
        safe_print(
            "using a toolchain not listed in the registry. "
            "(run `moon version` to see version)"
        )
    else:
        safe_print(f"using {current.name} toolchain.")
    return 0


def run_list(args) -> int:
    """Print all registry toolchains, oldest first."""
    for toolchain, current in _manager(args).list():
        suffix = " (current)" if current else ""
        safe_print(f"{toolchain.name} toolchain{suffix}")
    return 0


def run_update_latest(args) -> int:
    """Install the newest toolchain."""
    _manager(args).update_to_latest()
    return 0


def run_update(args) -> int:
    """
    Install the toolchain named on the command line.

    Args:
        args: Parsed command-line arguments with:
            - toolchain: Toolchain name
            - force: Reinstall even if already current

    Returns:
        Exit code (0 for success)
    """
    _manager(args).update(args.toolchain, force=args.force)
    return 0


def run_rollback(args) -> int:
    """Same as update; kept as its own command for clarity."""
    _manager(args).rollback(args.toolchain, force=args.force)
    return 0
