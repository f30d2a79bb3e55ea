"""
Shared utilities for CLI commands.
"""

import logging
from typing import Optional

from multimoon.core.config import ManagerConfig, load_config

logger = logging.getLogger(__name__)


def config_from_args(args) -> ManagerConfig:
    """
    Resolve the manager configuration from global command-line options.

    Args:
        args: Parsed arguments with registry/moonhome/multimoonhome/verbose

    Returns:
        ManagerConfig instance

    Raises:
        ConfigError: If the configuration is invalid
    """
    return load_config(
        moonhome=getattr(args, "moonhome", None),
        multimoonhome=getattr(args, "multimoonhome", None),
        registry=getattr(args, "registry", None),
        verbose=getattr(args, "verbose", False),
    )


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for Windows console.

    Args:
        message: Message to print
        file: Output file (default: stdout)
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        print(message.encode("ascii", errors="replace").decode("ascii"), file=file)


def print_error(message: str, details: Optional[str] = None):
    """
    Log an error message with optional details.

    Args:
        message: Main error message
        details: Additional details
    """
    logger.error(f"Error: {message}")
    if details:
        logger.error(f"  {details}")
