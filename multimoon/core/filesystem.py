"""
Cross-platform file system utilities for MultiMoon.

This module provides the small set of platform-aware file operations the
installer and archive engine share:
- Path containment checks
- Truncate-create file writes with optional permission bits
- Best-effort timestamp restoration
"""

import logging
import os
import stat
from pathlib import Path
from typing import Optional, Union

logger = logging.getLogger(__name__)

# Platform detection
IS_WINDOWS = os.name == "nt"
IS_UNIX = not IS_WINDOWS

EXECUTABLE_MODE = 0o755


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Args:
        path: Path to check
        parent: Parent directory

    Returns:
        True if path is under parent directory (or is the directory itself)

    Example:
        >>> is_relative_to(Path("/home/user/.moon/lib/core/x.mbt"), Path("/home/user/.moon/lib/core"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def is_plain_file_name(name: str) -> bool:
    """
    Check that a name addresses a single entry directly inside a directory.

    Rejects empty names, `.` and `..`, and anything containing a path
    separator or drive, so `directory / name` can't escape `directory`.

    Example:
        >>> is_plain_file_name("moon")
        True
        >>> is_plain_file_name("../moon")
        False
    """
    if name in ("", ".", "..") or "\0" in name:
        return False
    if "/" in name or "\\" in name or ":" in name:
        return False
    return True


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists (idempotent).

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


def write_file(path: Path, content: bytes, mode: Optional[int] = None) -> None:
    """
    Write bytes to a file, replacing any existing content.

    The file is truncated and rewritten in place (not renamed over), so
    an existing file keeps its inode. On Unix, `mode` permission bits are
    applied afterwards; on other platforms `mode` is ignored.

    Args:
        path: Destination file
        content: Bytes to write
        mode: Optional permission bits (e.g. 0o755)

    Raises:
        OSError: If the file can't be written or its permissions set
    """
    with open(path, "wb") as f:
        f.write(content)

    if mode is not None and IS_UNIX:
        os.chmod(path, stat.S_IMODE(mode))


def set_file_times(path: Path, timestamp: float) -> bool:
    """
    Set access and modification time of a file or directory (best effort).

    Args:
        path: File or directory
        timestamp: Seconds since the epoch

    Returns:
        True if the times were set, False if the operation failed
    """
    try:
        os.utime(path, (timestamp, timestamp))
        return True
    except (OSError, OverflowError, ValueError) as e:
        logger.debug(f"Failed to set times of {path}: {e}")
        return False


__all__ = [
    "IS_WINDOWS",
    "IS_UNIX",
    "EXECUTABLE_MODE",
    "is_relative_to",
    "is_plain_file_name",
    "ensure_directory",
    "write_file",
    "set_file_times",
]
