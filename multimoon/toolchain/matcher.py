"""
Local version detection.

The installed MoonBit version is identified purely by the checksums of
the files in `<moonhome>/bin`. The core library is deliberately left
out: it is large, and its state is managed separately through backups.
Nothing is cached between runs; every check re-reads and re-hashes the
local binaries.
"""

import logging
from pathlib import Path

from multimoon.core.exceptions import InstallError
from multimoon.core.verification import parse_checksum, verify
from multimoon.toolchain.registry import Toolchain

logger = logging.getLogger(__name__)


def matches(toolchain: Toolchain, bin_dir: Path) -> bool:
    """
    Check whether the binaries in `bin_dir` are exactly those of `toolchain`.

    Args:
        toolchain: Toolchain descriptor from the registry
        bin_dir: Local binaries directory (`<moonhome>/bin`)

    Returns:
        True if every binary is present with a matching checksum.
        A missing binary means "doesn't match", not an error.

    Raises:
        RegistryFormatError: If a binary declares an unsupported checksum
        InstallError: If a binary exists but can't be read

    Example:
        >>> if not matches(toolchain, Path.home() / ".moon" / "bin"):
        ...     print("update available")
    """
    for binary in toolchain.bin:
        parse_checksum(binary.checksum)

        local_path = Path(bin_dir) / binary.filename
        try:
            content = local_path.read_bytes()
        except FileNotFoundError:
            logger.debug(f"{local_path} is missing; {toolchain.name} doesn't match")
            return False
        except OSError as e:
            raise InstallError(f"error reading file {binary.filename}: {e}") from e

        if not verify(content, binary.checksum):
            logger.debug(f"{local_path} differs from {toolchain.name}")
            return False

    return True
