"""
Checksum fingerprinting for MultiMoon.

The registry declares checksums as "<algorithm>:<hexdigest>" strings.
The same strings serve two purposes:
- integrity checks of downloaded content
- version identity of the locally installed binaries

Only SHA256 is currently recognized. A checksum with any other
algorithm prefix is a registry-format error, never a silent mismatch.
"""

import hashlib
import logging
import re
import secrets
from typing import Tuple

from multimoon.core.exceptions import RegistryFormatError

logger = logging.getLogger(__name__)

SUPPORTED_ALGORITHM = "sha256"

_HEX_DIGEST = re.compile(r"^[0-9a-f]{64}$")


def digest(data: bytes) -> str:
    """
    Compute the checksum string of a byte buffer.

    Args:
        data: Content to hash

    Returns:
        Checksum in the form "sha256:<lowercase hex>"

    Example:
        >>> digest(b"hello")
        'sha256:2cf24dba5fb0a30e26e83b2ac5b9e29e1b161e5c1fa7425e73043362938b9824'
    """
    return f"{SUPPORTED_ALGORITHM}:{hashlib.sha256(data).hexdigest()}"


def parse_checksum(checksum: str) -> Tuple[str, str]:
    """
    Split a registry checksum into algorithm and hex digest.

    Args:
        checksum: Checksum string, e.g. "sha256:abc123..."

    Returns:
        (algorithm, hexdigest)

    Raises:
        RegistryFormatError: If the algorithm isn't supported or the digest is malformed
    """
    algorithm, sep, hex_digest = checksum.partition(":")
    if not sep or algorithm != SUPPORTED_ALGORITHM:
        raise RegistryFormatError(
            f"registry error: unsupported checksum {checksum!r} "
            f"(expected '{SUPPORTED_ALGORITHM}:<hex>')"
        )
    if not _HEX_DIGEST.match(hex_digest):
        raise RegistryFormatError(f"registry error: malformed checksum {checksum!r}")
    return algorithm, hex_digest


def verify(data: bytes, expected: str) -> bool:
    """
    Check a byte buffer against a registry-declared checksum.

    Args:
        data: Content to check
        expected: Declared checksum ("sha256:<hex>")

    Returns:
        True if the content matches, False otherwise

    Raises:
        RegistryFormatError: If `expected` uses an unsupported algorithm
    """
    parse_checksum(expected)
    return _constant_time_compare(digest(data), expected)


def _constant_time_compare(a: str, b: str) -> bool:
    """Compare two checksum strings in constant time."""
    return secrets.compare_digest(a.encode("utf-8"), b.encode("utf-8"))
