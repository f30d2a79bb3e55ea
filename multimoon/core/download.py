"""
In-memory downloads with checksum verification.

This module provides the building blocks the toolchain downloader uses:
- HTTP GET of a whole response body through a shared session
- xz decompression of transferred binaries
- Verification of content against a registry checksum

Content is never written to disk here; callers decide when (and whether)
verified content is installed.
"""

import logging
import lzma
import time
from dataclasses import dataclass
from typing import Tuple

import requests
from requests.exceptions import RequestException

from multimoon.core.exceptions import ChecksumMismatchError, DownloadError
from multimoon.core.verification import digest, parse_checksum

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DownloadedFile:
    """A verified file held in memory."""

    filename: str
    """Name of the file once installed"""

    content: bytes
    """Verified content"""

    transfer_bytes: int
    """Number of bytes received over the network"""

    elapsed_seconds: float
    """Time spent on the transfer"""

    def speed(self) -> str:
        """Transfer speed formatted for display."""
        return format_speed(self.transfer_bytes, self.elapsed_seconds)


def fetch_bytes(session: requests.Session, url: str) -> Tuple[bytes, float]:
    """
    Download a URL into memory.

    No retries and no explicit timeout are applied; the transport's
    defaults bound the request.

    Args:
        session: HTTP session to use
        url: URL to download

    Returns:
        (response body, elapsed seconds)

    Raises:
        DownloadError: On transport failure or non-success HTTP status
    """
    start = time.monotonic()
    try:
        response = session.get(url)
        response.raise_for_status()
        content = response.content
    except RequestException as e:
        raise DownloadError(f"failed to download {url}: {e}") from e
    return content, time.monotonic() - start


def decompress_xz(data: bytes, filename: str) -> bytes:
    """
    Decompress an xz stream.

    Raises:
        DownloadError: If the data is not a valid xz stream
    """
    try:
        return lzma.decompress(data, format=lzma.FORMAT_XZ)
    except lzma.LZMAError as e:
        raise DownloadError(f"failed to decompress {filename}: {e}") from e


def verify_content(filename: str, content: bytes, expected: str) -> None:
    """
    Check content against a registry checksum.

    Args:
        filename: File name used in error messages
        content: Content to check
        expected: Declared checksum ("sha256:<hex>")

    Raises:
        RegistryFormatError: If `expected` uses an unsupported algorithm
        ChecksumMismatchError: If the content doesn't match
    """
    parse_checksum(expected)
    actual = digest(content)
    if actual != expected:
        raise ChecksumMismatchError(filename, expected, actual)
    logger.debug(f"Checksum verified for {filename}")


def format_speed(size: int, elapsed: float) -> str:
    """
    Format a transfer speed for display.

    Example:
        >>> format_speed(2048, 1.0)
        '2.00 KiB/s'
    """
    if elapsed <= 0:
        return f"{size / 1024:.2f} KiB"
    return f"{size / elapsed / 1024:.2f} KiB/s"
