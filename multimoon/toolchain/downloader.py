"""
Toolchain download orchestration.

This module fetches every file a registry toolchain consists of:
- binaries: one task per file on a thread pool, sharing one HTTP session;
  each is xz-decompressed and verified against the decompressed content
- core library bundle: a single zip, verified against the bytes as sent

Downloads are all-or-nothing. Every binary task is allowed to run to
completion; if any of them failed, the first failure in registry order
is raised and the verified content of its siblings is discarded.

URL layout:
    binaries: <downloadfrom>/<toolchain>/<arch-tag>/<file.downloadfrom>
    core:     <downloadfrom>/<toolchain>/multiarch/<file.downloadfrom>
"""

import itertools
import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional
from urllib.parse import quote, urljoin

import requests

from multimoon.core.download import (
    DownloadedFile,
    decompress_xz,
    fetch_bytes,
    verify_content,
)
from multimoon.core.platform import MULTIARCH_TAG, PlatformInfo, detect_platform
from multimoon.core.verification import parse_checksum
from multimoon.toolchain.registry import Registry, RegistryFile, Toolchain

logger = logging.getLogger(__name__)


def toolchain_file_url(
    registry: Registry, toolchain: Toolchain, tag: str, file: RegistryFile
) -> str:
    """
    Build the download URL of a toolchain file.

    Args:
        registry: Registry providing the `downloadfrom` base
        toolchain: Toolchain the file belongs to
        tag: Platform directory (arch tag or 'multiarch')
        file: File entry

    Returns:
        Absolute URL

    Example:
        >>> toolchain_file_url(registry, toolchain, "ubuntu_amd64", toolchain.bin[0])
        'https://cdn.example.com/moonbit/2024-05-07/ubuntu_amd64/moon.xz'
    """
    base = registry.downloadfrom
    if not base.endswith("/"):
        base += "/"
    prefix = urljoin(base, f"{quote(toolchain.name)}/{tag}/")
    return urljoin(prefix, file.downloadfrom)


class DownloadOrchestrator:
    """
    Downloads and verifies the files of a toolchain into memory.

    Example:
        >>> orchestrator = DownloadOrchestrator()
        >>> binaries = orchestrator.fetch_binaries(registry, toolchain)
        >>> core = orchestrator.fetch_library(registry, toolchain)
    """

    def __init__(
        self,
        session: Optional[requests.Session] = None,
        platform: Optional[PlatformInfo] = None,
        max_workers: Optional[int] = None,
    ):
        """
        Initialize download orchestrator.

        Args:
            session: HTTP session shared by all tasks (default: new session)
            platform: Platform to download binaries for (default: current)
            max_workers: Thread pool size (default: one thread per binary)
        """
        self.session = session or requests.Session()
        self.platform = platform or detect_platform()
        self.max_workers = max_workers

    def binary_url(
        self, registry: Registry, toolchain: Toolchain, file: RegistryFile
    ) -> str:
        return toolchain_file_url(registry, toolchain, self.platform.arch_tag(), file)

    def library_url(
        self, registry: Registry, toolchain: Toolchain, file: RegistryFile
    ) -> str:
        return toolchain_file_url(registry, toolchain, MULTIARCH_TAG, file)

    def fetch_binaries(
        self, registry: Registry, toolchain: Toolchain
    ) -> List[DownloadedFile]:
        """
        Download all binaries of a toolchain concurrently.

        Args:
            registry: Registry document
            toolchain: Toolchain to download

        Returns:
            Verified, decompressed binaries in registry order

        Raises:
            RegistryFormatError: If a checksum uses an unsupported algorithm
            DownloadError: If a download fails
            ChecksumMismatchError: If a binary doesn't match its checksum
        """
        # Registry errors fail before any request is made
        for file in toolchain.bin:
            parse_checksum(file.checksum)

        if not toolchain.bin:
            return []

        total = len(toolchain.bin)
        lock = threading.Lock()
        started = itertools.count(1)
        finished = itertools.count(1)

        def download(file: RegistryFile) -> DownloadedFile:
            url = self.binary_url(registry, toolchain, file)
            with lock:
                index = next(started)
            logger.info(f"downloading [bin {index} / {total}] {url} ...")

            compressed, elapsed = fetch_bytes(self.session, url)
            content = decompress_xz(compressed, file.filename)
            verify_content(file.filename, content, file.checksum)

            result = DownloadedFile(
                filename=file.filename,
                content=content,
                transfer_bytes=len(compressed),
                elapsed_seconds=elapsed,
            )
            with lock:
                index = next(finished)
            logger.info(
                f"downloaded [bin {index} / {total}] {file.filename} "
                f"({result.speed()}) ..."
            )
            return result

        with ThreadPoolExecutor(max_workers=self.max_workers or total) as executor:
            futures = [executor.submit(download, file) for file in toolchain.bin]

        # Leaving the executor waited for every task
        for future in futures:
            error = future.exception()
            if error is not None:
                raise error
        return [future.result() for future in futures]

    def fetch_library(self, registry: Registry, toolchain: Toolchain) -> DownloadedFile:
        """
        Download the core library bundle of a toolchain.

        The bundle is already a zip archive, so its checksum is verified
        against the transferred bytes directly.

        Raises:
            RegistryFormatError: If the toolchain has no core bundle
            DownloadError: If the download fails
            ChecksumMismatchError: If the bundle doesn't match its checksum
        """
        core = toolchain.core_bundle()
        parse_checksum(core.checksum)
        url = self.library_url(registry, toolchain, core)

        logger.info(f"downloading [lib 1 / 1] {url} ...")
        content, elapsed = fetch_bytes(self.session, url)
        verify_content(core.filename, content, core.checksum)

        result = DownloadedFile(
            filename=core.filename,
            content=content,
            transfer_bytes=len(content),
            elapsed_seconds=elapsed,
        )
        logger.info(f"downloaded [lib 1 / 1] {core.filename} ({result.speed()}) ...")
        return result
