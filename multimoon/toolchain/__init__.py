"""
Toolchain management module for MultiMoon.

This module provides functionality for:
- Registry documents and their retrieval
- Detecting the installed toolchain
- Concurrent, checksum-verified downloads
- Installing toolchains and registering them on PATH
- Backing up and restoring the core library
"""

from multimoon.toolchain.registry import (
    Registry,
    RegistryFile,
    Toolchain,
    fetch_registry,
)
from multimoon.toolchain.downloader import DownloadOrchestrator
from multimoon.toolchain.installer import (
    InstallPipeline,
    InstallResult,
    InstallStage,
    get_installer,
)
from multimoon.toolchain.backup import BackupManager
from multimoon.toolchain.manager import ToolchainManager

__all__ = [
    "Registry",
    "RegistryFile",
    "Toolchain",
    "fetch_registry",
    "DownloadOrchestrator",
    "InstallPipeline",
    "InstallResult",
    "InstallStage",
    "get_installer",
    "BackupManager",
    "ToolchainManager",
]
