"""
Core functionality for MultiMoon.

This package contains the foundational modules that the toolchain
operations depend on: configuration, platform tags, checksums, the
core library archive format and in-memory downloads.
"""

from .archive import ExtractOptions, pack, unpack

from .config import ManagerConfig, load_config

from .platform import (
    PlatformInfo,
    detect_platform,
)

from .verification import digest, parse_checksum, verify

from .exceptions import (
    MultiMoonError,
    ConfigError,
    UnsupportedPlatformError,
    RegistryError,
    RegistryFormatError,
    UnknownInstallerError,
    ToolchainNotFoundError,
    DownloadError,
    ChecksumMismatchError,
    ArchiveError,
    InsecureArchiveError,
    InstallError,
    PostInstallBuildError,
    PathRegistrationError,
    BackupError,
    BackupExistsError,
    BackupNotFoundError,
)

__all__ = [
    # Archive
    "ExtractOptions",
    "pack",
    "unpack",
    # Config
    "ManagerConfig",
    "load_config",
    # Platform
    "PlatformInfo",
    "detect_platform",
    # Verification
    "digest",
    "parse_checksum",
    "verify",
    # Exceptions
    "MultiMoonError",
    "ConfigError",
    "UnsupportedPlatformError",
    "RegistryError",
    "RegistryFormatError",
    "UnknownInstallerError",
    "ToolchainNotFoundError",
    "DownloadError",
    "ChecksumMismatchError",
    "ArchiveError",
    "InsecureArchiveError",
    "InstallError",
    "PostInstallBuildError",
    "PathRegistrationError",
    "BackupError",
    "BackupExistsError",
    "BackupNotFoundError",
]
