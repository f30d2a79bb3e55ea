"""
Centralized exception hierarchy for MultiMoon.

This module defines all custom exceptions used across the codebase
so that callers can tell registry problems, network problems, integrity
problems and filesystem problems apart.
"""

CORRUPTION_NOTICE = "(current installation may be corrupted)"


# ============================================================================
# Base Exceptions
# ============================================================================


class MultiMoonError(Exception):
    """Base exception for all MultiMoon errors."""

    pass


class ConfigError(MultiMoonError):
    """Raised when configuration cannot be loaded or is invalid."""

    pass


class UnsupportedPlatformError(MultiMoonError):
    """Raised when the current OS/architecture has no published toolchain."""

    pass


# ============================================================================
# Registry Exceptions
# ============================================================================


class RegistryError(MultiMoonError):
    """Base exception for registry-related errors."""

    pass


class RegistryFormatError(RegistryError):
    """Raised when the registry document or one of its entries is malformed."""

    pass


class UnknownInstallerError(RegistryError):
    """Raised when a toolchain declares an installer this release doesn't know."""

    def __init__(self, installer: str):
        self.installer = installer
        super().__init__(
            f"registry error: unknown installer {installer} "
            "(a new version of MultiMoon may be needed?)"
        )


class ToolchainNotFoundError(RegistryError):
    """Raised when a named toolchain is not listed in the registry."""

    def __init__(self, toolchain_name: str):
        self.toolchain_name = toolchain_name
        super().__init__(f"toolchain {toolchain_name} not found in registry")


# ============================================================================
# Download Exceptions
# ============================================================================


class DownloadError(MultiMoonError):
    """Raised when a remote file cannot be fetched."""

    pass


class ChecksumMismatchError(DownloadError):
    """Raised when downloaded content doesn't match its declared checksum."""

    def __init__(self, filename: str, expected: str, actual: str):
        self.filename = filename
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"checksum check for {filename} failed! "
            f"(expected {expected}, got {actual}; remote content may be corrupted)"
        )


# ============================================================================
# Archive Exceptions
# ============================================================================


class ArchiveError(MultiMoonError):
    """Raised when packing or unpacking the core library fails."""

    pass


class InsecureArchiveError(ArchiveError):
    """Archive contains insecure paths (directory traversal attempt)."""

    pass


# ============================================================================
# Install Exceptions
# ============================================================================


class InstallError(MultiMoonError):
    """Raised when writing the toolchain to disk fails."""

    pass


class PostInstallBuildError(InstallError):
    """Raised when bundling the core library after install fails."""

    def __init__(self, exit_code: int):
        self.exit_code = exit_code
        super().__init__(f"failed to bundle core library (exit code: {exit_code})")


class PathRegistrationError(MultiMoonError):
    """Raised when the bin directory cannot be added to the user's PATH."""

    pass


# ============================================================================
# Backup Exceptions
# ============================================================================


class BackupError(MultiMoonError):
    """Base exception for core library backup errors."""

    pass


class BackupExistsError(BackupError):
    """Raised when a backup with the requested name already exists."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"backup {name} already exists")


class BackupNotFoundError(BackupError):
    """Raised when a backup with the requested name doesn't exist."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"backup {name} not found")
