"""
Platform detection for MultiMoon.

The registry publishes MoonBit binaries per platform under an "arch tag"
directory (e.g. 'ubuntu_amd64', 'macos_aarch64'). This module maps the
running interpreter's OS and CPU architecture onto those tags and
provides the platform-specific name of the `moon` executable.

Usage:
    from multimoon.core.platform import detect_platform

    info = detect_platform()
    print(info.arch_tag())         # 'ubuntu_amd64'
    print(info.moon_executable())  # 'moon'
"""

import functools
import platform
from dataclasses import dataclass

from multimoon.core.exceptions import UnsupportedPlatformError

# (os, arch) -> registry arch tag
ARCH_TAGS = {
    ("macos", "arm64"): "macos_aarch64",
    ("macos", "x64"): "macos_amd64",
    ("linux", "x64"): "ubuntu_amd64",
    ("windows", "x64"): "windows_x64",
}

MULTIARCH_TAG = "multiarch"


@dataclass(frozen=True)
class PlatformInfo:
    """
    Platform information relevant to toolchain selection.

    Attributes:
        os: Operating system ('windows', 'linux', 'macos')
        arch: CPU architecture ('x64', 'arm64', 'x86', 'arm')
    """

    os: str
    arch: str

    @property
    def is_windows(self) -> bool:
        return self.os == "windows"

    def arch_tag(self) -> str:
        """
        Get the registry directory name for this platform.

        Returns:
            Arch tag used in registry and download URLs

        Raises:
            UnsupportedPlatformError: If no toolchain is published for this platform

        Example:
            >>> PlatformInfo("linux", "x64").arch_tag()
            'ubuntu_amd64'
        """
        tag = ARCH_TAGS.get((self.os, self.arch))
        if tag is None:
            raise UnsupportedPlatformError(
                f"MoonBit toolchains are not published for {self.os}-{self.arch}"
            )
        return tag

    def moon_executable(self) -> str:
        """File name of the `moon` build tool on this platform."""
        return "moon.exe" if self.is_windows else "moon"

    def __str__(self) -> str:
        return f"{self.os}-{self.arch}"


@functools.lru_cache(maxsize=1)
def detect_platform() -> PlatformInfo:
    """
    Detect current platform information.

    This function is cached - it only runs detection once per process.

    Returns:
        PlatformInfo instance with detected platform information
    """
    return PlatformInfo(os=_detect_os(), arch=_detect_architecture())


def _detect_os() -> str:
    """
    Detect operating system.

    Returns:
        Normalized OS name: 'windows', 'linux', 'macos'

    Raises:
        UnsupportedPlatformError: If OS is not supported
    """
    system = platform.system().lower()

    if system == "windows":
        return "windows"
    elif system == "linux":
        return "linux"
    elif system == "darwin":
        return "macos"
    else:
        raise UnsupportedPlatformError(f"Unsupported operating system: {system}")


def _detect_architecture() -> str:
    """
    Detect CPU architecture.

    Returns:
        Normalized architecture: 'x64', 'arm64', 'x86', 'arm'
    """
    machine = platform.machine().lower()

    if machine in ("x86_64", "amd64", "x64"):
        return "x64"
    elif machine in ("aarch64", "arm64"):
        return "arm64"
    elif machine in ("i386", "i686", "x86"):
        return "x86"
    elif machine.startswith("arm"):
        return "arm"
    else:
        # Return original for unknown architectures
        return machine
