"""
MultiMoon registry documents.

The registry is a JSON document published per platform at
`<registry>/<arch-tag>/`. It lists the available MoonBit toolchains, the
binaries and core library bundle each one consists of, and the checksum
of every file.

Example document:
    {
      "last_modified": 1715040000,
      "downloadfrom": "https://cdn.example.com/moonbit/",
      "toolchains": [
        {
          "name": "2024-05-07",
          "moonver": "0.1.20240507",
          "last_modified": 1715040000,
          "installer": "initial",
          "bin": [{"filename": "moon", "downloadfrom": "moon.xz",
                   "checksum": "sha256:..."}],
          "core": [{"filename": "core.zip", "downloadfrom": "core.zip",
                    "checksum": "sha256:..."}]
        }
      ]
    }
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urljoin

import requests
from requests.exceptions import RequestException

from multimoon.core.exceptions import (
    DownloadError,
    RegistryFormatError,
    ToolchainNotFoundError,
)
from multimoon.core.filesystem import is_plain_file_name
from multimoon.core.platform import PlatformInfo, detect_platform

logger = logging.getLogger(__name__)


def _require(data: Dict[str, Any], key: str, kind: type, context: str) -> Any:
    """Fetch a required field from a decoded JSON object, checking its type."""
    if not isinstance(data, dict):
        raise RegistryFormatError(f"registry error: {context} is not an object")
    if key not in data:
        raise RegistryFormatError(f"registry error: {context} is missing '{key}'")
    value = data[key]
    # bool is an int subclass; a timestamp of `true` is still malformed
    if not isinstance(value, kind) or (kind is int and isinstance(value, bool)):
        raise RegistryFormatError(
            f"registry error: {context} field '{key}' must be {kind.__name__}"
        )
    return value


@dataclass(frozen=True)
class RegistryFile:
    """A single downloadable file of a toolchain."""

    filename: str
    """Name of the file once installed"""

    downloadfrom: str
    """Path relative to the toolchain's download directory"""

    checksum: str
    """Checksum in the form '<algorithm>:<hexdigest>'"""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegistryFile":
        context = f"file {data.get('filename', '?') if isinstance(data, dict) else '?'}"
        filename = _require(data, "filename", str, context)
        if not is_plain_file_name(filename):
            raise RegistryFormatError(
                f"registry error: {context} filename must not contain a path"
            )
        return cls(
            filename=filename,
            downloadfrom=_require(data, "downloadfrom", str, context),
            checksum=_require(data, "checksum", str, context),
        )


@dataclass(frozen=True)
class Toolchain:
    """A named, versioned set of MoonBit binaries plus its core library bundle."""

    name: str
    moonver: str
    last_modified: int
    bin: Tuple[RegistryFile, ...]
    core: Tuple[RegistryFile, ...]
    installer: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Toolchain":
        name = _require(data, "name", str, "toolchain")
        context = f"toolchain {name}"
        return cls(
            name=name,
            moonver=_require(data, "moonver", str, context),
            last_modified=_require(data, "last_modified", int, context),
            bin=tuple(
                RegistryFile.from_dict(f) for f in _require(data, "bin", list, context)
            ),
            core=tuple(
                RegistryFile.from_dict(f)
                for f in _require(data, "core", list, context)
            ),
            installer=_require(data, "installer", str, context),
        )

    def core_bundle(self) -> RegistryFile:
        """
        Get the core library bundle of this toolchain.

        Raises:
            RegistryFormatError: If the toolchain declares no core bundle
        """
        if not self.core:
            raise RegistryFormatError(
                f"registry error: core not found for toolchain {self.name}"
            )
        return self.core[0]


@dataclass(frozen=True)
class Registry:
    """A decoded registry document."""

    toolchains: Tuple[Toolchain, ...]
    last_modified: int
    downloadfrom: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Registry":
        """
        Build a registry from decoded JSON.

        Raises:
            RegistryFormatError: If any required field is missing or has the wrong type
        """
        return cls(
            toolchains=tuple(
                Toolchain.from_dict(t)
                for t in _require(data, "toolchains", list, "registry")
            ),
            last_modified=_require(data, "last_modified", int, "registry"),
            downloadfrom=_require(data, "downloadfrom", str, "registry"),
        )

    @classmethod
    def from_json(cls, text: str) -> "Registry":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise RegistryFormatError(f"registry error: invalid JSON: {e}") from e
        return cls.from_dict(data)

    def require_toolchains(self) -> None:
        """Raise if the registry lists no toolchains at all."""
        if not self.toolchains:
            raise RegistryFormatError("registry error: no toolchains found")

    def newest_first(self) -> List[Toolchain]:
        return sorted(self.toolchains, key=lambda t: t.last_modified, reverse=True)

    def oldest_first(self) -> List[Toolchain]:
        return sorted(self.toolchains, key=lambda t: t.last_modified)

    def find(self, name: str) -> Toolchain:
        """
        Look up a toolchain by name.

        Raises:
            ToolchainNotFoundError: If no toolchain has that name
        """
        for toolchain in self.toolchains:
            if toolchain.name == name:
                return toolchain
        raise ToolchainNotFoundError(name)


def registry_index_url(registry_url: str, platform: Optional[PlatformInfo] = None) -> str:
    """URL of the registry document for the given (default: current) platform."""
    platform = platform or detect_platform()
    base = registry_url if registry_url.endswith("/") else registry_url + "/"
    return urljoin(base, f"{platform.arch_tag()}/")


def fetch_registry(
    registry_url: str,
    session: Optional[requests.Session] = None,
    platform: Optional[PlatformInfo] = None,
) -> Registry:
    """
    Download and decode the registry document.

    Args:
        registry_url: Base registry URL
        session: Optional requests session to reuse
        platform: Platform to fetch the index for (default: current)

    Returns:
        Registry instance

    Raises:
        DownloadError: If the document cannot be fetched
        RegistryFormatError: If the document is malformed
    """
    url = registry_index_url(registry_url, platform)
    logger.info(f"downloading registry index from {url}")

    http = session or requests.Session()
    try:
        response = http.get(url)
        response.raise_for_status()
    except RequestException as e:
        raise DownloadError(f"failed to download registry index from {url}: {e}") from e

    return Registry.from_json(response.text)
