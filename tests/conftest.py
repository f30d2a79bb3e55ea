"""
Pytest configuration and shared fixtures for MultiMoon tests.
"""

import io
import lzma
import subprocess
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import pytest
import responses

from multimoon.core.config import ManagerConfig
from multimoon.core.platform import MULTIARCH_TAG, PlatformInfo
from multimoon.core.verification import digest
from multimoon.toolchain.registry import Registry

REGISTRY_URL = "https://registry.example.com/"
DOWNLOAD_BASE = "https://cdn.example.com/moonbit/"

MOON_MOD_JSON = b'{"name": "moonbitlang/core"}'


# ============================================================================
# Builders
# ============================================================================


def make_core_zip(files: Dict[str, bytes], directories: Optional[List[str]] = None) -> bytes:
    """
    Build a core bundle zip with entries under 'core/'.

    Args:
        files: Relative path (inside core) -> content
        directories: Extra directory entries (inside core)
    """
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr("core/", b"")
        for directory in directories or []:
            zf.writestr(f"core/{directory.rstrip('/')}/", b"")
        for name, content in files.items():
            zf.writestr(f"core/{name}", content)
    return buffer.getvalue()


class RegistryBuilder:
    """Builds registry documents together with the payloads they point at."""

    def __init__(self, platform: PlatformInfo):
        self.platform = platform
        self.toolchains: List[dict] = []
        self.payloads: Dict[str, bytes] = {}

    def add(
        self,
        name: str,
        last_modified: int,
        binaries: Dict[str, bytes],
        core_zip: bytes,
        installer: str = "initial",
        moonver: Optional[str] = None,
    ) -> "RegistryBuilder":
        tag = self.platform.arch_tag()
        bin_entries = []
        for filename, content in binaries.items():
            downloadfrom = f"{filename}.xz"
            bin_entries.append(
                {
                    "filename": filename,
                    "downloadfrom": downloadfrom,
                    "checksum": digest(content),
                }
            )
            self.payloads[f"{DOWNLOAD_BASE}{name}/{tag}/{downloadfrom}"] = lzma.compress(
                content, format=lzma.FORMAT_XZ
            )

        self.payloads[f"{DOWNLOAD_BASE}{name}/{MULTIARCH_TAG}/core.zip"] = core_zip
        self.toolchains.append(
            {
                "name": name,
                "moonver": moonver or f"0.1.{name}",
                "last_modified": last_modified,
                "installer": installer,
                "bin": bin_entries,
                "core": [
                    {
                        "filename": "core.zip",
                        "downloadfrom": "core.zip",
                        "checksum": digest(core_zip),
                    }
                ],
            }
        )
        return self

    def document(self) -> dict:
        return {
            "last_modified": max(
                (t["last_modified"] for t in self.toolchains), default=0
            ),
            "downloadfrom": DOWNLOAD_BASE,
            "toolchains": self.toolchains,
        }

    def build(self) -> Registry:
        return Registry.from_dict(self.document())

    def register_responses(self) -> None:
        """Serve every payload through the `responses` mock."""
        for url, body in self.payloads.items():
            responses.add(responses.GET, url, body=body, status=200)


# ============================================================================
# Shared Test Fixtures
# ============================================================================


@pytest.fixture
def linux_platform() -> PlatformInfo:
    """Platform with published toolchains and Unix semantics."""
    return PlatformInfo(os="linux", arch="x64")


@pytest.fixture
def config(tmp_path: Path) -> ManagerConfig:
    """Configuration rooted in a temporary directory."""
    home = tmp_path / "home"
    home.mkdir()
    return ManagerConfig(
        home=home,
        moonhome=home / ".moon",
        multimoonhome=home / ".multimoon",
        registry_url=REGISTRY_URL,
    )


@pytest.fixture
def core_tree(config: ManagerConfig) -> Path:
    """Create a small core library (with build cache) and return lib/core."""
    core = config.core_dir
    (core / "builtin").mkdir(parents=True)
    (core / "target" / "wasm").mkdir(parents=True)
    (core / "moon.mod.json").write_bytes(MOON_MOD_JSON)
    (core / "builtin" / "array.mbt").write_bytes(b"pub fn length() -> Int { 0 }\n")
    (core / "builtin" / "moon.pkg.json").write_bytes(b"{}")
    (core / "target" / "wasm" / "core.core").write_bytes(b"compiled")
    return core


@pytest.fixture
def registry_builder(linux_platform: PlatformInfo) -> RegistryBuilder:
    """Empty registry builder for the Linux x64 platform."""
    return RegistryBuilder(linux_platform)


@pytest.fixture
def core_zip() -> bytes:
    """Minimal valid core bundle."""
    return make_core_zip(
        {"moon.mod.json": MOON_MOD_JSON, "builtin/array.mbt": b"fn f() -> Unit {}\n"}
    )


@pytest.fixture
def successful_runner():
    """Command runner standing in for a successful `moon bundle --all`."""
    calls = []

    def runner(command, **kwargs):
        calls.append((command, kwargs))
        return subprocess.CompletedProcess(command, 0, stdout=b"", stderr=b"")

    runner.calls = calls
    return runner


@pytest.fixture
def zip_factory():
    """Factory for core bundle zips (see make_core_zip)."""
    return make_core_zip
