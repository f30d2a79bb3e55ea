"""
Toolchain installation.

Every registry toolchain names the installer generation that knows how
to lay it out on disk. The set of generations is a compatibility
contract with the registry, so it is a closed mapping: an identifier
this release doesn't know fails with a hint to upgrade MultiMoon.

An install runs through these stages, each finishing before the next
begins:

    NOT_STARTED -> MATCHING -> DOWNLOADING -> INSTALLING_BINARIES
        -> INSTALLING_LIBRARY -> POST_INSTALL_BUILD -> REGISTERING_PATH -> DONE

Any stage up to POST_INSTALL_BUILD can end in ERROR. Path registration
is advisory; its failures are logged and never fail the install.

Example:
    >>> pipeline = InstallPipeline(config)
    >>> result = pipeline.run(registry, registry.find("2024-05-07"))
    >>> print(result.skipped)
"""

import logging
import subprocess
import sys
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional

from multimoon.core.archive import ExtractOptions, unpack
from multimoon.core.config import ManagerConfig
from multimoon.core.download import DownloadedFile
from multimoon.core.exceptions import (
    CORRUPTION_NOTICE,
    InstallError,
    PathRegistrationError,
    PostInstallBuildError,
    UnknownInstallerError,
)
from multimoon.core.filesystem import (
    EXECUTABLE_MODE,
    ensure_directory,
    is_plain_file_name,
    write_file,
)
from multimoon.core.platform import PlatformInfo, detect_platform
from multimoon.toolchain import matcher
from multimoon.toolchain.downloader import DownloadOrchestrator
from multimoon.toolchain.registry import Registry, Toolchain
from multimoon.toolchain.shell import register_bin_path

logger = logging.getLogger(__name__)

BUNDLE_ARGS = ("bundle", "--all")

CommandRunner = Callable[..., subprocess.CompletedProcess]
PathRegistrar = Callable[[Path, Path], bool]


class InstallStage(Enum):
    """Progress of an install."""

    NOT_STARTED = "not started"
    MATCHING = "matching"
    DOWNLOADING = "downloading"
    INSTALLING_BINARIES = "installing binaries"
    INSTALLING_LIBRARY = "installing library"
    POST_INSTALL_BUILD = "post-install build"
    REGISTERING_PATH = "registering path"
    DONE = "done"
    ERROR = "error"


class InstallerKind(Enum):
    """Installer generations this release of MultiMoon supports."""

    INITIAL = "initial"

    @classmethod
    def from_identifier(cls, identifier: str) -> "InstallerKind":
        """
        Resolve a registry installer identifier.

        Raises:
            UnknownInstallerError: If the identifier isn't supported
        """
        kind = _INSTALLER_IDENTIFIERS.get(identifier)
        if kind is None:
            raise UnknownInstallerError(identifier)
        return kind


# The initial installer has handled toolchains since 2024-05-07
_INSTALLER_IDENTIFIERS = {
    "initial": InstallerKind.INITIAL,
    "2024-05-07": InstallerKind.INITIAL,
}


@dataclass
class InstallResult:
    """Result of an install pipeline run."""

    toolchain_name: str
    """Name of the requested toolchain"""

    skipped: bool
    """True if the toolchain was already installed and nothing changed"""

    binaries_installed: int = 0
    """Number of binaries written"""

    library_files: int = 0
    """Number of core library files extracted"""

    path_registered: bool = False
    """Whether the bin directory was (or already was) added to PATH"""


class Installer(ABC):
    """
    Abstract base class for installer generations.

    An installer decides whether a toolchain is already installed and
    knows how to install it.
    """

    def __init__(
        self,
        config: ManagerConfig,
        orchestrator: Optional[DownloadOrchestrator] = None,
        command_runner: CommandRunner = subprocess.run,
        path_registrar: PathRegistrar = register_bin_path,
        platform: Optional[PlatformInfo] = None,
    ):
        self.config = config
        self.platform = platform or detect_platform()
        self.orchestrator = orchestrator or DownloadOrchestrator(platform=self.platform)
        self.command_runner = command_runner
        self.path_registrar = path_registrar

    @abstractmethod
    def matches(self, toolchain: Toolchain) -> bool:
        """Check whether `toolchain` is the one currently installed."""
        pass

    @abstractmethod
    def install(
        self,
        registry: Registry,
        toolchain: Toolchain,
        on_stage: Callable[[InstallStage], None],
    ) -> InstallResult:
        """
        Install `toolchain`, reporting each stage through `on_stage`.
        """
        pass


class InitialInstaller(Installer):
    """
    Installer for toolchains published since 2024-05-07.

    Layout:
        <moonhome>/bin/*       : xz-compressed binaries from <arch-tag>/
        <moonhome>/lib/core/*  : zip bundle from multiarch/, then `moon bundle --all`
    """

    def matches(self, toolchain: Toolchain) -> bool:
        # Only bin/ identifies the version; lib/core is tracked via backups
        return matcher.matches(toolchain, self.config.bin_dir)

    def install(
        self,
        registry: Registry,
        toolchain: Toolchain,
        on_stage: Callable[[InstallStage], None],
    ) -> InstallResult:
        on_stage(InstallStage.DOWNLOADING)
        binaries = self.orchestrator.fetch_binaries(registry, toolchain)
        library = self.orchestrator.fetch_library(registry, toolchain)

        on_stage(InstallStage.INSTALLING_BINARIES)
        self.install_binaries(binaries)
        logger.info("successfully installed binaries.")

        on_stage(InstallStage.INSTALLING_LIBRARY)
        logger.info(f"installing [core 1 / 1] {library.filename} ...")
        library_files = unpack(
            library.content,
            self.config.lib_dir,
            ExtractOptions(
                fallback_timestamp=toolchain.last_modified,
                verbose=self.config.verbose,
            ),
        )
        logger.info("successfully extracted core library.")

        on_stage(InstallStage.POST_INSTALL_BUILD)
        self.bundle_core()
        logger.info("successfully installed libraries.")

        on_stage(InstallStage.REGISTERING_PATH)
        path_registered = self.register_path()

        return InstallResult(
            toolchain_name=toolchain.name,
            skipped=False,
            binaries_installed=len(binaries),
            library_files=library_files,
            path_registered=path_registered,
        )

    def install_binaries(self, binaries: List[DownloadedFile]) -> None:
        """
        Write verified binaries to `<moonhome>/bin` and mark them executable.

        Raises:
            InstallError: If a binary can't be written; earlier binaries
                may already have been replaced
        """
        bin_dir = self.config.bin_dir
        for binary in binaries:
            if not is_plain_file_name(binary.filename):
                raise InstallError(
                    f"install error: refusing to install {binary.filename!r} outside {bin_dir}"
                )

        try:
            ensure_directory(bin_dir)
        except OSError as e:
            raise InstallError(
                f"install error: failed to create {bin_dir} {CORRUPTION_NOTICE}"
            ) from e

        total = len(binaries)
        for index, binary in enumerate(binaries, 1):
            path = bin_dir / binary.filename
            logger.info(f"installing [bin {index} / {total}] {path} ...")
            try:
                write_file(path, binary.content, mode=EXECUTABLE_MODE)
            except OSError as e:
                raise InstallError(
                    f"install error: failed to write {path} {CORRUPTION_NOTICE}"
                ) from e

    def bundle_command(self) -> List[str]:
        moon = self.config.bin_dir / self.platform.moon_executable()
        return [str(moon), *BUNDLE_ARGS]

    def bundle_core(self) -> None:
        """
        Run `moon bundle --all` in the freshly extracted core library.

        The environment is cleared except for PATH, which only contains
        `<moonhome>/bin`. Output is echoed if the command fails or in
        verbose mode.

        Raises:
            InstallError: If the command can't be started
            PostInstallBuildError: If the command exits with non-zero status
        """
        command = self.bundle_command()
        core_dir = self.config.core_dir
        logger.info(f"bundling core library (run {' '.join(command)} in {core_dir})")

        try:
            result = self.command_runner(
                command,
                cwd=str(core_dir),
                env={"PATH": str(self.config.bin_dir)},
                capture_output=True,
            )
        except OSError as e:
            raise InstallError(
                f"error bundling core library: {e} {CORRUPTION_NOTICE}"
            ) from e

        if result.returncode != 0 or self.config.verbose:
            _echo(result.stdout, sys.stdout)
            _echo(result.stderr, sys.stderr)

        if result.returncode != 0:
            raise PostInstallBuildError(result.returncode)
        logger.info("successfully bundled core library.")

    def register_path(self) -> bool:
        """Add `<moonhome>/bin` to the user's PATH (best effort)."""
        bin_dir = self.config.bin_dir
        try:
            self.path_registrar(bin_dir, self.config.home)
            return True
        except (PathRegistrationError, OSError) as e:
            logger.warning(
                f"error adding moonbit bin path {bin_dir} to current shell config: {e}"
            )
            logger.warning(" (you may have to add to your PATH manually)")
            return False


def _echo(output, stream) -> None:
    if not output:
        return
    if isinstance(output, bytes):
        output = output.decode("utf-8", errors="replace")
    stream.write(output)
    stream.flush()


def get_installer(identifier: str, config: ManagerConfig, **kwargs) -> Installer:
    """
    Get the installer for a registry installer identifier.

    Args:
        identifier: Value of the toolchain's `installer` field
        config: Manager configuration
        **kwargs: Passed to the installer constructor

    Raises:
        UnknownInstallerError: If the identifier isn't supported
    """
    kind = InstallerKind.from_identifier(identifier)
    if kind is InstallerKind.INITIAL:
        return InitialInstaller(config, **kwargs)
    raise UnknownInstallerError(identifier)


class InstallPipeline:
    """
    Installs registry toolchains, skipping ones that are already current.

    Attributes:
        stage: Current stage of the most recent run
    """

    def __init__(self, config: ManagerConfig, **installer_kwargs):
        """
        Initialize install pipeline.

        Args:
            config: Manager configuration
            **installer_kwargs: Collaborators passed to installers
                (orchestrator, command_runner, path_registrar, platform)
        """
        self.config = config
        self.installer_kwargs = installer_kwargs
        self.stage = InstallStage.NOT_STARTED

    def installer_for(self, toolchain: Toolchain) -> Installer:
        return get_installer(toolchain.installer, self.config, **self.installer_kwargs)

    def _enter(self, stage: InstallStage) -> None:
        logger.debug(f"install stage: {self.stage.value} -> {stage.value}")
        self.stage = stage

    def run(
        self, registry: Registry, toolchain: Toolchain, force: bool = False
    ) -> InstallResult:
        """
        Install `toolchain` unless it is already installed.

        Args:
            registry: Registry the toolchain came from
            toolchain: Toolchain to install
            force: Reinstall even if the toolchain is already current

        Returns:
            InstallResult (skipped=True if nothing was changed)

        Raises:
            MultiMoonError: If any stage fails; `stage` is then ERROR
        """
        self.stage = InstallStage.NOT_STARTED
        try:
            self._enter(InstallStage.MATCHING)
            installer = self.installer_for(toolchain)
            if installer.matches(toolchain) and not force:
                logger.info(
                    f"current installed toolchain is already {toolchain.name}. "
                    "(add --force to reinstall)"
                )
                self._enter(InstallStage.DONE)
                return InstallResult(toolchain_name=toolchain.name, skipped=True)

            result = installer.install(registry, toolchain, self._enter)
        except BaseException:
            self.stage = InstallStage.ERROR
            raise

        self._enter(InstallStage.DONE)
        logger.info(f"successfully installed toolchain {toolchain.name}.")
        return result
