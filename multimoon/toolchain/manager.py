"""
Toolchain operations: show, list, update and rollback.

Each operation fetches the registry index fresh, so the answer always
reflects what the registry currently publishes. A rollback is an update
to an older toolchain; the distinction exists only on the command line.
"""

import logging
from typing import Callable, List, Optional, Tuple

from multimoon.core.config import ManagerConfig
from multimoon.toolchain.installer import InstallPipeline, InstallResult
from multimoon.toolchain.registry import Registry, Toolchain, fetch_registry

logger = logging.getLogger(__name__)


class ToolchainManager:
    """
    High-level toolchain operations against the configured registry.

    Example:
        >>> manager = ToolchainManager(load_config())
        >>> current = manager.show()
        >>> manager.update("2024-05-07", force=True)
    """

    def __init__(
        self,
        config: ManagerConfig,
        fetch_registry: Callable[[str], Registry] = fetch_registry,
        pipeline_factory: Callable[[ManagerConfig], InstallPipeline] = InstallPipeline,
    ):
        """
        Initialize toolchain manager.

        Args:
            config: Manager configuration
            fetch_registry: Returns the registry for a base URL
            pipeline_factory: Builds the install pipeline for a configuration
        """
        self.config = config
        self._fetch_registry = fetch_registry
        self.pipeline = pipeline_factory(config)

    def registry(self) -> Registry:
        """
        Fetch the registry index.

        Raises:
            RegistryFormatError: If the registry lists no toolchains
        """
        logger.info(f"MoonBit homedir: {self.config.moonhome}")
        registry = self._fetch_registry(self.config.registry_url)
        registry.require_toolchains()
        return registry

    def is_current(self, toolchain: Toolchain) -> bool:
        return self.pipeline.installer_for(toolchain).matches(toolchain)

    def show(self) -> Optional[Toolchain]:
        """
        Find the installed toolchain.

        Returns:
            The newest registry toolchain matching the local binaries,
            or None if none matches
        """
        for toolchain in self.registry().newest_first():
            if self.is_current(toolchain):
                return toolchain
        return None

    def list(self) -> List[Tuple[Toolchain, bool]]:
        """List registry toolchains oldest first, flagging the current one(s)."""
        return [
            (toolchain, self.is_current(toolchain))
            for toolchain in self.registry().oldest_first()
        ]

    def update_to_latest(self) -> InstallResult:
        """Install the newest toolchain unless it is already installed."""
        registry = self.registry()
        latest = registry.newest_first()[0]
        logger.info(f"latest toolchain: {latest.name} (moon {latest.moonver})")
        return self.pipeline.run(registry, latest)

    def update(self, name: str, force: bool = False) -> InstallResult:
        """
        Install a specific toolchain.

        Args:
            name: Toolchain name
            force: Reinstall even if it is already current

        Raises:
            ToolchainNotFoundError: If the registry has no such toolchain
        """
        registry = self.registry()
        toolchain = registry.find(name)
        return self.pipeline.run(registry, toolchain, force=force)

    rollback = update
