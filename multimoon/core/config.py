"""
Configuration for MultiMoon.

Configuration is resolved once at startup into an immutable
`ManagerConfig` value, which is then handed to every component that
needs to know where MoonBit lives or where the registry is.

Resolution order (first wins):
    1. Explicit arguments (command-line flags)
    2. Environment variables (MOON_HOME, MULTIMOON_HOME, MULTIMOON_REGISTRY)
    3. Optional YAML file at <multimoonhome>/config.yaml
    4. Built-in defaults (~/.moon, ~/.multimoon, official registry)

Directory Structure:
    <moonhome>/
        - bin/            : MoonBit executables
        - lib/core/       : MoonBit core library (contains moon.mod.json)

    <multimoonhome>/
        - core-backups/   : Named zip backups of lib/core
        - config.yaml     : Optional user configuration
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional
from urllib.parse import urlparse

import yaml

from multimoon.core.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_REGISTRY_URL = "https://multimoon.lopt.dev/"
CONFIG_FILE_NAME = "config.yaml"
CORE_MARKER_FILE = "moon.mod.json"

ENV_MOON_HOME = "MOON_HOME"
ENV_MULTIMOON_HOME = "MULTIMOON_HOME"
ENV_REGISTRY = "MULTIMOON_REGISTRY"


@dataclass(frozen=True)
class ManagerConfig:
    """
    Resolved MultiMoon configuration.

    Attributes:
        home: User home directory (used for shell config files)
        moonhome: MoonBit installation directory
        multimoonhome: MultiMoon data directory (backups, config)
        registry_url: Base URL of the toolchain registry (ends with '/')
        verbose: Whether verbose output was requested
    """

    home: Path
    moonhome: Path
    multimoonhome: Path
    registry_url: str = DEFAULT_REGISTRY_URL
    verbose: bool = False

    @property
    def bin_dir(self) -> Path:
        return self.moonhome / "bin"

    @property
    def lib_dir(self) -> Path:
        return self.moonhome / "lib"

    @property
    def core_dir(self) -> Path:
        return self.lib_dir / "core"

    @property
    def backups_dir(self) -> Path:
        return self.multimoonhome / "core-backups"

    @property
    def config_file(self) -> Path:
        return self.multimoonhome / CONFIG_FILE_NAME


def load_yaml_config(config_file: Path) -> Dict[str, Any]:
    """
    Load and parse an optional YAML configuration file.

    Args:
        config_file: Path to YAML configuration file

    Returns:
        Configuration dictionary (empty dict if file doesn't exist)

    Raises:
        ConfigError: If the file can't be read or isn't a YAML mapping
    """
    if not config_file.exists():
        logger.debug(f"Config file not found (optional): {config_file}")
        return {}

    logger.debug(f"Loading configuration from {config_file}")

    try:
        with open(config_file, "r", encoding="utf-8") as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_file}: {e}") from e
    except OSError as e:
        raise ConfigError(f"Failed to read {config_file}: {e}") from e

    config = config or {}
    if not isinstance(config, dict):
        raise ConfigError(f"Configuration in {config_file} must be a mapping")
    return config


def normalize_registry_url(url: str) -> str:
    """
    Validate a registry URL and make sure it ends with a slash.

    Raises:
        ConfigError: If the URL is not an absolute http(s) URL
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https") or not parsed.netloc:
        raise ConfigError(f"invalid registry url: {url}")
    return url if url.endswith("/") else url + "/"


def load_config(
    moonhome: Optional[Path] = None,
    multimoonhome: Optional[Path] = None,
    registry: Optional[str] = None,
    verbose: bool = False,
    home: Optional[Path] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> ManagerConfig:
    """
    Resolve the configuration for one MultiMoon invocation.

    Args:
        moonhome: MoonBit home override (--moonhome)
        multimoonhome: MultiMoon data directory override (--multimoonhome)
        registry: Registry URL override (--registry)
        verbose: Verbose output (--verbose)
        home: User home directory (default: Path.home())
        environ: Environment mapping (default: os.environ)

    Returns:
        ManagerConfig instance

    Raises:
        ConfigError: If the configuration file or registry URL is invalid

    Example:
        >>> config = load_config(verbose=True)
        >>> print(config.bin_dir)
        /home/user/.moon/bin
    """
    environ = os.environ if environ is None else environ
    home = Path(home) if home is not None else Path.home()

    if multimoonhome is None and environ.get(ENV_MULTIMOON_HOME):
        multimoonhome = Path(environ[ENV_MULTIMOON_HOME])
    multimoonhome = Path(multimoonhome) if multimoonhome else home / ".multimoon"

    file_config = load_yaml_config(multimoonhome / CONFIG_FILE_NAME)

    if moonhome is None:
        if environ.get(ENV_MOON_HOME):
            moonhome = Path(environ[ENV_MOON_HOME])
        elif file_config.get("moonhome"):
            moonhome = Path(str(file_config["moonhome"])).expanduser()
        else:
            moonhome = home / ".moon"

    if registry is None:
        registry = (
            environ.get(ENV_REGISTRY)
            or file_config.get("registry")
            or DEFAULT_REGISTRY_URL
        )

    config = ManagerConfig(
        home=home,
        moonhome=Path(moonhome),
        multimoonhome=multimoonhome,
        registry_url=normalize_registry_url(str(registry)),
        verbose=verbose or bool(file_config.get("verbose", False)),
    )
    logger.debug(f"Resolved configuration: {config}")
    return config
