"""
Registering the MoonBit bin directory on the user's PATH.

On Unix the export line is appended to the rc file of the user's login
shell. On Windows the directory is prepended to the per-user `Path`
value in the registry. Callers treat failures as advisory: the
toolchain works without it, the user just has to set PATH manually.
"""

import logging
import os
from pathlib import Path
from typing import Mapping, Optional

from multimoon.core.exceptions import PathRegistrationError
from multimoon.core.filesystem import IS_WINDOWS

logger = logging.getLogger(__name__)

SHELL_RC_FILES = {
    "bash": ".bashrc",
    "zsh": ".zshrc",
    "fish": ".config/fish/config.fish",
}
DEFAULT_RC_FILE = ".profile"


def shell_config_path(home: Path, environ: Optional[Mapping[str, str]] = None) -> Path:
    """
    Get the rc file of the user's current shell.

    Raises:
        PathRegistrationError: If $SHELL is not set
    """
    environ = os.environ if environ is None else environ
    shell = environ.get("SHELL")
    if not shell:
        raise PathRegistrationError("cannot detect current shell")
    shell_name = Path(shell).name
    return home / SHELL_RC_FILES.get(shell_name, DEFAULT_RC_FILE)


def _export_line(bin_dir: str, rc_file: Path) -> str:
    if rc_file.name == "config.fish":
        return f'set -gx PATH "{bin_dir}" $PATH'
    return f'export PATH="{bin_dir}:$PATH"'


def register_unix(
    bin_dir: Path, home: Path, environ: Optional[Mapping[str, str]] = None
) -> bool:
    """
    Append `bin_dir` to PATH in the current shell's rc file.

    Args:
        bin_dir: Directory to add
        home: User home directory
        environ: Environment mapping (default: os.environ)

    Returns:
        True if the rc file was modified, False if it already mentions `bin_dir`

    Raises:
        PathRegistrationError: If the shell can't be detected or the file can't be updated
    """
    rc_file = shell_config_path(home, environ)
    path_str = str(bin_dir)

    try:
        content = rc_file.read_text(encoding="utf-8") if rc_file.exists() else ""
    except (OSError, UnicodeDecodeError) as e:
        raise PathRegistrationError(f"cannot read shell config file {rc_file}: {e}") from e

    if path_str in content:
        logger.info(f"{path_str} has already been configured in PATH of shell config {rc_file}.")
        return False

    logger.info(f"adding {path_str} to the PATH of current shell config: {rc_file}")
    try:
        rc_file.parent.mkdir(parents=True, exist_ok=True)
        with open(rc_file, "a", encoding="utf-8") as f:
            f.write(f"\n{_export_line(path_str, rc_file)}\n")
    except OSError as e:
        raise PathRegistrationError(f"cannot write shell config file {rc_file}: {e}") from e
    return True


def register_windows(bin_dir: Path) -> bool:
    """
    Prepend `bin_dir` to the per-user Path environment variable.

    Returns:
        True if the registry was modified, False if `bin_dir` was already present

    Raises:
        PathRegistrationError: If the registry can't be read or written
    """
    import winreg

    path_str = str(bin_dir)
    try:
        with winreg.OpenKey(
            winreg.HKEY_CURRENT_USER,
            "Environment",
            0,
            winreg.KEY_QUERY_VALUE | winreg.KEY_SET_VALUE,
        ) as env:
            try:
                current, value_type = winreg.QueryValueEx(env, "Path")
            except FileNotFoundError:
                current, value_type = "", winreg.REG_EXPAND_SZ

            if path_str in current:
                logger.info(f"{path_str} has already been configured in user PATH environment variable.")
                return False

            logger.info(f"adding {path_str} to user PATH environment variable")
            new_value = f"{path_str};{current}" if current else path_str
            winreg.SetValueEx(env, "Path", 0, value_type, new_value)
    except OSError as e:
        raise PathRegistrationError(f"cannot update registry: {e}") from e
    return True


def register_bin_path(
    bin_dir: Path, home: Path, environ: Optional[Mapping[str, str]] = None
) -> bool:
    """
    Make `bin_dir` available on the user's PATH for new shells.

    Returns:
        True if a change was made

    Raises:
        PathRegistrationError: If registration fails
    """
    if IS_WINDOWS:
        return register_windows(bin_dir)
    return register_unix(bin_dir, home, environ)
