"""
MultiMoon CLI argument parser.

This module implements the command-line interface for MultiMoon using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from multimoon import __version__
from multimoon.cli.utils import print_error

logger = logging.getLogger(__name__)

# (command, sub-command) -> "module:function"
COMMAND_MAP = {
    ("show", None): "multimoon.cli.commands.toolchain:run_show",
    ("update", None): "multimoon.cli.commands.toolchain:run_update_latest",
    ("update-self", None): "multimoon.cli.commands.update_self:run",
    ("toolchain", "show"): "multimoon.cli.commands.toolchain:run_show",
    ("toolchain", "list"): "multimoon.cli.commands.toolchain:run_list",
    ("toolchain", "update"): "multimoon.cli.commands.toolchain:run_update",
    ("toolchain", "rollback"): "multimoon.cli.commands.toolchain:run_rollback",
    ("core", "list"): "multimoon.cli.commands.core:run_list",
    ("core", "backup"): "multimoon.cli.commands.core:run_backup",
    ("core", "restore"): "multimoon.cli.commands.core:run_restore",
}


class CLI:
    """MultiMoon command-line interface."""

    def __init__(self):
        """Initialize CLI with argument parser."""
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """
        Create argument parser with all subcommands.

        Returns:
            Configured ArgumentParser instance
        """
        parser = argparse.ArgumentParser(
            prog="multimoon",
            description="MultiMoon - version manager for the MoonBit toolchain",
            epilog='Use "multimoon COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"MultiMoon {__version__}"
        )
        parser.add_argument(
            "--verbose", "-v", action="store_true", help="Enable verbose output"
        )
        parser.add_argument(
            "--quiet",
            "-q",
            action="store_true",
            help="Enable minimal output (errors only)",
        )
        parser.add_argument(
            "--registry",
            metavar="URL",
            help="MultiMoon registry URL (default: official registry)",
        )
        parser.add_argument(
            "--moonhome",
            type=Path,
            metavar="PATH",
            help="Installation path of MoonBit (default: ~/.moon)",
        )
        parser.add_argument(
            "--multimoonhome",
            type=Path,
            metavar="PATH",
            help="Data storage location of MultiMoon (default: ~/.multimoon)",
        )

        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        subparsers.add_parser(
            "show",
            help="Show current installed toolchain",
        )
        subparsers.add_parser(
            "update",
            help="Update MoonBit toolchain to latest version",
        )
        self._add_toolchain_command(subparsers)
        self._add_core_command(subparsers)
        subparsers.add_parser(
            "update-self",
            help="Show how to update MultiMoon itself",
        )

        return parser

    def _add_toolchain_command(self, subparsers):
        """Add 'toolchain' subcommand with its sub-commands."""
        parser = subparsers.add_parser(
            "toolchain",
            help="Manipulate MoonBit toolchains (show, list, update or rollback)",
        )
        toolchain_subparsers = parser.add_subparsers(
            dest="subcommand", help="Toolchain commands", metavar="SUBCOMMAND"
        )

        toolchain_subparsers.add_parser("show", help="Show current installed toolchain")
        toolchain_subparsers.add_parser("list", help="List all toolchains")

        for name, help_text in (
            ("update", "Update MoonBit toolchain to a specified version"),
            ("rollback", "Rollback MoonBit toolchain to a specified version (same as update)"),
        ):
            sub = toolchain_subparsers.add_parser(name, help=help_text)
            sub.add_argument("toolchain", metavar="TOOLCHAIN", help="Toolchain name")
            sub.add_argument(
                "--force",
                action="store_true",
                help="Reinstall even if the toolchain is currently installed",
            )

    def _add_core_command(self, subparsers):
        """Add 'core' subcommand with its sub-commands."""
        parser = subparsers.add_parser(
            "core",
            help="Manipulate the core library (list, backup or restore)",
        )
        core_subparsers = parser.add_subparsers(
            dest="subcommand", help="Core library commands", metavar="SUBCOMMAND"
        )

        core_subparsers.add_parser("list", help="List core library backups")

        backup = core_subparsers.add_parser("backup", help="Backup current core library")
        backup.add_argument(
            "name",
            nargs="?",
            metavar="NAME",
            help="Backup name (default: current date and time)",
        )

        restore = core_subparsers.add_parser("restore", help="Restore a core library backup")
        restore.add_argument("name", metavar="NAME", help="Backup name")

    def parse_args(self, args: Optional[List[str]] = None):
        """
        Parse command-line arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Parsed arguments namespace
        """
        return self.parser.parse_args(args)

    def run(self, args: Optional[List[str]] = None) -> int:
        """
        Run CLI with given arguments.

        Args:
            args: Arguments to parse (uses sys.argv if None)

        Returns:
            Exit code (0 for success, non-zero for error)
        """
        parsed_args = self.parse_args(args)

        self._configure_logging(parsed_args)

        if not parsed_args.command:
            self.parser.print_help()
            return 1

        try:
            return self._dispatch_command(parsed_args)
        except KeyboardInterrupt:
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except Exception as e:
            print_error(str(e))
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1

    def _configure_logging(self, args):
        """
        Configure logging based on verbose/quiet flags.

        Args:
            args: Parsed arguments with verbose/quiet flags
        """
        if args.verbose:
            level = logging.DEBUG
            format_str = "%(levelname)s [%(name)s] %(message)s"
        elif args.quiet:
            level = logging.ERROR
            format_str = "%(levelname)s: %(message)s"
        else:
            level = logging.INFO
            format_str = "%(message)s"

        logging.basicConfig(
            level=level,
            format=format_str,
            force=True,  # Reconfigure if already configured
        )

    def _dispatch_command(self, args) -> int:
        """
        Dispatch to appropriate command handler.

        Args:
            args: Parsed arguments with command (and subcommand) fields

        Returns:
            Exit code from command handler
        """
        key = (args.command, getattr(args, "subcommand", None))
        target = COMMAND_MAP.get(key)
        if not target:
            if key[1] is None:
                logger.error(f"No {args.command} sub-command specified")
                self.parser.parse_args([args.command, "--help"])
            else:
                logger.error(f"Unknown command: {' '.join(key)}")
            return 1

        module_name, function_name = target.split(":")
        module = importlib.import_module(module_name)
        return getattr(module, function_name)(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
