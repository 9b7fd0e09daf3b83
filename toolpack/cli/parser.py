"""
Toolpack CLI argument parser.

This module implements the command-line interface for toolpack using argparse.
"""

import argparse
import importlib
import logging
import sys
from pathlib import Path
from typing import List, Optional

from toolpack.core.exceptions import OperationCancelled, ToolpackError
from toolpack.core.locking import LockTimeout
from toolpack.manifest.version import LOCAL_VERSION

# Get version from package
try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("toolpack")
except PackageNotFoundError:
    __version__ = "0.1.0"

logger = logging.getLogger(__name__)

PROFILE_CHOICES = ["dev", "release"]


class CLI:
    """Toolpack command-line interface."""

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
            prog="toolpack",
            description="toolpack - package, publish and install compiler toolchains",
            epilog='Use "toolpack COMMAND --help" for command-specific help',
            formatter_class=argparse.RawDescriptionHelpFormatter,
        )

        # Global options
        parser.add_argument(
            "--version", action="version", version=f"toolpack {__version__}"
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
            "--config",
            type=Path,
            metavar="PATH",
            help="Path to configuration file (default: ~/.toolpack/config.yaml)",
        )

        # Subcommands
        subparsers = parser.add_subparsers(
            dest="command", help="Available commands", metavar="COMMAND"
        )

        self._add_package_command(subparsers)
        self._add_manifest_command(subparsers)
        self._add_install_command(subparsers)
        self._add_list_command(subparsers)
        self._add_verify_command(subparsers)
        self._add_uninstall_command(subparsers)
        self._add_link_command(subparsers)
        self._add_version_command(subparsers)

        return parser

    # ------------------------------------------------------------------
    # Shared argument groups
    # ------------------------------------------------------------------

    def _add_key_arguments(
        self, parser, version_required: bool = False, follow_active: bool = False
    ):
        """
        Add --language/--profile/--target/--version.

        With follow_active, an omitted --version falls back to the active
        version (see 'toolpack version switch') before 'local'.
        """
        parser.add_argument(
            "--language",
            metavar="LANG",
            help="Language the toolchain serves (e.g., solidity)",
        )
        parser.add_argument(
            "--profile",
            choices=PROFILE_CHOICES,
            default="dev",
            metavar="PROFILE",
            help="Build profile (dev|release) [default: dev]",
        )
        parser.add_argument(
            "--target",
            metavar="TRIPLE",
            help="Target triple (default: host triple)",
        )
        if version_required:
            parser.add_argument(
                "--version",
                required=True,
                metavar="VERSION",
                help="Semantic version or 'local'",
            )
        elif follow_active:
            parser.add_argument(
                "--version",
                metavar="VERSION",
                help=f"Version (default: active version, else {LOCAL_VERSION})",
            )
        else:
            parser.add_argument(
                "--version",
                default=LOCAL_VERSION,
                metavar="VERSION",
                help=f"Version (default: {LOCAL_VERSION})",
            )

    def _add_install_root_argument(self, parser):
        parser.add_argument(
            "--install-root",
            type=Path,
            metavar="DIR",
            help="Install root (default: $TOOLPACK_INSTALL_ROOT or ~/.toolpack)",
        )

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _add_package_command(self, subparsers):
        """Add 'package' subcommand."""
        parser = subparsers.add_parser(
            "package",
            help="Package built binaries into an archive",
            description="Create a deterministic .tar.gz archive of toolchain binaries",
        )
        self._add_key_arguments(parser)
        parser.add_argument(
            "--output",
            "-o",
            type=Path,
            default=Path("dist"),
            metavar="DIR",
            help="Directory to write the archive into (default: dist)",
        )
        parser.add_argument(
            "--checksum-file",
            action="store_true",
            help="Also write <archive>.sha256",
        )
        parser.add_argument(
            "--local",
            action="store_true",
            help="Also publish the archive into the local publish root",
        )
        self._add_install_root_argument(parser)
        parser.add_argument(
            "--build-dir",
            type=Path,
            metavar="DIR",
            help="Package every executable in DIR/[TRIPLE/]<debug|release>",
        )
        parser.add_argument(
            "binaries",
            nargs="*",
            type=Path,
            metavar="BINARY",
            help="Executables to package",
        )

    def _add_manifest_command(self, subparsers):
        """Add 'manifest' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "manifest",
            help="Generate and publish manifests",
            description="Generate manifest entries and publish them to a publish root",
        )

        manifest_subparsers = parser.add_subparsers(
            dest="manifest_command", help="Manifest commands", metavar="COMMAND"
        )

        # manifest generate
        generate_parser = manifest_subparsers.add_parser(
            "generate",
            help="Add an entry for a packaged archive",
            description="Describe a packaged archive and append it to a manifest file",
        )
        self._add_key_arguments(generate_parser, version_required=True)
        generate_parser.add_argument(
            "--artifacts-dir",
            type=Path,
            default=Path("dist"),
            metavar="DIR",
            help="Directory holding packaged archives (default: dist)",
        )
        generate_parser.add_argument(
            "--base-url",
            metavar="URL",
            help="Release URL prefix the archive will be downloadable from",
        )
        generate_parser.add_argument(
            "--output",
            "-o",
            type=Path,
            metavar="MANIFEST",
            help="Manifest file to write (default: ARTIFACTS_DIR/manifest.yaml)",
        )

        # manifest publish
        publish_parser = manifest_subparsers.add_parser(
            "publish",
            help="Publish a manifest's entries",
            description="Append a manifest's entries to a publish root",
        )
        publish_parser.add_argument(
            "manifest", type=Path, metavar="MANIFEST", help="Manifest file to publish"
        )
        publish_parser.add_argument(
            "--root",
            type=Path,
            metavar="DIR",
            help="Publish root (default: INSTALL_ROOT/local)",
        )
        publish_parser.add_argument(
            "--base-url",
            metavar="URL",
            help="Publish remote locations under URL instead of copying archives",
        )
        self._add_install_root_argument(publish_parser)

    def _add_install_command(self, subparsers):
        """Add 'install' subcommand."""
        parser = subparsers.add_parser(
            "install",
            help="Install a toolchain",
            description="Resolve, download, verify and install a toolchain",
        )
        self._add_key_arguments(parser, follow_active=True)
        parser.add_argument(
            "--registry",
            metavar="SOURCE",
            help="Manifest file, directory or URL (default: $TOOLPACK_REGISTRY)",
        )
        self._add_install_root_argument(parser)

    def _add_list_command(self, subparsers):
        """Add 'list' subcommand."""
        parser = subparsers.add_parser(
            "list",
            help="List installed toolchains",
            description="Show toolchains installed under the install root",
        )
        self._add_install_root_argument(parser)

    def _add_verify_command(self, subparsers):
        """Add 'verify' subcommand."""
        parser = subparsers.add_parser(
            "verify",
            help="Verify an installed toolchain",
            description="Re-hash an installed toolchain's files against its install record",
        )
        self._add_key_arguments(parser, follow_active=True)
        self._add_install_root_argument(parser)

    def _add_uninstall_command(self, subparsers):
        """Add 'uninstall' subcommand."""
        parser = subparsers.add_parser(
            "uninstall",
            help="Remove an installed toolchain",
            description="Remove an installed toolchain from the install root",
        )
        self._add_key_arguments(parser, follow_active=True)
        self._add_install_root_argument(parser)

    def _add_link_command(self, subparsers):
        """Add 'link' subcommand."""
        parser = subparsers.add_parser(
            "link",
            help="Register a named manifest source",
            description=(
                "Register a publish root, manifest file or URL under a name that "
                "'install --registry NAME' accepts"
            ),
        )
        parser.add_argument("name", nargs="?", metavar="NAME", help="Source name")
        parser.add_argument(
            "source",
            nargs="?",
            metavar="SOURCE",
            help="Publish root directory, manifest file or http(s) URL",
        )
        action = parser.add_mutually_exclusive_group()
        action.add_argument(
            "--list", action="store_true", help="Show registered sources"
        )
        action.add_argument(
            "--remove", action="store_true", help="Unregister NAME"
        )

    def _add_version_command(self, subparsers):
        """Add 'version' subcommand with sub-subcommands."""
        parser = subparsers.add_parser(
            "version",
            help="Manage the active toolchain version",
            description="List installed versions and switch the active one",
        )

        version_subparsers = parser.add_subparsers(
            dest="version_command", help="Version commands", metavar="COMMAND"
        )

        # version list
        list_parser = version_subparsers.add_parser(
            "list",
            help="List installed versions",
            description="List installed versions, newest first, marking the active one",
        )
        self._add_install_root_argument(list_parser)

        # version switch
        switch_parser = version_subparsers.add_parser(
            "switch",
            help="Change the active version",
            description="Make an installed version the default for install, verify and uninstall",
        )
        switch_parser.add_argument(
            "target_version", metavar="VERSION", help="Installed version to activate"
        )
        self._add_install_root_argument(switch_parser)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

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
            Exit code: 0 for success, 1 for errors, 130 when cancelled
        """
        parsed_args = self.parse_args(args)

        # Configure logging
        self._configure_logging(parsed_args)

        # Check if command specified
        if not parsed_args.command:
            self.parser.print_help()
            return 1

        # Dispatch to command handler
        try:
            return self._dispatch_command(parsed_args)
        except (KeyboardInterrupt, OperationCancelled):
            logger.info("Operation cancelled by user")
            return 130  # Standard exit code for SIGINT
        except ToolpackError as e:
            logger.error(f"{e.kind}: {e}")
            if parsed_args.verbose:
                import traceback

                traceback.print_exc()
            return 1
        except LockTimeout as e:
            logger.error(f"Timed out waiting for publish lock {e.lock_file}")
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
            args: Parsed arguments with command field

        Returns:
            Exit code from command handler
        """
        # Special handling for commands with sub-commands
        if args.command == "manifest":
            return self._dispatch_manifest_command(args)
        if args.command == "version":
            return self._dispatch_version_command(args)

        # Command module mapping
        command_map = {
            "package": "toolpack.cli.commands.package",
            "install": "toolpack.cli.commands.install",
            "list": "toolpack.cli.commands.list",
            "verify": "toolpack.cli.commands.verify",
            "uninstall": "toolpack.cli.commands.uninstall",
            "link": "toolpack.cli.commands.link",
        }

        module_name = command_map.get(args.command)
        if not module_name:
            logger.error(f"Unknown command: {args.command}")
            return 1

        module = importlib.import_module(module_name)
        return module.run(args)

    def _dispatch_manifest_command(self, args) -> int:
        """
        Dispatch manifest sub-commands.

        Args:
            args: Parsed arguments with manifest_command field

        Returns:
            Exit code from command handler
        """
        if not getattr(args, "manifest_command", None):
            logger.error("No manifest sub-command specified")
            self.parser.parse_args(["manifest", "--help"])
            return 1

        from toolpack.cli.commands import manifest

        manifest_command_map = {
            "generate": manifest.run_generate,
            "publish": manifest.run_publish,
        }

        handler = manifest_command_map.get(args.manifest_command)
        if not handler:
            logger.error(f"Unknown manifest command: {args.manifest_command}")
            return 1

        return handler(args)

    def _dispatch_version_command(self, args) -> int:
        """
        Dispatch version sub-commands.

        Args:
            args: Parsed arguments with version_command field

        Returns:
            Exit code from command handler
        """
        if not getattr(args, "version_command", None):
            logger.error("No version sub-command specified")
            self.parser.parse_args(["version", "--help"])
            return 1

        from toolpack.cli.commands import version

        version_command_map = {
            "list": version.run_list,
            "switch": version.run_switch,
        }

        handler = version_command_map.get(args.version_command)
        if not handler:
            logger.error(f"Unknown version command: {args.version_command}")
            return 1

        return handler(args)


def main():
    """Main entry point for CLI."""
    cli = CLI()
    sys.exit(cli.run())


if __name__ == "__main__":
    main()
