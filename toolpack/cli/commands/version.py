"""
Version command implementation.

Lists the versions installed under the install root and persists the active
version in config.yaml.
"""

import logging
from typing import List

from toolpack.cli.utils import safe_print, settings_from_args
from toolpack.config.settings import update_config_file
from toolpack.core.exceptions import ConfigError
from toolpack.install.installer import Installer
from toolpack.manifest.version import is_valid_version, parse_version

logger = logging.getLogger(__name__)


def installed_versions(installer: Installer) -> List[str]:
    """
    Versions with at least one complete installation, newest first.

    'local' sorts before every released version.
    """
    versions = {record.key.version for record in installer.list_installed()}

    def order(value):
        parsed = parse_version(value)
        return (parsed is None, parsed)

    return sorted(versions, key=order, reverse=True)


def run_list(args) -> int:
    """
    Run the version list command.

    Args:
        args: Parsed command-line arguments with install_root

    Returns:
        Exit code (0 for success)
    """
    settings = settings_from_args(args)
    versions = installed_versions(Installer(settings.install_root))

    if not versions:
        print(f"No toolchains installed in {settings.install_root}")
        return 0

    for value in versions:
        if value == settings.active_version:
            print(f"* {value} (active)")
        else:
            print(f"  {value}")

    if settings.active_version and settings.active_version not in versions:
        logger.warning(f"Active version {settings.active_version} is not installed")
    return 0


def run_switch(args) -> int:
    """
    Run the version switch command.

    Args:
        args: Parsed command-line arguments with:
            - target_version: Version to activate
            - install_root: Install root override

    Returns:
        Exit code (0 for success)

    Raises:
        ConfigError: If the version is malformed or not installed
    """
    settings = settings_from_args(args)
    target = args.target_version.strip()

    if not is_valid_version(target):
        raise ConfigError(f"Invalid version {target!r} (expected semantic version or 'local')")

    versions = installed_versions(Installer(settings.install_root))
    if target not in versions:
        raise ConfigError(
            f"Version {target} is not installed in {settings.install_root}"
        )

    if target == settings.active_version:
        print(f"{target} is already the active version")
        return 0

    update_config_file(settings.config_path, active_version=target)
    safe_print(f"✓ Switched to version {target}")
    return 0
