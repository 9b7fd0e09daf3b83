"""
List command implementation.

Shows toolchains installed under the install root. Toolchains of the active
version are marked with '*'.
"""

import logging

from toolpack.cli.utils import settings_from_args
from toolpack.install.installer import Installer

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the list command.

    Args:
        args: Parsed command-line arguments with install_root

    Returns:
        Exit code (0 for success)
    """
    settings = settings_from_args(args)
    installer = Installer(settings.install_root)

    records = installer.list_installed()
    if not records:
        print(f"No toolchains installed in {settings.install_root}")
        return 0

    active = settings.active_version
    print(f"{len(records)} toolchain(s) installed:\n")
    for record in records:
        marker = "*" if record.key.version == active else " "
        installed_at = record.installed_at.strftime("%Y-%m-%d %H:%M")
        print(f"{marker} {str(record.key):<50} {installed_at}  {record.install_dir}")

    if active:
        print(f"\n* active version: {active}")
    return 0
