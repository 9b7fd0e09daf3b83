"""
Uninstall command implementation.

Removes an installed toolchain from the install root.
"""

import logging

from toolpack.cli.utils import key_from_args, safe_print, settings_from_args
from toolpack.install.installer import Installer

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the uninstall command.

    Args:
        args: Parsed command-line arguments with key fields and install_root

    Returns:
        Exit code (0 when removed, 1 when not installed)
    """
    settings = settings_from_args(args)
    key = key_from_args(args, settings)
    installer = Installer(settings.install_root)

    if not installer.uninstall(key):
        print(f"{key} is not installed")
        return 1

    safe_print(f"✓ Removed {key}")
    return 0
