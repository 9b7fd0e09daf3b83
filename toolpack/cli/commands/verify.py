"""
Verify command implementation.

Re-verifies an installed toolchain against the digests recorded at install time.
"""

import logging

from toolpack.cli.utils import key_from_args, safe_print, settings_from_args
from toolpack.install.installer import Installer

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the verify command.

    Args:
        args: Parsed command-line arguments with key fields and install_root

    Returns:
        Exit code (0 when every file matches, 1 otherwise)
    """
    settings = settings_from_args(args)
    key = key_from_args(args, settings)
    installer = Installer(settings.install_root)

    result = installer.verify_installed(key)
    if result.ok:
        safe_print(f"✓ {key} verified")
        return 0

    safe_print(f"✗ {key} failed verification:")
    for issue in result.issues:
        print(f"  - {issue}")
    return 1
