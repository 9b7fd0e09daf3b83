"""
Install command implementation.

Resolves a toolchain in the configured registry and installs it.
"""

import logging

from toolpack.cli.utils import (
    create_installer,
    requested_version,
    safe_print,
    settings_from_args,
)
from toolpack.core.platform import detect_host_triple

logger = logging.getLogger(__name__)


def _report_state(attempt) -> None:
    logger.info(f"[{attempt.state.value}] {attempt.key or attempt.request}")


def run(args) -> int:
    """
    Run the install command.

    Args:
        args: Parsed command-line arguments with:
            - language, profile, target, version: Request to resolve
              (version defaults to the active version, then 'local')
            - registry: Manifest source override
            - install_root: Install root override

    Returns:
        Exit code (0 for success)
    """
    settings = settings_from_args(args)
    installer = create_installer(settings, on_state=_report_state)

    installed = installer.install(
        language=args.language,
        target=args.target or detect_host_triple(),
        profile=args.profile,
        version_constraint=requested_version(args, settings),
    )

    safe_print(f"✓ {installed.key} installed")
    print(f"  location: {installed.install_dir}")
    return 0
