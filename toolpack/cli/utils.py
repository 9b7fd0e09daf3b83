"""
Shared utilities for CLI commands.

Provides common functionality used across multiple CLI commands to
eliminate duplication and ensure consistent behavior.
"""

import logging
from typing import Optional

from toolpack.config.settings import Settings, load_settings
from toolpack.core.platform import detect_host_triple
from toolpack.fetch.fetcher import Fetcher
from toolpack.fetch.registry import RegistryClient
from toolpack.fetch.remote import RemoteFetcher
from toolpack.install.installer import Installer
from toolpack.manifest.model import ArtifactKey
from toolpack.manifest.version import LOCAL_VERSION

logger = logging.getLogger(__name__)


# ============================================================================
# Settings and Components
# ============================================================================


def settings_from_args(args) -> Settings:
    """
    Resolve settings for a parsed command line.

    Command-specific flags (--install-root, --registry) override the
    environment and the config file.

    Args:
        args: Parsed command-line arguments

    Returns:
        Resolved Settings
    """
    return load_settings(
        config_file=getattr(args, "config", None),
        install_root=getattr(args, "install_root", None),
        registry=getattr(args, "registry", None),
    )


def create_fetcher(settings: Settings) -> Fetcher:
    """Build a Fetcher whose remote transport uses the configured retry policy."""
    remote = RemoteFetcher(
        timeout=settings.fetch.timeout,
        max_retries=settings.fetch.max_retries,
        backoff_factor=settings.fetch.backoff_factor,
    )
    return Fetcher(remote=remote)


def create_installer(settings: Settings, on_state=None) -> Installer:
    """Build an Installer wired to the configured registry."""
    fetcher = create_fetcher(settings)
    registry = RegistryClient(settings.registry, fetcher=fetcher)
    return Installer(
        settings.install_root, fetcher=fetcher, registry=registry, on_state=on_state
    )


def requested_version(args, settings: Optional[Settings] = None) -> str:
    """
    Version named on the command line.

    Without --version, the active version from settings is used, then
    'local'.
    """
    if args.version:
        return args.version
    if settings is not None and settings.active_version:
        return settings.active_version
    return LOCAL_VERSION


def key_from_args(args, settings: Optional[Settings] = None) -> ArtifactKey:
    """
    Build the artifact key named by --language/--profile/--target/--version.

    Raises:
        InvalidArtifactKey: If any field is invalid
    """
    return ArtifactKey(
        language=args.language,
        profile=args.profile,
        target=args.target or detect_host_triple(),
        version=requested_version(args, settings),
    )


# ============================================================================
# User Interface / Output Formatting
# ============================================================================


def safe_print(message: str, file=None):
    """
    Print message with safe encoding handling for Windows console.

    Falls back to ASCII-safe characters if Unicode symbols can't be encoded.

    Args:
        message: Message to print
        file: Output file (default: stdout)
    """
    try:
        print(message, file=file)
    except UnicodeEncodeError:
        safe_message = (
            message.replace("✓", "[OK]")
            .replace("✗", "[FAIL]")
            .replace("⚠", "WARNING:")
        )
        print(safe_message, file=file)


def format_size(size: Optional[int]) -> str:
    """Human readable byte count."""
    if size is None:
        return "-"
    value = float(size)
    for unit in ("B", "KiB", "MiB", "GiB"):
        if value < 1024 or unit == "GiB":
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{size} B"


__all__ = [
    "settings_from_args",
    "create_fetcher",
    "create_installer",
    "requested_version",
    "key_from_args",
    "safe_print",
    "format_size",
]
