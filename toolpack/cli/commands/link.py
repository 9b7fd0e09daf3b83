"""
Link command implementation.

Registers publish roots, manifest files and registry URLs under short names
in config.yaml so ``toolpack install --registry NAME`` can resolve from them.
"""

import logging
from pathlib import Path

from toolpack.cli.utils import safe_print, settings_from_args
from toolpack.config.settings import is_valid_source_name, remove_source, set_source
from toolpack.core.exceptions import ConfigError
from toolpack.fetch.registry import RegistryClient

logger = logging.getLogger(__name__)


def _normalize_source(source: str) -> str:
    """
    Return the location to store for source.

    URLs are kept verbatim. Local sources must already hold a readable
    manifest and are stored as absolute paths.
    """
    client = RegistryClient(source)
    if client.is_remote:
        return source

    path = Path(source).expanduser().resolve()
    client = RegistryClient(path)
    manifest = client.load()
    logger.debug(f"{client.manifest_location()} holds {len(manifest)} entries")
    return str(path)


def _print_sources(settings) -> int:
    if not settings.sources:
        print("No linked sources")
        return 0
    for name, location in sorted(settings.sources.items()):
        marker = "*" if settings.registry == location else " "
        print(f"{marker} {name:<20} {location}")
    return 0


def run(args) -> int:
    """
    Run the link command.

    Args:
        args: Parsed command-line arguments with:
            - name: Source name
            - source: Publish root, manifest file or URL to register
            - list: Show registered sources instead
            - remove: Unregister name instead

    Returns:
        Exit code (0 for success, 1 on invalid usage)

    Raises:
        ConfigError: If the name is invalid or unknown
        FilesystemError, ManifestParseError: If a local source has no
            readable manifest
    """
    settings = settings_from_args(args)

    if args.list:
        return _print_sources(settings)

    if not args.name:
        logger.error("NAME is required (or use --list)")
        return 1
    if not is_valid_source_name(args.name):
        raise ConfigError(
            f"Invalid source name {args.name!r}: use lowercase letters, digits, '_' and '-'"
        )

    if args.remove:
        location = remove_source(settings.config_path, args.name)
        safe_print(f"✓ Unlinked {args.name} ({location})")
        return 0

    if not args.source:
        logger.error("SOURCE is required when linking")
        return 1

    location = _normalize_source(args.source)
    previous = set_source(settings.config_path, args.name, location)

    if previous and previous != location:
        logger.info(f"Replaced {args.name}: {previous}")
    safe_print(f"✓ Linked {args.name} -> {location}")
    print(f"  install with: toolpack install --registry {args.name}")
    return 0
