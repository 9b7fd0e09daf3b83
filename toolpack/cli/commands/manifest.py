"""
Manifest commands.

This module implements CLI commands for manifest maintenance:
- generate: Append the entry of a packaged archive to a manifest file
- publish: Append a manifest's entries to a publish root
"""

import logging

from toolpack.cli.utils import key_from_args, safe_print, settings_from_args
from toolpack.core.directory import MANIFEST_FILE_NAME
from toolpack.core.locking import LockManager
from toolpack.manifest.model import Manifest
from toolpack.manifest.publish import ManifestPublisher, generate_entry

logger = logging.getLogger(__name__)


def run_generate(args) -> int:
    """
    Describe a packaged archive and append it to a manifest file.

    Args:
        args: Parsed command-line arguments with:
            - profile, target, version, language: Key of the packaged archive
            - artifacts_dir: Directory the archive was packaged into
            - base_url: Optional release URL prefix
            - output: Manifest file to update

    Returns:
        Exit code (0 for success)
    """
    key = key_from_args(args)
    output = args.output or args.artifacts_dir / MANIFEST_FILE_NAME

    entry = generate_entry(args.artifacts_dir, key, base_url=args.base_url)
    manifest = Manifest.load_or_empty(output).append(entry)
    manifest.save(output)

    safe_print(f"✓ Added {key} to {output}")
    print(f"  location: {entry.location}")
    print(f"  sha256:   {entry.digest}")
    return 0


def run_publish(args) -> int:
    """
    Append every entry of a manifest file to a publish root.

    Args:
        args: Parsed command-line arguments with:
            - manifest: Manifest file to publish
            - root: Publish root (default: the local publish root)
            - base_url: Publish remote locations instead of copying archives
            - install_root: Install root used for the default root and locks

    Returns:
        Exit code (0 for success)
    """
    settings = settings_from_args(args)
    layout = settings.layout
    root = args.root or layout.local_root

    source = Manifest.load(args.manifest)
    publisher = ManifestPublisher(root, LockManager(layout.lock_dir))
    published = publisher.publish_manifest(source, base_url=args.base_url)

    safe_print(f"✓ Published {len(source)} entries to {publisher.manifest_path}")
    logger.debug(f"Publish root now holds {len(published)} entries")
    return 0
