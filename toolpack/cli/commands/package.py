"""
Package command implementation.

Archives built toolchain binaries into a deterministic .tar.gz.
"""

import logging

from toolpack.cli.utils import format_size, safe_print, settings_from_args
from toolpack.core.exceptions import PackagingError
from toolpack.core.locking import LockManager
from toolpack.core.platform import detect_host_triple
from toolpack.manifest.publish import ManifestPublisher
from toolpack.packaging.packager import Packager, build_output_dir, collect_binaries

logger = logging.getLogger(__name__)


def run(args) -> int:
    """
    Run the package command.

    Args:
        args: Parsed command-line arguments with:
            - profile, target, version, language: Artifact key fields
            - output: Directory to write the archive into
            - checksum_file: Write a .sha256 sidecar
            - local: Publish into the local publish root afterwards
            - install_root: Install root holding the local publish root
            - build_dir: Collect executables from a build tree
            - binaries: Explicit executables

    Returns:
        Exit code (0 for success)

    Raises:
        PackagingError: If no binaries were given or found
    """
    target = args.target or detect_host_triple()

    binaries = list(args.binaries)
    if args.build_dir:
        # Cross builds nest under the triple; native builds do not.
        build_dir = build_output_dir(args.build_dir, args.profile, args.target)
        binaries.extend(collect_binaries(build_dir))

    if not binaries:
        raise PackagingError("No binaries to package. Pass BINARY paths or --build-dir")

    logger.debug(f"Packaging {len(binaries)} binaries for {target}")
    packager = Packager(args.output)
    entry = packager.package(
        args.profile,
        target,
        args.version,
        binaries,
        language=args.language,
        checksum_file=args.checksum_file,
    )

    safe_print(f"✓ Packaged {entry.key}")
    print(f"  archive: {entry.location}")
    print(f"  sha256:  {entry.digest}")
    print(f"  size:    {format_size(entry.size)}")

    if args.local:
        layout = settings_from_args(args).layout
        publisher = ManifestPublisher(layout.local_root, LockManager(layout.lock_dir))
        publisher.publish([entry])
        safe_print(f"✓ Published to {publisher.manifest_path}")
    return 0
