"""
Packager: turn built toolchain binaries into a versioned artifact.

Packaging produces exactly one archive per (language?, target, profile,
version) and returns the ArtifactEntry describing it. It never touches a
manifest; publishing the entry is a separate, explicit step so a failed
packaging run can never leave a manifest pointing at a missing archive.

Features:
- Validates every binary exists and is executable
- Archives binaries by file name only (no absolute path leakage)
- Deterministic output name and byte-identical output for identical input
- Optional ``.sha256`` sidecar for release uploads
- Discovery of executables in a build output directory
"""

import logging
from pathlib import Path
from typing import Iterable, List, Optional, Union

from toolpack.core.archive import ARCHIVE_SUFFIX, archive
from toolpack.core.checksum import digest, write_checksum_file
from toolpack.core.exceptions import FilesystemError, MissingBinary, PackagingError
from toolpack.core.filesystem import atomic_write, is_executable
from toolpack.manifest.model import ArtifactEntry, ArtifactKey, Profile

logger = logging.getLogger(__name__)


def archive_name(key: ArtifactKey) -> str:
    """
    Deterministic archive file name for a key.

    Example:
        >>> archive_name(ArtifactKey(None, "release", "x86_64-unknown-linux-gnu", "1.2.0"))
        'x86_64-unknown-linux-gnu-release-1.2.0.tar.gz'
    """
    return f"{key.slug}-{key.version}{ARCHIVE_SUFFIX}"


def build_output_dir(
    target_dir: Union[str, Path], profile, target: Optional[str] = None
) -> Path:
    """
    Locate the build output directory for a profile.

    The dev profile builds into ``debug/``, release into ``release/``;
    cross builds nest under the target triple.

    Example:
        >>> build_output_dir("target", "dev")
        PosixPath('target/debug')
        >>> build_output_dir("target", "release", "aarch64-apple-darwin")
        PosixPath('target/aarch64-apple-darwin/release')
    """
    base = Path(target_dir)
    if target:
        base = base / target
    return base / Profile.parse(profile).output_dir


def collect_binaries(build_dir: Union[str, Path]) -> List[Path]:
    """
    List executables directly inside a build output directory.

    Args:
        build_dir: Directory to scan (not recursive)

    Returns:
        Executable files sorted by name

    Raises:
        PackagingError: If build_dir is not a directory
    """
    build_dir = Path(build_dir)
    if not build_dir.is_dir():
        raise PackagingError(f"Build output directory not found: {build_dir}")

    binaries = sorted(
        (path for path in build_dir.iterdir() if is_executable(path)),
        key=lambda p: p.name,
    )
    logger.debug(f"Found {len(binaries)} executables in {build_dir}")
    return binaries


class Packager:
    """
    Packages binaries into archives under one output directory.

    Example:
        >>> packager = Packager(Path("dist"))
        >>> entry = packager.package("release", "x86_64-unknown-linux-gnu", "1.2.0",
        ...                          [Path("target/release/solc")])
        >>> entry.location
        '/work/dist/x86_64-unknown-linux-gnu-release-1.2.0.tar.gz'
    """

    def __init__(self, output_dir: Union[str, Path]):
        self.output_dir = Path(output_dir)

    def package(
        self,
        profile,
        target: str,
        version: str,
        binary_paths: Iterable[Union[str, Path]],
        language: Optional[str] = None,
        checksum_file: bool = False,
    ) -> ArtifactEntry:
        """
        Archive binaries and describe the result.

        Args:
            profile: Build profile ('dev' or 'release')
            target: Target triple
            version: Semantic version or 'local'
            binary_paths: Executables to include
            language: Optional language the toolchain serves
            checksum_file: Also write ``<archive>.sha256``

        Returns:
            ArtifactEntry whose location is the archive's absolute path

        Raises:
            InvalidArtifactKey: If profile, target, version or language is invalid
            MissingBinary: If a binary does not exist or is not executable
            PackagingError: If no binaries are given or two share a name
            FilesystemError: If the archive cannot be written
        """
        key = ArtifactKey(language=language, profile=profile, target=target, version=version)
        files = self._read_binaries(binary_paths, key)

        data = archive(files)
        archive_digest = digest(data)
        destination = self.output_dir / archive_name(key)

        try:
            atomic_write(destination, data)
            if checksum_file:
                write_checksum_file(destination, archive_digest)
        except FilesystemError as e:
            e.with_key(key)
            raise

        logger.info(f"Packaged {len(files)} binaries for {key} into {destination}")
        return ArtifactEntry(
            key=key,
            location=str(destination.resolve()),
            digest=archive_digest,
            size=len(data),
        )

    def _read_binaries(self, binary_paths, key: ArtifactKey) -> List[tuple]:
        """Validate binaries and read them as (archive name, bytes) pairs."""
        files = []
        names = set()
        for raw_path in binary_paths:
            path = Path(raw_path)
            if not path.exists():
                raise MissingBinary(path, "does not exist", key=key)
            if not is_executable(path):
                raise MissingBinary(path, "is not an executable file", key=key)
            if path.name in names:
                raise PackagingError(f"Two binaries are named {path.name}", key=key)
            names.add(path.name)

            try:
                files.append((path.name, path.read_bytes()))
            except OSError as e:
                raise FilesystemError(f"Failed to read binary {path}: {e}", key=key) from e

        if not files:
            raise PackagingError("No binaries to package", key=key)
        return files


__all__ = ["archive_name", "build_output_dir", "collect_binaries", "Packager"]
