"""
Manifest generation and publishing.

Packaging only produces archives. This module is the explicit second step
that turns archives into manifest entries and publishes them:

- ``generate_entry`` rebuilds the entry for an archive produced earlier,
  trusting its ``.sha256`` sidecar only after re-hashing the archive.
- ``ManifestPublisher`` copies archives into a publish root (local mode) or
  points entries at their release URLs (remote mode) and appends them to the
  root's manifest.yaml under a cross-process writer lock.

Conflicting republishes (same key, different digest) raise
DuplicateKeyConflict before anything is copied or saved.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

from toolpack.core.checksum import checksum_path, digest, digest_file, read_checksum_file
from toolpack.core.directory import MANIFEST_FILE_NAME
from toolpack.core.exceptions import DigestMismatch, FilesystemError, ToolpackError
from toolpack.core.filesystem import atomic_write, ensure_directory
from toolpack.core.locking import LockManager
from toolpack.fetch.local import LocalFetcher
from toolpack.manifest.model import ArtifactEntry, ArtifactKey, Manifest, resolve_location
from toolpack.packaging.packager import archive_name

logger = logging.getLogger(__name__)

ARTIFACTS_DIR_NAME = "artifacts"


def release_url(base_url: str, name: str) -> str:
    """Join a release base URL and an archive name."""
    return f"{base_url.rstrip('/')}/{name}"


def generate_entry(
    artifacts_dir: Union[str, Path],
    key: ArtifactKey,
    base_url: Optional[str] = None,
) -> ArtifactEntry:
    """
    Build the manifest entry for a previously packaged archive.

    Args:
        artifacts_dir: Directory the Packager wrote into
        key: Key of the packaged artifact
        base_url: Release URL prefix; when given the entry points there
            instead of at the local archive

    Returns:
        ArtifactEntry for the archive

    Raises:
        FilesystemError: If the archive does not exist
        DigestMismatch: If a ``.sha256`` sidecar disagrees with the archive

    Example:
        >>> generate_entry("dist", key, base_url="https://example.com/releases/download/v1.2.0")
        ArtifactEntry(key=..., location='https://example.com/.../x86_64-...-1.2.0.tar.gz', ...)
    """
    archive_path = Path(artifacts_dir) / archive_name(key)
    if not archive_path.is_file():
        raise FilesystemError(f"Archive not found: {archive_path}", key=key)

    actual = digest_file(archive_path)
    sidecar = checksum_path(archive_path)
    if sidecar.exists():
        try:
            recorded = read_checksum_file(sidecar)
        except ValueError as e:
            raise FilesystemError(str(e), key=key) from e
        if recorded != actual:
            raise DigestMismatch(recorded, actual, str(archive_path), key=key)

    location = release_url(base_url, archive_path.name) if base_url else str(archive_path.resolve())
    return ArtifactEntry(
        key=key, location=location, digest=actual, size=archive_path.stat().st_size
    )


class ManifestPublisher:
    """
    Publishes entries into a publish root.

    Layout of a publish root:
        <root>/manifest.yaml
        <root>/artifacts/<archive>.tar.gz   (local mode only)

    Attributes:
        publish_root: Directory holding the published manifest
        lock_manager: Provides the single-writer lock
    """

    def __init__(self, publish_root: Union[str, Path], lock_manager: LockManager):
        self.publish_root = Path(publish_root)
        self.lock_manager = lock_manager
        self._local = LocalFetcher()

    @property
    def manifest_path(self) -> Path:
        return self.publish_root / MANIFEST_FILE_NAME

    @property
    def artifacts_dir(self) -> Path:
        return self.publish_root / ARTIFACTS_DIR_NAME

    def publish(
        self,
        entries: Iterable[ArtifactEntry],
        base_url: Optional[str] = None,
        source_base: Optional[str] = None,
    ) -> Manifest:
        """
        Append entries to the publish root's manifest.

        In local mode (no base_url) each archive is copied into
        ``artifacts/`` after its digest is re-checked, and the published
        entry uses the relative location ``artifacts/<name>``. In remote
        mode the entry points at ``<base_url>/<name>`` and nothing is copied.

        Args:
            entries: Entries to publish
            base_url: Release URL prefix for remote mode
            source_base: Base that relative source locations resolve against

        Returns:
            The saved manifest

        Raises:
            DuplicateKeyConflict: If a key is already published with another digest
            DigestMismatch: If a local archive no longer matches its entry
            FilesystemError: If copying or saving fails
        """
        entries = list(entries)
        ensure_directory(self.publish_root)

        with self.lock_manager.publish_lock(self.publish_root):
            manifest = Manifest.load_or_empty(self.manifest_path)
            pending = []

            for entry in entries:
                name = archive_name(entry.key)
                if base_url:
                    published = entry.with_location(release_url(base_url, name))
                else:
                    published = entry.with_location(f"{ARTIFACTS_DIR_NAME}/{name}")

                before = len(manifest)
                manifest = manifest.append(published)
                if not base_url and len(manifest) > before:
                    pending.append((entry, name))

            for entry, name in pending:
                self._copy_archive(entry, name, source_base)

            manifest.save(self.manifest_path)

        logger.info(f"Published {len(entries)} entries to {self.manifest_path}")
        return manifest

    def publish_manifest(self, manifest: Manifest, base_url: Optional[str] = None) -> Manifest:
        """Publish every entry of another manifest into this root."""
        return self.publish(manifest.entries, base_url=base_url, source_base=manifest.base)

    def _copy_archive(self, entry: ArtifactEntry, name: str, source_base: Optional[str]) -> None:
        """Copy one verified archive into the artifacts directory."""
        location = resolve_location(entry.location, source_base)
        try:
            data = self._local.retrieve(location)
        except ToolpackError as e:
            e.with_key(entry.key)
            raise

        actual = digest(data)
        if actual != entry.digest:
            raise DigestMismatch(entry.digest, actual, location, key=entry.key)

        try:
            atomic_write(self.artifacts_dir / name, data)
        except FilesystemError as e:
            e.with_key(entry.key)
            raise
        logger.debug(f"Copied {location} to {self.artifacts_dir / name}")


__all__ = ["ARTIFACTS_DIR_NAME", "release_url", "generate_entry", "ManifestPublisher"]
