"""
Content digests for toolpack artifacts.

The digest is the single integrity anchor between publishing and
installation. It is always SHA-256 over the final byte stream, rendered as
lowercase hex, so identical bytes produce identical digests on every
platform regardless of file metadata.

Also provides:
- Incremental hashing for streamed downloads
- ``.sha256`` sidecar files written next to release archives
"""

import hashlib
import logging
import re
from pathlib import Path
from typing import Union

from toolpack.core.filesystem import atomic_write

logger = logging.getLogger(__name__)

DIGEST_ALGORITHM = "sha256"
CHECKSUM_SUFFIX = ".sha256"

_DIGEST_RE = re.compile(r"^[0-9a-fA-F]{64}$")

_CHUNK_SIZE = 65536


def digest(data: bytes) -> str:
    """
    Compute the content digest of a byte string.

    Args:
        data: Bytes to hash

    Returns:
        Lowercase hex SHA-256 digest

    Example:
        >>> digest(b"")
        'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
    """
    return hashlib.sha256(data).hexdigest()


def digest_file(file_path: Union[str, Path]) -> str:
    """
    Compute the content digest of a file without loading it whole.

    Args:
        file_path: File to hash

    Returns:
        Lowercase hex SHA-256 digest
    """
    hasher = StreamingHasher()
    with open(file_path, "rb") as f:
        while chunk := f.read(_CHUNK_SIZE):
            hasher.update(chunk)
    return hasher.finalize()


def is_valid_digest(value) -> bool:
    """Return True if value is a 64 character hex string."""
    return isinstance(value, str) and bool(_DIGEST_RE.match(value))


def digests_equal(expected: str, actual: str) -> bool:
    """Compare two hex digests case-insensitively."""
    return expected.lower() == actual.lower()


class StreamingHasher:
    """Compute the digest incrementally for streaming downloads."""

    def __init__(self):
        self.hasher = hashlib.new(DIGEST_ALGORITHM)
        self.size = 0

    def update(self, data: bytes):
        """Add data to hash computation."""
        self.hasher.update(data)
        self.size += len(data)

    def finalize(self) -> str:
        """Get final hash value as hex string."""
        return self.hasher.hexdigest()

    def verify(self, expected_hash: str) -> bool:
        """
        Check if computed hash matches expected value.

        Args:
            expected_hash: Expected hash value (hex string)

        Returns:
            True if hashes match, False otherwise
        """
        return digests_equal(expected_hash, self.finalize())


# ============================================================================
# Checksum sidecar files
# ============================================================================


def checksum_path(archive_path: Union[str, Path]) -> Path:
    """Return the sidecar path for an archive (``<archive>.sha256``)."""
    archive_path = Path(archive_path)
    return archive_path.with_name(archive_path.name + CHECKSUM_SUFFIX)


def write_checksum_file(archive_path: Union[str, Path], value: str) -> Path:
    """
    Write the ``.sha256`` sidecar for an archive.

    Args:
        archive_path: Archive the checksum belongs to
        value: Hex digest of the archive

    Returns:
        Path of the written sidecar file

    Raises:
        ValueError: If value is not a valid digest
    """
    if not is_valid_digest(value):
        raise ValueError(f"Invalid digest: {value!r}")

    path = checksum_path(archive_path)
    atomic_write(path, value.lower() + "\n")
    logger.debug(f"Wrote checksum file {path}")
    return path


def read_checksum_file(path: Union[str, Path]) -> str:
    """
    Read a digest from a ``.sha256`` sidecar file.

    Accepts both the bare digest format and the ``<digest>  <filename>``
    format produced by ``sha256sum``.

    Args:
        path: Sidecar file path

    Returns:
        Lowercase hex digest

    Raises:
        ValueError: If the file has the wrong suffix or holds no valid digest
    """
    path = Path(path)
    if path.suffix != CHECKSUM_SUFFIX:
        raise ValueError(f"Not a checksum file (expected {CHECKSUM_SUFFIX}): {path}")

    content = path.read_text(encoding="utf-8").strip()
    if not content:
        raise ValueError(f"Checksum file is empty: {path}")

    value = content.split()[0]
    if not is_valid_digest(value):
        raise ValueError(f"Checksum file holds an invalid digest: {path}")

    return value.lower()


__all__ = [
    "DIGEST_ALGORITHM",
    "CHECKSUM_SUFFIX",
    "digest",
    "digest_file",
    "is_valid_digest",
    "digests_equal",
    "StreamingHasher",
    "checksum_path",
    "write_checksum_file",
    "read_checksum_file",
]
