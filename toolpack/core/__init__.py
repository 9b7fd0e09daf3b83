"""
Core functionality for toolpack.

This package contains the foundational modules that other components depend on:
the error taxonomy, content digests, the deterministic archive codec, filesystem
helpers, host triple detection, directory layout and publish locking.
"""

from .exceptions import (
    ToolpackError,
    InvalidArtifactKey,
    ConfigError,
    OperationCancelled,
    PackagingError,
    MissingBinary,
    IntegrityError,
    CorruptArchive,
    PathEscape,
    DigestMismatch,
    ManifestError,
    ManifestParseError,
    DuplicateKeyConflict,
    ResolutionError,
    NoMatchingArtifact,
    AmbiguousVersionConstraint,
    AmbiguousArtifact,
    NetworkError,
    NetworkTransient,
    NetworkFatal,
    FilesystemError,
    InstallError,
)

from .checksum import (
    digest,
    digest_file,
    is_valid_digest,
    StreamingHasher,
    write_checksum_file,
    read_checksum_file,
)

from .archive import archive, extract, list_members

from .directory import (
    get_default_home,
    InstallLayout,
    verify_directory_writable,
)

from .locking import LockManager, LockTimeout

from .platform import (
    TargetTriple,
    detect_host_triple,
    is_valid_triple,
    parse_triple,
    clear_platform_cache,
)

__all__ = [
    # Exceptions
    "ToolpackError",
    "InvalidArtifactKey",
    "ConfigError",
    "OperationCancelled",
    "PackagingError",
    "MissingBinary",
    "IntegrityError",
    "CorruptArchive",
    "PathEscape",
    "DigestMismatch",
    "ManifestError",
    "ManifestParseError",
    "DuplicateKeyConflict",
    "ResolutionError",
    "NoMatchingArtifact",
    "AmbiguousVersionConstraint",
    "AmbiguousArtifact",
    "NetworkError",
    "NetworkTransient",
    "NetworkFatal",
    "FilesystemError",
    "InstallError",
    # Checksum
    "digest",
    "digest_file",
    "is_valid_digest",
    "StreamingHasher",
    "write_checksum_file",
    "read_checksum_file",
    # Archive
    "archive",
    "extract",
    "list_members",
    # Directory
    "get_default_home",
    "InstallLayout",
    "verify_directory_writable",
    # Locking
    "LockManager",
    "LockTimeout",
    # Platform
    "TargetTriple",
    "detect_host_triple",
    "is_valid_triple",
    "parse_triple",
    "clear_platform_cache",
]
