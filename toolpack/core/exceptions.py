"""
Centralized exception hierarchy for toolpack.

This module defines all custom exceptions used across the distribution
pipeline (packaging, manifests, fetching, installation) so callers can
handle failures by kind instead of by message.

Every error can carry the ArtifactKey it concerns. When a key is attached
it is rendered as part of ``str(error)`` so user-facing reports always say
which artifact failed and how.
"""

from typing import Optional


# ============================================================================
# Base Exceptions
# ============================================================================


class ToolpackError(Exception):
    """Base exception for all toolpack errors."""

    def __init__(self, message: str = "", key=None):
        self.message = message
        self.key = key
        super().__init__(message)

    @property
    def kind(self) -> str:
        """Error kind reported to users (the class name)."""
        return type(self).__name__

    def with_key(self, key) -> "ToolpackError":
        """Attach an ArtifactKey if none is set yet and return self."""
        if self.key is None:
            self.key = key
        return self

    def __str__(self) -> str:
        if self.key is None:
            return self.message
        return f"{self.message} [artifact: {self.key}]"


class InvalidArtifactKey(ToolpackError, ValueError):
    """Raised when an ArtifactKey field fails validation."""

    pass


class ConfigError(ToolpackError):
    """Raised when the configuration file cannot be read or is malformed."""

    pass


class OperationCancelled(ToolpackError):
    """Raised when a caller aborts a fetch or extraction in progress."""

    pass


# ============================================================================
# Packaging Exceptions
# ============================================================================


class PackagingError(ToolpackError):
    """Base exception for packaging errors."""

    pass


class MissingBinary(PackagingError):
    """Raised when a binary to package does not exist or is not executable."""

    def __init__(self, path, reason: str = "does not exist", key=None):
        self.path = path
        self.reason = reason
        super().__init__(f"Binary {path} {reason}", key=key)


# ============================================================================
# Integrity Exceptions (never retried, never downgraded)
# ============================================================================


class IntegrityError(ToolpackError):
    """Base exception for integrity violations."""

    pass


class CorruptArchive(IntegrityError):
    """Raised when a byte stream is not a valid archive."""

    pass


class PathEscape(IntegrityError):
    """Raised when an archive member would resolve outside its destination."""

    def __init__(self, member: str, destination=None, key=None):
        self.member = member
        self.destination = destination
        msg = f"Archive member escapes destination: {member!r}"
        if destination is not None:
            msg += f" (destination: {destination})"
        super().__init__(msg, key=key)


class DigestMismatch(IntegrityError):
    """Raised when retrieved bytes do not hash to the expected digest."""

    def __init__(self, expected: str, actual: str, location: str = "", key=None):
        self.expected = expected
        self.actual = actual
        self.location = location
        msg = f"Digest mismatch: expected {expected}, got {actual}"
        if location:
            msg += f" ({location})"
        super().__init__(msg, key=key)


# ============================================================================
# Manifest Exceptions
# ============================================================================


class ManifestError(ToolpackError):
    """Base exception for manifest errors."""

    pass


class ManifestParseError(ManifestError):
    """Raised when a manifest document violates the schema."""

    def __init__(self, message: str, source: Optional[str] = None, key=None):
        self.source = source
        if source:
            message = f"{source}: {message}"
        super().__init__(message, key=key)


class DuplicateKeyConflict(ManifestError):
    """Raised when an entry reuses a published key with a different digest."""

    def __init__(self, key, existing_digest: str, new_digest: str):
        self.existing_digest = existing_digest
        self.new_digest = new_digest
        super().__init__(
            f"Key already published with digest {existing_digest}, "
            f"refusing digest {new_digest}",
            key=key,
        )


# ============================================================================
# Resolution Exceptions
# ============================================================================


class ResolutionError(ToolpackError):
    """Base exception for manifest resolution errors."""

    pass


class NoMatchingArtifact(ResolutionError):
    """Raised when no manifest entry satisfies a request."""

    pass


class AmbiguousVersionConstraint(ResolutionError):
    """Raised when a version constraint is neither a version nor a sentinel."""

    def __init__(self, constraint: str, key=None):
        self.constraint = constraint
        super().__init__(
            f"Version constraint {constraint!r} is not a semantic version, "
            f"'latest' or 'local'",
            key=key,
        )


class AmbiguousArtifact(ResolutionError):
    """Raised when an unconstrained language matches several artifacts."""

    pass


# ============================================================================
# Network Exceptions
# ============================================================================


class NetworkError(ToolpackError):
    """Base exception for artifact retrieval errors."""

    pass


class NetworkTransient(NetworkError):
    """Raised for retryable failures (timeout, connection reset, 5xx)."""

    pass


class NetworkFatal(NetworkError):
    """Raised for non-retryable failures or when retries are exhausted."""

    pass


# ============================================================================
# Filesystem / Install Exceptions
# ============================================================================


class FilesystemError(ToolpackError):
    """Raised on permission, disk-full and similar filesystem failures."""

    pass


class InstallError(ToolpackError):
    """Raised for installer state errors."""

    pass


__all__ = [
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
]
