"""
Semantic version parsing and precedence for artifact versions.

Artifact versions are either semantic versions (``1.2.0``, ``v2.0.0-beta.1``,
``1.0.0+build.5``) or the ``local`` sentinel produced by local-only
packaging. Precedence follows Semantic Versioning 2.0:
- numeric fields compare numerically
- a pre-release ranks below the matching release
- pre-release identifiers compare field by field (numeric < alphanumeric)
- build metadata is ignored for precedence
"""

import functools
import re
from typing import Optional, Tuple

LOCAL_VERSION = "local"
LATEST_VERSION = "latest"

_SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)"
    r"(?:-(?P<prerelease>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


class InvalidVersion(ValueError):
    """Raised when a string is not a valid semantic version."""

    pass


@functools.total_ordering
class Version:
    """
    Semantic version parser and comparator.

    Supports semantic versioning in format: [v]major.minor.patch[-pre][+build]
    Examples: "1.2.0", "v2.0.0-beta", "1.0.0-rc.1+build.7"

    Example:
        >>> Version("1.2.0") > Version("1.0.0")
        True
        >>> Version("2.0.0-beta") < Version("2.0.0")
        True
    """

    def __init__(self, version_string: str):
        """
        Parse version string.

        Args:
            version_string: Semantic version, optionally prefixed with 'v'

        Raises:
            InvalidVersion: If version format is invalid
        """
        if not isinstance(version_string, str):
            raise InvalidVersion(f"Version must be a string, got {version_string!r}")

        match = _SEMVER_RE.match(version_string.strip())
        if not match:
            raise InvalidVersion(
                f"Invalid version format: {version_string!r}. "
                f"Expected format: major.minor.patch[-prerelease][+build]"
            )

        self.original = version_string
        self.major = int(match.group("major"))
        self.minor = int(match.group("minor"))
        self.patch = int(match.group("patch"))
        prerelease = match.group("prerelease")
        self.prerelease: Tuple[str, ...] = tuple(prerelease.split(".")) if prerelease else ()
        self.build: Optional[str] = match.group("build")

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _precedence_key(self):
        # Releases sort after any pre-release of the same core version
        if not self.prerelease:
            pre = (1,)
        else:
            pre = (0,) + tuple(
                (0, int(part), "") if part.isdigit() else (1, 0, part)
                for part in self.prerelease
            )
        return (self.major, self.minor, self.patch, pre)

    def __eq__(self, other) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence_key() == other._precedence_key()

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._precedence_key() < other._precedence_key()

    def __hash__(self) -> int:
        return hash(self._precedence_key())

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            text += "-" + ".".join(self.prerelease)
        if self.build:
            text += "+" + self.build
        return text

    def __repr__(self) -> str:
        return f"Version('{self.original}')"


def is_valid_version(value) -> bool:
    """
    Check whether value is a usable artifact version.

    Surrounding whitespace is rejected rather than stripped, since the
    version becomes a directory name.

    Example:
        >>> is_valid_version("local"), is_valid_version("1.0.0"), is_valid_version("1.0")
        (True, True, False)
    """
    if value == LOCAL_VERSION:
        return True
    if not isinstance(value, str) or value != value.strip():
        return False
    try:
        Version(value)
        return True
    except InvalidVersion:
        return False


def parse_version(value: str) -> Optional[Version]:
    """Parse an artifact version, returning None for the local sentinel."""
    if value == LOCAL_VERSION:
        return None
    return Version(value)


def latest_sort_key(version: Version) -> tuple:
    """
    Ordering key used to pick the latest version.

    Any release outranks every pre-release, even a numerically higher one:
    with 1.0.0, 1.2.0 and 2.0.0-beta the latest is 1.2.0.
    """
    return (not version.is_prerelease, version)


__all__ = [
    "LOCAL_VERSION",
    "LATEST_VERSION",
    "InvalidVersion",
    "Version",
    "is_valid_version",
    "parse_version",
    "latest_sort_key",
]
