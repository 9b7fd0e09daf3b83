"""
Manifest data model.

The manifest is the catalog of published artifacts: an ordered list of
entries mapping an ArtifactKey (language?, profile, target, version) to the
archive location and its integrity digest.

Manifest document format (YAML, fields always written in this order):

    schema: 1
    entries:
    - language: solidity        # omitted when the artifact has no language
      profile: release
      target: x86_64-unknown-linux-gnu
      version: 1.2.0
      location: https://example.com/releases/1.2.0/solidity-...tar.gz
      digest: 9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08
      size: 10240

Unknown extra fields are tolerated on load so newer writers stay readable.
A Manifest object is immutable: ``append`` returns a new manifest.
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path, PurePosixPath
from typing import Any, Dict, Iterable, Iterator, List, Optional, Tuple, Union
from urllib.parse import urlparse

import yaml

from toolpack.core.checksum import is_valid_digest
from toolpack.core.exceptions import (
    DuplicateKeyConflict,
    FilesystemError,
    InvalidArtifactKey,
    ManifestParseError,
)
from toolpack.core.filesystem import atomic_write
from toolpack.core.platform import is_valid_triple
from toolpack.manifest.version import is_valid_version

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

LANGUAGE_PATTERN = re.compile(r"^[a-z0-9][a-z0-9_+.]*$")

REQUIRED_FIELDS = ("profile", "target", "version", "location", "digest", "size")


# ============================================================================
# Keys
# ============================================================================


class Profile(str, Enum):
    """Build profile of an artifact."""

    DEV = "dev"
    RELEASE = "release"

    @property
    def output_dir(self) -> str:
        """Name of the build output directory for this profile."""
        return "debug" if self is Profile.DEV else "release"

    @classmethod
    def parse(cls, value: Union[str, "Profile"]) -> "Profile":
        """
        Convert a string to a Profile.

        Raises:
            InvalidArtifactKey: If value is not a known profile
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            valid = ", ".join(p.value for p in cls)
            raise InvalidArtifactKey(f"Invalid profile {value!r} (expected one of: {valid})")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class ArtifactKey:
    """
    Identity of one buildable artifact.

    Attributes:
        language: Optional language the toolchain serves
        profile: Build profile
        target: Target triple (arch-vendor-os[-abi])
        version: Semantic version or the 'local' sentinel
    """

    language: Optional[str]
    profile: Profile
    target: str
    version: str

    def __post_init__(self):
        object.__setattr__(self, "profile", Profile.parse(self.profile))
        if self.language is not None and not (
            isinstance(self.language, str) and LANGUAGE_PATTERN.fullmatch(self.language)
        ):
            raise InvalidArtifactKey(f"Invalid language: {self.language!r}")
        if not is_valid_triple(self.target):
            raise InvalidArtifactKey(
                f"Invalid target triple: {self.target!r} (expected arch-vendor-os[-abi])"
            )
        if not is_valid_version(self.version):
            raise InvalidArtifactKey(
                f"Invalid version: {self.version!r} (expected semantic version or 'local')"
            )

    @property
    def slug(self) -> str:
        """Filesystem-safe name: [language-]target-profile."""
        parts = [self.target, self.profile.value]
        if self.language:
            parts.insert(0, self.language)
        return "-".join(parts)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.language is not None:
            data["language"] = self.language
        data["profile"] = self.profile.value
        data["target"] = self.target
        data["version"] = self.version
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ArtifactKey":
        return cls(
            language=data.get("language"),
            profile=data["profile"],
            target=data["target"],
            version=data["version"],
        )

    def __str__(self) -> str:
        prefix = f"{self.language}/" if self.language else ""
        return f"{prefix}{self.target}/{self.profile.value}@{self.version}"


@dataclass(frozen=True)
class KeyFilter:
    """
    Partial ArtifactKey; a field left as None matches any value.

    Example:
        >>> KeyFilter(target="x86_64-unknown-linux-gnu").matches(key)
        True
    """

    language: Optional[str] = None
    profile: Optional[Profile] = None
    target: Optional[str] = None
    version: Optional[str] = None

    def __post_init__(self):
        if self.profile is not None:
            object.__setattr__(self, "profile", Profile.parse(self.profile))

    @classmethod
    def from_key(cls, key: ArtifactKey) -> "KeyFilter":
        return cls(key.language, key.profile, key.target, key.version)

    def matches(self, key: ArtifactKey) -> bool:
        return (
            (self.language is None or self.language == key.language)
            and (self.profile is None or self.profile == key.profile)
            and (self.target is None or self.target == key.target)
            and (self.version is None or self.version == key.version)
        )


# ============================================================================
# Entries
# ============================================================================


@dataclass(frozen=True)
class ArtifactEntry:
    """
    One published artifact.

    Attributes:
        key: Artifact identity
        location: Absolute path, file:// URI, http(s) URL, or a path relative
            to the manifest's directory
        digest: Lowercase hex SHA-256 of the archive bytes
        size: Archive size in bytes
    """

    key: ArtifactKey
    location: str
    digest: str
    size: int

    def __post_init__(self):
        if not is_valid_digest(self.digest):
            raise ValueError(f"Invalid digest: {self.digest!r}")
        object.__setattr__(self, "digest", self.digest.lower())
        if not self.location:
            raise ValueError("Artifact location cannot be empty")
        if isinstance(self.size, bool) or not isinstance(self.size, int) or self.size < 0:
            raise ValueError(f"Invalid size: {self.size!r}")

    def with_location(self, location: str) -> "ArtifactEntry":
        """Return a copy of this entry pointing at another location."""
        return ArtifactEntry(self.key, location, self.digest, self.size)

    def to_dict(self) -> Dict[str, Any]:
        data = self.key.to_dict()
        data["location"] = self.location
        data["digest"] = self.digest
        data["size"] = self.size
        return data

    @classmethod
    def from_dict(cls, data: Any, source: Optional[str] = None) -> "ArtifactEntry":
        """
        Build an entry from a manifest document mapping.

        Raises:
            ManifestParseError: On missing fields or invalid values
        """
        if not isinstance(data, dict):
            raise ManifestParseError(f"Entry must be a mapping, got {type(data).__name__}", source)

        missing = [name for name in REQUIRED_FIELDS if name not in data]
        if missing:
            raise ManifestParseError(f"Entry is missing required fields: {', '.join(missing)}", source)

        for name in ("profile", "target", "version", "location", "digest"):
            if not isinstance(data[name], str):
                raise ManifestParseError(
                    f"Field '{name}' must be a string, got {data[name]!r}", source
                )
        language = data.get("language")
        if language is not None and not isinstance(language, str):
            raise ManifestParseError(f"Field 'language' must be a string, got {language!r}", source)

        try:
            key = ArtifactKey.from_dict(data)
        except InvalidArtifactKey as e:
            raise ManifestParseError(e.message, source) from e

        try:
            return cls(key=key, location=data["location"], digest=data["digest"], size=data["size"])
        except ValueError as e:
            raise ManifestParseError(str(e), source, key=key) from e


# ============================================================================
# Location helpers
# ============================================================================


def is_url(location: str) -> bool:
    """Return True for scheme://... locations (single-letter schemes are drives)."""
    scheme = urlparse(location).scheme
    return len(scheme) > 1


def resolve_location(location: str, base: Optional[str]) -> str:
    """
    Resolve an entry location against the manifest's base.

    Absolute paths and URLs are returned unchanged. Relative locations are
    joined to the base directory or base URL.
    """
    if base is None or is_url(location) or Path(location).is_absolute():
        return location
    if is_url(base):
        return base.rstrip("/") + "/" + PurePosixPath(location.replace("\\", "/")).as_posix()
    return str(Path(base) / location)


# ============================================================================
# Manifest
# ============================================================================


@dataclass(frozen=True)
class Manifest:
    """
    Immutable, ordered collection of artifact entries.

    Attributes:
        entries: Entries in append order
        base: Directory or URL relative locations resolve against
    """

    entries: Tuple[ArtifactEntry, ...] = ()
    base: Optional[str] = field(default=None, compare=False)

    @classmethod
    def empty(cls, base: Optional[str] = None) -> "Manifest":
        return cls((), base)

    @classmethod
    def from_entries(
        cls, entries: Iterable[ArtifactEntry], base: Optional[str] = None
    ) -> "Manifest":
        """Build a manifest by appending entries in order."""
        return cls.empty(base).extend(entries)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def __len__(self) -> int:
        return len(self.entries)

    def __iter__(self) -> Iterator[ArtifactEntry]:
        return iter(self.entries)

    def keys(self) -> List[ArtifactKey]:
        """Distinct keys in first-seen order."""
        seen = {}
        for entry in self.entries:
            seen.setdefault(entry.key, None)
        return list(seen)

    def entries_for(self, key_filter: Optional[KeyFilter] = None) -> List[ArtifactEntry]:
        """
        Return entries matching a partial key, in manifest order.

        Args:
            key_filter: Partial key; None returns every entry

        Example:
            >>> manifest.entries_for(KeyFilter(profile="release"))
            [ArtifactEntry(...), ...]
        """
        if key_filter is None:
            return list(self.entries)
        return [entry for entry in self.entries if key_filter.matches(entry.key)]

    def location_of(self, entry: ArtifactEntry) -> str:
        """Location of entry resolved against this manifest's base."""
        return resolve_location(entry.location, self.base)

    # ------------------------------------------------------------------
    # Mutation (returns new manifests)
    # ------------------------------------------------------------------

    def append(self, entry: ArtifactEntry) -> "Manifest":
        """
        Return a new manifest with entry added.

        Appending an entry whose key and digest are already present is a
        no-op and returns this manifest unchanged.

        Raises:
            DuplicateKeyConflict: If the key is present with another digest
        """
        for existing in self.entries:
            if existing.key != entry.key:
                continue
            if existing.digest != entry.digest:
                raise DuplicateKeyConflict(entry.key, existing.digest, entry.digest)
            logger.debug(f"Entry for {entry.key} already present, skipping")
            return self

        return Manifest(self.entries + (entry,), self.base)

    def extend(self, entries: Iterable[ArtifactEntry]) -> "Manifest":
        """Append several entries; stops at the first conflict."""
        manifest = self
        for entry in entries:
            manifest = manifest.append(entry)
        return manifest

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "schema": SCHEMA_VERSION,
            "entries": [entry.to_dict() for entry in self.entries],
        }

    def dumps(self) -> str:
        """Serialize deterministically; equal manifests produce equal text."""
        return yaml.safe_dump(
            self.to_dict(),
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            width=4096,
        )

    def save(self, destination: Union[str, Path]) -> Path:
        """
        Write the manifest atomically.

        Args:
            destination: Manifest file path

        Returns:
            Path written
        """
        destination = Path(destination)
        atomic_write(destination, self.dumps())
        logger.debug(f"Saved manifest with {len(self)} entries to {destination}")
        return destination

    @classmethod
    def loads(
        cls, text: str, source: Optional[str] = None, base: Optional[str] = None
    ) -> "Manifest":
        """
        Parse a manifest document.

        Args:
            text: YAML document
            source: Name used in error messages
            base: Directory or URL for relative locations

        Raises:
            ManifestParseError: On invalid YAML or schema violations
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise ManifestParseError(f"Invalid YAML: {e}", source) from e

        if data is None:
            return cls.empty(base)
        if not isinstance(data, dict):
            raise ManifestParseError("Manifest must be a mapping", source)

        schema = data.get("schema", SCHEMA_VERSION)
        if isinstance(schema, bool) or not isinstance(schema, int):
            raise ManifestParseError(f"Invalid schema version: {schema!r}", source)
        if schema > SCHEMA_VERSION:
            raise ManifestParseError(
                f"Unsupported schema version {schema} (supported: {SCHEMA_VERSION})", source
            )

        raw_entries = data.get("entries")
        if raw_entries is None:
            raw_entries = []
        if not isinstance(raw_entries, list):
            raise ManifestParseError("'entries' must be a list", source)

        entries = []
        for index, raw in enumerate(raw_entries):
            where = f"{source or '<manifest>'} entry {index}"
            entries.append(ArtifactEntry.from_dict(raw, where))

        return cls(tuple(entries), base)

    @classmethod
    def load(cls, source: Union[str, Path]) -> "Manifest":
        """
        Load a manifest file; relative locations resolve against its directory.

        Raises:
            ManifestParseError: On invalid content
            FilesystemError: If the file cannot be read
        """
        path = Path(source)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise FilesystemError(f"Failed to read manifest {path}: {e}") from e
        return cls.loads(text, source=str(path), base=str(path.resolve().parent))

    @classmethod
    def load_or_empty(cls, source: Union[str, Path]) -> "Manifest":
        """Load a manifest file, or return an empty one if it does not exist."""
        path = Path(source)
        if not path.exists():
            return cls.empty(str(path.resolve().parent))
        return cls.load(path)


__all__ = [
    "SCHEMA_VERSION",
    "Profile",
    "ArtifactKey",
    "KeyFilter",
    "ArtifactEntry",
    "Manifest",
    "is_url",
    "resolve_location",
]
