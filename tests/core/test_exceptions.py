"""
Unit tests for the exception hierarchy.
"""

import pytest

from toolpack.core.exceptions import (
    AmbiguousArtifact,
    AmbiguousVersionConstraint,
    CorruptArchive,
    DigestMismatch,
    DuplicateKeyConflict,
    FilesystemError,
    IntegrityError,
    InvalidArtifactKey,
    ManifestError,
    ManifestParseError,
    MissingBinary,
    NetworkError,
    NetworkFatal,
    NetworkTransient,
    NoMatchingArtifact,
    PackagingError,
    PathEscape,
    ResolutionError,
    ToolpackError,
)
from toolpack.manifest.model import ArtifactKey

KEY = ArtifactKey(None, "release", "x86_64-unknown-linux-gnu", "1.2.0")


class TestHierarchy:
    """Test error grouping."""

    @pytest.mark.parametrize(
        "error_cls, base",
        [
            (DigestMismatch, IntegrityError),
            (PathEscape, IntegrityError),
            (CorruptArchive, IntegrityError),
            (ManifestParseError, ManifestError),
            (DuplicateKeyConflict, ManifestError),
            (NoMatchingArtifact, ResolutionError),
            (AmbiguousVersionConstraint, ResolutionError),
            (AmbiguousArtifact, ResolutionError),
            (NetworkTransient, NetworkError),
            (NetworkFatal, NetworkError),
            (MissingBinary, PackagingError),
            (FilesystemError, ToolpackError),
        ],
    )
    def test_subclasses(self, error_cls, base):
        """Test each error sits under its group and the common root."""
        assert issubclass(error_cls, base)
        assert issubclass(error_cls, ToolpackError)

    def test_invalid_key_is_value_error(self):
        """Test InvalidArtifactKey can be caught as ValueError."""
        with pytest.raises(ValueError):
            raise InvalidArtifactKey("bad")


class TestKeyAttachment:
    """Test artifact key reporting."""

    def test_kind_is_class_name(self):
        assert NoMatchingArtifact("x").kind == "NoMatchingArtifact"

    def test_str_without_key(self):
        assert str(NetworkFatal("boom")) == "boom"

    def test_str_includes_key(self):
        """Test the key is rendered so reports name the artifact."""
        error = NetworkFatal("boom", key=KEY)
        assert str(error) == "boom [artifact: x86_64-unknown-linux-gnu/release@1.2.0]"

    def test_with_key_does_not_override(self):
        """Test an already attached key is kept."""
        other = ArtifactKey(None, "dev", "x86_64-unknown-linux-gnu", "local")
        error = NetworkFatal("boom", key=KEY)

        assert error.with_key(other) is error
        assert error.key == KEY

    def test_with_key_sets_missing_key(self):
        error = FilesystemError("disk full")
        error.with_key(KEY)
        assert error.key == KEY


class TestDetailedErrors:
    """Test errors carrying structured details."""

    def test_digest_mismatch_fields(self):
        error = DigestMismatch("a" * 64, "b" * 64, "/tmp/x.tar.gz")

        assert error.expected == "a" * 64
        assert error.actual == "b" * 64
        assert "/tmp/x.tar.gz" in str(error)

    def test_path_escape_names_member(self):
        error = PathEscape("../../evil", "/tmp/dest")
        assert "'../../evil'" in str(error)
        assert error.member == "../../evil"

    def test_duplicate_key_conflict(self):
        error = DuplicateKeyConflict(KEY, "a" * 64, "b" * 64)

        assert error.key == KEY
        assert error.existing_digest == "a" * 64
        assert "refusing digest" in str(error)

    def test_manifest_parse_error_prefixes_source(self):
        error = ManifestParseError("bad entry", "manifest.yaml")
        assert str(error) == "manifest.yaml: bad entry"

    def test_missing_binary(self):
        error = MissingBinary("/bin/nothing")
        assert str(error) == "Binary /bin/nothing does not exist"
