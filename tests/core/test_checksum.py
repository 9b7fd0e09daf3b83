"""
Unit tests for content digests and checksum sidecar files.
"""

import hashlib

import pytest

from toolpack.core.checksum import (
    StreamingHasher,
    checksum_path,
    digest,
    digest_file,
    digests_equal,
    is_valid_digest,
    read_checksum_file,
    write_checksum_file,
)

EMPTY_SHA256 = "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"


class TestDigest:
    """Test digest functions."""

    def test_empty_digest(self):
        assert digest(b"") == EMPTY_SHA256

    def test_digest_is_lowercase_hex(self):
        value = digest(b"hello world")
        assert value == hashlib.sha256(b"hello world").hexdigest()
        assert value == value.lower()
        assert len(value) == 64

    def test_digest_file_matches_digest(self, tmp_path):
        """Test streaming file hashing equals in-memory hashing."""
        data = b"x" * 200_000
        path = tmp_path / "blob"
        path.write_bytes(data)

        assert digest_file(path) == digest(data)

    def test_is_valid_digest(self):
        assert is_valid_digest(EMPTY_SHA256)
        assert is_valid_digest(EMPTY_SHA256.upper())
        assert not is_valid_digest("abc")
        assert not is_valid_digest("g" * 64)
        assert not is_valid_digest(None)

    def test_digests_equal_case_insensitive(self):
        assert digests_equal(EMPTY_SHA256, EMPTY_SHA256.upper())
        assert not digests_equal(EMPTY_SHA256, "0" * 64)


class TestStreamingHasher:
    """Test StreamingHasher class."""

    def test_update_and_finalize(self):
        hasher = StreamingHasher()
        hasher.update(b"hello ")
        hasher.update(b"world")

        assert hasher.finalize() == hashlib.sha256(b"hello world").hexdigest()
        assert hasher.size == 11

    def test_verify(self):
        hasher = StreamingHasher()
        hasher.update(b"data")

        assert hasher.verify(digest(b"data").upper())
        assert not hasher.verify("a" * 64)


class TestChecksumFile:
    """Test .sha256 sidecar files."""

    def test_write_and_read(self, tmp_path):
        archive_path = tmp_path / "tool-1.0.0.tar.gz"
        value = digest(b"archive")

        sidecar = write_checksum_file(archive_path, value.upper())

        assert sidecar == checksum_path(archive_path)
        assert sidecar.name == "tool-1.0.0.tar.gz.sha256"
        assert sidecar.read_text() == value + "\n"
        assert read_checksum_file(sidecar) == value

    def test_read_sha256sum_format(self, tmp_path):
        """Test the '<digest>  <file>' format produced by sha256sum."""
        sidecar = tmp_path / "a.tar.gz.sha256"
        sidecar.write_text(f"{EMPTY_SHA256}  a.tar.gz\n")

        assert read_checksum_file(sidecar) == EMPTY_SHA256

    def test_write_rejects_invalid_digest(self, tmp_path):
        with pytest.raises(ValueError, match="Invalid digest"):
            write_checksum_file(tmp_path / "a.tar.gz", "nope")

    def test_read_rejects_wrong_suffix(self, tmp_path):
        path = tmp_path / "a.txt"
        path.write_text(EMPTY_SHA256)

        with pytest.raises(ValueError, match="Not a checksum file"):
            read_checksum_file(path)

    def test_read_rejects_empty(self, tmp_path):
        path = tmp_path / "a.tar.gz.sha256"
        path.write_text("  \n")

        with pytest.raises(ValueError, match="empty"):
            read_checksum_file(path)

    def test_read_rejects_garbage(self, tmp_path):
        path = tmp_path / "a.tar.gz.sha256"
        path.write_text("not-a-digest\n")

        with pytest.raises(ValueError, match="invalid digest"):
            read_checksum_file(path)
