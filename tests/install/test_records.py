"""
Unit tests for install records.
"""

from datetime import datetime, timezone

from toolpack.install.records import (
    RECORD_FILE_NAME,
    InstalledToolchain,
    read_record,
    write_record,
)
from toolpack.manifest.model import ArtifactKey

KEY = ArtifactKey("solidity", "release", "x86_64-unknown-linux-gnu", "1.2.0")


def make_record(directory):
    return InstalledToolchain(
        key=KEY,
        install_dir=directory,
        installed_at=datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc),
        digest="ab" * 32,
        files={"solc": "cd" * 32},
    )


class TestRecords:
    """Test writing and reading install records."""

    def test_write_then_read(self, tmp_path):
        write_record(tmp_path, make_record(tmp_path / "final"))

        record = read_record(tmp_path)

        assert record.key == KEY
        assert record.installed_at == datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        assert record.files == {"solc": "cd" * 32}

    def test_install_dir_follows_directory(self, tmp_path):
        """Test a record read after the staging rename points at its new home."""
        staging = tmp_path / "staging"
        staging.mkdir()
        write_record(staging, make_record(tmp_path / "final"))
        staging.rename(tmp_path / "final")

        assert read_record(tmp_path / "final").install_dir == tmp_path / "final"

    def test_missing_record(self, tmp_path):
        assert read_record(tmp_path) is None

    def test_unreadable_record(self, tmp_path):
        (tmp_path / RECORD_FILE_NAME).write_text("{not json")

        assert read_record(tmp_path) is None

    def test_invalid_key(self, tmp_path):
        (tmp_path / RECORD_FILE_NAME).write_text(
            '{"key": {"profile": "bogus", "target": "x", "version": "1"}, '
            '"install_dir": "x", "installed_at": "2024-01-01T00:00:00+00:00"}'
        )

        assert read_record(tmp_path) is None
