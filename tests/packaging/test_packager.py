"""
Unit tests for the packager.
"""

import os
import stat

import pytest

from toolpack.core.archive import list_members
from toolpack.core.checksum import checksum_path, digest_file, read_checksum_file
from toolpack.core.exceptions import InvalidArtifactKey, MissingBinary, PackagingError
from toolpack.manifest.model import ArtifactKey
from toolpack.packaging.packager import (
    Packager,
    archive_name,
    build_output_dir,
    collect_binaries,
)

LINUX = "x86_64-unknown-linux-gnu"
MAC = "aarch64-apple-darwin"


class TestArchiveName:
    def test_without_language(self):
        key = ArtifactKey(None, "release", LINUX, "1.2.0")

        assert archive_name(key) == "x86_64-unknown-linux-gnu-release-1.2.0.tar.gz"

    def test_with_language(self):
        key = ArtifactKey("solidity", "dev", MAC, "local")

        assert archive_name(key) == "solidity-aarch64-apple-darwin-dev-local.tar.gz"


class TestBuildOutputDir:
    def test_dev_uses_debug(self, tmp_path):
        assert build_output_dir(tmp_path, "dev") == tmp_path / "debug"

    def test_release_with_target(self, tmp_path):
        assert build_output_dir(tmp_path, "release", MAC) == tmp_path / MAC / "release"


class TestPackage:
    """Test Packager.package()."""

    def test_writes_archive_and_entry(self, tmp_path, make_binary):
        binary = make_binary("solc", b"solc binary")

        entry = Packager(tmp_path / "dist").package("release", LINUX, "1.2.0", [binary])

        archive_path = tmp_path / "dist" / "x86_64-unknown-linux-gnu-release-1.2.0.tar.gz"
        assert archive_path.is_file()
        assert entry.key == ArtifactKey(None, "release", LINUX, "1.2.0")
        assert entry.location == str(archive_path.resolve())
        assert entry.digest == digest_file(archive_path)
        assert entry.size == archive_path.stat().st_size

    def test_members_use_file_names_only(self, tmp_path, make_binary):
        binaries = [make_binary("solc"), make_binary("yul-opt")]

        entry = Packager(tmp_path / "dist").package("dev", LINUX, "local", binaries)

        data = (tmp_path / "dist" / archive_name(entry.key)).read_bytes()
        assert sorted(list_members(data)) == sorted(b.name for b in binaries)

    def test_deterministic(self, tmp_path, make_binary):
        binary = make_binary("solc", b"same bytes")

        first = Packager(tmp_path / "a").package("release", LINUX, "1.0.0", [binary])
        os.utime(binary, (0, 0))
        second = Packager(tmp_path / "b").package("release", LINUX, "1.0.0", [binary])

        assert first.digest == second.digest
        assert (tmp_path / "a" / archive_name(first.key)).read_bytes() == (
            tmp_path / "b" / archive_name(second.key)
        ).read_bytes()

    def test_checksum_file(self, tmp_path, make_binary):
        entry = Packager(tmp_path / "dist").package(
            "release", LINUX, "1.0.0", [make_binary()], checksum_file=True
        )

        sidecar = checksum_path(tmp_path / "dist" / archive_name(entry.key))
        assert read_checksum_file(sidecar) == entry.digest

    def test_no_checksum_file_by_default(self, tmp_path, make_binary):
        entry = Packager(tmp_path / "dist").package("release", LINUX, "1.0.0", [make_binary()])

        assert not checksum_path(tmp_path / "dist" / archive_name(entry.key)).exists()

    def test_language(self, tmp_path, make_binary):
        entry = Packager(tmp_path / "dist").package(
            "release", LINUX, "1.0.0", [make_binary()], language="solidity"
        )

        assert entry.key.language == "solidity"
        assert entry.location.endswith("solidity-x86_64-unknown-linux-gnu-release-1.0.0.tar.gz")


class TestPackageErrors:
    """Test packaging failures."""

    def test_missing_binary(self, tmp_path):
        with pytest.raises(MissingBinary, match="does not exist") as exc_info:
            Packager(tmp_path / "dist").package(
                "release", LINUX, "1.0.0", [tmp_path / "bin" / "solc"]
            )

        assert exc_info.value.key == ArtifactKey(None, "release", LINUX, "1.0.0")
        assert not (tmp_path / "dist").exists()

    @pytest.mark.posix
    def test_non_executable_binary(self, tmp_path):
        path = tmp_path / "solc"
        path.write_bytes(b"data")
        os.chmod(path, stat.S_IRUSR | stat.S_IWUSR)

        with pytest.raises(MissingBinary, match="not an executable"):
            Packager(tmp_path / "dist").package("release", LINUX, "1.0.0", [path])

    def test_directory_is_not_a_binary(self, tmp_path):
        with pytest.raises(MissingBinary):
            Packager(tmp_path / "dist").package("release", LINUX, "1.0.0", [tmp_path])

    def test_no_binaries(self, tmp_path):
        with pytest.raises(PackagingError, match="No binaries"):
            Packager(tmp_path / "dist").package("release", LINUX, "1.0.0", [])

    def test_duplicate_names(self, tmp_path, make_binary):
        first = make_binary("solc")
        other_dir = tmp_path / "other"
        other_dir.mkdir()
        second = other_dir / first.name
        second.write_bytes(b"other")
        os.chmod(second, first.stat().st_mode)

        with pytest.raises(PackagingError, match="Two binaries"):
            Packager(tmp_path / "dist").package("release", LINUX, "1.0.0", [first, second])

    def test_invalid_profile(self, tmp_path, make_binary):
        with pytest.raises(InvalidArtifactKey):
            Packager(tmp_path / "dist").package("debug", LINUX, "1.0.0", [make_binary()])

    def test_invalid_version(self, tmp_path, make_binary):
        with pytest.raises(InvalidArtifactKey):
            Packager(tmp_path / "dist").package("release", LINUX, "latest", [make_binary()])


class TestCollectBinaries:
    """Test collect_binaries()."""

    @pytest.mark.posix
    def test_only_executables_sorted(self, tmp_path):
        build_dir = tmp_path / "target" / "release"
        build_dir.mkdir(parents=True)
        for name in ("zksolc", "solc"):
            path = build_dir / name
            path.write_bytes(b"bin")
            os.chmod(path, 0o755)
        (build_dir / "build.log").write_text("log")
        (build_dir / "deps").mkdir()

        binaries = collect_binaries(build_dir)

        assert [b.name for b in binaries] == ["solc", "zksolc"]

    def test_missing_directory(self, tmp_path):
        with pytest.raises(PackagingError, match="not found"):
            collect_binaries(tmp_path / "missing")
