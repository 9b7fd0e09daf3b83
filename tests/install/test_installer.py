"""
Unit tests for the installer state machine and atomic placement.
"""

import io
import os
import subprocess
import sys
import tarfile
import threading
import time
from unittest.mock import patch

import pytest

from toolpack.core.checksum import digest
from toolpack.core.exceptions import (
    CorruptArchive,
    DigestMismatch,
    InstallError,
    NoMatchingArtifact,
    OperationCancelled,
    PathEscape,
)
from toolpack.fetch.registry import RegistryClient
from toolpack.install.installer import (
    InstallAttempt,
    Installer,
    InstallState,
    process_alive,
    staging_owner,
)
from toolpack.install.records import RECORD_FILE_NAME
from toolpack.manifest.model import ArtifactEntry, ArtifactKey, Manifest

LINUX = "x86_64-unknown-linux-gnu"


@pytest.fixture
def installer(tmp_path):
    return Installer(tmp_path / "root")


@pytest.fixture
def manifest(tmp_path, make_entry):
    """Manifest with a dev/local and two release builds for LINUX."""
    artifacts = tmp_path / "artifacts"
    return Manifest.from_entries(
        [
            make_entry(artifacts, version="local", profile="dev"),
            make_entry(artifacts, version="1.0.0"),
            make_entry(artifacts, version="1.2.0", files=[("solc", b"solc 1.2.0"), ("yul", b"yul")]),
        ]
    )


def staging_contents(installer):
    staging = installer.layout.staging_dir
    return sorted(p.name for p in staging.iterdir()) if staging.exists() else []


class TestInstallAttempt:
    """Test InstallAttempt transitions."""

    def test_happy_path(self):
        seen = []
        attempt = InstallAttempt("req", on_state=lambda a: seen.append(a.state))

        for state in (
            InstallState.FETCHING,
            InstallState.VERIFYING,
            InstallState.EXTRACTING,
            InstallState.INSTALLED,
        ):
            attempt.transition(state)

        assert seen == attempt.history
        assert attempt.state.is_terminal
        assert attempt.reason is None

    def test_invalid_transition(self):
        attempt = InstallAttempt("req")

        with pytest.raises(InstallError, match="resolving -> extracting"):
            attempt.transition(InstallState.EXTRACTING)

    def test_fail_records_reason(self):
        attempt = InstallAttempt("req")
        attempt.transition(InstallState.FETCHING)

        attempt.fail(DigestMismatch("a" * 64, "b" * 64))

        assert attempt.state is InstallState.FAILED
        assert attempt.reason.startswith("DigestMismatch: ")

    def test_fail_after_terminal_is_ignored(self):
        attempt = InstallAttempt("req")
        attempt.transition(InstallState.INSTALLED)

        attempt.fail(OperationCancelled("late"))

        assert attempt.state is InstallState.INSTALLED
        assert attempt.failure is None


class TestInstall:
    """Test Installer.install()."""

    def test_install_latest(self, installer, manifest):
        states = []
        installer.on_state = lambda attempt: states.append(attempt.state)

        installed = installer.install(
            target=LINUX, profile="release", version_constraint="latest", manifest=manifest
        )

        expected_dir = installer.layout.toolchains_dir / "1.2.0" / f"{LINUX}-release"
        assert installed.install_dir == expected_dir
        assert (expected_dir / "solc").read_bytes() == b"solc 1.2.0"
        assert (expected_dir / RECORD_FILE_NAME).is_file()
        assert sorted(installed.files) == ["solc", "yul"]
        assert states == [
            InstallState.RESOLVING,
            InstallState.FETCHING,
            InstallState.VERIFYING,
            InstallState.EXTRACTING,
            InstallState.INSTALLED,
        ]
        assert staging_contents(installer) == []

    def test_default_request_is_dev_local(self, installer, manifest):
        installed = installer.install(target=LINUX, manifest=manifest)

        assert installed.key == ArtifactKey(None, "dev", LINUX, "local")
        assert installed.install_dir.name == f"{LINUX}-dev"

    def test_idempotent(self, installer, manifest):
        first = installer.install(target=LINUX, profile="release", version_constraint="1.0.0", manifest=manifest)
        states = []
        installer.on_state = lambda attempt: states.append(attempt.state)

        with patch.object(installer.fetcher, "retrieve") as mock_retrieve:
            second = installer.install(
                target=LINUX, profile="release", version_constraint="1.0.0", manifest=manifest
            )

        mock_retrieve.assert_not_called()
        assert second.install_dir == first.install_dir
        assert states == [InstallState.RESOLVING, InstallState.INSTALLED]

    def test_from_registry(self, tmp_path, manifest):
        manifest.save(tmp_path / "registry" / "manifest.yaml")
        installer = Installer(tmp_path / "root", registry=RegistryClient(tmp_path / "registry"))

        installed = installer.install(target=LINUX, profile="release", version_constraint="1.0.0")

        assert installed.key.version == "1.0.0"

    def test_without_manifest_or_registry(self, installer):
        with pytest.raises(InstallError, match="no registry"):
            installer.install(target=LINUX)

    def test_resolution_failure(self, installer, manifest):
        states = []
        installer.on_state = lambda attempt: states.append(attempt.state)

        with pytest.raises(NoMatchingArtifact):
            installer.install(target=LINUX, profile="release", version_constraint="9.9.9", manifest=manifest)

        assert states == [InstallState.RESOLVING, InstallState.FAILED]
        assert not installer.layout.toolchains_dir.exists()


class TestAtomicity:
    """Test failures never leave partial installations behind."""

    def test_digest_mismatch(self, tmp_path, installer, manifest):
        entry = manifest.entries[1]
        (tmp_path / "artifacts" / f"{LINUX}-release-1.0.0.tar.gz").write_bytes(b"tampered")
        states = []
        installer.on_state = lambda attempt: states.append(attempt.state)

        with pytest.raises(DigestMismatch) as exc_info:
            installer.install_entry(entry)

        assert exc_info.value.key == entry.key
        assert states[-2:] == [InstallState.VERIFYING, InstallState.FAILED]
        assert not installer.install_dir_for(entry.key).exists()
        assert staging_contents(installer) == []

    def test_extraction_failure_midway(self, installer, manifest):
        """Test a crash during extraction leaves no final dir and no staging."""
        entry = manifest.entries[2]

        def partial_extract(data, destination, cancel=None):
            (destination / "solc").write_bytes(b"half")
            raise CorruptArchive("Invalid archive: unexpected end of data")

        with patch("toolpack.install.installer.extract", side_effect=partial_extract):
            with pytest.raises(CorruptArchive):
                installer.install_entry(entry)

        assert not installer.install_dir_for(entry.key).exists()
        assert installer.list_installed() == []
        assert staging_contents(installer) == []

    def test_path_escape(self, tmp_path, installer, make_key):
        buffer = io.BytesIO()
        with tarfile.open(fileobj=buffer, mode="w:gz") as tar:
            info = tarfile.TarInfo("../evil")
            info.size = 1
            tar.addfile(info, io.BytesIO(b"x"))
        data = buffer.getvalue()
        path = tmp_path / "evil.tar.gz"
        path.write_bytes(data)
        entry = ArtifactEntry(make_key(), str(path), digest(data), len(data))

        with pytest.raises(PathEscape):
            installer.install_entry(entry)

        assert not (installer.layout.staging_dir / "evil").exists()
        assert not (installer.layout.root / "evil").exists()
        assert installer.list_installed() == []

    def test_cancel_before_fetch(self, installer, manifest):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(OperationCancelled):
            installer.install_entry(manifest.entries[1], cancel=cancel)

        assert installer.list_installed() == []
        assert staging_contents(installer) == []

    def test_cancel_during_extraction(self, installer, manifest):
        cancel = threading.Event()

        def extract_then_cancel(data, destination, cancel_event=None):
            cancel.set()
            raise OperationCancelled(f"Extraction into {destination} cancelled")

        with patch("toolpack.install.installer.extract", side_effect=extract_then_cancel):
            with pytest.raises(OperationCancelled):
                installer.install_entry(manifest.entries[1], cancel=cancel)

        assert installer.list_installed() == []
        assert staging_contents(installer) == []

    @pytest.mark.slow
    def test_concurrent_installs_of_same_key(self, installer, manifest):
        """Test racing installs both succeed with one shared installation."""
        entry = manifest.entries[2]
        results, errors = [], []
        barrier = threading.Barrier(4)

        def run():
            barrier.wait()
            try:
                results.append(installer.install_entry(entry))
            except Exception as e:  # pragma: no cover - reported below
                errors.append(e)

        threads = [threading.Thread(target=run) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert {r.install_dir for r in results} == {installer.install_dir_for(entry.key)}
        assert len(installer.list_installed()) == 1
        assert installer.verify_installed(entry.key).ok
        assert staging_contents(installer) == []


class TestQueries:
    """Test list/verify/uninstall."""

    def test_list_installed(self, installer, manifest):
        installer.install(target=LINUX, manifest=manifest)
        installer.install(target=LINUX, profile="release", version_constraint="1.0.0", manifest=manifest)

        keys = [record.key.version for record in installer.list_installed()]

        assert keys == ["1.0.0", "local"]

    def test_list_ignores_directories_without_record(self, installer):
        (installer.layout.toolchains_dir / "1.0.0" / f"{LINUX}-release").mkdir(parents=True)

        assert installer.list_installed() == []

    def test_verify_clean(self, installer, manifest):
        installed = installer.install(target=LINUX, manifest=manifest)

        result = installer.verify_installed(installed.key)

        assert result.ok
        assert result.issues == []

    def test_verify_detects_changes(self, installer, manifest):
        installed = installer.install(
            target=LINUX, profile="release", version_constraint="1.2.0", manifest=manifest
        )
        (installed.install_dir / "solc").write_bytes(b"patched")
        (installed.install_dir / "yul").unlink()
        (installed.install_dir / "extra").write_bytes(b"x")

        result = installer.verify_installed(installed.key)

        assert not result.ok
        assert any(issue.startswith("Modified file: solc") for issue in result.issues)
        assert "Missing file: yul" in result.issues
        assert "Unexpected file: extra" in result.issues

    def test_verify_not_installed(self, installer, make_key):
        result = installer.verify_installed(make_key())

        assert not result.ok
        assert "not installed" in result.issues[0]

    def test_uninstall(self, installer, manifest):
        installed = installer.install(target=LINUX, manifest=manifest)

        assert installer.uninstall(installed.key) is True
        assert not installed.install_dir.exists()
        assert not installed.install_dir.parent.exists()
        assert installer.find_installed(installed.key) is None
        assert staging_contents(installer) == []

    def test_uninstall_missing(self, installer, make_key):
        assert installer.uninstall(make_key()) is False

    def test_reinstall_after_uninstall(self, installer, manifest):
        installed = installer.install(target=LINUX, manifest=manifest)
        installer.uninstall(installed.key)

        again = installer.install(target=LINUX, manifest=manifest)

        assert again.install_dir == installed.install_dir
        assert (again.install_dir / "solc").is_file()


class TestCleanupStaleStaging:
    """Test sweeping of staging directories left by dead processes."""

    def test_removes_only_old_directories(self, installer):
        staging = installer.layout.staging_dir
        old = staging / "old.1.abc"
        fresh = staging / "fresh.1.def"
        old.mkdir(parents=True)
        fresh.mkdir()
        (old / "solc").write_bytes(b"partial")
        past = time.time() - 48 * 3600
        os.utime(old, (past, past))

        removed = installer.cleanup_stale_staging(max_age_hours=24)

        assert removed == 1
        assert not old.exists()
        assert fresh.exists()

    def test_no_staging_dir(self, installer):
        assert installer.cleanup_stale_staging() == 0

    def test_keeps_old_directory_of_current_process(self, installer):
        own = installer.layout.staging_dir / f"own-1.0.0.{os.getpid()}.abc"
        own.mkdir(parents=True)
        past = time.time() - 48 * 3600
        os.utime(own, (past, past))

        assert installer.cleanup_stale_staging(max_age_hours=24) == 0
        assert own.exists()

    def test_removes_fresh_directory_of_dead_process(self, installer):
        staging = installer.layout.staging_dir
        dead = staging / f"{LINUX}-release-1.2.0.4242.abc"
        alive = staging / f"{LINUX}-release-1.2.0.4343.def"
        dead.mkdir(parents=True)
        alive.mkdir()

        with patch(
            "toolpack.install.installer.process_alive",
            side_effect=lambda pid: pid != 4242,
        ):
            removed = installer.cleanup_stale_staging()

        assert removed == 1
        assert not dead.exists()
        assert alive.exists()

    def test_removing_directories_are_swept(self, installer):
        trash = installer.layout.staging_dir / f"{LINUX}-release-1.0.0.removing.4242.abc"
        trash.mkdir(parents=True)

        with patch("toolpack.install.installer.process_alive", return_value=False):
            assert installer.cleanup_stale_staging() == 1
        assert not trash.exists()

    @pytest.mark.posix
    def test_install_sweeps_staging_of_exited_process(self, installer, manifest):
        proc = subprocess.Popen([sys.executable, "-c", "pass"])
        proc.wait()
        leftover = installer.layout.staging_dir / f"{LINUX}-release-1.2.0.{proc.pid}.abc"
        leftover.mkdir(parents=True)
        (leftover / "solc").write_bytes(b"half written")

        installed = installer.install(
            target=LINUX, profile="release", version_constraint="1.2.0", manifest=manifest
        )

        assert (installed.install_dir / "solc").read_bytes() == b"solc 1.2.0"
        assert staging_contents(installer) == []


class TestStagingOwner:
    """Test parsing and liveness of staging directory owners."""

    @pytest.mark.parametrize(
        "name,expected",
        [
            (f"{LINUX}-release-1.2.0.1234.a1b2c3", 1234),
            (f"{LINUX}-dev-local.99.ff", 99),
            (f"{LINUX}-release-1.0.0.removing.77.abc", 77),
            ("old.x.abc", None),
            ("plain", None),
        ],
    )
    def test_staging_owner(self, tmp_path, name, expected):
        assert staging_owner(tmp_path / name) == expected

    def test_current_process_alive(self):
        assert process_alive(os.getpid()) is True

    @pytest.mark.posix
    def test_exited_process_not_alive(self):
        proc = subprocess.Popen([sys.executable, "-c", "pass"])
        proc.wait()

        assert process_alive(proc.pid) is False
