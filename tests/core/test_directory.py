"""
Unit tests for the install root layout.
"""

from pathlib import Path
from unittest.mock import patch

import pytest

from toolpack.core.directory import (
    InstallLayout,
    get_default_home,
    verify_directory_writable,
)
from toolpack.core.exceptions import FilesystemError


class TestDefaultHome:
    def test_env_override(self, tmp_path, monkeypatch):
        monkeypatch.setenv("TOOLPACK_HOME", str(tmp_path / "custom"))
        assert get_default_home() == tmp_path / "custom"

    @pytest.mark.posix
    def test_posix_default(self):
        with patch("toolpack.core.directory.os.name", "posix"):
            assert get_default_home() == Path.home() / ".toolpack"

    def test_windows_requires_userprofile(self, monkeypatch):
        monkeypatch.delenv("USERPROFILE", raising=False)
        with patch("toolpack.core.directory.os.name", "nt"):
            with pytest.raises(FilesystemError, match="USERPROFILE"):
                get_default_home()


class TestInstallLayout:
    """Test InstallLayout paths."""

    def test_paths(self, tmp_path):
        layout = InstallLayout(tmp_path)

        assert layout.toolchains_dir == tmp_path / "toolchains"
        assert layout.staging_dir == tmp_path / "staging"
        assert layout.lock_dir == tmp_path / "lock"
        assert layout.local_root == tmp_path / "local"
        assert layout.local_manifest == tmp_path / "local" / "manifest.yaml"
        assert layout.config_file == tmp_path / "config.yaml"

    def test_accepts_string(self, tmp_path):
        assert InstallLayout(str(tmp_path)).root == tmp_path

    def test_ensure_creates_directories(self, tmp_path):
        layout = InstallLayout(tmp_path / "root")

        dirs = layout.ensure()

        assert set(dirs) == {"root", "toolchains", "staging", "lock"}
        assert all(path.is_dir() for path in dirs.values())

    def test_ensure_fails_on_file(self, tmp_path):
        blocker = tmp_path / "root"
        blocker.write_text("x")

        with pytest.raises(FilesystemError):
            InstallLayout(blocker).ensure()


class TestVerifyWritable:
    def test_writable(self, tmp_path):
        assert verify_directory_writable(tmp_path)
        assert list(tmp_path.iterdir()) == []

    def test_missing(self, tmp_path):
        assert not verify_directory_writable(tmp_path / "missing")
