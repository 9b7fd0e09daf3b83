"""
Pytest configuration and shared fixtures for toolpack tests.
"""

import os
import stat
from pathlib import Path
from typing import Callable

import pytest

from toolpack.core.archive import archive
from toolpack.core.checksum import digest
from toolpack.core.filesystem import IS_WINDOWS
from toolpack.manifest.model import ArtifactEntry, ArtifactKey

LINUX_TARGET = "x86_64-unknown-linux-gnu"
MAC_TARGET = "aarch64-apple-darwin"


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "posix: marks tests that rely on POSIX permission bits"
    )


def pytest_collection_modifyitems(config, items):
    """Skip POSIX-only tests on Windows."""
    if not IS_WINDOWS:
        return
    skip_posix = pytest.mark.skip(reason="requires POSIX permission bits")
    for item in items:
        if "posix" in item.keywords:
            item.add_marker(skip_posix)


# ============================================================================
# Environment isolation
# ============================================================================


@pytest.fixture(autouse=True)
def clean_toolpack_env(monkeypatch):
    """Keep the developer's toolpack environment out of every test."""
    for name in ("TOOLPACK_HOME", "TOOLPACK_REGISTRY", "TOOLPACK_INSTALL_ROOT", "DETECT_PATH"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def toolpack_home(tmp_path, monkeypatch) -> Path:
    """Point TOOLPACK_HOME at an empty temporary directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("TOOLPACK_HOME", str(home))
    return home


# ============================================================================
# Artifact factories
# ============================================================================


@pytest.fixture
def make_binary(tmp_path) -> Callable[..., Path]:
    """Factory creating executable files under tmp_path/bin."""

    def _make(name: str = "solc", content: bytes = b"#!/bin/sh\necho ok\n") -> Path:
        bin_dir = tmp_path / "bin"
        bin_dir.mkdir(exist_ok=True)
        if IS_WINDOWS and not name.lower().endswith(".exe"):
            name += ".exe"
        path = bin_dir / name
        path.write_bytes(content)
        mode = path.stat().st_mode
        os.chmod(path, mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return _make


@pytest.fixture
def make_key() -> Callable[..., ArtifactKey]:
    """Factory for artifact keys with sensible defaults."""

    def _make(version="1.0.0", profile="release", target=LINUX_TARGET, language=None):
        return ArtifactKey(language=language, profile=profile, target=target, version=version)

    return _make


@pytest.fixture
def make_entry(make_key) -> Callable[..., ArtifactEntry]:
    """
    Factory for entries with a matching archive on disk.

    The archive is written to tmp_path/artifacts and the entry location is
    its absolute path unless location is given.
    """

    def _make(
        directory: Path,
        version="1.0.0",
        profile="release",
        target=LINUX_TARGET,
        language=None,
        files=None,
        location=None,
    ):
        key = make_key(version=version, profile=profile, target=target, language=language)
        files = files or [("solc", f"solc {version}\n".encode())]
        data = archive(files)
        directory.mkdir(parents=True, exist_ok=True)
        path = directory / f"{key.slug}-{key.version}.tar.gz"
        path.write_bytes(data)
        return ArtifactEntry(
            key=key,
            location=location or str(path),
            digest=digest(data),
            size=len(data),
        )

    return _make
