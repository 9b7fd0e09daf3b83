"""
Directory structure management for toolpack.

All on-disk state lives under an explicit install root that is passed to
every component; nothing reads a fixed home path on its own. The default
root is resolved here once and handed down by the CLI.

Directory Structure:
    Install root (default ~/.toolpack/ or %USERPROFILE%\\.toolpack\\):
        - config.yaml     : Optional user configuration
        - toolchains/     : Installed toolchains, <version>/<slug>/
        - staging/        : Per-attempt staging directories
        - lock/           : Publish lock files
        - local/          : Local publish root
          - manifest.yaml : Local manifest
          - artifacts/    : Archives referenced by the local manifest
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Union

from toolpack.core.exceptions import FilesystemError

HOME_ENV_VAR = "TOOLPACK_HOME"
HOME_DIR_NAME = ".toolpack"
CONFIG_FILE_NAME = "config.yaml"
MANIFEST_FILE_NAME = "manifest.yaml"


def get_default_home() -> Path:
    """
    Get the platform-specific default toolpack home directory.

    ``TOOLPACK_HOME`` overrides the platform default.

    Returns:
        Path: The home directory path.
            - Windows: %USERPROFILE%\\.toolpack
            - Linux/macOS: ~/.toolpack/

    Raises:
        FilesystemError: If USERPROFILE is unset on Windows

    Example:
        >>> print(get_default_home())
        /home/user/.toolpack  # on Linux
    """
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override).expanduser()

    if os.name == "nt":
        user_profile = os.environ.get("USERPROFILE")
        if not user_profile:
            raise FilesystemError(
                "USERPROFILE environment variable is not set. "
                "Cannot determine toolpack home directory."
            )
        return Path(user_profile) / HOME_DIR_NAME
    return Path.home() / HOME_DIR_NAME


@dataclass(frozen=True)
class InstallLayout:
    """
    Paths derived from one install root.

    Attributes:
        root: Install root directory
    """

    root: Path

    def __post_init__(self):
        object.__setattr__(self, "root", Path(self.root).expanduser())

    @property
    def toolchains_dir(self) -> Path:
        return self.root / "toolchains"

    @property
    def staging_dir(self) -> Path:
        return self.root / "staging"

    @property
    def lock_dir(self) -> Path:
        return self.root / "lock"

    @property
    def local_root(self) -> Path:
        """Local publish root holding manifest.yaml and artifacts/."""
        return self.root / "local"

    @property
    def local_manifest(self) -> Path:
        return self.local_root / MANIFEST_FILE_NAME

    @property
    def config_file(self) -> Path:
        return self.root / CONFIG_FILE_NAME

    def ensure(self) -> Dict[str, Path]:
        """
        Create the directory structure if it doesn't exist.

        Returns:
            Mapping of directory name to path

        Raises:
            FilesystemError: If a directory cannot be created or written
        """
        dirs = {
            "root": self.root,
            "toolchains": self.toolchains_dir,
            "staging": self.staging_dir,
            "lock": self.lock_dir,
        }
        for name, path in dirs.items():
            try:
                path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise FilesystemError(f"Failed to create {name} directory {path}: {e}") from e

        if not verify_directory_writable(self.root):
            raise FilesystemError(
                f"Install root {self.root} is not writable. "
                "Please check directory permissions."
            )
        return dirs


def verify_directory_writable(path: Union[str, Path]) -> bool:
    """
    Verify that a directory exists and is writable.

    Args:
        path: Directory path to verify.

    Returns:
        bool: True if directory exists and is writable, False otherwise.
    """
    path = Path(path)
    if not path.is_dir():
        return False

    try:
        test_file = path / f".write_test.{os.getpid()}"
        test_file.touch()
        test_file.unlink()
        return True
    except OSError:
        return False


__all__ = [
    "HOME_ENV_VAR",
    "CONFIG_FILE_NAME",
    "MANIFEST_FILE_NAME",
    "get_default_home",
    "InstallLayout",
    "verify_directory_writable",
]
