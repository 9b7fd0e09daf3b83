"""
Cross-platform file system utilities for toolpack.

This module provides the small set of platform-aware file operations the
distribution pipeline relies on:
- Atomic writes (temp file + rename) so readers never see partial files
- Safe directory removal guarded by a required prefix
- Executable detection (POSIX mode bits, Windows extensions)
- Path containment checks used by archive extraction

Raw OSErrors are translated to toolpack's FilesystemError at this boundary.
"""

import os
import shutil
import stat
import tempfile
from pathlib import Path
from typing import Optional, Union

from toolpack.core.exceptions import FilesystemError

# Platform detection
IS_WINDOWS = os.name == "nt"
IS_UNIX = not IS_WINDOWS

WINDOWS_EXECUTABLE_SUFFIXES = (".exe", ".bat", ".cmd")


# ============================================================================
# Path Utilities
# ============================================================================


def is_relative_to(path: Path, parent: Path) -> bool:
    """
    Check if path is relative to (under) parent directory.

    Args:
        path: Path to check
        parent: Parent directory

    Returns:
        True if path is equal to or under parent directory

    Example:
        >>> is_relative_to(Path("/home/user/project/file.txt"), Path("/home/user"))
        True
    """
    try:
        path.relative_to(parent)
        return True
    except ValueError:
        return False


def is_executable(path: Union[str, Path]) -> bool:
    """
    Check whether a path is an executable regular file.

    On POSIX any execute bit counts. On Windows, where mode bits carry no
    meaning, the file extension decides.

    Args:
        path: Path to check

    Returns:
        True if path is a regular file that can be executed
    """
    path = Path(path)
    if not path.is_file():
        return False

    if IS_WINDOWS:
        return path.suffix.lower() in WINDOWS_EXECUTABLE_SUFFIXES

    return bool(path.stat().st_mode & (stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH))


def ensure_directory(path: Union[str, Path]) -> Path:
    """
    Create directory (and parents) if it doesn't exist.

    Args:
        path: Directory path

    Returns:
        The directory path

    Raises:
        FilesystemError: If the directory cannot be created
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise FilesystemError(f"Failed to create directory '{path}': {e}") from e
    return path


# ============================================================================
# Safe File Operations
# ============================================================================


def atomic_write(
    file_path: Union[str, Path], content: Union[str, bytes], encoding: str = "utf-8"
) -> None:
    """
    Write file atomically using temp file + rename.

    This ensures the file is never in a partially-written state.
    If the write fails, the original file (if any) remains unchanged.

    Args:
        file_path: Path to write to
        content: Content to write (string or bytes)
        encoding: Text encoding (used only for string content)

    Raises:
        FilesystemError: If the write or rename fails

    Example:
        >>> atomic_write('manifest.yaml', 'schema: 1\\n')
        >>> atomic_write('tool.tar.gz', b'\\x1f\\x8b...')
    """
    file_path = Path(file_path)
    ensure_directory(file_path.parent)

    try:
        # Temp file in the same directory keeps the rename on one filesystem
        temp_fd, temp_path_str = tempfile.mkstemp(
            dir=file_path.parent, prefix=f".{file_path.name}.", suffix=".tmp"
        )
    except OSError as e:
        raise FilesystemError(f"Failed to create temp file for '{file_path}': {e}") from e
    temp_path = Path(temp_path_str)

    try:
        if isinstance(content, str):
            # newline="" keeps output byte-identical across platforms
            with open(temp_fd, "w", encoding=encoding, newline="") as f:
                f.write(content)
        else:
            with open(temp_fd, "wb") as f:
                f.write(content)

        temp_path.replace(file_path)

    except OSError as e:
        temp_path.unlink(missing_ok=True)
        raise FilesystemError(f"Failed to write '{file_path}': {e}") from e
    except BaseException:
        temp_path.unlink(missing_ok=True)
        raise


def safe_rmtree(
    path: Union[str, Path], require_prefix: Optional[Union[str, Path]] = None
) -> None:
    """
    Safely remove a directory tree with safeguards.

    Args:
        path: Directory to remove
        require_prefix: If specified, path must be under this directory

    Raises:
        ValueError: If path is not under require_prefix
        FilesystemError: If deletion fails

    Example:
        >>> safe_rmtree('/tmp/staging/x', require_prefix='/tmp/staging')
        >>> safe_rmtree('/usr/bin', require_prefix='/home')  # ValueError
    """
    path = Path(path).resolve()

    if require_prefix is not None:
        require_prefix = Path(require_prefix).resolve()
        if not is_relative_to(path, require_prefix):
            raise ValueError(
                f"Refusing to delete '{path}': not under required prefix '{require_prefix}'"
            )

    if not path.exists():
        return

    if not path.is_dir():
        raise FilesystemError(f"Path is not a directory: {path}")

    try:
        if IS_WINDOWS:

            def handle_remove_readonly(func, target, exc):
                """Error handler for Windows read-only files."""
                if not os.access(target, os.W_OK):
                    os.chmod(target, stat.S_IWRITE)
                    func(target)
                else:
                    raise

            shutil.rmtree(path, onerror=handle_remove_readonly)
        else:
            shutil.rmtree(path)

    except OSError as e:
        raise FilesystemError(f"Failed to remove directory '{path}': {e}") from e


__all__ = [
    "IS_WINDOWS",
    "IS_UNIX",
    "is_relative_to",
    "is_executable",
    "ensure_directory",
    "atomic_write",
    "safe_rmtree",
]
