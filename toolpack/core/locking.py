"""
Single-writer locking for manifest publishing.

Resolving and installing only ever read a loaded manifest snapshot, and
installs synchronize on an atomic directory rename, so they take no locks.
Publishing is the one place a shared file is mutated: appending entries to
a publish root's manifest.yaml. This module serializes those writers across
processes with file-based locks.

Features:
- Cross-platform, cross-process locking via the ``filelock`` library
- Timeout support to prevent hanging
- One small lock file per publish root, never deleted while in use

Usage:
    from toolpack.core.locking import LockManager

    lock_manager = LockManager(layout.lock_dir)
    with lock_manager.publish_lock(publish_root, timeout=60):
        # Safely append to publish_root/manifest.yaml
        pass
"""

import hashlib
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Union

from filelock import FileLock, Timeout as LockTimeout

logger = logging.getLogger(__name__)


class LockManager:
    """
    Manages publish locks for toolpack.

    Attributes:
        lock_dir: Directory where lock files are stored
    """

    def __init__(self, lock_dir: Union[str, Path]):
        """
        Initialize lock manager.

        Args:
            lock_dir: Directory for lock files (created if missing)
        """
        self.lock_dir = Path(lock_dir)
        self.lock_dir.mkdir(parents=True, exist_ok=True)

    def lock_path_for(self, publish_root: Union[str, Path]) -> Path:
        """Return the lock file guarding one publish root."""
        resolved = str(Path(publish_root).resolve())
        token = hashlib.sha256(resolved.encode("utf-8")).hexdigest()[:16]
        return self.lock_dir / f"publish-{token}.lock"

    @contextmanager
    def publish_lock(self, publish_root: Union[str, Path], timeout: int = 60):
        """
        Acquire the writer lock for a publish root.

        Args:
            publish_root: Directory holding the manifest being mutated
            timeout: Maximum wait time in seconds (default: 60)

        Yields:
            None

        Raises:
            LockTimeout: If lock can't be acquired within timeout

        Example:
            >>> with lock_manager.publish_lock(Path('~/.toolpack/local')):
            ...     manifest = Manifest.load(path).append(entry)
            ...     manifest.save(path)
        """
        lock_path = self.lock_path_for(publish_root)
        lock = FileLock(lock_path, timeout=timeout)

        try:
            with lock:
                logger.debug(f"Acquired publish lock: {lock_path}")
                yield
                logger.debug(f"Released publish lock: {lock_path}")
        except LockTimeout as e:
            logger.error(
                f"Could not acquire publish lock for {publish_root} after {timeout}s. "
                "Another toolpack process may be publishing."
            )
            raise LockTimeout(str(lock_path)) from e


__all__ = ["LockManager", "LockTimeout"]
