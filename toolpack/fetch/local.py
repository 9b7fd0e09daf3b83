"""
Local artifact retrieval (plain paths and file:// URIs).
"""

import logging
import threading
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname

from toolpack.core.exceptions import FilesystemError, NetworkFatal, OperationCancelled
from toolpack.manifest.model import is_url

logger = logging.getLogger(__name__)


def location_to_path(location: str) -> Optional[Path]:
    """
    Convert a local location to a filesystem path.

    Args:
        location: Plain path or file:// URI

    Returns:
        Path, or None if location is a non-file URL

    Example:
        >>> location_to_path("file:///opt/artifacts/a.tar.gz")
        PosixPath('/opt/artifacts/a.tar.gz')
    """
    if not is_url(location):
        return Path(location)

    parsed = urlparse(location)
    if parsed.scheme != "file":
        return None
    path = url2pathname(unquote(parsed.path))
    if parsed.netloc and parsed.netloc != "localhost":
        # UNC share: file://server/share/file
        path = f"//{parsed.netloc}{path}"
    return Path(path)


def path_to_location(path: Path) -> str:
    """Render an absolute path as a file:// URI."""
    return Path(path).resolve().as_uri()


class LocalFetcher:
    """Reads artifacts straight from the local filesystem."""

    schemes = ("file",)

    def retrieve(self, location: str, cancel: Optional[threading.Event] = None) -> bytes:
        """
        Read the bytes at a local location.

        Raises:
            NetworkFatal: If the file does not exist (never retried)
            FilesystemError: If the file cannot be read
            OperationCancelled: If cancel is already set
        """
        if cancel is not None and cancel.is_set():
            raise OperationCancelled(f"Read of {location} cancelled")

        path = location_to_path(location)
        if path is None:
            raise NetworkFatal(f"Not a local location: {location}")

        logger.debug(f"Reading local artifact {path}")
        try:
            return path.read_bytes()
        except FileNotFoundError as e:
            raise NetworkFatal(f"Artifact not found: {path}") from e
        except OSError as e:
            raise FilesystemError(f"Failed to read artifact {path}: {e}") from e


__all__ = ["location_to_path", "path_to_location", "LocalFetcher"]
