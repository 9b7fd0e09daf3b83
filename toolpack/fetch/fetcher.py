"""
Artifact fetcher: retrieve an entry's archive and gate it on its digest.

Retrieval is dispatched on the location scheme:
- plain paths and ``file://`` URIs are read directly (LocalFetcher)
- ``http://`` and ``https://`` are downloaded with bounded retry (RemoteFetcher)

Every byte stream is re-hashed and compared against the entry digest before
it is handed on. A mismatch raises DigestMismatch; it is never retried and
never downgraded to a warning.
"""

import logging
import threading
from pathlib import Path
from typing import Dict, Optional, Union
from urllib.parse import urlparse

from toolpack.core.checksum import digest, digests_equal
from toolpack.core.exceptions import DigestMismatch, NetworkFatal, ToolpackError
from toolpack.core.filesystem import atomic_write
from toolpack.fetch.local import LocalFetcher
from toolpack.fetch.remote import RemoteFetcher
from toolpack.manifest.model import ArtifactEntry, is_url, resolve_location

logger = logging.getLogger(__name__)


class Fetcher:
    """
    Scheme-dispatching artifact fetcher.

    Example:
        >>> fetcher = Fetcher(remote=RemoteFetcher(timeout=10))
        >>> data = fetcher.fetch(entry, base=manifest.base)
    """

    def __init__(
        self,
        local: Optional[LocalFetcher] = None,
        remote: Optional[RemoteFetcher] = None,
    ):
        self._handlers: Dict[str, object] = {}
        self.register(local or LocalFetcher())
        self.register(remote or RemoteFetcher())

    def register(self, handler, schemes=None) -> None:
        """
        Register a handler for URL schemes.

        Args:
            handler: Object with ``retrieve(location, cancel) -> bytes``
            schemes: Schemes to claim (default: ``handler.schemes``)
        """
        for scheme in schemes or handler.schemes:
            self._handlers[scheme.lower()] = handler

    @property
    def supported_schemes(self):
        return sorted(self._handlers)

    def _handler_for(self, location: str):
        scheme = urlparse(location).scheme.lower() if is_url(location) else "file"
        handler = self._handlers.get(scheme)
        if handler is None:
            raise NetworkFatal(
                f"Unsupported location scheme '{scheme}' for {location} "
                f"(supported: {', '.join(self.supported_schemes)})"
            )
        return handler

    def retrieve_location(
        self, location: str, cancel: Optional[threading.Event] = None
    ) -> bytes:
        """Retrieve raw bytes from a location without integrity checks."""
        return self._handler_for(location).retrieve(location, cancel)

    def retrieve(
        self,
        entry: ArtifactEntry,
        base: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """
        Retrieve an entry's archive bytes.

        Args:
            entry: Manifest entry
            base: Directory or URL relative locations resolve against
            cancel: Optional event aborting the retrieval

        Returns:
            Unverified archive bytes

        Raises:
            NetworkFatal: On non-retryable or exhausted retrieval failures
            FilesystemError: If a local file cannot be read
            OperationCancelled: If cancel was set
        """
        location = resolve_location(entry.location, base)
        try:
            return self.retrieve_location(location, cancel)
        except ToolpackError as e:
            e.with_key(entry.key)
            raise

    def verify(self, entry: ArtifactEntry, data: bytes) -> None:
        """
        Check bytes against the entry digest.

        Raises:
            DigestMismatch: If the bytes do not hash to entry.digest
        """
        actual = digest(data)
        if not digests_equal(entry.digest, actual):
            logger.error(f"Digest mismatch for {entry.key}: expected {entry.digest}, got {actual}")
            raise DigestMismatch(entry.digest, actual, entry.location, key=entry.key)
        logger.debug(f"Digest verified for {entry.key}")

    def fetch(
        self,
        entry: ArtifactEntry,
        base: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> bytes:
        """
        Retrieve and verify an entry's archive.

        Returns:
            Archive bytes whose digest matches the entry

        Raises:
            DigestMismatch: If the bytes fail the integrity gate
            NetworkFatal: On retrieval failures
        """
        data = self.retrieve(entry, base, cancel)
        self.verify(entry, data)
        return data

    def fetch_to(
        self,
        entry: ArtifactEntry,
        destination: Union[str, Path],
        base: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> Path:
        """
        Fetch an archive and write it to destination.

        Nothing is written unless the digest matches, and the file appears
        atomically (temp file + rename).
        """
        data = self.fetch(entry, base, cancel)
        destination = Path(destination)
        try:
            atomic_write(destination, data)
        except ToolpackError as e:
            e.with_key(entry.key)
            raise
        return destination


__all__ = ["Fetcher"]
