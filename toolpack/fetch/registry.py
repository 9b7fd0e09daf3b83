"""
Registry client: load the manifest published at a registry source.

A registry source is one of:
- a manifest file (``/srv/toolchains/manifest.yaml``)
- a publish root directory holding ``manifest.yaml``
- an http(s) URL, either naming the manifest file directly or the directory
  that serves ``manifest.yaml``

The loaded manifest carries its base so entries with relative locations
(``artifacts/solidity-...tar.gz``) resolve against the registry.
"""

import logging
import threading
from pathlib import Path
from typing import Optional, Union

from toolpack.core.directory import MANIFEST_FILE_NAME
from toolpack.core.exceptions import FilesystemError, ManifestParseError
from toolpack.fetch.fetcher import Fetcher
from toolpack.fetch.local import location_to_path
from toolpack.manifest.model import Manifest, is_url

logger = logging.getLogger(__name__)

MANIFEST_SUFFIXES = (".yaml", ".yml")


class RegistryClient:
    """
    Reads manifests from a local or remote registry.

    Example:
        >>> client = RegistryClient("https://toolchains.example.com/stable")
        >>> manifest = client.load()
    """

    def __init__(self, source: Union[str, Path], fetcher: Optional[Fetcher] = None):
        self.source = str(source)
        self.fetcher = fetcher or Fetcher()

    @property
    def is_remote(self) -> bool:
        return is_url(self.source) and not self.source.lower().startswith("file:")

    def manifest_location(self) -> str:
        """Location of the manifest document for this source."""
        if self.is_remote:
            if self.source.lower().endswith(MANIFEST_SUFFIXES):
                return self.source
            return self.source.rstrip("/") + "/" + MANIFEST_FILE_NAME

        path = location_to_path(self.source)
        if path.is_dir():
            path = path / MANIFEST_FILE_NAME
        return str(path)

    def load(self, cancel: Optional[threading.Event] = None) -> Manifest:
        """
        Fetch and parse the registry manifest.

        Raises:
            ManifestParseError: If the document is invalid
            NetworkFatal: If a remote manifest cannot be downloaded
            FilesystemError: If a local manifest is missing or unreadable
        """
        location = self.manifest_location()
        logger.debug(f"Loading manifest from {location}")

        if not self.is_remote:
            path = Path(location)
            if not path.exists():
                raise FilesystemError(f"Manifest not found: {path}")
            return Manifest.load(path)

        data = self.fetcher.retrieve_location(location, cancel)
        try:
            text = data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ManifestParseError(f"Manifest is not UTF-8: {e}", location) from e

        base = location.rsplit("/", 1)[0]
        manifest = Manifest.loads(text, source=location, base=base)
        logger.info(f"Loaded {len(manifest)} manifest entries from {location}")
        return manifest


__all__ = ["RegistryClient"]
