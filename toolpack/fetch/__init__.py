"""
Artifact retrieval for toolpack.

Local and remote retrieval behind one scheme-dispatching Fetcher, plus the
registry client that loads published manifests.
"""

from toolpack.fetch.fetcher import Fetcher
from toolpack.fetch.local import LocalFetcher, location_to_path, path_to_location
from toolpack.fetch.registry import RegistryClient
from toolpack.fetch.remote import RemoteFetcher

__all__ = [
    "Fetcher",
    "LocalFetcher",
    "RemoteFetcher",
    "RegistryClient",
    "location_to_path",
    "path_to_location",
]
