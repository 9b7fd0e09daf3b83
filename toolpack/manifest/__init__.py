"""
Manifest model and resolution for toolpack.

The manifest is the single source of truth for which artifacts exist.
"""

from toolpack.manifest.model import (
    SCHEMA_VERSION,
    ArtifactEntry,
    ArtifactKey,
    KeyFilter,
    Manifest,
    Profile,
)
from toolpack.manifest.resolver import resolve
from toolpack.manifest.version import LATEST_VERSION, LOCAL_VERSION, Version

__all__ = [
    "SCHEMA_VERSION",
    "ArtifactEntry",
    "ArtifactKey",
    "KeyFilter",
    "Manifest",
    "Profile",
    "resolve",
    "LATEST_VERSION",
    "LOCAL_VERSION",
    "Version",
]
