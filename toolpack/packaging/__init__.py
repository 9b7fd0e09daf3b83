"""
Artifact packaging for toolpack.

Turns built binaries into deterministic, digest-identified archives.
"""

from toolpack.packaging.packager import (
    Packager,
    archive_name,
    build_output_dir,
    collect_binaries,
)

__all__ = ["Packager", "archive_name", "build_output_dir", "collect_binaries"]
