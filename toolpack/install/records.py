"""
On-disk records of installed toolchains.

Each installed toolchain directory carries a ``.toolpack-install.json``
record. The record is written into the staging directory before the final
rename, so a directory under ``toolchains/`` either has a complete record
and complete contents, or does not exist at all.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from toolpack.core.filesystem import atomic_write
from toolpack.manifest.model import ArtifactKey

logger = logging.getLogger(__name__)

RECORD_FILE_NAME = ".toolpack-install.json"
RECORD_FORMAT = 1


@dataclass
class InstalledToolchain:
    """
    Record of one installed toolchain.

    Attributes:
        key: Artifact key that was installed
        install_dir: Final toolchain directory
        installed_at: UTC time the installation completed
        digest: Digest of the archive the files came from
        files: Relative path -> SHA-256 of each installed file
    """

    key: ArtifactKey
    install_dir: Path
    installed_at: datetime
    digest: str = ""
    files: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "format": RECORD_FORMAT,
            "key": self.key.to_dict(),
            "install_dir": str(self.install_dir),
            "installed_at": self.installed_at.isoformat(),
            "digest": self.digest,
            "files": dict(sorted(self.files.items())),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "InstalledToolchain":
        return cls(
            key=ArtifactKey.from_dict(data["key"]),
            install_dir=Path(data["install_dir"]),
            installed_at=datetime.fromisoformat(data["installed_at"]),
            digest=data.get("digest", ""),
            files=dict(data.get("files", {})),
        )


@dataclass
class VerificationResult:
    """Outcome of re-verifying an installed toolchain."""

    key: ArtifactKey
    ok: bool
    issues: List[str] = field(default_factory=list)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def write_record(directory: Union[str, Path], record: InstalledToolchain) -> Path:
    """Write the record file into a (staging) directory."""
    path = Path(directory) / RECORD_FILE_NAME
    atomic_write(path, json.dumps(record.to_dict(), indent=2) + "\n")
    return path


def read_record(directory: Union[str, Path]) -> Optional[InstalledToolchain]:
    """
    Read the record of a toolchain directory.

    Returns:
        The record with install_dir set to directory, or None if the
        directory holds no readable record
    """
    directory = Path(directory)
    path = directory / RECORD_FILE_NAME
    if not path.is_file():
        return None

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        record = InstalledToolchain.from_dict(data)
    except (OSError, ValueError, KeyError, TypeError) as e:
        logger.warning(f"Ignoring unreadable install record {path}: {e}")
        return None

    record.install_dir = directory
    return record


__all__ = [
    "RECORD_FILE_NAME",
    "InstalledToolchain",
    "VerificationResult",
    "utc_now",
    "write_record",
    "read_record",
]
