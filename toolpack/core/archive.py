"""
Deterministic archive codec for toolchain artifacts.

Artifacts are gzip-compressed tar streams whose top-level members are the
packaged binaries. Creation normalizes every piece of non-content metadata
so that identical inputs always produce byte-identical archives:
- members sorted by relative path
- mtime 0, uid/gid 0, empty owner names
- fixed permission bits (0o755 or 0o644)
- gzip header without timestamp or embedded file name

Extraction validates every member before writing anything and refuses
absolute paths, ``..`` traversal, links that point outside the destination
and special files (devices, fifos).
"""

import gzip
import io
import logging
import os
import posixpath
import tarfile
import threading
import zlib
from pathlib import Path, PurePosixPath
from typing import Iterable, List, Optional, Set, Tuple, Union

from toolpack.core.exceptions import (
    CorruptArchive,
    FilesystemError,
    OperationCancelled,
    PathEscape,
)
from toolpack.core.filesystem import ensure_directory, is_relative_to

logger = logging.getLogger(__name__)

ARCHIVE_SUFFIX = ".tar.gz"
EXECUTABLE_MODE = 0o755
REGULAR_MODE = 0o644

ArchiveEntry = Tuple[str, bytes]


# ============================================================================
# Path validation
# ============================================================================


def normalize_member_path(name: str) -> str:
    """
    Normalize and validate a relative archive path.

    Backslashes are treated as separators and ``.`` components dropped.

    Args:
        name: Relative path of an archive member

    Returns:
        Normalized POSIX relative path

    Raises:
        PathEscape: If the path is absolute or contains ``..``
        ValueError: If the path is empty

    Example:
        >>> normalize_member_path("./bin/tool")
        'bin/tool'
    """
    raw = name.replace("\\", "/")
    if raw.startswith("/") or (len(raw) > 1 and raw[1] == ":"):
        raise PathEscape(name)

    parts = [part for part in raw.split("/") if part not in ("", ".")]
    if any(part == ".." for part in parts):
        raise PathEscape(name)
    if not parts:
        raise ValueError(f"Empty archive member path: {name!r}")

    return "/".join(parts)


def _validate_member(member: tarfile.TarInfo, destination: Path) -> Optional[str]:
    """
    Validate a tar member against the extraction root.

    Args:
        member: Tar member to check
        destination: Resolved extraction root

    Returns:
        Normalized relative path of the member, or None for the root
        directory entry (".")

    Raises:
        PathEscape: If the member or its link target escapes destination
        CorruptArchive: If the member type is not supported
    """
    try:
        name = normalize_member_path(member.name)
    except ValueError as e:
        if member.isdir():
            return None
        raise CorruptArchive(str(e)) from e

    target = destination / name
    if not is_relative_to(Path(os.path.normpath(target)), destination):
        raise PathEscape(member.name, destination)

    if member.issym():
        link = member.linkname.replace("\\", "/")
        # Only links that point downward from their own directory are allowed
        if posixpath.isabs(link) or ".." in PurePosixPath(link).parts:
            raise PathEscape(f"{member.name} -> {member.linkname}", destination)
    elif member.islnk():
        raise CorruptArchive(f"Hard links are not supported: {member.name}")
    elif not (member.isfile() or member.isdir()):
        raise CorruptArchive(f"Unsupported archive member type: {member.name}")

    return name


# ============================================================================
# Archive creation
# ============================================================================


def archive(entries: Iterable[ArchiveEntry], mode: int = EXECUTABLE_MODE) -> bytes:
    """
    Build a deterministic tar.gz archive from in-memory files.

    Args:
        entries: (relative path, content) pairs
        mode: Permission bits applied to every member

    Returns:
        Archive bytes, identical for identical entries regardless of order

    Raises:
        PathEscape: If a relative path is absolute or contains ``..``
        ValueError: If two entries normalize to the same path

    Example:
        >>> data = archive([("tool", b"#!/bin/sh\\n")])
        >>> data == archive([("./tool", b"#!/bin/sh\\n")])
        True
    """
    normalized = {}
    for name, content in entries:
        path = normalize_member_path(name)
        if path in normalized:
            raise ValueError(f"Duplicate archive member: {path}")
        normalized[path] = bytes(content)

    buffer = io.BytesIO()
    with gzip.GzipFile(
        filename="", mode="wb", fileobj=buffer, mtime=0, compresslevel=9
    ) as gz:
        with tarfile.open(fileobj=gz, mode="w", format=tarfile.PAX_FORMAT) as tar:
            for path in sorted(normalized):
                content = normalized[path]
                info = tarfile.TarInfo(path)
                info.size = len(content)
                info.mtime = 0
                info.mode = mode
                info.uid = info.gid = 0
                info.uname = info.gname = ""
                info.type = tarfile.REGTYPE
                tar.addfile(info, io.BytesIO(content))

    data = buffer.getvalue()
    logger.debug(f"Created archive with {len(normalized)} members ({len(data)} bytes)")
    return data


def list_members(data: bytes) -> List[str]:
    """
    List the member paths of an archive without extracting it.

    Raises:
        CorruptArchive: If data is not a valid archive
    """
    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
            return [member.name for member in tar.getmembers()]
    except (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile) as e:
        raise CorruptArchive(f"Invalid archive: {e}") from e


# ============================================================================
# Archive extraction
# ============================================================================


def extract(
    data: bytes,
    destination: Union[str, Path],
    cancel: Optional[threading.Event] = None,
) -> Set[Path]:
    """
    Extract an archive into a directory.

    All members are validated before the first write, so a rejected archive
    leaves the destination untouched.

    Args:
        data: Archive bytes
        destination: Directory to extract into (created if missing)
        cancel: Optional event; when set, extraction stops between members

    Returns:
        Set of file and link paths written

    Raises:
        CorruptArchive: If data is not a valid archive
        PathEscape: If any member would land outside destination
        OperationCancelled: If cancel was set during extraction
        FilesystemError: If writing fails

    Example:
        >>> written = extract(archive_bytes, Path("staging"))
        >>> sorted(p.name for p in written)
        ['tool']
    """
    destination = ensure_directory(destination)
    root = destination.resolve()
    written: Set[Path] = set()

    try:
        with tarfile.open(fileobj=io.BytesIO(data), mode="r:gz") as tar:
            members = tar.getmembers()
            validated = [(member, _validate_member(member, root)) for member in members]

            for member, name in validated:
                if name is None:
                    continue
                if cancel is not None and cancel.is_set():
                    raise OperationCancelled(f"Extraction into {destination} cancelled")

                target = destination / name
                if member.isdir():
                    ensure_directory(target)
                    continue

                ensure_directory(target.parent)
                # Catches escapes through links created earlier in this archive
                if not is_relative_to(target.parent.resolve(), root):
                    raise PathEscape(member.name, root)

                if member.issym():
                    _write_symlink(target, member.linkname)
                else:
                    source = tar.extractfile(member)
                    content = source.read() if source is not None else b""
                    _write_file(target, content, member.mode)
                written.add(target)

    except (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile) as e:
        raise CorruptArchive(f"Invalid archive: {e}") from e

    logger.debug(f"Extracted {len(written)} files into {destination}")
    return written


def _write_file(target: Path, content: bytes, mode: int) -> None:
    """Write one extracted file with normalized permissions."""
    try:
        if target.is_symlink():
            target.unlink()
        with open(target, "wb") as f:
            f.write(content)
        os.chmod(target, EXECUTABLE_MODE if mode & 0o111 else REGULAR_MODE)
    except OSError as e:
        raise FilesystemError(f"Failed to write '{target}': {e}") from e


def _write_symlink(target: Path, linkname: str) -> None:
    """Create one extracted symbolic link."""
    try:
        if target.is_symlink() or target.exists():
            target.unlink()
        os.symlink(linkname, target)
    except OSError as e:
        raise FilesystemError(f"Failed to create link '{target}': {e}") from e


__all__ = [
    "ARCHIVE_SUFFIX",
    "ArchiveEntry",
    "normalize_member_path",
    "archive",
    "list_members",
    "extract",
]
