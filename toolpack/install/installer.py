"""
Toolchain installer.

Orchestrates Resolver -> Fetcher -> filesystem placement. Every install
request walks an explicit state machine:

    Resolving -> Fetching -> Verifying -> Extracting -> Installed
         \\            \\            \\            \\
          +------------+------------+------------+--> Failed(reason)

Resolving may also move straight to Installed when the requested key is
already present (idempotent install, nothing is fetched).

Atomicity:
- Archives are extracted into a uniquely named staging directory
  (``staging/<slug>-<version>.<pid>.<random>``), never into the final path.
- The staging directory is renamed into ``toolchains/<version>/<slug>`` in a
  single ``os.rename``. That rename is the only synchronization point:
  concurrent attempts for the same key each extract privately, one rename
  wins, and the loser discards its staging copy and reports the winner's
  installation.
- Staging directories are removed on every exit path. Directories left by a
  killed process are swept by ``cleanup_stale_staging`` at the start of every
  install: the owning PID is parsed from the name and the directory goes once
  that process is gone (or, where liveness cannot be checked, once it is old).

Directory Structure:
    <install_root>/toolchains/<version>/<[language-]target-profile>/
        <binaries...>
        .toolpack-install.json
"""

import logging
import os
import secrets
import threading
import time
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from toolpack.core.archive import extract
from toolpack.core.checksum import digest_file
from toolpack.core.directory import InstallLayout
from toolpack.core.exceptions import (
    FilesystemError,
    InstallError,
    OperationCancelled,
    ToolpackError,
)
from toolpack.core.filesystem import IS_WINDOWS, ensure_directory, safe_rmtree
from toolpack.core.platform import detect_host_triple
from toolpack.fetch.fetcher import Fetcher
from toolpack.fetch.registry import RegistryClient
from toolpack.install.records import (
    RECORD_FILE_NAME,
    InstalledToolchain,
    VerificationResult,
    read_record,
    utc_now,
    write_record,
)
from toolpack.manifest.model import ArtifactEntry, ArtifactKey, Manifest, Profile
from toolpack.manifest.resolver import resolve
from toolpack.manifest.version import LOCAL_VERSION

logger = logging.getLogger(__name__)


# ============================================================================
# Staging ownership
# ============================================================================


def staging_owner(path: Path) -> Optional[int]:
    """
    Return the PID embedded in a staging directory name, or None.

    Staging names end in ``.<pid>.<hex>``; versions may contain dots, so the
    name is split from the right.
    """
    parts = path.name.rsplit(".", 2)
    if len(parts) != 3 or not parts[1].isdigit():
        return None
    return int(parts[1])


def process_alive(pid: int) -> Optional[bool]:
    """
    Check whether a process exists.

    Returns:
        True or False on POSIX, None where liveness cannot be checked safely
    """
    if IS_WINDOWS:
        # os.kill terminates the target on Windows
        return None
    if pid == os.getpid():
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    except OSError:
        return None
    return True


# ============================================================================
# State machine
# ============================================================================


class InstallState(Enum):
    """States of one install attempt."""

    RESOLVING = "resolving"
    FETCHING = "fetching"
    VERIFYING = "verifying"
    EXTRACTING = "extracting"
    INSTALLED = "installed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (InstallState.INSTALLED, InstallState.FAILED)


_TRANSITIONS = {
    InstallState.RESOLVING: {InstallState.FETCHING, InstallState.INSTALLED},
    InstallState.FETCHING: {InstallState.VERIFYING},
    InstallState.VERIFYING: {InstallState.EXTRACTING},
    InstallState.EXTRACTING: {InstallState.INSTALLED},
}


class InstallAttempt:
    """
    Tracks the state of one install request.

    Attributes:
        request: Human readable description of the request
        key: Resolved key (None until resolution succeeds)
        state: Current state
        history: States visited, in order
        failure: Error that moved the attempt to FAILED
    """

    def __init__(
        self,
        request: str,
        on_state: Optional[Callable[["InstallAttempt"], None]] = None,
    ):
        self.request = request
        self.key: Optional[ArtifactKey] = None
        self.state = InstallState.RESOLVING
        self.history: List[InstallState] = [InstallState.RESOLVING]
        self.failure: Optional[ToolpackError] = None
        self._on_state = on_state
        self._notify()

    @property
    def reason(self) -> Optional[str]:
        """Failure reason as '<ErrorKind>: <message>'."""
        if self.failure is None:
            return None
        return f"{self.failure.kind}: {self.failure}"

    def transition(self, state: InstallState) -> None:
        """
        Move to a new non-failed state.

        Raises:
            InstallError: If the move is not allowed from the current state
        """
        if state not in _TRANSITIONS.get(self.state, set()):
            raise InstallError(
                f"Invalid install transition {self.state.value} -> {state.value}",
                key=self.key,
            )
        self._enter(state)

    def fail(self, error: ToolpackError) -> None:
        """Move to FAILED from any non-terminal state."""
        if self.state.is_terminal:
            return
        self.failure = error
        self._enter(InstallState.FAILED)
        logger.error(f"Install of {self.key or self.request} failed: {self.reason}")

    def _enter(self, state: InstallState) -> None:
        logger.debug(f"Install {self.key or self.request}: {self.state.value} -> {state.value}")
        self.state = state
        self.history.append(state)
        self._notify()

    def _notify(self) -> None:
        if self._on_state is not None:
            self._on_state(self)


# ============================================================================
# Installer
# ============================================================================


class Installer:
    """
    Installs toolchains under an explicit install root.

    Example:
        >>> installer = Installer(Path("~/.toolpack"), registry=RegistryClient(url))
        >>> installed = installer.install(target="x86_64-unknown-linux-gnu",
        ...                               profile="release", version_constraint="1.2.0")
        >>> installed.install_dir
        PosixPath('/home/user/.toolpack/toolchains/1.2.0/x86_64-unknown-linux-gnu-release')
    """

    def __init__(
        self,
        install_root: Union[str, Path],
        fetcher: Optional[Fetcher] = None,
        registry: Optional[RegistryClient] = None,
        on_state: Optional[Callable[[InstallAttempt], None]] = None,
    ):
        self.layout = InstallLayout(Path(install_root))
        self.fetcher = fetcher or Fetcher()
        self.registry = registry
        self.on_state = on_state

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def install_dir_for(self, key: ArtifactKey) -> Path:
        """Final directory of a key: toolchains/<version>/<slug>."""
        return self.layout.toolchains_dir / key.version / key.slug

    def _create_staging(self, key: ArtifactKey) -> Path:
        ensure_directory(self.layout.staging_dir)
        name = f"{key.slug}-{key.version}.{os.getpid()}.{secrets.token_hex(6)}"
        staging = self.layout.staging_dir / name
        try:
            staging.mkdir()
        except OSError as e:
            raise FilesystemError(f"Failed to create staging directory {staging}: {e}") from e
        logger.debug(f"Created staging directory {staging}")
        return staging

    def _discard(self, path: Path) -> None:
        """Best-effort removal of a staging directory."""
        try:
            safe_rmtree(path, require_prefix=self.layout.staging_dir)
            logger.debug(f"Removed staging directory {path}")
        except (FilesystemError, ValueError) as e:
            logger.warning(f"Failed to remove staging directory {path}: {e}")

    # ------------------------------------------------------------------
    # Install
    # ------------------------------------------------------------------

    def install(
        self,
        language: Optional[str] = None,
        target: Optional[str] = None,
        profile=Profile.DEV,
        version_constraint: str = LOCAL_VERSION,
        manifest: Optional[Manifest] = None,
        cancel: Optional[threading.Event] = None,
    ) -> InstalledToolchain:
        """
        Resolve, fetch, verify and install a toolchain.

        Args:
            language: Language to install for (None accepts any)
            target: Target triple (default: host triple)
            profile: Build profile (default: dev)
            version_constraint: Exact version, 'latest' or 'local' (default)
            manifest: Manifest to resolve against (default: loaded from registry)
            cancel: Optional event that aborts fetching or extraction

        Returns:
            InstalledToolchain record

        Raises:
            NoMatchingArtifact, AmbiguousVersionConstraint, AmbiguousArtifact:
                If resolution fails
            DigestMismatch, CorruptArchive, PathEscape: On integrity failures
            NetworkFatal: If the archive cannot be retrieved
            OperationCancelled: If cancel was set
            FilesystemError: On filesystem failures
        """
        target = target or detect_host_triple()
        request = f"{language + '/' if language else ''}{target}/{profile}@{version_constraint}"
        attempt = InstallAttempt(request, self.on_state)

        try:
            if manifest is None:
                if self.registry is None:
                    raise InstallError("No manifest given and no registry configured")
                manifest = self.registry.load(cancel)
            entry = resolve(manifest, language, target, profile, version_constraint)
        except ToolpackError as e:
            attempt.fail(e)
            raise

        return self._install_resolved(entry, manifest.base, attempt, cancel)

    def install_entry(
        self,
        entry: ArtifactEntry,
        base: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> InstalledToolchain:
        """Install a specific manifest entry, skipping resolution."""
        attempt = InstallAttempt(str(entry.key), self.on_state)
        return self._install_resolved(entry, base, attempt, cancel)

    def _install_resolved(
        self,
        entry: ArtifactEntry,
        base: Optional[str],
        attempt: InstallAttempt,
        cancel: Optional[threading.Event],
    ) -> InstalledToolchain:
        key = entry.key
        attempt.key = key

        self.cleanup_stale_staging()

        existing = self.find_installed(key)
        if existing is not None:
            logger.info(f"{key} is already installed at {existing.install_dir}")
            attempt.transition(InstallState.INSTALLED)
            return existing

        staging: Optional[Path] = None
        try:
            attempt.transition(InstallState.FETCHING)
            data = self.fetcher.retrieve(entry, base, cancel)

            attempt.transition(InstallState.VERIFYING)
            self.fetcher.verify(entry, data)

            attempt.transition(InstallState.EXTRACTING)
            staging = self._create_staging(key)
            written = extract(data, staging, cancel)

            final_dir = self.install_dir_for(key)
            record = InstalledToolchain(
                key=key,
                install_dir=final_dir,
                installed_at=utc_now(),
                digest=entry.digest,
                files=self._hash_files(staging, written),
            )
            write_record(staging, record)

            if cancel is not None and cancel.is_set():
                raise OperationCancelled(f"Install of {key} cancelled")

            installed, moved = self._commit(staging, final_dir, record)
            if moved:
                staging = None

            attempt.transition(InstallState.INSTALLED)
            logger.info(f"Installed {key} to {installed.install_dir}")
            return installed

        except ToolpackError as e:
            e.with_key(key)
            attempt.fail(e)
            raise
        except OSError as e:
            error = FilesystemError(f"Install failed: {e}", key=key)
            attempt.fail(error)
            raise error from e
        except KeyboardInterrupt:
            attempt.fail(OperationCancelled("Install interrupted", key=key))
            raise
        finally:
            if staging is not None:
                self._discard(staging)

    def _hash_files(self, staging: Path, written) -> dict:
        files = {}
        for path in written:
            if path.is_symlink() or not path.is_file():
                continue
            files[path.relative_to(staging).as_posix()] = digest_file(path)
        return files

    def _commit(
        self, staging: Path, final_dir: Path, record: InstalledToolchain
    ) -> Tuple[InstalledToolchain, bool]:
        """
        Rename staging into place.

        Returns:
            (record of the installation, whether staging was moved)
        """
        ensure_directory(final_dir.parent)
        try:
            os.rename(staging, final_dir)
            return record, True
        except OSError as e:
            winner = read_record(final_dir)
            if winner is not None and winner.key == record.key:
                logger.info(f"Concurrent install of {record.key} finished first, using it")
                return winner, False
            raise FilesystemError(
                f"Cannot move installation into {final_dir}: {e}", key=record.key
            ) from e

    # ------------------------------------------------------------------
    # Queries and maintenance
    # ------------------------------------------------------------------

    def find_installed(self, key: ArtifactKey) -> Optional[InstalledToolchain]:
        """Return the installation of key, or None."""
        record = read_record(self.install_dir_for(key))
        if record is not None and record.key == key:
            return record
        return None

    def list_installed(self) -> List[InstalledToolchain]:
        """
        List complete installations.

        Only directories that reached their final location with a record
        are reported; staging directories are never visible here.
        """
        toolchains_dir = self.layout.toolchains_dir
        if not toolchains_dir.is_dir():
            return []

        installed = []
        for version_dir in sorted(toolchains_dir.iterdir()):
            if not version_dir.is_dir():
                continue
            for toolchain_dir in sorted(version_dir.iterdir()):
                record = read_record(toolchain_dir)
                if record is not None:
                    installed.append(record)
        return installed

    def verify_installed(self, key: ArtifactKey) -> VerificationResult:
        """
        Re-verify installed files against the digests recorded at install time.

        Returns:
            VerificationResult listing every discrepancy found
        """
        record = self.find_installed(key)
        if record is None:
            return VerificationResult(key, False, [f"Toolchain not installed: {key}"])

        issues = []
        for relative, expected in sorted(record.files.items()):
            path = record.install_dir / relative
            if not path.is_file():
                issues.append(f"Missing file: {relative}")
                continue
            actual = digest_file(path)
            if actual != expected:
                issues.append(
                    f"Modified file: {relative}\n"
                    f"  Expected: {expected}\n"
                    f"  Got: {actual}"
                )

        for path in sorted(record.install_dir.rglob("*")):
            if path.is_symlink() or not path.is_file():
                continue
            relative = path.relative_to(record.install_dir).as_posix()
            if relative != RECORD_FILE_NAME and relative not in record.files:
                issues.append(f"Unexpected file: {relative}")

        return VerificationResult(key, not issues, issues)

    def uninstall(self, key: ArtifactKey) -> bool:
        """
        Remove an installed toolchain.

        The directory is first renamed into staging so the toolchain
        disappears from ``list_installed`` atomically, then deleted.

        Returns:
            True if something was removed, False if key was not installed
        """
        record = self.find_installed(key)
        if record is None:
            return False

        ensure_directory(self.layout.staging_dir)
        trash = self.layout.staging_dir / (
            f"{key.slug}-{key.version}.removing.{os.getpid()}.{secrets.token_hex(6)}"
        )
        try:
            os.rename(record.install_dir, trash)
        except OSError as e:
            raise FilesystemError(
                f"Failed to remove {record.install_dir}: {e}", key=key
            ) from e
        self._discard(trash)

        version_dir = record.install_dir.parent
        try:
            version_dir.rmdir()
        except OSError:
            pass  # Other toolchains of this version remain

        logger.info(f"Uninstalled {key}")
        return True

    def cleanup_stale_staging(self, max_age_hours: float = 24) -> int:
        """
        Remove staging directories left behind by dead processes.

        These are left behind only when a process dies mid-install or
        mid-uninstall. A directory is stale when the PID in its name no
        longer exists, or when it is older than max_age_hours and its owner
        is not this process (PIDs get reused).

        Args:
            max_age_hours: Age after which a directory of an unknown or
                foreign owner is removed regardless of liveness

        Returns:
            Number of directories removed
        """
        staging_dir = self.layout.staging_dir
        try:
            candidates = [path for path in staging_dir.iterdir() if path.is_dir()]
        except OSError:
            return 0

        now = time.time()
        removed = 0
        for path in candidates:
            if not self._is_stale(path, now, max_age_hours):
                continue
            self._discard(path)
            if not path.exists():
                removed += 1
                logger.info(f"Removed stale staging directory {path}")
        return removed

    def _is_stale(self, path: Path, now: float, max_age_hours: float) -> bool:
        pid = staging_owner(path)
        if pid == os.getpid():
            return False
        if pid is not None and process_alive(pid) is False:
            return True
        try:
            age_hours = (now - path.stat().st_mtime) / 3600
        except OSError:
            return False
        return age_hours > max_age_hours


__all__ = ["InstallState", "InstallAttempt", "Installer", "staging_owner", "process_alive"]
