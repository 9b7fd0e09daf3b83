"""
Manifest resolution: pick the entry that satisfies an install request.

A request names a target and profile, optionally a language, and a version
constraint:
- an exact semantic version (``1.2.0`` and ``v1.2.0`` are the same version)
- ``latest``: the highest version, where any release outranks every
  pre-release; never selects ``local``
- ``local``: the sentinel produced by local-only packaging

Entries sharing a key must share a digest; a mismatch means the manifest
was republished with different bytes and is rejected. When several entries
share both key and digest the last one appended wins.
"""

import logging
from typing import Dict, List, Optional

from toolpack.core.exceptions import (
    AmbiguousArtifact,
    AmbiguousVersionConstraint,
    DuplicateKeyConflict,
    NoMatchingArtifact,
)
from toolpack.manifest.model import ArtifactEntry, ArtifactKey, KeyFilter, Manifest, Profile
from toolpack.manifest.version import (
    LATEST_VERSION,
    LOCAL_VERSION,
    InvalidVersion,
    Version,
    latest_sort_key,
)

logger = logging.getLogger(__name__)


def parse_constraint(version_constraint: str):
    """
    Classify a version constraint.

    Returns:
        LATEST_VERSION, LOCAL_VERSION, or a Version for exact constraints

    Raises:
        AmbiguousVersionConstraint: If the constraint is not recognized
    """
    if not isinstance(version_constraint, str):
        raise AmbiguousVersionConstraint(repr(version_constraint))
    constraint = version_constraint.strip()
    if constraint.lower() in (LATEST_VERSION, LOCAL_VERSION):
        return constraint.lower()
    try:
        return Version(constraint)
    except InvalidVersion as e:
        raise AmbiguousVersionConstraint(version_constraint) from e


def _dedupe(entries: List[ArtifactEntry]) -> Dict[ArtifactKey, ArtifactEntry]:
    """Collapse entries per key, last appended wins; reject digest conflicts."""
    by_key: Dict[ArtifactKey, ArtifactEntry] = {}
    for entry in entries:
        previous = by_key.get(entry.key)
        if previous is not None:
            if previous.digest != entry.digest:
                raise DuplicateKeyConflict(entry.key, previous.digest, entry.digest)
            logger.warning(f"Manifest lists {entry.key} more than once, using last entry")
        by_key[entry.key] = entry
    return by_key


def _version_of(key: ArtifactKey) -> Optional[Version]:
    if key.version == LOCAL_VERSION:
        return None
    return Version(key.version)


def resolve(
    manifest: Manifest,
    language: Optional[str],
    target: str,
    profile,
    version_constraint: str,
) -> ArtifactEntry:
    """
    Select the manifest entry matching a request.

    Args:
        manifest: Loaded manifest snapshot
        language: Language to match, or None to accept any language
        target: Target triple
        profile: Profile or profile name
        version_constraint: Exact version, 'latest' or 'local'

    Returns:
        The selected ArtifactEntry

    Raises:
        AmbiguousVersionConstraint: If version_constraint is malformed
        NoMatchingArtifact: If no entry satisfies the request
        AmbiguousArtifact: If language is None and several languages match
        DuplicateKeyConflict: If matching entries disagree on a digest

    Example:
        >>> entry = resolve(manifest, None, "x86_64-unknown-linux-gnu", "release", "latest")
        >>> entry.key.version
        '1.2.0'
    """
    constraint = parse_constraint(version_constraint)
    profile = Profile.parse(profile)
    request = (
        f"{language + '/' if language else ''}{target}/{profile.value}@{version_constraint}"
    )

    candidates = manifest.entries_for(
        KeyFilter(language=language, profile=profile, target=target)
    )
    by_key = _dedupe(candidates)

    if constraint == LOCAL_VERSION:
        matching = [e for k, e in by_key.items() if k.version == LOCAL_VERSION]
    elif constraint == LATEST_VERSION:
        released = [e for k, e in by_key.items() if k.version != LOCAL_VERSION]
        if released:
            best = max(latest_sort_key(_version_of(e.key)) for e in released)
            matching = [e for e in released if latest_sort_key(_version_of(e.key)) == best]
        else:
            matching = []
    else:
        matching = [
            e
            for k, e in by_key.items()
            if k.version != LOCAL_VERSION and _version_of(k) == constraint
        ]

    if not matching:
        raise NoMatchingArtifact(f"No artifact in manifest matches {request}")

    if len(matching) > 1:
        languages = sorted({e.key.language or "<none>" for e in matching})
        if len(languages) > 1:
            raise AmbiguousArtifact(
                f"{request} matches artifacts for several languages "
                f"({', '.join(languages)}); specify a language"
            )
        # Same language, versions equal by precedence (e.g. differing build metadata)
        positions = {id(e): i for i, e in enumerate(manifest.entries)}
        matching.sort(key=lambda e: positions[id(e)])

    selected = matching[-1]
    logger.debug(f"Resolved {request} to {selected.key}")
    return selected


__all__ = ["parse_constraint", "resolve"]
