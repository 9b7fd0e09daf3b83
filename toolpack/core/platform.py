"""
Host platform detection and target triple handling for toolpack.

Artifacts are keyed by target triple (``arch-vendor-os[-abi]``). This
module detects the triple of the running host, used as the default target
for packaging and installation, and validates user supplied triples.

Features:
- CPU architecture normalization (x86_64, aarch64, i686, armv7, riscv64)
- OS/vendor mapping (unknown-linux, apple-darwin, pc-windows)
- ABI detection on Linux (glibc vs musl via ``ldd --version``)
- Triple grammar validation and parsing

Usage:
    from toolpack.core.platform import detect_host_triple, parse_triple

    host = detect_host_triple()      # e.g. 'x86_64-unknown-linux-gnu'
    triple = parse_triple(host)
    print(triple.arch, triple.os)
"""

import functools
import platform
import re
import subprocess
from dataclasses import dataclass
from typing import Optional

TRIPLE_PATTERN = re.compile(
    r"^[a-z0-9_.]+-[a-z0-9_.]+-[a-z0-9_.]+(-[a-z0-9_.]+)?$"
)

_ARCH_ALIASES = {
    "x86_64": "x86_64",
    "amd64": "x86_64",
    "x64": "x86_64",
    "aarch64": "aarch64",
    "arm64": "aarch64",
    "i386": "i686",
    "i686": "i686",
    "x86": "i686",
    "armv7l": "armv7",
    "armv7": "armv7",
    "riscv64": "riscv64",
}


@dataclass(frozen=True)
class TargetTriple:
    """
    Parsed target triple.

    Attributes:
        arch: CPU architecture ('x86_64', 'aarch64', ...)
        vendor: Vendor ('unknown', 'apple', 'pc')
        os: Operating system ('linux', 'darwin', 'windows')
        abi: Optional ABI/environment ('gnu', 'musl', 'msvc') or None
    """

    arch: str
    vendor: str
    os: str
    abi: Optional[str] = None

    def __str__(self) -> str:
        parts = [self.arch, self.vendor, self.os]
        if self.abi:
            parts.append(self.abi)
        return "-".join(parts)


def is_valid_triple(value) -> bool:
    """
    Check a string against the target triple grammar.

    Example:
        >>> is_valid_triple("x86_64-unknown-linux-gnu")
        True
        >>> is_valid_triple("linux-x64")
        False
    """
    return isinstance(value, str) and bool(TRIPLE_PATTERN.fullmatch(value))


def parse_triple(value: str) -> TargetTriple:
    """
    Parse a target triple string.

    Args:
        value: Triple in ``arch-vendor-os[-abi]`` form

    Returns:
        TargetTriple

    Raises:
        ValueError: If value does not match the triple grammar
    """
    if not is_valid_triple(value):
        raise ValueError(
            f"Invalid target triple: {value!r} (expected arch-vendor-os[-abi])"
        )
    parts = value.split("-")
    return TargetTriple(
        arch=parts[0],
        vendor=parts[1],
        os=parts[2],
        abi=parts[3] if len(parts) == 4 else None,
    )


@functools.lru_cache(maxsize=1)
def detect_host_triple() -> str:
    """
    Detect the target triple of the running host.

    This function is cached - it only runs detection once per process.

    Returns:
        Triple string such as 'x86_64-unknown-linux-gnu',
        'aarch64-apple-darwin' or 'x86_64-pc-windows-msvc'

    Example:
        >>> detect_host_triple()
        'x86_64-unknown-linux-gnu'
    """
    arch = _detect_architecture()
    system = platform.system().lower()

    if system == "linux":
        triple = TargetTriple(arch, "unknown", "linux", _detect_linux_abi())
    elif system == "darwin":
        triple = TargetTriple(arch, "apple", "darwin")
    elif system == "windows":
        triple = TargetTriple(arch, "pc", "windows", "msvc")
    else:
        triple = TargetTriple(arch, "unknown", re.sub(r"[^a-z0-9_.]", "", system) or "unknown")

    return str(triple)


def _detect_architecture() -> str:
    """
    Detect CPU architecture in triple spelling.

    Returns:
        Architecture string, lowercased machine name if unrecognized
    """
    machine = platform.machine().lower()
    return _ARCH_ALIASES.get(machine, re.sub(r"[^a-z0-9_.]", "", machine) or "unknown")


def _detect_linux_abi() -> str:
    """
    Detect Linux C library flavour.

    Returns:
        'musl' when ldd reports musl, 'gnu' otherwise
    """
    try:
        result = subprocess.run(
            ["ldd", "--version"], capture_output=True, text=True, timeout=5
        )
    except (OSError, subprocess.SubprocessError):
        return "gnu"

    output = result.stdout.lower() + result.stderr.lower()
    return "musl" if "musl" in output else "gnu"


def clear_platform_cache():
    """Clear the cached host triple (used by tests)."""
    detect_host_triple.cache_clear()


__all__ = [
    "TRIPLE_PATTERN",
    "TargetTriple",
    "is_valid_triple",
    "parse_triple",
    "detect_host_triple",
    "clear_platform_cache",
]
