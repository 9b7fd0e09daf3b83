"""
Toolchain installation for toolpack.
"""

from toolpack.install.installer import InstallAttempt, Installer, InstallState
from toolpack.install.records import InstalledToolchain, VerificationResult

__all__ = [
    "InstallAttempt",
    "Installer",
    "InstallState",
    "InstalledToolchain",
    "VerificationResult",
]
