"""
Source detector boundary for toolpack.

Detectors are external collaborators that share the CLI host; this package
defines their request/response contract and the runner their executables use.
"""

from toolpack.detection.base import DetectContext, DetectResult, Detector, ExtensionDetector
from toolpack.detection.command import PATH_ENV_VAR, run_detector

__all__ = [
    "DetectContext",
    "DetectResult",
    "Detector",
    "ExtensionDetector",
    "PATH_ENV_VAR",
    "run_detector",
]
