"""
Detector interface.

Language-specific CLIs sharing the toolpack host sniff source trees through
a single polymorphic operation, ``detect(context) -> DetectResult``. The
distribution pipeline never depends on which detectors exist.
"""

import json
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple


@dataclass(frozen=True)
class DetectContext:
    """
    Input of a detection request.

    Attributes:
        path: File or directory to inspect
        args: Extra command-line arguments passed through to the detector
        env: Environment visible to the detector
    """

    path: Path
    args: Tuple[str, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(self, "path", Path(self.path))
        object.__setattr__(self, "args", tuple(self.args))


@dataclass(frozen=True)
class DetectResult:
    """
    Outcome of a detection request.

    Serialized as ``{"pass": bool, "language"?: str, "extension"?: str}``.
    """

    passed: bool
    language: Optional[str] = None
    extension: Optional[str] = None

    @classmethod
    def pass_(cls, language: str, extension: Optional[str] = None) -> "DetectResult":
        return cls(True, language, extension)

    @classmethod
    def fail(cls) -> "DetectResult":
        return cls(False)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"pass": self.passed}
        if self.language is not None:
            data["language"] = self.language
        if self.extension is not None:
            data["extension"] = self.extension
        return data

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DetectResult":
        if not isinstance(data, dict) or not isinstance(data.get("pass"), bool):
            raise ValueError(f"Invalid detect result: {data!r}")
        return cls(data["pass"], data.get("language"), data.get("extension"))

    @classmethod
    def from_json(cls, text: str) -> "DetectResult":
        return cls.from_dict(json.loads(text))


class Detector(ABC):
    """Base class for source detectors."""

    @abstractmethod
    def detect(self, context: DetectContext) -> DetectResult:
        """
        Inspect context.path.

        Args:
            context: Detection request

        Returns:
            DetectResult; a detector that does not recognize the input
            returns ``DetectResult.fail()`` rather than raising
        """
        pass


class ExtensionDetector(Detector):
    """
    Detects a language by file extension.

    Passes when the path itself has one of the extensions, or when a
    directory contains such a file at its first level.

    Example:
        >>> detector = ExtensionDetector("solidity", [".sol"])
        >>> detector.detect(DetectContext(Path("Token.sol"))).passed
        True
    """

    def __init__(self, language: str, extensions: Iterable[str]):
        self.language = language
        self.extensions = tuple(
            ext.lower() if ext.startswith(".") else f".{ext.lower()}" for ext in extensions
        )
        if not self.extensions:
            raise ValueError("At least one extension is required")

    def _matches(self, path: Path) -> Optional[str]:
        suffix = path.suffix.lower()
        return suffix if suffix in self.extensions else None

    def detect(self, context: DetectContext) -> DetectResult:
        path = context.path
        ext = self._matches(path)
        if ext:
            return DetectResult.pass_(self.language, ext.lstrip("."))

        if path.is_dir():
            try:
                children = sorted(path.iterdir())
            except OSError:
                return DetectResult.fail()
            for child in children:
                ext = self._matches(child)
                if ext:
                    return DetectResult.pass_(self.language, ext.lstrip("."))

        return DetectResult.fail()


__all__ = ["DetectContext", "DetectResult", "Detector", "ExtensionDetector"]
