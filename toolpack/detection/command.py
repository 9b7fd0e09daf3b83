"""
Command-line runner shared by detector executables.

A detector binary reads the path to inspect from ``--path`` or the
``DETECT_PATH`` environment variable, runs its detector and prints the
result as one line of JSON on stdout.

Usage:
    from toolpack.detection import ExtensionDetector, run_detector

    if __name__ == "__main__":
        sys.exit(run_detector(ExtensionDetector("solidity", [".sol"])))
"""

import argparse
import logging
import os
import sys
from pathlib import Path
from typing import List, Mapping, Optional, TextIO

from toolpack.detection.base import DetectContext, Detector

logger = logging.getLogger(__name__)

PATH_ENV_VAR = "DETECT_PATH"


def _create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Detect the source type of a path")
    parser.add_argument(
        "--path",
        metavar="PATH",
        help=f"File or directory to detect (default: ${PATH_ENV_VAR})",
    )
    return parser


def run_detector(
    detector: Detector,
    argv: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    stream: Optional[TextIO] = None,
) -> int:
    """
    Run a detector as a command.

    Args:
        detector: Detector to run
        argv: Arguments (default: sys.argv[1:]); unknown ones are passed
            to the detector as context args
        environ: Environment (default: os.environ)
        stream: Output stream for the JSON result (default: stdout)

    Returns:
        Exit code: 0 when a result was printed, 1 when no path was given
    """
    environ = os.environ if environ is None else environ
    stream = sys.stdout if stream is None else stream

    args, extra = _create_parser().parse_known_args(argv)
    path = args.path or environ.get(PATH_ENV_VAR)
    if not path:
        print(
            f"No path provided. Use --path <path> or set {PATH_ENV_VAR} env variable.",
            file=sys.stderr,
        )
        return 1

    context = DetectContext(Path(path), tuple(extra), dict(environ))
    result = detector.detect(context)
    logger.debug(f"Detection of {path}: {result}")

    print(result.to_json(), file=stream)
    return 0


__all__ = ["PATH_ENV_VAR", "run_detector"]
