"""
Toolpack CLI module.

This module provides the command-line interface for toolpack.
"""

from . import utils
from .parser import CLI, main

__all__ = ["CLI", "main", "utils"]
