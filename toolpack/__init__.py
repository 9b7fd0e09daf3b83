"""
toolpack - package, publish, resolve and install prebuilt compiler toolchains.
"""

__version__ = "0.1.0"
