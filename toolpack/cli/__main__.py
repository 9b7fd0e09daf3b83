"""
Entry point for running the toolpack CLI as a module.

Usage: python -m toolpack.cli [command] [options]
"""

from .parser import main

if __name__ == "__main__":
    main()
