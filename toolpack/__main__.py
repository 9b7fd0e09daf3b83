"""
Entry point for running the toolpack CLI as a module.

Usage: python -m toolpack [command] [options]
"""

from toolpack.cli.parser import main

if __name__ == "__main__":
    main()
