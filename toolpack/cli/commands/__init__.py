"""Command implementations for the toolpack CLI."""
