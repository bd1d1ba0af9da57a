"""Checkbox task index for markdown vaults."""

__version__ = "0.1.0"
