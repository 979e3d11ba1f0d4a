"""Vestibule - interactive terminal agent session."""

__version__ = "0.3.0"
