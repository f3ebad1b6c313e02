"""Cadenza - music library core."""

__version__ = "0.1.0"
