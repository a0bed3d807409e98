"""Vigil — file integrity scanning, comparison, and storage engine."""

__version__ = "1.0.0"
