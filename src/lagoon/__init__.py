"""Serve several root-built single-page apps side by side."""

__version__ = "0.1.0"
