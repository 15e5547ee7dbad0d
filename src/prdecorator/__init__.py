"""Decorate pull requests with code-quality analysis results."""

__version__ = "0.1.0"
