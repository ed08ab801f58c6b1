"""Command-line entry point for rapid position scans."""

__version__ = "0.1.0"
