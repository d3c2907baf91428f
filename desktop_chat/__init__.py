"""Headless core of the desktop chat client."""

__version__ = "0.1.0"
