"""Hydro relay command queue server."""

__version__ = "0.1.0"
