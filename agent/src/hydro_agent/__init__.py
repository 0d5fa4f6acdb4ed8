"""Hydro Agent - field-device poller for the relay command queue."""

__version__ = "0.1.0"
