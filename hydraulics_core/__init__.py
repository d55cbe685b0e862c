"""Offline mutation queue and sync core for the hydraulics work order app."""

__version__ = "0.1.0"
