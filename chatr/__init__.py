"""Chatr client-side message delivery and notification pipeline."""

__version__ = "0.1.0"
