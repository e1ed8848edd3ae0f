"""Authoritative session engine for the lowest-unique-card game."""

__version__ = "1.0.0"
