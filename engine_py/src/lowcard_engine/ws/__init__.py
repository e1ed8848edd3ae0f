"""
WebSocket server and event handling for the lowest-unique-card game.
"""

from .server import app, manager, registry

__all__ = ["app", "manager", "registry"]
