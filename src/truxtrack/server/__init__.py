"""Push server - status endpoints and WebSocket tracking channel."""

from .app import create_app
from .hub import OrderTrackerHub

__all__ = ["create_app", "OrderTrackerHub"]
