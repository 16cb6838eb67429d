"""
HTTP and WebSocket surface.
"""

from .routes import router, set_dependencies
from .websocket import websocket_endpoint, send_execution_update, set_snapshot_loader

__all__ = [
    "router",
    "set_dependencies",
    "websocket_endpoint",
    "send_execution_update",
    "set_snapshot_loader",
]
