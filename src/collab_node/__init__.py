"""
Node Server Package

This package provides the node server for the collaborative editing relay,
including the room registry and the WebSocket server.
"""

from .room_state import (
    RoomRegistry,
    Room,
    Participant,
    Notification,
    RoomUpdate,
    JoinResult,
    RoomSnapshot,
    welcome_document,
)
from .websocket_server import WebSocketServer, Session

__all__ = [
    "RoomRegistry",
    "Room",
    "Participant",
    "Notification",
    "RoomUpdate",
    "JoinResult",
    "RoomSnapshot",
    "welcome_document",
    "WebSocketServer",
    "Session",
]
