"""
Client Package

This package provides the client-side functionality for the collaborative
editing relay: the ClientService for talking to a node server and the
CollabClient that mirrors a joined room locally.

Message types are shared with the server and live in
``collab_node.schemas``.
"""

from .service import ClientService
from .collab_client import CollabClient, generate_room_id

__all__ = [
    "ClientService",
    "CollabClient",
    "generate_room_id",
]
