"""
Client Service for the Collaborative Editing Relay

This module provides the client service class that handles communication
with a node server via a WebSocket connection: joining a room, sending
document edits and cursor moves, and receiving decoded server messages.

Architecture:
    - Uses WebSocket for real-time bidirectional communication
    - Supports dependency injection for the network layer (for testability)
    - Async/await pattern for non-blocking I/O operations
"""

import asyncio
import logging
from typing import Callable, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import WebSocketException

from collab_node.schemas import (
    CodeChange,
    Cursor,
    CursorMove,
    JoinRequest,
    LeaveRequest,
    OutboundMessage,
    decode_outbound,
)

logger = logging.getLogger(__name__)


class ClientService:
    """
    Client service for interacting with a node server.

    Requests are fire-and-forget: the server never replies with an error
    envelope, and its notifications arrive through ``receive``.

    Attributes:
        node_url: WebSocket URL of the node server (e.g., ws://localhost:8080)
        websocket: Active WebSocket connection (None if not connected)
    """

    def __init__(
        self,
        node_url: str,
        websocket_factory: Optional[Callable] = None,
    ):
        """
        Initialize the client service.

        Args:
            node_url: WebSocket URL of the node server
            websocket_factory: Optional factory for creating WebSocket
                             connections (for dependency injection/testing)
        """
        self.node_url = node_url
        self.websocket: Optional[ClientConnection] = None
        self._websocket_factory = websocket_factory or connect
        self._connected = False

        logger.info(f"ClientService initialized for node: {node_url}")

    async def connect(self) -> None:
        """
        Establish WebSocket connection to the node server.

        Raises:
            ConnectionError: If connection fails
        """
        try:
            logger.info(f"Connecting to {self.node_url}...")
            self.websocket = await self._websocket_factory(self.node_url)
            self._connected = True
            logger.info("Successfully connected to node server")
        except (OSError, WebSocketException) as e:
            logger.error(f"Failed to connect to node: {e}")
            raise ConnectionError(f"Could not connect to {self.node_url}: {e}")

    async def disconnect(self) -> None:
        """Close the WebSocket connection."""
        if self.websocket:
            await self.websocket.close()
            self.websocket = None
            self._connected = False
            logger.info("Disconnected from node server")

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to a node."""
        return self._connected and self.websocket is not None

    def _require_connection(self) -> None:
        if not self.is_connected:
            raise ConnectionError("Not connected to a node server")

    async def join(
        self, room_id: str, user_name: str = "", user_color: str = ""
    ) -> None:
        """
        Join a room. The server answers with an init message.

        Args:
            room_id: ID of the room to join (created if it does not exist)
            user_name: Display name, a default is chosen when empty
            user_color: Display color, a default is chosen when empty

        Raises:
            ConnectionError: If not connected to a node server
        """
        self._require_connection()
        logger.info(f"Joining room '{room_id}' as {user_name or 'Anonymous'}")
        request = JoinRequest(
            room_id=room_id, user_name=user_name, user_color=user_color
        )
        await self.websocket.send(request.to_json())

    async def send_code(self, code: str) -> None:
        """Replace the shared document of the current room."""
        self._require_connection()
        await self.websocket.send(CodeChange(code=code).to_json())

    async def move_cursor(self, line_number: int, column: int) -> None:
        """Report the local caret position."""
        self._require_connection()
        request = CursorMove(cursor=Cursor(line_number, column))
        await self.websocket.send(request.to_json())

    async def leave(self) -> None:
        """Leave the current room, keeping the connection open."""
        self._require_connection()
        logger.info("Leaving current room")
        await self.websocket.send(LeaveRequest().to_json())

    async def receive(
        self, timeout: Optional[float] = None
    ) -> OutboundMessage:
        """
        Receive the next server message.

        Args:
            timeout: Seconds to wait, None to wait forever

        Returns:
            The decoded message

        Raises:
            ConnectionError: If not connected to a node server
            asyncio.TimeoutError: If no message arrived in time
            ProtocolError: If the server sent a malformed frame
        """
        self._require_connection()
        raw = await asyncio.wait_for(self.websocket.recv(), timeout)
        return decode_outbound(raw)

    def _set_test_mode(self, mock_websocket: object = None) -> None:
        """
        Set the service in test mode with a mock connection.

        Args:
            mock_websocket: Required mock websocket object with send/recv

        Raises:
            ValueError: If mock_websocket is not provided
        """
        if mock_websocket is None:
            raise ValueError("_set_test_mode requires a mock_websocket object")
        self._connected = True
        self.websocket = mock_websocket
