"""
Collaborative Editing Client

This module provides a CollabClient class that extends the base
ClientService with a local mirror of the joined room: the document, the
roster and the cursors of the other participants. Incoming server messages
update the mirror and fire the registered callbacks.

The server never echoes a participant's own edits back to it, so applying
a remote update to the mirror can never trigger another outgoing edit and
no suppression flag is needed.

Usage:
    client = CollabClient("ws://localhost:8080")
    await client.connect()
    await client.join("room-id", "alice", "#ff8800")
    await client.receive_messages()
"""

import logging
import random
import string
from typing import Callable, Dict, List, Optional

from websockets.exceptions import ConnectionClosed

from collab_node.schemas import (
    BaseMessage,
    CodeUpdate,
    Cursor,
    CursorUpdate,
    InitMessage,
    ParticipantInfo,
    ProtocolError,
    UserJoined,
    UserLeft,
    decode_outbound,
)
from collab_node.utils import random_color

from .service import ClientService

logger = logging.getLogger(__name__)


def generate_room_id() -> str:
    """Return a random room ID of the form 'room-xxxxxxxxx'."""
    alphabet = string.ascii_lowercase + string.digits
    return "room-" + "".join(random.choice(alphabet) for _ in range(9))


class CollabClient(ClientService):
    """
    Client that mirrors the state of the joined room.

    Attributes:
        user_id: Participant ID assigned by the server, None until init
        room_id: ID of the joined room
        document: Local copy of the shared document
        users: Roster in server order
        cursors: participant_id -> last known cursor of other participants
    """

    def __init__(
        self,
        node_url: str,
        websocket_factory: Optional[Callable] = None,
    ):
        super().__init__(node_url, websocket_factory)

        self.user_id: Optional[str] = None
        self.room_id: Optional[str] = None
        self.document: str = ""
        self.users: List[ParticipantInfo] = []
        self.cursors: Dict[str, Cursor] = {}

        # Callbacks for UI integration
        self._on_init: Optional[Callable[[InitMessage], None]] = None
        self._on_code_update: Optional[Callable[[str], None]] = None
        self._on_roster_change: Optional[
            Callable[[List[ParticipantInfo]], None]
        ] = None
        self._on_cursor_update: Optional[Callable[[str, Cursor], None]] = None

    def set_on_init(self, callback: Callable[[InitMessage], None]) -> None:
        """Register a callback for the initial room state."""
        self._on_init = callback

    def set_on_code_update(self, callback: Callable[[str], None]) -> None:
        """Register a callback for remote document changes."""
        self._on_code_update = callback

    def set_on_roster_change(
        self, callback: Callable[[List[ParticipantInfo]], None]
    ) -> None:
        """Register a callback for roster changes (join and leave)."""
        self._on_roster_change = callback

    def set_on_cursor_update(
        self, callback: Callable[[str, Cursor], None]
    ) -> None:
        """Register a callback for remote cursor moves."""
        self._on_cursor_update = callback

    def get_user(self, user_id: str) -> Optional[ParticipantInfo]:
        """Look up a roster entry by participant ID."""
        for user in self.users:
            if user.id == user_id:
                return user
        return None

    async def join(
        self, room_id: str, user_name: str = "", user_color: str = ""
    ) -> None:
        """Join a room, picking a random color when none is given."""
        self._reset()
        self.room_id = room_id
        await super().join(room_id, user_name, user_color or random_color())

    async def send_code(self, code: str) -> None:
        """Replace the shared document and update the local copy."""
        await super().send_code(code)
        self.document = code

    async def leave(self) -> None:
        """Leave the room and clear the local mirror."""
        await super().leave()
        self._reset()

    def _reset(self) -> None:
        self.user_id = None
        self.room_id = None
        self.document = ""
        self.users = []
        self.cursors = {}

    async def receive_messages(self) -> None:
        """
        Continuously receive and apply messages from the server.

        Returns when the server closes the connection.
        """
        self._require_connection()
        logger.info("Starting message receive loop")

        try:
            async for raw in self.websocket:
                try:
                    message = decode_outbound(raw)
                except ProtocolError as e:
                    logger.warning(f"Ignoring malformed server message: {e}")
                    continue
                self.handle_message(message)
        except ConnectionClosed:
            logger.warning("Connection closed by server")
            self._connected = False

    def handle_message(self, message: BaseMessage) -> None:
        """
        Apply one decoded server message to the local mirror.

        Args:
            message: An outbound message decoded with decode_outbound
        """
        if isinstance(message, InitMessage):
            self.user_id = message.user_id
            self.document = message.code
            self._set_users(message.users)
            if self._on_init:
                self._on_init(message)
        elif isinstance(message, CodeUpdate):
            self.document = message.code
            if self._on_code_update:
                self._on_code_update(message.code)
        elif isinstance(message, UserJoined):
            self._set_users(message.users)
        elif isinstance(message, UserLeft):
            self._set_users(message.users)
        elif isinstance(message, CursorUpdate):
            self.cursors[message.user_id] = message.cursor
            if self._on_cursor_update:
                self._on_cursor_update(message.user_id, message.cursor)

    def _set_users(self, users: List[ParticipantInfo]) -> None:
        self.users = list(users)
        self.cursors = {
            user.id: user.cursor
            for user in users
            if user.cursor is not None and user.id != self.user_id
        }
        if self._on_roster_change:
            self._on_roster_change(self.users)
