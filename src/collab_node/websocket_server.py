"""
WebSocket Server for Node

Handles WebSocket connections from clients, decodes their envelopes,
dispatches them to the room registry and delivers the resulting
notifications to the other participants of the room.
"""

import asyncio
import itertools
import logging
from typing import Any, Dict, List, Optional, Set

from websockets.asyncio.server import ServerConnection, serve
from websockets.exceptions import ConnectionClosed

from .room_state import RoomRegistry, RoomUpdate
from .schemas import (
    BaseMessage,
    CodeChange,
    CursorMove,
    JoinRequest,
    LeaveRequest,
    ProtocolError,
    UnknownMessageType,
    decode_inbound,
)
from .utils import normalize_display, validate_room_id

logger = logging.getLogger(__name__)

# Transport defaults
DEFAULT_PING_INTERVAL = 20  # seconds between keepalive pings
DEFAULT_PING_TIMEOUT = 20  # seconds to wait for a pong
DEFAULT_MAX_MESSAGE_SIZE = 1024 * 1024  # bytes per inbound frame
DEFAULT_SEND_TIMEOUT = 10  # seconds before a stalled recipient is dropped

_session_ids = itertools.count(1)


class Session:
    """
    One client connection.

    A session only remembers the IDs of its room and participant. Room state
    is always looked up through the registry, so a session never holds on to
    a room that has been deleted.

    Attributes:
        websocket: The transport handle
        session_id: Process-local number used in logs
        room_id: ID of the joined room, None when not joined
        participant_id: Participant ID in that room, None when not joined
        evicted: True once the session was dropped for stalling
    """

    def __init__(self, websocket: Any):
        self.websocket = websocket
        self.session_id = next(_session_ids)
        self.room_id: Optional[str] = None
        self.participant_id: Optional[str] = None
        self.evicted = False

    @property
    def is_joined(self) -> bool:
        return self.room_id is not None and self.participant_id is not None

    def __repr__(self) -> str:
        return (
            f"Session({self.session_id}, room={self.room_id}, "
            f"participant={self.participant_id})"
        )


class WebSocketServer:
    """
    WebSocket server for handling client connections.

    The server is the only component that mutates the room registry. Every
    mutation and the delivery of its notifications happen under the room's
    lock, so participants of one room observe changes in the order they were
    applied while different rooms proceed independently.

    Each send is bounded by ``send_timeout``. A recipient that does not
    accept a message in time is dropped from delivery at once, then removed
    from its room and closed in the background, so it cannot hold the room
    lock for longer than one timeout.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        host: str,
        port: int,
        ping_interval: Optional[float] = DEFAULT_PING_INTERVAL,
        ping_timeout: Optional[float] = DEFAULT_PING_TIMEOUT,
        max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
        send_timeout: Optional[float] = DEFAULT_SEND_TIMEOUT,
    ):
        """
        Initialize the WebSocket server.

        Args:
            registry: The room registry instance
            host: Host address to bind to
            port: Port to listen on, 0 for an ephemeral port
            ping_interval: Keepalive interval in seconds, None to disable
            ping_timeout: Keepalive timeout in seconds, None to disable
            max_message_size: Maximum size of an inbound frame in bytes
            send_timeout: Seconds a recipient may take to accept a message,
                None to wait forever
        """
        self.registry = registry
        self.host = host
        self._port = port
        self.ping_interval = ping_interval
        self.ping_timeout = ping_timeout
        self.max_message_size = max_message_size
        self.send_timeout = send_timeout
        self.server = None
        # Maps websocket -> Session
        self.sessions: Dict[Any, Session] = {}
        # Maps participant_id -> Session of every joined participant
        self._participants: Dict[str, Session] = {}
        # Background evictions of stalled sessions
        self._evictions: Set[asyncio.Task] = set()

    @property
    def port(self) -> int:
        """The bound port once started, the configured port before."""
        if self.server is not None:
            for sock in self.server.sockets:
                return sock.getsockname()[1]
        return self._port

    async def start(self):
        """Start the WebSocket server."""
        self.server = await serve(
            self.handle_client,
            self.host,
            self._port,
            ping_interval=self.ping_interval,
            ping_timeout=self.ping_timeout,
            max_size=self.max_message_size,
        )
        logger.info(f"WebSocket server started on ws://{self.host}:{self.port}")

    async def stop(self):
        """Stop the WebSocket server."""
        for task in list(self._evictions):
            task.cancel()
        if self.server:
            self.server.close()
            await self.server.wait_closed()
            self.server = None
            logger.info("WebSocket server stopped")

    def get_session(self, websocket: Any) -> Session:
        """Return the session of a websocket, registering it if needed."""
        session = self.sessions.get(websocket)
        if session is None:
            session = self.sessions[websocket] = Session(websocket)
        return session

    def get_participant_session(self, participant_id: str) -> Optional[Session]:
        """
        Return the live session of a joined participant.

        Returns:
            The Session, or None if the participant left, disconnected or
            was dropped for stalling
        """
        return self._participants.get(participant_id)

    async def handle_client(self, websocket: ServerConnection):
        """
        Handle a client connection.

        Closing the transport, gracefully or not, leaves the current room
        exactly like an explicit leave.

        Args:
            websocket: The WebSocket connection
        """
        session = self.get_session(websocket)
        logger.info(f"Client {session.session_id} connected")

        try:
            async for message in websocket:
                await self.process_message(websocket, message)
        except ConnectionClosed as e:
            logger.info(f"Client {session.session_id} connection lost: {e}")
        finally:
            await self.handle_disconnect(websocket)

    async def handle_disconnect(self, websocket: Any):
        """Leave the session's room, if any, and discard the session."""
        session = self.sessions.pop(websocket, None)
        if session is None:
            return
        await self._leave_current_room(session)
        logger.info(f"Client {session.session_id} disconnected")

    async def process_message(self, websocket: Any, message: Any):
        """
        Process an incoming frame from a client.

        Malformed frames and unknown message types are logged and dropped;
        the connection stays open and no state changes.

        Args:
            websocket: The WebSocket connection
            message: The frame (JSON text)
        """
        session = self.get_session(websocket)
        try:
            request = decode_inbound(message)
        except UnknownMessageType as e:
            logger.warning(f"Client {session.session_id}: {e}")
            return
        except ProtocolError as e:
            logger.warning(
                f"Client {session.session_id} sent malformed message: {e}"
            )
            return

        try:
            if isinstance(request, JoinRequest):
                await self.handle_join(session, request)
            elif isinstance(request, CodeChange):
                await self.handle_code_change(session, request)
            elif isinstance(request, CursorMove):
                await self.handle_cursor_move(session, request)
            elif isinstance(request, LeaveRequest):
                await self.handle_leave(session)
        except Exception:
            logger.exception(
                f"Error processing {request.message_type} "
                f"from client {session.session_id}"
            )

    async def handle_join(self, session: Session, request: JoinRequest):
        """
        Handle a join request.

        A session that is already in another room leaves it first. A join
        for the session's current room replaces its roster entry and keeps
        the document. The joining session receives init; every other
        participant receives user-joined.
        """
        is_valid, error = validate_room_id(request.room_id)
        if not is_valid:
            logger.warning(f"Client {session.session_id} join rejected: {error}")
            return

        if session.is_joined and session.room_id != request.room_id:
            logger.info(
                f"Client {session.session_id} switching from room "
                f"{session.room_id} to {request.room_id}"
            )
            await self._leave_current_room(session)

        name, color = normalize_display(request.user_name, request.user_color)
        async with self.registry.room_lock(request.room_id):
            result = None
            if session.is_joined:
                self._participants.pop(session.participant_id, None)
                result = self.registry.rejoin(
                    request.room_id, session.participant_id, name, color
                )
            if result is None:
                result = self.registry.join(request.room_id, name, color)
            session.room_id = request.room_id
            session.participant_id = result.participant_id
            self._participants[result.participant_id] = session

            await self.send_to_session(session, result.init)
            await self.deliver(result.update)

    async def handle_code_change(self, session: Session, request: CodeChange):
        """Overwrite the room document and notify the other participants."""
        if not session.is_joined:
            logger.debug(
                f"Client {session.session_id} sent code-change before join"
            )
            return

        room_id = session.room_id
        async with self.registry.room_lock(room_id):
            update = self.registry.apply_edit(
                room_id, session.participant_id, request.code
            )
            if update is not None:
                await self.deliver(update)

    async def handle_cursor_move(self, session: Session, request: CursorMove):
        """Record the sender's cursor and notify the other participants."""
        if not session.is_joined:
            logger.debug(
                f"Client {session.session_id} sent cursor-move before join"
            )
            return

        room_id = session.room_id
        async with self.registry.room_lock(room_id):
            update = self.registry.update_cursor(
                room_id, session.participant_id, request.cursor
            )
            if update is not None:
                await self.deliver(update)

    async def handle_leave(self, session: Session):
        """Handle an explicit leave request."""
        if not session.is_joined:
            logger.debug(f"Client {session.session_id} sent leave before join")
            return
        await self._leave_current_room(session)

    async def _leave_current_room(self, session: Session):
        room_id, participant_id = session.room_id, session.participant_id
        if room_id is None or participant_id is None:
            return

        session.room_id = None
        session.participant_id = None
        self._participants.pop(participant_id, None)

        async with self.registry.room_lock(room_id):
            update = self.registry.leave(room_id, participant_id)
            if update is not None:
                await self.deliver(update)

    async def deliver(self, update: RoomUpdate):
        """Deliver every notification of a registry update, in order."""
        for notification in update.notifications:
            await self.send_to_participants(
                notification.recipients, notification.message
            )

    async def send_to_participants(
        self, participant_ids: List[str], message: BaseMessage
    ):
        """
        Send one message to several participants.

        Recipients without a live session, or whose transport fails, are
        skipped without affecting delivery to the others. Recipients that
        time out are evicted.

        Args:
            participant_ids: IDs of the recipients
            message: The message to send
        """
        targets = []
        for pid in participant_ids:
            session = self.get_participant_session(pid)
            if session is not None:
                targets.append(session)
        if not targets:
            return

        payload = message.to_json()
        results = await asyncio.gather(
            *(self._send(session, payload) for session in targets),
            return_exceptions=True,
        )
        for session, result in zip(targets, results):
            # TimeoutError is an OSError on Python 3.11+, check it first
            if isinstance(result, asyncio.TimeoutError):
                logger.warning(
                    f"Client {session.session_id} stalled on "
                    f"{message.message_type}, dropping it"
                )
                self._evict(session)
            elif isinstance(result, Exception):
                logger.warning(
                    f"Skipped {message.message_type} delivery to client "
                    f"{session.session_id}: {result!r}"
                )

    async def send_to_session(self, session: Session, message: BaseMessage):
        """Send one message to one session, logging delivery failures."""
        try:
            await self._send(session, message.to_json())
        except asyncio.TimeoutError:
            logger.warning(
                f"Client {session.session_id} stalled on "
                f"{message.message_type}, dropping it"
            )
            self._evict(session)
        except (ConnectionClosed, OSError) as e:
            logger.warning(
                f"Failed to send {message.message_type} to client "
                f"{session.session_id}: {e!r}"
            )

    async def _send(self, session: Session, payload: str):
        await asyncio.wait_for(
            session.websocket.send(payload), timeout=self.send_timeout
        )

    def _evict(self, session: Session):
        """Stop delivering to a stalled session and drop it in the background."""
        if session.participant_id is not None:
            self._participants.pop(session.participant_id, None)
        if session.evicted:
            return
        session.evicted = True
        task = asyncio.ensure_future(self._drop_session(session.websocket))
        self._evictions.add(task)
        task.add_done_callback(self._evictions.discard)

    async def _drop_session(self, websocket: Any):
        await self.handle_disconnect(websocket)
        try:
            await websocket.close()
        except (ConnectionClosed, OSError) as e:
            logger.debug(f"Error closing stalled connection: {e!r}")
