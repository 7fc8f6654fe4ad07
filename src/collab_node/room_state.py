"""
Room State Management for Node Server

This module manages the in-memory state of the rooms hosted on this node:
the shared document of each room, its participant roster, and the
notifications every mutation produces for the other participants.

The registry never touches transports. Each mutating operation returns the
messages to deliver and the participant IDs they are addressed to, and the
WebSocket server performs the delivery while still holding the room lock.
"""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import AsyncIterator, Dict, List, Optional

from .schemas import (
    BaseMessage,
    CodeUpdate,
    Cursor,
    CursorUpdate,
    InitMessage,
    ParticipantInfo,
    UserJoined,
    UserLeft,
)

logger = logging.getLogger(__name__)

WELCOME_DOCUMENT = (
    "// Welcome to collaborative editing!\n"
    'console.log("Hello from room: {room_id}");'
)


def welcome_document(room_id: str) -> str:
    """Return the initial document of a freshly created room."""
    return WELCOME_DOCUMENT.format(room_id=room_id)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass
class Participant:
    """
    A participant joined to a room.

    Attributes:
        participant_id: ID assigned at join time, unique within the process
        name: Display name
        color: Display color, not an identity field
        cursor: Last reported caret position, None until first reported
        joined_at: ISO 8601 timestamp when the participant joined
    """

    participant_id: str
    name: str
    color: str
    cursor: Optional[Cursor] = None
    joined_at: str = ""

    def __post_init__(self):
        """Initialize the join timestamp if not set."""
        if not self.joined_at:
            self.joined_at = _now()

    def to_info(self) -> ParticipantInfo:
        """Return an immutable roster entry for this participant."""
        return ParticipantInfo(
            id=self.participant_id,
            name=self.name,
            color=self.color,
            cursor=self.cursor,
        )


@dataclass
class Room:
    """
    A collaboration room.

    Attributes:
        room_id: Opaque room identifier
        document: Shared document text, last write wins
        participants: participant_id -> Participant, in join order
        created_at: ISO 8601 timestamp when the room was created
    """

    room_id: str
    document: str
    participants: Dict[str, Participant] = field(default_factory=dict)
    created_at: str = ""

    def __post_init__(self):
        if not self.created_at:
            self.created_at = _now()

    def roster(self) -> List[ParticipantInfo]:
        """Snapshot of the roster in join order."""
        return [p.to_info() for p in self.participants.values()]

    def others(self, participant_id: Optional[str] = None) -> List[str]:
        """IDs of every participant except ``participant_id``."""
        return [pid for pid in self.participants if pid != participant_id]

    def to_dict(self) -> Dict:
        """Convert room to dictionary for listing."""
        return {
            "room_id": self.room_id,
            "participant_count": len(self.participants),
            "created_at": self.created_at,
        }


@dataclass
class Notification:
    """
    An outbound message and the participants it is addressed to.

    Attributes:
        message: The message to deliver
        recipients: Participant IDs, in roster order
    """

    message: BaseMessage
    recipients: List[str]


@dataclass
class RoomUpdate:
    """
    Result of a mutating registry operation.

    Attributes:
        room_id: The room that was mutated
        notifications: Messages to deliver, in order
        room_deleted: True if the operation removed the room
    """

    room_id: str
    notifications: List[Notification] = field(default_factory=list)
    room_deleted: bool = False


@dataclass
class JoinResult:
    """
    Result of a join.

    Attributes:
        participant_id: ID assigned to the new participant
        init: Snapshot for the joining participant (document + roster)
        update: Notifications for the other participants
    """

    participant_id: str
    init: InitMessage
    update: RoomUpdate


@dataclass
class RoomSnapshot:
    """
    Point-in-time copy of a room's document and roster.

    Attributes:
        room_id: The room ID
        document: Shared document text
        users: Roster in join order
    """

    room_id: str
    document: str
    users: List[ParticipantInfo]


class _RoomLock:
    """An asyncio lock plus the number of coroutines holding or awaiting it."""

    def __init__(self):
        self.lock = asyncio.Lock()
        self.users = 0


class RoomRegistry:
    """
    Owns every room hosted on this node.

    Rooms are created lazily on first join and deleted as soon as the last
    participant leaves, so the registry never holds an empty room. All
    operations are synchronous; callers that pair a mutation with its
    delivery serialize per room through ``room_lock``.
    """

    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._locks: Dict[str, _RoomLock] = {}
        logger.info("RoomRegistry initialized")

    @asynccontextmanager
    async def room_lock(self, room_id: str) -> AsyncIterator[None]:
        """
        Serialize operations on one room.

        Operations on different rooms never contend. The lock entry is
        dropped once nobody holds or awaits it, so a room that is deleted
        and re-created always shares one lock with any waiter still queued
        on the old one.
        """
        entry = self._locks.get(room_id)
        if entry is None:
            entry = self._locks[room_id] = _RoomLock()
        entry.users += 1
        try:
            async with entry.lock:
                yield
        finally:
            entry.users -= 1
            if entry.users == 0:
                del self._locks[room_id]

    def get_or_create(self, room_id: str) -> Room:
        """
        Get a room by ID, creating it with the welcome document if needed.

        Args:
            room_id: The room ID

        Returns:
            The Room object
        """
        room = self._rooms.get(room_id)
        if room is None:
            room = Room(room_id=room_id, document=welcome_document(room_id))
            self._rooms[room_id] = room
            logger.info(f"Created room {room_id}")
        return room

    def get_room(self, room_id: str) -> Optional[Room]:
        """
        Get a room by its ID.

        Returns:
            The Room object if found, None otherwise
        """
        return self._rooms.get(room_id)

    def list_rooms(self) -> List[Dict]:
        """List all rooms with their participant counts."""
        return [room.to_dict() for room in self._rooms.values()]

    def get_room_count(self) -> int:
        """Get the total number of rooms on this node."""
        return len(self._rooms)

    def snapshot(self, room_id: str) -> Optional[RoomSnapshot]:
        """Document and roster of a room, or None if it does not exist."""
        room = self._rooms.get(room_id)
        if room is None:
            return None
        return RoomSnapshot(
            room_id=room_id, document=room.document, users=room.roster()
        )

    def _find(
        self, room_id: str, participant_id: str
    ) -> Optional[Participant]:
        room = self._rooms.get(room_id)
        if room is None:
            return None
        return room.participants.get(participant_id)

    def join(self, room_id: str, name: str, color: str) -> JoinResult:
        """
        Add a new participant to a room, creating the room if needed.

        Args:
            room_id: The room ID
            name: Display name of the participant
            color: Display color of the participant

        Returns:
            JoinResult with the new participant ID, the snapshot for the
            joining participant and a user-joined notification for the rest
        """
        room = self.get_or_create(room_id)
        participant_id = str(uuid.uuid4())
        room.participants[participant_id] = Participant(
            participant_id=participant_id, name=name, color=color
        )

        logger.info(
            f"{name} joined room {room_id} "
            f"({len(room.participants)} participants)"
        )
        return self._join_result(room, participant_id)

    def rejoin(
        self, room_id: str, participant_id: str, name: str, color: str
    ) -> Optional[JoinResult]:
        """
        Join a room again from a connection that is already in it.

        The old roster entry is replaced in place by a new participant with
        a fresh ID and no cursor. The room and its document are kept even
        when the rejoining participant is the only one.

        Returns:
            JoinResult as for join, or None if the room or participant no
            longer exists
        """
        if self._find(room_id, participant_id) is None:
            return None

        room = self._rooms[room_id]
        new_id = str(uuid.uuid4())
        participants = {}
        for pid, participant in room.participants.items():
            if pid == participant_id:
                participants[new_id] = Participant(
                    participant_id=new_id, name=name, color=color
                )
            else:
                participants[pid] = participant
        room.participants = participants

        logger.info(f"{name} rejoined room {room_id} as {new_id}")
        return self._join_result(room, new_id)

    def _join_result(self, room: Room, participant_id: str) -> JoinResult:
        roster = room.roster()
        update = RoomUpdate(room_id=room.room_id)
        others = room.others(participant_id)
        if others:
            update.notifications.append(
                Notification(UserJoined(users=list(roster)), others)
            )
        return JoinResult(
            participant_id=participant_id,
            init=InitMessage(
                code=room.document, user_id=participant_id, users=roster
            ),
            update=update,
        )

    def apply_edit(
        self, room_id: str, participant_id: str, document: str
    ) -> Optional[RoomUpdate]:
        """
        Overwrite the room document (last write wins).

        There is no version check and no merge: the most recently applied
        edit is authoritative, even if another participant's concurrent edit
        is discarded by it. Identical values are not deduplicated.

        Returns:
            RoomUpdate with a code-update for the other participants, or
            None if the room or participant no longer exists
        """
        if self._find(room_id, participant_id) is None:
            logger.debug(
                f"Ignoring edit from {participant_id}: "
                f"not in room {room_id}"
            )
            return None

        room = self._rooms[room_id]
        room.document = document
        logger.debug(
            f"Room {room_id} document set by {participant_id} "
            f"({len(document)} chars)"
        )
        return RoomUpdate(
            room_id=room_id,
            notifications=[
                Notification(
                    CodeUpdate(code=document), room.others(participant_id)
                )
            ],
        )

    def update_cursor(
        self, room_id: str, participant_id: str, cursor: Cursor
    ) -> Optional[RoomUpdate]:
        """
        Record a participant's caret position.

        Returns:
            RoomUpdate with a cursor-update for the other participants, or
            None if the room or participant no longer exists
        """
        participant = self._find(room_id, participant_id)
        if participant is None:
            logger.debug(
                f"Ignoring cursor from {participant_id}: "
                f"not in room {room_id}"
            )
            return None

        participant.cursor = cursor
        room = self._rooms[room_id]
        return RoomUpdate(
            room_id=room_id,
            notifications=[
                Notification(
                    CursorUpdate(user_id=participant_id, cursor=cursor),
                    room.others(participant_id),
                )
            ],
        )

    def leave(self, room_id: str, participant_id: str) -> Optional[RoomUpdate]:
        """
        Remove a participant, deleting the room if it becomes empty.

        Returns:
            RoomUpdate with a user-left for the remaining participants (or
            with room_deleted set), or None if the room or participant no
            longer exists
        """
        participant = self._find(room_id, participant_id)
        if participant is None:
            return None

        room = self._rooms[room_id]
        del room.participants[participant_id]
        logger.info(
            f"{participant.name} left room {room_id} "
            f"({len(room.participants)} participants)"
        )

        if not room.participants:
            del self._rooms[room_id]
            logger.info(f"Deleted empty room {room_id}")
            return RoomUpdate(room_id=room_id, room_deleted=True)

        return RoomUpdate(
            room_id=room_id,
            notifications=[
                Notification(
                    UserLeft(user_id=participant_id, users=room.roster()),
                    room.others(),
                )
            ],
        )
