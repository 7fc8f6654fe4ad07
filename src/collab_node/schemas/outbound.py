"""
Outbound Message Definitions

Messages sent by the node server to clients: init, code-update,
user-joined, user-left and cursor-update.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .base import BaseMessage, ProtocolError, require_str
from .inbound import Cursor


@dataclass(frozen=True)
class ParticipantInfo:
    """
    Roster entry as seen by clients.

    Attributes:
        id: Participant ID assigned at join time
        name: Display name
        color: Display color tag
        cursor: Last reported caret position, None until first reported
    """

    id: str
    name: str
    color: str
    cursor: Optional[Cursor] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire shape."""
        return {
            "id": self.id,
            "name": self.name,
            "color": self.color,
            "cursor": self.cursor.to_dict() if self.cursor else None,
        }

    @classmethod
    def from_dict(cls, data: Any) -> "ParticipantInfo":
        """Create from the wire shape."""
        if not isinstance(data, dict):
            raise ProtocolError("Participant entry must be an object")
        cursor = data.get("cursor")
        return cls(
            id=require_str(data, "id"),
            name=require_str(data, "name"),
            color=require_str(data, "color"),
            cursor=Cursor.from_dict(cursor) if cursor is not None else None,
        )


def _users_from(data: Dict[str, Any]) -> List[ParticipantInfo]:
    users = data.get("users")
    if not isinstance(users, list):
        raise ProtocolError("Field 'users' must be a list")
    return [ParticipantInfo.from_dict(entry) for entry in users]


@dataclass
class InitMessage(BaseMessage):
    """
    Initial state sent once to a participant that just joined.

    Attributes:
        code: Current document text
        user_id: The ID assigned to the receiving participant
        users: Full roster, including the receiver
    """

    message_type = "init"

    code: str
    user_id: str
    users: List[ParticipantInfo] = field(default_factory=list)

    def _to_data(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "userId": self.user_id,
            "users": [user.to_dict() for user in self.users],
        }

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "InitMessage":
        return cls(
            code=require_str(data, "code"),
            user_id=require_str(data, "userId"),
            users=_users_from(data),
        )


@dataclass
class CodeUpdate(BaseMessage):
    """Another participant replaced the document."""

    message_type = "code-update"

    code: str

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "CodeUpdate":
        return cls(code=require_str(data, "code"))


@dataclass
class UserJoined(BaseMessage):
    """Roster after a participant was added."""

    message_type = "user-joined"

    users: List[ParticipantInfo] = field(default_factory=list)

    def _to_data(self) -> Dict[str, Any]:
        return {"users": [user.to_dict() for user in self.users]}

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "UserJoined":
        return cls(users=_users_from(data))


@dataclass
class UserLeft(BaseMessage):
    """
    Roster after a participant was removed.

    Attributes:
        user_id: ID of the departed participant
        users: Remaining roster
    """

    message_type = "user-left"

    user_id: str
    users: List[ParticipantInfo] = field(default_factory=list)

    def _to_data(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "users": [user.to_dict() for user in self.users],
        }

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "UserLeft":
        return cls(user_id=require_str(data, "userId"), users=_users_from(data))


@dataclass
class CursorUpdate(BaseMessage):
    """Another participant moved their caret."""

    message_type = "cursor-update"

    user_id: str
    cursor: Cursor

    def _to_data(self) -> Dict[str, Any]:
        return {"userId": self.user_id, "cursor": self.cursor.to_dict()}

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "CursorUpdate":
        return cls(
            user_id=require_str(data, "userId"),
            cursor=Cursor.from_dict(data.get("cursor")),
        )
