"""
Inbound Message Definitions

Messages sent by clients to the node server: join, code-change,
cursor-move and leave.
"""

from dataclasses import dataclass
from typing import Any, Dict

from .base import (
    BaseMessage,
    ProtocolError,
    optional_str,
    require_int,
    require_str,
)


@dataclass(frozen=True)
class Cursor:
    """
    A caret position reported by the editor.

    Attributes:
        line_number: 1-based line as reported by the editor
        column: 1-based column as reported by the editor
    """

    line_number: int
    column: int

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire shape."""
        return {"lineNumber": self.line_number, "column": self.column}

    @classmethod
    def from_dict(cls, data: Any) -> "Cursor":
        """
        Create from the wire shape.

        Raises:
            ProtocolError: If the cursor is not an object of two integers
        """
        if not isinstance(data, dict):
            raise ProtocolError("Field 'cursor' must be an object")
        return cls(
            line_number=require_int(data, "lineNumber"),
            column=require_int(data, "column"),
        )


@dataclass
class JoinRequest(BaseMessage):
    """
    Request to join (and lazily create) a room.

    Attributes:
        room_id: Opaque room identifier
        user_name: Display name; empty means "pick a default"
        user_color: Display color; empty means "pick a default"
    """

    message_type = "join"

    room_id: str
    user_name: str = ""
    user_color: str = ""

    def _to_data(self) -> Dict[str, Any]:
        return {
            "roomId": self.room_id,
            "userName": self.user_name,
            "userColor": self.user_color,
        }

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "JoinRequest":
        room_id = require_str(data, "roomId")
        if not room_id.strip():
            raise ProtocolError("Field 'roomId' must not be empty")
        return cls(
            room_id=room_id,
            user_name=optional_str(data, "userName"),
            user_color=optional_str(data, "userColor"),
        )


@dataclass
class CodeChange(BaseMessage):
    """
    Full replacement of the shared document by the sender.

    Attributes:
        code: The complete new document text
    """

    message_type = "code-change"

    code: str

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "CodeChange":
        return cls(code=require_str(data, "code"))


@dataclass
class CursorMove(BaseMessage):
    """Report of the sender's new caret position."""

    message_type = "cursor-move"

    cursor: Cursor

    def _to_data(self) -> Dict[str, Any]:
        return {"cursor": self.cursor.to_dict()}

    @classmethod
    def _from_data(cls, data: Dict[str, Any]) -> "CursorMove":
        return cls(cursor=Cursor.from_dict(data.get("cursor")))


@dataclass
class LeaveRequest(BaseMessage):
    """Request to leave the current room. Carries no fields."""

    message_type = "leave"
