"""
Schemas for Node Server

This package defines the closed vocabulary of envelopes exchanged between
clients and the node server, and the decoders that map a raw frame onto
exactly one of them.

    - inbound: join, code-change, cursor-move, leave
    - outbound: init, code-update, user-joined, user-left, cursor-update
"""

from typing import Any, Dict, Type, Union

from .base import (
    BaseMessage,
    ProtocolError,
    UnknownMessageType,
    load_envelope,
)
from .inbound import Cursor, JoinRequest, CodeChange, CursorMove, LeaveRequest
from .outbound import (
    ParticipantInfo,
    InitMessage,
    CodeUpdate,
    UserJoined,
    UserLeft,
    CursorUpdate,
)

InboundMessage = Union[JoinRequest, CodeChange, CursorMove, LeaveRequest]
OutboundMessage = Union[
    InitMessage, CodeUpdate, UserJoined, UserLeft, CursorUpdate
]

INBOUND_TYPES: Dict[str, Type[BaseMessage]] = {
    cls.message_type: cls
    for cls in (JoinRequest, CodeChange, CursorMove, LeaveRequest)
}
OUTBOUND_TYPES: Dict[str, Type[BaseMessage]] = {
    cls.message_type: cls
    for cls in (InitMessage, CodeUpdate, UserJoined, UserLeft, CursorUpdate)
}


def _decode(raw: Any, registry: Dict[str, Type[BaseMessage]]) -> BaseMessage:
    data = raw if isinstance(raw, dict) else load_envelope(raw)
    message_type = data.get("type")
    cls = registry.get(message_type) if isinstance(message_type, str) else None
    if cls is None:
        raise UnknownMessageType(message_type)
    return cls.from_dict(data)


def decode_inbound(raw: Any) -> InboundMessage:
    """
    Decode a client frame.

    Args:
        raw: Text/bytes frame or an already parsed dictionary

    Returns:
        One of JoinRequest, CodeChange, CursorMove, LeaveRequest

    Raises:
        UnknownMessageType: If the type tag is not an inbound kind
        ProtocolError: If the frame is malformed
    """
    return _decode(raw, INBOUND_TYPES)


def decode_outbound(raw: Any) -> OutboundMessage:
    """
    Decode a server frame.

    Raises:
        UnknownMessageType: If the type tag is not an outbound kind
        ProtocolError: If the frame is malformed
    """
    return _decode(raw, OUTBOUND_TYPES)


__all__ = [
    "BaseMessage",
    "ProtocolError",
    "UnknownMessageType",
    "load_envelope",
    "Cursor",
    "JoinRequest",
    "CodeChange",
    "CursorMove",
    "LeaveRequest",
    "ParticipantInfo",
    "InitMessage",
    "CodeUpdate",
    "UserJoined",
    "UserLeft",
    "CursorUpdate",
    "InboundMessage",
    "OutboundMessage",
    "INBOUND_TYPES",
    "OUTBOUND_TYPES",
    "decode_inbound",
    "decode_outbound",
]
