"""
Base Schema Classes

This module provides the envelope base class shared by every inbound and
outbound message, the protocol exceptions, and the field checks used while
decoding.

Message Format:
    All messages are flat JSON objects tagged by a "type" key:
    {
        "type": "message_type",
        ... message-specific fields ...
    }
"""

import json
from dataclasses import asdict, fields
from typing import Any, ClassVar, Dict, Type, TypeVar

T = TypeVar("T", bound="BaseMessage")


class ProtocolError(ValueError):
    """Raised when an envelope cannot be decoded into a known message."""


class UnknownMessageType(ProtocolError):
    """Raised when an envelope carries a type tag outside the vocabulary."""

    def __init__(self, message_type: Any):
        super().__init__(f"Unknown message type: {message_type!r}")
        self.message_type = message_type


class BaseMessage:
    """
    Base class for protocol messages.

    Subclasses are dataclasses that set ``message_type`` and override
    ``_from_data`` when their fields need validation or conversion.
    """

    message_type: ClassVar[str] = ""

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to dictionary for JSON serialization.

        Returns:
            Flat dictionary with the 'type' tag followed by the fields.
        """
        payload = {"type": self.message_type}
        payload.update(self._to_data())
        return payload

    def to_json(self) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_dict(cls: Type[T], data: Dict[str, Any]) -> T:
        """
        Create instance from a decoded envelope.

        Raises:
            ProtocolError: If required fields are missing or ill-typed.
        """
        if not isinstance(data, dict):
            raise ProtocolError("Envelope must be a JSON object")
        return cls._from_data(data)

    @classmethod
    def from_json(cls: Type[T], json_str: str) -> T:
        """Create instance from JSON string."""
        return cls.from_dict(load_envelope(json_str))

    def _to_data(self) -> Dict[str, Any]:
        """
        Wire fields of the message, without the type tag.

        Should be overridden by subclasses whose attribute names differ
        from the wire names.
        """
        if hasattr(self, "__dataclass_fields__") and fields(self):
            return asdict(self)
        return {}

    @classmethod
    def _from_data(cls: Type[T], data: Dict[str, Any]) -> T:
        return cls()


def load_envelope(raw: Any) -> Dict[str, Any]:
    """
    Parse one transport frame into an envelope dictionary.

    Args:
        raw: Text or bytes frame

    Returns:
        dict: The decoded JSON object

    Raises:
        ProtocolError: If the frame is not a JSON object
    """
    if isinstance(raw, (bytes, bytearray)):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ProtocolError(f"Frame is not valid UTF-8: {e}") from e
    try:
        data = json.loads(raw)
    except (TypeError, json.JSONDecodeError) as e:
        raise ProtocolError(f"Invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ProtocolError("Envelope must be a JSON object")
    return data


def require_str(data: Dict[str, Any], key: str) -> str:
    """Return ``data[key]`` if it is a string, else raise ProtocolError."""
    value = data.get(key)
    if not isinstance(value, str):
        raise ProtocolError(f"Field '{key}' must be a string")
    return value


def optional_str(data: Dict[str, Any], key: str) -> str:
    """Return ``data[key]`` as a string, treating missing/null as empty."""
    value = data.get(key)
    if value is None:
        return ""
    if not isinstance(value, str):
        raise ProtocolError(f"Field '{key}' must be a string")
    return value


def require_int(data: Dict[str, Any], key: str) -> int:
    """Return ``data[key]`` if it is a non-negative int (bools rejected)."""
    value = data.get(key)
    if isinstance(value, bool) or not isinstance(value, int):
        raise ProtocolError(f"Field '{key}' must be an integer")
    if value < 0:
        raise ProtocolError(f"Field '{key}' must not be negative")
    return value
