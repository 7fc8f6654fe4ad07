"""
Validation Utilities

Contains utility functions for validating and normalizing the user supplied
fields of a join request before they reach the room registry.
"""

import random
from typing import Optional, Tuple

# Join validation constants
MAX_ROOM_ID_LENGTH = 128
MAX_NAME_LENGTH = 64
MAX_COLOR_LENGTH = 32
DEFAULT_USER_NAME = "Anonymous"


def random_color() -> str:
    """Return a random '#rrggbb' display color."""
    return "#{:06x}".format(random.randint(0, 0xFFFFFF))


def validate_room_id(room_id: str) -> Tuple[bool, Optional[str]]:
    """
    Validate a room identifier.

    Args:
        room_id: The room identifier to validate

    Returns:
        tuple: (is_valid, error_message)
    """
    if not room_id or not room_id.strip():
        return False, "Room ID cannot be empty"

    if len(room_id) > MAX_ROOM_ID_LENGTH:
        return (
            False,
            f"Room ID too long (max {MAX_ROOM_ID_LENGTH} characters)",
        )

    return True, None


def normalize_display(user_name: str, user_color: str) -> Tuple[str, str]:
    """
    Apply defaults and length limits to a participant's display fields.

    Blank names become "Anonymous", blank colors get a random color, and
    over-long values are truncated.

    Returns:
        tuple: (name, color)
    """
    name = (user_name or "").strip()[:MAX_NAME_LENGTH] or DEFAULT_USER_NAME
    color = (user_color or "").strip()[:MAX_COLOR_LENGTH] or random_color()
    return name, color
