"""
Utilities for Node Server

This module contains utility functions for validating join requests and
reading configuration.
"""

from .config import parse_log_level
from .validation import (
    normalize_display,
    random_color,
    validate_room_id,
)

__all__ = [
    "normalize_display",
    "parse_log_level",
    "random_color",
    "validate_room_id",
]
