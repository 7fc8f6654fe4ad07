"""
Configuration Utilities

Helpers for reading the environment based configuration of the entry points.
"""

import logging


def parse_log_level(name: str) -> int:
    """
    Resolve a log level name such as "debug" to its numeric level.

    Raises:
        ValueError: If the name is not a standard logging level
    """
    level = logging.getLevelName(name.strip().upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {name!r}")
    return level
