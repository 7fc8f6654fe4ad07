#!/usr/bin/env python3
"""
Collaborative Editing Node Server

Relays document edits and presence between the participants of each room.
"""

import asyncio
import logging
import os
import sys
from typing import Optional

from .room_state import RoomRegistry
from .utils import parse_log_level
from .websocket_server import (
    WebSocketServer,
    DEFAULT_MAX_MESSAGE_SIZE,
    DEFAULT_PING_INTERVAL,
    DEFAULT_PING_TIMEOUT,
    DEFAULT_SEND_TIMEOUT,
)

logger = logging.getLogger(__name__)


async def run_server(
    ws_host: str,
    ws_port: int,
    ping_interval: Optional[float] = DEFAULT_PING_INTERVAL,
    ping_timeout: Optional[float] = DEFAULT_PING_TIMEOUT,
    max_message_size: int = DEFAULT_MAX_MESSAGE_SIZE,
    send_timeout: Optional[float] = DEFAULT_SEND_TIMEOUT,
):
    """
    Run the node server until cancelled.

    Args:
        ws_host: WebSocket host address to bind to
        ws_port: WebSocket port to listen on
        ping_interval: Keepalive interval in seconds, None to disable
        ping_timeout: Keepalive timeout in seconds, None to disable
        max_message_size: Maximum inbound frame size in bytes
        send_timeout: Per-recipient send timeout in seconds, None to disable
    """
    registry = RoomRegistry()
    ws_server = WebSocketServer(
        registry,
        ws_host,
        ws_port,
        ping_interval=ping_interval,
        ping_timeout=ping_timeout,
        max_message_size=max_message_size,
        send_timeout=send_timeout,
    )

    await ws_server.start()
    logger.info(f"Node server listening on ws://{ws_host}:{ws_server.port}")

    try:
        # Wait indefinitely
        await asyncio.Event().wait()
    except asyncio.CancelledError:
        logger.info("Server shutdown requested")
    finally:
        await ws_server.stop()
        logger.info(
            f"Node server stopped ({registry.get_room_count()} rooms open)"
        )


def _env_seconds(name: str, default: float) -> Optional[float]:
    """Read a duration in seconds; 0 or a negative value disables it."""
    value = float(os.environ.get(name, str(default)))
    return value if value > 0 else None


def main():
    """Main entry point for the node server."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    # Get configuration from environment or use defaults
    try:
        logging.getLogger().setLevel(
            parse_log_level(os.environ.get("LOG_LEVEL", "INFO"))
        )
        ws_host = os.environ.get("WEBSOCKET_HOST", "0.0.0.0")
        ws_port = int(os.environ.get("WEBSOCKET_PORT", "8080"))
        ping_interval = _env_seconds("PING_INTERVAL", DEFAULT_PING_INTERVAL)
        ping_timeout = _env_seconds("PING_TIMEOUT", DEFAULT_PING_TIMEOUT)
        send_timeout = _env_seconds("SEND_TIMEOUT", DEFAULT_SEND_TIMEOUT)
        max_message_size = int(
            os.environ.get("MAX_MESSAGE_SIZE", str(DEFAULT_MAX_MESSAGE_SIZE))
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    logger.info("Starting collaborative editing node server...")

    # Run the async server
    try:
        asyncio.run(
            run_server(
                ws_host,
                ws_port,
                ping_interval=ping_interval,
                ping_timeout=ping_timeout,
                max_message_size=max_message_size,
                send_timeout=send_timeout,
            )
        )
    except KeyboardInterrupt:
        logger.info("Shutting down node server...")
        sys.exit(0)


if __name__ == "__main__":
    main()
