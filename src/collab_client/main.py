#!/usr/bin/env python3
"""
Room Watcher

Joins a room on a node server and logs presence, document and cursor
changes until interrupted. Useful for observing a room from a terminal.
"""

import asyncio
import logging
import os
import random
import sys

from collab_node.utils import parse_log_level

from .collab_client import CollabClient, generate_room_id

logger = logging.getLogger(__name__)


async def watch_room(
    node_url: str, room_id: str, user_name: str, user_color: str
) -> None:
    """
    Join a room and log every change until the connection closes.

    Args:
        node_url: WebSocket URL of the node server
        room_id: Room to join
        user_name: Display name of the watcher
        user_color: Display color of the watcher
    """
    client = CollabClient(node_url)

    def on_init(message):
        logger.info(
            f"Joined room {room_id} as {message.user_id}: "
            f"{len(message.users)} participants, "
            f"{len(message.code)} chars"
        )

    def on_code_update(code):
        logger.info(f"Document changed ({len(code)} chars)")

    def on_roster_change(users):
        names = ", ".join(user.name for user in users)
        logger.info(f"Participants ({len(users)}): {names}")

    def on_cursor_update(user_id, cursor):
        user = client.get_user(user_id)
        name = user.name if user else user_id
        logger.info(
            f"{name} moved to line {cursor.line_number}, "
            f"column {cursor.column}"
        )

    client.set_on_init(on_init)
    client.set_on_code_update(on_code_update)
    client.set_on_roster_change(on_roster_change)
    client.set_on_cursor_update(on_cursor_update)

    await client.connect()
    try:
        await client.join(room_id, user_name, user_color)
        await client.receive_messages()
    finally:
        await client.disconnect()


def main():
    """Main entry point for the room watcher."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        logging.getLogger().setLevel(
            parse_log_level(os.environ.get("LOG_LEVEL", "INFO"))
        )
    except ValueError as e:
        logger.error(f"Invalid configuration: {e}")
        sys.exit(2)

    node_url = os.environ.get("COLLAB_URL", "ws://localhost:8080")
    room_id = os.environ.get("ROOM_ID") or generate_room_id()
    user_name = os.environ.get("USER_NAME") or f"User{random.randint(0, 999)}"
    user_color = os.environ.get("USER_COLOR", "")

    logger.info(f"Watching room {room_id} on {node_url}")
    try:
        asyncio.run(watch_room(node_url, room_id, user_name, user_color))
    except ConnectionError as e:
        logger.error(str(e))
        sys.exit(1)
    except KeyboardInterrupt:
        logger.info("Exiting...")
        sys.exit(0)


if __name__ == "__main__":
    main()
