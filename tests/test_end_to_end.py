"""
End-to-End Tests

Runs the real WebSocket server on an ephemeral loopback port and drives it
with the client library.
"""

import asyncio

import pytest
import pytest_asyncio

from collab_client import ClientService
from collab_node import RoomRegistry, WebSocketServer, welcome_document
from collab_node.schemas import (
    CodeUpdate,
    CursorUpdate,
    InitMessage,
    UserJoined,
    UserLeft,
)

TIMEOUT = 5


@pytest_asyncio.fixture
async def ws_server():
    server = WebSocketServer(RoomRegistry(), "127.0.0.1", 0)
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def connect(ws_server):
    clients = []

    async def _connect():
        client = ClientService(f"ws://127.0.0.1:{ws_server.port}")
        await client.connect()
        clients.append(client)
        return client

    yield _connect
    for client in clients:
        if client.is_connected:
            await client.disconnect()


async def wait_until(predicate):
    for _ in range(250):
        if predicate():
            return
        await asyncio.sleep(0.02)
    raise AssertionError("condition not reached")


@pytest.mark.asyncio
async def test_two_participant_session(ws_server, connect):
    """Test join, edit, cursor and leave across real connections."""
    registry = ws_server.registry
    alice = await connect()
    bob = await connect()

    await alice.join("r1", "A", "#aa0000")
    init_a = await alice.receive(TIMEOUT)
    assert isinstance(init_a, InitMessage)
    assert init_a.code == welcome_document("r1")
    assert [u.name for u in init_a.users] == ["A"]

    await bob.join("r1", "B", "#00bb00")
    init_b = await bob.receive(TIMEOUT)
    assert isinstance(init_b, InitMessage)
    assert [u.id for u in init_b.users] == [init_a.user_id, init_b.user_id]

    joined = await alice.receive(TIMEOUT)
    assert isinstance(joined, UserJoined)
    assert [u.id for u in joined.users] == [init_a.user_id, init_b.user_id]

    await alice.send_code("x=1")
    assert await bob.receive(TIMEOUT) == CodeUpdate(code="x=1")

    await bob.move_cursor(2, 8)
    moved = await alice.receive(TIMEOUT)
    assert isinstance(moved, CursorUpdate)
    assert moved.user_id == init_b.user_id

    await bob.leave()
    left = await alice.receive(TIMEOUT)
    # Alice's next message is the leave: her own edit was never echoed
    assert isinstance(left, UserLeft)
    assert left.user_id == init_b.user_id
    assert [u.id for u in left.users] == [init_a.user_id]
    assert registry.get_room("r1") is not None

    await alice.leave()
    await wait_until(lambda: registry.get_room("r1") is None)
    assert registry.get_room_count() == 0


@pytest.mark.asyncio
async def test_dropped_connection_leaves_room(ws_server, connect):
    """Test that closing a connection notifies the rest of the room."""
    alice = await connect()
    bob = await connect()

    await alice.join("r2", "A")
    init_a = await alice.receive(TIMEOUT)
    await bob.join("r2", "B")
    init_b = await bob.receive(TIMEOUT)
    await alice.receive(TIMEOUT)  # user-joined

    await bob.disconnect()

    left = await alice.receive(TIMEOUT)
    assert isinstance(left, UserLeft)
    assert left.user_id == init_b.user_id
    assert [u.id for u in left.users] == [init_a.user_id]

    await alice.disconnect()
    await wait_until(lambda: ws_server.registry.get_room_count() == 0)
    await wait_until(lambda: not ws_server.sessions)


@pytest.mark.asyncio
async def test_late_joiner_gets_current_document(ws_server, connect):
    """Test that init carries the last written document."""
    alice = await connect()
    await alice.join("r3", "A")
    await alice.receive(TIMEOUT)
    await alice.send_code("first")
    await alice.send_code("second")
    await wait_until(
        lambda: ws_server.registry.get_room("r3").document == "second"
    )

    bob = await connect()
    await bob.join("r3", "B")
    init_b = await bob.receive(TIMEOUT)
    assert init_b.code == "second"
