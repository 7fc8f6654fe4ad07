"""
Tests for Room State Management

Tests for the room registry: lazy room creation, joins, last-write-wins
edits, cursor bookkeeping, leaves and room deletion.
"""

import pytest

from collab_node import RoomRegistry, RoomSnapshot, welcome_document
from collab_node.schemas import (
    CodeUpdate,
    Cursor,
    CursorUpdate,
    UserJoined,
    UserLeft,
)


def test_registry_starts_empty():
    """Test that a new registry holds no rooms."""
    registry = RoomRegistry()
    assert registry.get_room_count() == 0
    assert registry.list_rooms() == []


def test_get_or_create_creates_welcome_room():
    """Test that get_or_create creates a room with the welcome document."""
    registry = RoomRegistry()
    room = registry.get_or_create("r1")
    assert room.room_id == "r1"
    assert room.document == welcome_document("r1")
    assert "r1" in room.document
    assert room.participants == {}
    assert registry.get_or_create("r1") is room
    assert registry.get_room_count() == 1


def test_first_join_creates_room():
    """Test that the first join creates the room and returns a snapshot."""
    registry = RoomRegistry()
    result = registry.join("r1", "alice", "#ff0000")

    assert registry.get_room("r1") is not None
    assert result.init.code == welcome_document("r1")
    assert result.init.user_id == result.participant_id
    assert [u.id for u in result.init.users] == [result.participant_id]
    assert result.init.users[0].name == "alice"
    assert result.init.users[0].color == "#ff0000"
    assert result.init.users[0].cursor is None
    # Nobody else to notify
    assert result.update.notifications == []


def test_second_join_notifies_others_only():
    """Test that user-joined goes to existing participants only."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    result = registry.join("r1", "bob", "#00ff00")
    bob = result.participant_id

    assert [u.id for u in result.init.users] == [alice, bob]
    [notification] = result.update.notifications
    assert isinstance(notification.message, UserJoined)
    assert notification.recipients == [alice]
    assert [u.id for u in notification.message.users] == [alice, bob]


def test_participant_ids_are_unique():
    """Test that every join gets a fresh participant ID."""
    registry = RoomRegistry()
    ids = {registry.join("r1", "same", "#000000").participant_id for _ in range(50)}
    ids.add(registry.join("r2", "same", "#000000").participant_id)
    assert len(ids) == 51


def test_roster_size_tracks_joined_participants():
    """Test that the roster always equals the currently joined set."""
    registry = RoomRegistry()
    joined = []
    for i in range(5):
        result = registry.join("r1", f"user{i}", "#000000")
        joined.append(result.participant_id)
        assert len(result.init.users) == len(joined)

    registry.leave("r1", joined.pop(1))
    result = registry.join("r1", "late", "#000000")
    joined.append(result.participant_id)
    assert [u.id for u in result.init.users] == joined


def test_apply_edit_last_write_wins():
    """Test that the last applied edit replaces the document."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    bob = registry.join("r1", "bob", "#00ff00").participant_id

    registry.apply_edit("r1", alice, "E1")
    registry.apply_edit("r1", bob, "E2")

    assert registry.get_room("r1").document == "E2"


def test_apply_edit_notifies_others():
    """Test that code-update goes to everyone but the editor."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    bob = registry.join("r1", "bob", "#00ff00").participant_id
    carol = registry.join("r1", "carol", "#0000ff").participant_id

    update = registry.apply_edit("r1", bob, "x = 1")

    [notification] = update.notifications
    assert notification.message == CodeUpdate(code="x = 1")
    assert notification.recipients == [alice, carol]


def test_apply_edit_same_value_still_notifies():
    """Test that replaying an identical document notifies every time."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    registry.join("r1", "bob", "#00ff00")

    first = registry.apply_edit("r1", alice, "same")
    second = registry.apply_edit("r1", alice, "same")

    assert registry.get_room("r1").document == "same"
    assert len(first.notifications) == 1
    assert len(second.notifications) == 1


def test_apply_edit_stale_reference_is_noop():
    """Test that edits for missing rooms or participants are ignored."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id

    assert registry.apply_edit("missing", alice, "x") is None
    assert registry.apply_edit("r1", "ghost", "x") is None
    assert registry.get_room("r1").document == welcome_document("r1")
    # A stale edit never resurrects a room
    assert registry.get_room("missing") is None


def test_update_cursor():
    """Test that a cursor move only touches that participant's cursor."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    bob = registry.join("r1", "bob", "#00ff00").participant_id
    room = registry.get_room("r1")
    document = room.document

    update = registry.update_cursor("r1", alice, Cursor(3, 7))

    [notification] = update.notifications
    assert notification.message == CursorUpdate(user_id=alice, cursor=Cursor(3, 7))
    assert notification.recipients == [bob]
    assert room.participants[alice].cursor == Cursor(3, 7)
    assert room.participants[bob].cursor is None
    assert room.document == document
    assert list(room.participants) == [alice, bob]


def test_update_cursor_stale_reference_is_noop():
    """Test that cursor moves for missing participants are ignored."""
    registry = RoomRegistry()
    registry.join("r1", "alice", "#ff0000")
    assert registry.update_cursor("r1", "ghost", Cursor(1, 1)) is None
    assert registry.update_cursor("gone", "ghost", Cursor(1, 1)) is None


def test_joiner_sees_existing_cursors():
    """Test that the init roster carries known cursors."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    registry.update_cursor("r1", alice, Cursor(2, 4))

    result = registry.join("r1", "bob", "#00ff00")
    assert result.init.users[0].cursor == Cursor(2, 4)


def test_leave_notifies_remaining():
    """Test that user-left carries the departed ID and remaining roster."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    bob = registry.join("r1", "bob", "#00ff00").participant_id

    update = registry.leave("r1", bob)

    assert not update.room_deleted
    [notification] = update.notifications
    assert notification.message == UserLeft(
        user_id=bob, users=registry.get_room("r1").roster()
    )
    assert notification.recipients == [alice]
    assert [u.id for u in notification.message.users] == [alice]


def test_last_leave_deletes_room():
    """Test that a room disappears with its last participant."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id

    update = registry.leave("r1", alice)

    assert update.room_deleted
    assert update.notifications == []
    assert registry.get_room("r1") is None
    assert registry.get_room_count() == 0


def test_leave_stale_reference_is_noop():
    """Test that leaving twice is harmless."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    registry.leave("r1", alice)
    assert registry.leave("r1", alice) is None
    assert registry.get_room("r1") is None


@pytest.mark.parametrize("count", [1, 2, 7])
def test_join_then_leave_restores_registry(count):
    """Test that N joins followed by N leaves remove the room."""
    registry = RoomRegistry()
    registry.join("other", "zed", "#000000")
    before = registry.list_rooms()

    ids = [registry.join("r1", f"u{i}", "#000000").participant_id for i in range(count)]
    for i, participant_id in enumerate(ids):
        assert registry.get_room("r1") is not None
        registry.leave("r1", participant_id)
        remaining = registry.get_room("r1")
        if i < count - 1:
            assert len(remaining.participants) == count - i - 1

    assert registry.get_room("r1") is None
    assert registry.list_rooms() == before


def test_recreated_room_starts_fresh():
    """Test that a deleted room is re-created with the welcome document."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    registry.apply_edit("r1", alice, "edited")
    registry.leave("r1", alice)

    result = registry.join("r1", "bob", "#00ff00")
    assert result.init.code == welcome_document("r1")


def test_rooms_are_isolated():
    """Test that edits in one room never reach another."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    bob = registry.join("r2", "bob", "#00ff00").participant_id

    update = registry.apply_edit("r1", alice, "only r1")

    assert update.notifications[0].recipients == []
    assert registry.get_room("r2").document == welcome_document("r2")
    assert bob not in registry.get_room("r1").participants


def test_snapshot_and_list_rooms():
    """Test the read-only views of the registry."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    registry.join("r1", "bob", "#00ff00")

    snapshot = registry.snapshot("r1")
    assert isinstance(snapshot, RoomSnapshot)
    assert snapshot.room_id == "r1"
    assert snapshot.document == welcome_document("r1")
    assert snapshot.users[0].id == alice
    assert registry.snapshot("missing") is None

    [listing] = registry.list_rooms()
    assert listing["room_id"] == "r1"
    assert listing["participant_count"] == 2
    assert listing["created_at"]


def test_rejoin_keeps_room_and_document():
    """Test that a sole participant rejoining keeps the document."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    registry.apply_edit("r1", alice, "work")
    room = registry.get_room("r1")

    result = registry.rejoin("r1", alice, "alice", "#0000ff")

    assert registry.get_room("r1") is room
    assert room.document == "work"
    assert result.init.code == "work"
    assert result.participant_id != alice
    assert list(room.participants) == [result.participant_id]
    assert room.participants[result.participant_id].color == "#0000ff"
    assert result.update.notifications == []


def test_rejoin_replaces_entry_in_place():
    """Test that rejoin keeps roster order and notifies the others."""
    registry = RoomRegistry()
    alice = registry.join("r1", "alice", "#ff0000").participant_id
    bob = registry.join("r1", "bob", "#00ff00").participant_id
    registry.update_cursor("r1", alice, Cursor(3, 3))

    result = registry.rejoin("r1", alice, "alicia", "#ff0000")
    new_id = result.participant_id

    assert [u.id for u in result.init.users] == [new_id, bob]
    assert result.init.users[0].name == "alicia"
    assert result.init.users[0].cursor is None
    [notification] = result.update.notifications
    assert isinstance(notification.message, UserJoined)
    assert notification.recipients == [bob]
    assert [u.id for u in notification.message.users] == [new_id, bob]

    # The old ID is gone
    assert registry.apply_edit("r1", alice, "stale") is None


def test_rejoin_with_stale_participant_returns_none():
    """Test that rejoin does nothing for unknown rooms or participants."""
    registry = RoomRegistry()
    assert registry.rejoin("missing", "nobody", "a", "#000") is None
    registry.join("r1", "alice", "#ff0000")
    assert registry.rejoin("r1", "nobody", "a", "#000") is None
    assert len(registry.get_room("r1").participants) == 1
