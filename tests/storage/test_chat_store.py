"""Tests for chat rooms and message logs."""

from datetime import datetime, timedelta, timezone

import pytest

from ananse.models import ChatMessage, Panel, utcnow
from backend import storage


def _room(a: str = "alice", b: str = "bob"):
    return storage.create_room([a, b])


def _say(room_id: str, sender: str, content: str, **fields) -> ChatMessage:
    return storage.append_message(ChatMessage(room_id=room_id, sender_id=sender, content=content, **fields))


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

class TestRooms:
    def test_create_and_get(self):
        room = _room()
        loaded = storage.get_room(room.id)
        assert loaded.participants == ["alice", "bob"]
        assert loaded.active is True

    def test_create_requires_two(self):
        with pytest.raises(ValueError):
            storage.create_room(["alice"])

    def test_find_room_for_pair_ignores_order(self):
        room = _room()
        assert storage.find_room_for_pair(["bob", "alice"]).id == room.id
        assert storage.find_room_for_pair(["alice", "carol"]) is None

    def test_update_only_mutable_fields(self):
        room = _room()
        updated = storage.update_room(room.id, {"story_context": "A fox.", "participants": ["x", "y"]})
        assert updated.story_context == "A fox."
        assert updated.participants == ["alice", "bob"]
        assert updated.updated_at >= room.updated_at

    def test_update_missing_room(self):
        assert storage.update_room("c" * 32, {"active": False}) is None

    def test_delete_cascades_messages(self):
        room = _room()
        _say(room.id, "alice", "hi")
        assert storage.delete_room(room.id) is True
        assert storage.get_room(room.id) is None
        assert storage.get_messages(room.id) == []
        assert storage.delete_room(room.id) is False


class TestRoomsForUser:
    def test_skips_empty_rooms_by_default(self):
        empty = _room("alice", "carol")
        busy = _room("alice", "bob")
        _say(busy.id, "bob", "hello there")
        rooms = storage.list_rooms_for_user("alice")
        assert [r["roomId"] for r in rooms] == [busy.id]
        assert rooms[0]["lastMessageText"] == "hello there"

        with_empty = storage.list_rooms_for_user("alice", include_empty=True)
        assert {r["roomId"] for r in with_empty} == {busy.id, empty.id}
        preview = next(r for r in with_empty if r["roomId"] == empty.id)
        assert preview["lastMessageText"] == "No messages yet"

    def test_only_own_rooms(self):
        room = _room("alice", "bob")
        _say(room.id, "alice", "hi")
        assert storage.list_rooms_for_user("mallory") == []

    def test_most_recently_updated_first(self):
        first = _room("alice", "bob")
        second = _room("alice", "carol")
        _say(first.id, "alice", "1")
        _say(second.id, "alice", "2")
        storage.touch_room(second.id)
        storage.touch_room(first.id)
        rooms = storage.list_rooms_for_user("alice")
        assert [r["roomId"] for r in rooms] == [first.id, second.id]


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

class TestMessages:
    def test_append_requires_room(self):
        with pytest.raises(KeyError):
            _say("d" * 32, "alice", "hi")

    def test_chronological_with_newest_limit(self):
        room = _room()
        for i in range(5):
            _say(room.id, "alice", f"m{i}")
        assert [m.content for m in storage.get_messages(room.id)] == ["m0", "m1", "m2", "m3", "m4"]
        assert [m.content for m in storage.get_messages(room.id, limit=2)] == ["m3", "m4"]

    def test_before_filter(self):
        room = _room()
        base = datetime(2026, 3, 1, tzinfo=timezone.utc)
        for i in range(3):
            _say(room.id, "alice", f"m{i}", created_at=base + timedelta(minutes=i))
        older = storage.get_messages(room.id, before=base + timedelta(minutes=2))
        assert [m.content for m in older] == ["m0", "m1"]

    def test_update_message(self):
        room = _room()
        msg = _say(room.id, "alice", "draw", type="visual", visual_status="generating")
        updated = storage.update_message(room.id, msg.id, {
            "title": "The Web",
            "panels": [Panel(number=1, description="A")],
            "visual_status": "complete",
            "sender_id": "mallory",
        })
        assert updated.title == "The Web"
        assert updated.visual_status == "complete"
        assert updated.sender_id == "alice"
        stored = storage.get_message(room.id, msg.id)
        assert stored.panels[0].description == "A"

    def test_count_messages(self):
        room = _room()
        assert storage.count_messages(room.id) == 0
        _say(room.id, "alice", "a")
        _say(room.id, "bob", "b")
        assert storage.count_messages(room.id) == 2


class TestVisualMessages:
    def test_count_since_only_visual_by_sender(self):
        room = _room()
        today = utcnow().replace(hour=0, minute=0, second=0, microsecond=0)
        _say(room.id, "alice", "v1", type="visual", visual_status="complete")
        _say(room.id, "alice", "old", type="visual", created_at=today - timedelta(hours=1))
        _say(room.id, "alice", "text")
        _say(room.id, "bob", "v2", type="visual")
        assert storage.count_visual_messages_since("alice", today) == 1

    def test_reconcile_marks_in_flight_as_failed(self):
        room = _room()
        stuck = _say(room.id, "alice", "a", type="visual", visual_status="generating")
        pending = _say(room.id, "alice", "b", type="visual", visual_status="pending")
        done = _say(room.id, "alice", "c", type="visual", visual_status="complete")
        assert storage.reconcile_stale_visual_messages() == 2
        assert storage.get_message(room.id, stuck.id).visual_status == "failed"
        assert storage.get_message(room.id, pending.id).visual_status == "failed"
        assert storage.get_message(room.id, done.id).visual_status == "complete"
        assert storage.reconcile_stale_visual_messages() == 0
