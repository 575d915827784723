"""Tests for ananse.models."""

import pytest
from pydantic import ValidationError

from ananse.models import (
    MAX_MESSAGE_LENGTH,
    ChatMessage,
    ChatRoom,
    Panel,
    Story,
    new_id,
    panels_from_raw,
)


def test_new_id_is_32_hex():
    value = new_id()
    assert len(value) == 32
    assert all(c in "0123456789abcdef" for c in value)


def test_story_defaults():
    story = Story(type="write")
    assert story.status == "pending"
    assert story.metadata.views == 0
    assert story.metadata.likes == 0
    assert story.visual_narrative.panels == []
    assert story.audio_narrative.duration_ms == 0


def test_story_rejects_unknown_type():
    with pytest.raises(ValidationError):
        Story(type="paint")


# ---------------------------------------------------------------------------
# Panels
# ---------------------------------------------------------------------------

class TestPanelsFromRaw:
    def test_numbers_in_order(self):
        panels = panels_from_raw([
            {"number": 7, "description": "A"},
            {"number": 3, "description": "B"},
        ])
        assert [p.number for p in panels] == [1, 2]
        assert [p.description for p in panels] == ["A", "B"]

    def test_null_fields_become_empty(self):
        panels = panels_from_raw([{"scene": None, "description": "A", "dialogue": None}])
        assert panels == [Panel(number=1, scene="", description="A", dialogue="")]

    def test_non_list_gives_no_panels(self):
        assert panels_from_raw({"description": "A"}) == []
        assert panels_from_raw(None) == []

    def test_skips_non_objects(self):
        panels = panels_from_raw(["nope", {"description": "A"}, 4])
        assert len(panels) == 1
        assert panels[0].number == 1


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class TestChatRoom:
    def test_two_participants(self):
        room = ChatRoom(participants=["alice", "bob"])
        assert room.active is True
        assert room.thought_signature is None

    @pytest.mark.parametrize("participants", [[], ["alice"], ["a", "b", "c"]])
    def test_rejects_other_counts(self, participants):
        with pytest.raises(ValidationError, match="exactly 2 participants"):
            ChatRoom(participants=participants)

    def test_other_participant(self):
        room = ChatRoom(participants=["alice", "bob"])
        assert room.other_participant("alice") == "bob"
        assert room.other_participant("bob") == "alice"


class TestChatMessage:
    def test_defaults(self):
        msg = ChatMessage(room_id="r", sender_id="alice", content="hi")
        assert msg.type == "text"
        assert msg.read is False
        assert msg.visual_status is None

    def test_rejects_empty_content(self):
        with pytest.raises(ValidationError):
            ChatMessage(room_id="r", sender_id="alice", content="")

    def test_rejects_long_content(self):
        with pytest.raises(ValidationError):
            ChatMessage(room_id="r", sender_id="alice", content="x" * (MAX_MESSAGE_LENGTH + 1))

    def test_accepts_max_length(self):
        msg = ChatMessage(room_id="r", sender_id="alice", content="x" * MAX_MESSAGE_LENGTH)
        assert len(msg.content) == MAX_MESSAGE_LENGTH
