"""Chat hub scenarios driven through ChatHub.handle with fake connections.

Variants:
  TestRegistration: register gate, re-register, malformed frames
  TestMatchmaking : FIFO pairing, already_searching, disconnect, dead partners
  TestRooms       : relay, history, leave, rooms list, participant checks
  TestVisual      : visual message lifecycle and the daily quota
  TestAiCoAuthor  : opening and continuation turns broadcast to both users
"""

import asyncio
import json

from ananse.llm import Generation, ProviderError
from ananse.models import AI_SENDER, ChatMessage
from backend import storage
from backend.chat import ChatHub, ChatSession, CoAuthor, VisualStoryService
from backend.chat.server import WAITING_MESSAGE
from backend.config import Settings

from stubs import FakeConnection, ScriptedProvider, StubImageBackend, make_providers


def _visual_reply(title: str = "The Kite", count: int = 3) -> str:
    return json.dumps({
        "title": title,
        "panels": [{"description": f"Panel {i}"} for i in range(1, count + 1)],
    })


def _hub(provider: ScriptedProvider | None = None, daily_limit: int = 5) -> ChatHub:
    providers = make_providers(provider or ScriptedProvider(), backend=StubImageBackend())
    settings = Settings(visual_panel_delay_seconds=0, visual_chat_daily_limit=daily_limit)
    return ChatHub(
        visual=VisualStoryService(providers=providers, settings=settings),
        coauthor=CoAuthor(providers=providers),
    )


class YieldingConnection(FakeConnection):
    """Gives up the event loop on every send, like a real socket write."""

    async def send(self, frame):
        await asyncio.sleep(0)
        await super().send(frame)


async def _join(hub: ChatHub, user_id: str) -> ChatSession:
    session = ChatSession(FakeConnection())
    await hub.handle(session, {"type": "register", "userId": user_id})
    return session


async def _pair(hub: ChatHub) -> tuple[ChatSession, ChatSession, str]:
    alice = await _join(hub, "alice")
    bob = await _join(hub, "bob")
    await hub.handle(alice, {"type": "find_match", "matchType": "random"})
    await hub.handle(bob, {"type": "find_match", "matchType": "random"})
    room_id = bob.connection.last("match_found")["room"]
    return alice, bob, room_id


# ---------------------------------------------------------------------------
# Registration and frame errors
# ---------------------------------------------------------------------------

class TestRegistration:
    async def test_frames_before_register_rejected(self):
        hub = _hub()
        session = ChatSession(FakeConnection())
        await hub.handle(session, {"type": "find_match"})
        assert session.connection.sent == [{"type": "error", "message": "Register before sending other messages"}]
        assert hub.waiting == []

    async def test_register_binds_user(self):
        hub = _hub()
        session = await _join(hub, "alice")
        assert session.user_id == "alice"
        assert hub.clients["alice"] is session.connection
        assert session.connection.sent == []

    async def test_last_register_wins(self):
        hub = _hub()
        first = await _join(hub, "alice")
        second = await _join(hub, "alice")
        assert hub.clients["alice"] is second.connection
        await hub.disconnect(first)
        assert hub.clients["alice"] is second.connection

    async def test_unknown_type_keeps_socket_usable(self):
        hub = _hub()
        session = await _join(hub, "alice")
        await hub.handle(session, {"type": "dance"})
        await hub.handle(session, {"type": "find_match"})
        assert session.connection.types() == ["error", "waiting"]
        assert session.connection.sent[0]["message"] == "Unknown message type: dance"

    async def test_invalid_json_text(self):
        hub = _hub()
        session = await _join(hub, "alice")
        await hub.handle(session, "{not json")
        assert session.connection.types() == ["error"]


# ---------------------------------------------------------------------------
# Matchmaking
# ---------------------------------------------------------------------------

class TestMatchmaking:
    async def test_three_wanderers(self):
        hub = _hub()
        alice = await _join(hub, "alice")
        bob = await _join(hub, "bob")
        carol = await _join(hub, "carol")

        await hub.handle(alice, {"type": "find_match"})
        assert alice.connection.sent == [{"type": "waiting", "message": WAITING_MESSAGE, "position": 1}]

        await hub.handle(bob, {"type": "find_match"})
        to_bob = bob.connection.last("match_found")
        to_alice = alice.connection.last("match_found")
        assert to_bob["partnerId"] == "alice"
        assert to_alice["partnerId"] == "bob"
        assert to_alice["room"] == to_bob["room"]
        assert set(storage.get_room(to_bob["room"]).participants) == {"alice", "bob"}

        await hub.handle(carol, {"type": "find_match"})
        assert carol.connection.last("waiting")["position"] == 1
        assert hub.waiting == ["carol"]

    async def test_concurrent_searches_take_queue_head_once(self):
        hub = _hub()
        sessions = {}
        for user_id in ("alice", "bob", "carol", "dave"):
            sessions[user_id] = ChatSession(YieldingConnection())
            await hub.handle(sessions[user_id], {"type": "register", "userId": user_id})
        await hub.handle(sessions["alice"], {"type": "find_match"})
        assert hub.waiting == ["alice"]

        await asyncio.gather(*(
            hub.handle(sessions[user_id], {"type": "find_match"}) for user_id in ("bob", "carol", "dave")
        ))

        assert sessions["alice"].connection.types().count("match_found") == 1
        rooms = storage.list_rooms()
        assert len(rooms) == 2
        assert sorted(u for room in rooms for u in room.participants) == ["alice", "bob", "carol", "dave"]
        matched = sum(s.connection.types().count("match_found") for s in sessions.values())
        assert matched == 4
        assert hub.waiting == []

    async def test_already_searching(self):
        hub = _hub()
        alice = await _join(hub, "alice")
        await hub.handle(alice, {"type": "find_match"})
        await hub.handle(alice, {"type": "find_match"})
        assert alice.connection.types() == ["waiting", "already_searching"]
        assert hub.waiting == ["alice"]

    async def test_disconnect_leaves_queue(self):
        hub = _hub()
        alice = await _join(hub, "alice")
        await hub.handle(alice, {"type": "find_match"})
        await hub.disconnect(alice)
        assert hub.waiting == []
        assert "alice" not in hub.clients

        bob = await _join(hub, "bob")
        await hub.handle(bob, {"type": "find_match"})
        assert bob.connection.types() == ["waiting"]

    async def test_dead_partner_is_skipped(self):
        hub = _hub()
        alice = await _join(hub, "alice")
        await hub.handle(alice, {"type": "find_match"})
        alice.connection.open = False

        bob = await _join(hub, "bob")
        await hub.handle(bob, {"type": "find_match"})
        assert bob.connection.last("waiting")["position"] == 1
        assert hub.waiting == ["bob"]
        assert storage.list_rooms() == []


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

class TestRooms:
    async def test_message_relayed_and_stored(self):
        hub = _hub()
        alice, bob, room_id = await _pair(hub)
        await hub.handle(alice, {"type": "send_message", "roomId": room_id, "content": "Hello, stranger"})

        relayed = bob.connection.last("message")
        assert relayed["senderId"] == "alice"
        assert relayed["content"] == "Hello, stranger"
        assert relayed["roomId"] == room_id
        assert "message" not in alice.connection.types()
        stored = storage.get_messages(room_id)
        assert [m.content for m in stored] == ["Hello, stranger"]
        assert stored[0].id == relayed["messageId"]

    async def test_offline_peer_message_still_stored(self):
        hub = _hub()
        alice, bob, room_id = await _pair(hub)
        await hub.disconnect(bob)
        await hub.handle(alice, {"type": "send_message", "roomId": room_id, "content": "Anyone?"})
        assert storage.count_messages(room_id) == 1
        assert "error" not in alice.connection.types()

    async def test_unknown_room(self):
        hub = _hub()
        alice = await _join(hub, "alice")
        await hub.handle(alice, {"type": "send_message", "roomId": "0" * 32, "content": "hi"})
        assert alice.connection.last("error")["message"] == "Chat room not found"

    async def test_outsider_rejected(self):
        hub = _hub()
        _, _, room_id = await _pair(hub)
        mallory = await _join(hub, "mallory")
        await hub.handle(mallory, {"type": "join_room", "roomId": room_id})
        assert mallory.connection.last("error")["message"] == "Not a participant in this room"

    async def test_join_room_returns_latest_history(self):
        hub = _hub()
        alice, _, room_id = await _pair(hub)
        for i in range(55):
            storage.append_message(ChatMessage(room_id=room_id, sender_id="alice", content=f"m{i}"))
        await hub.handle(alice, {"type": "join_room", "roomId": room_id})
        history = alice.connection.last("room_history")
        assert len(history["messages"]) == 50
        assert history["messages"][0]["content"] == "m5"
        assert history["messages"][-1]["content"] == "m54"

    async def test_leave_room_notifies_peer(self):
        hub = _hub()
        alice, bob, room_id = await _pair(hub)
        await hub.handle(alice, {"type": "leave_room", "roomId": room_id})
        assert bob.connection.last("user_disconnected") == {"type": "user_disconnected", "roomId": room_id}

    async def test_get_rooms(self):
        hub = _hub()
        alice, _, room_id = await _pair(hub)
        await hub.handle(alice, {"type": "get_rooms"})
        rooms = alice.connection.last("rooms_list")["rooms"]
        assert [r["roomId"] for r in rooms] == [room_id]
        assert rooms[0]["lastMessageText"] == "No messages yet"


# ---------------------------------------------------------------------------
# Visual messages
# ---------------------------------------------------------------------------

class TestVisual:
    async def test_visual_message_lifecycle(self):
        hub = _hub(ScriptedProvider(_visual_reply()))
        alice, bob, room_id = await _pair(hub)

        await hub.handle(alice, {
            "type": "send_visual_message", "roomId": room_id, "content": "a kite over a hill", "panelCount": 3,
        })
        await hub.drain()

        generating = alice.connection.last("visual_generating")
        assert generating["remaining"] == 4
        final = alice.connection.last("visual_message")
        assert final == bob.connection.last("visual_message")
        assert final["title"] == "The Kite"
        assert final["messageId"] == generating["messageId"]
        assert len(final["panels"]) == 3
        assert all(p["imageRef"] for p in final["panels"])

        stored = storage.get_message(room_id, final["messageId"])
        assert stored.type == "visual"
        assert stored.visual_status == "complete"
        assert stored.title == "The Kite"

    async def test_generation_failure_marks_message_failed(self):
        hub = _hub(ScriptedProvider("I'd rather not."))
        alice, bob, room_id = await _pair(hub)
        await hub.handle(alice, {"type": "send_visual_message", "roomId": room_id, "content": "draw"})
        await hub.drain()

        error = alice.connection.last("visual_error")
        assert "Failed to parse" in error["error"]
        assert storage.get_message(room_id, error["messageId"]).visual_status == "failed"
        assert "visual_message" not in bob.connection.types()

    async def test_quota_rejects_without_generating(self):
        provider = ScriptedProvider(_visual_reply("One"), _visual_reply("Two"))
        hub = _hub(provider, daily_limit=2)
        alice, _, room_id = await _pair(hub)

        for content in ("first", "second", "third"):
            await hub.handle(alice, {"type": "send_visual_message", "roomId": room_id, "content": content})
            await hub.drain()

        assert alice.connection.types().count("visual_message") == 2
        limit = alice.connection.last("visual_limit_reached")
        assert limit["used"] == 2
        assert limit["limit"] == 2
        assert len(provider.calls) == 2
        assert storage.count_messages(room_id) == 2


# ---------------------------------------------------------------------------
# AI co-author
# ---------------------------------------------------------------------------

class TestAiCoAuthor:
    async def test_start_story_broadcasts(self):
        provider = ScriptedProvider(Generation("Long ago, a spider...", thought_signature="c2ln"))
        hub = _hub(provider)
        alice, bob, room_id = await _pair(hub)

        await hub.handle(alice, {"type": "start_ai_story", "roomId": room_id, "prompt": "a greedy spider"})
        await hub.drain()

        assert alice.connection.types()[-2:] == ["ai_thinking", "ai_story_response"]
        assert bob.connection.last("message")["content"] == "a greedy spider"
        response = bob.connection.last("ai_story_response")
        assert response == alice.connection.last("ai_story_response")
        assert response["content"] == "Long ago, a spider..."
        assert response["hasThoughtSignature"] is True

        stored = storage.get_messages(room_id)
        assert [(m.sender_id, m.type) for m in stored] == [("alice", "text"), (AI_SENDER, "ai_story")]
        assert storage.get_room(room_id).thought_signature == "c2ln"

    async def test_continuation_turn(self):
        provider = ScriptedProvider(
            Generation("Long ago, a spider...", thought_signature="c2ln"),
            Generation("The spider climbed higher."),
        )
        hub = _hub(provider)
        alice, bob, room_id = await _pair(hub)
        await hub.handle(alice, {"type": "start_ai_story", "roomId": room_id, "prompt": "a greedy spider"})
        await hub.drain()
        await hub.handle(bob, {"type": "send_ai_message", "roomId": room_id, "content": "It climbed a tree"})
        await hub.drain()

        assert provider.calls[1]["continuation"].prior_reply == "Long ago, a spider..."
        response = alice.connection.last("ai_story_response")
        assert response["content"] == "The spider climbed higher."
        assert response["hasThoughtSignature"] is True
        assert alice.connection.last("message")["content"] == "It climbed a tree"

    async def test_provider_failure_sends_ai_error(self):
        hub = _hub(ScriptedProvider(ProviderError("quota")))
        alice, bob, room_id = await _pair(hub)
        await hub.handle(alice, {"type": "start_ai_story", "roomId": room_id, "prompt": "x"})
        await hub.drain()
        error = alice.connection.last("ai_error")
        assert error["message"] == "Failed to start story. Please try again."
        assert error["error"] == "quota"
        assert "ai_story_response" not in bob.connection.types()
