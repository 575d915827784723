"""Chat rooms and their message logs.

Each room is data/chat/rooms/<id>.json; its messages are an append-only list
in data/chat/messages/<id>.json, oldest first.
"""

import logging
from datetime import datetime
from typing import Any

from ananse.models import ChatMessage, ChatRoom, utcnow

from .core import is_valid_id, messages_dir, read_json, rooms_dir, write_json

logger = logging.getLogger(__name__)


def _room_path(room_id: str):
    return rooms_dir() / f"{room_id}.json"


def _messages_path(room_id: str):
    return messages_dir() / f"{room_id}.json"


# ---------------------------------------------------------------------------
# Rooms
# ---------------------------------------------------------------------------

def _write_room(room: ChatRoom) -> ChatRoom:
    write_json(_room_path(room.id), room.model_dump(mode="json"))
    return room


def create_room(participants: list[str]) -> ChatRoom:
    """Create a room; raises ValueError unless there are exactly 2 participants."""
    room = ChatRoom(participants=list(participants))
    return _write_room(room)


def get_room(room_id: str) -> ChatRoom | None:
    if not is_valid_id(room_id):
        return None
    path = _room_path(room_id)
    if not path.is_file():
        return None
    return ChatRoom.model_validate(read_json(path))


def list_rooms() -> list[ChatRoom]:
    return [ChatRoom.model_validate(read_json(p)) for p in rooms_dir().glob("*.json")]


def find_room_for_pair(participants: list[str]) -> ChatRoom | None:
    wanted = set(participants)
    for room in list_rooms():
        if set(room.participants) == wanted:
            return room
    return None


def update_room(room_id: str, fields: dict[str, Any]) -> ChatRoom | None:
    """Update mutable room fields (active, thought_signature, story_context)."""
    room = get_room(room_id)
    if room is None:
        return None
    allowed = {"active", "thought_signature", "story_context"}
    for key, value in fields.items():
        if key in allowed:
            setattr(room, key, value)
    room.updated_at = utcnow()
    return _write_room(room)


def touch_room(room_id: str) -> ChatRoom | None:
    return update_room(room_id, {})


def delete_room(room_id: str) -> bool:
    """Delete a room and all of its messages."""
    path = _room_path(room_id)
    if not is_valid_id(room_id) or not path.is_file():
        return False
    path.unlink()
    messages_path = _messages_path(room_id)
    if messages_path.is_file():
        messages_path.unlink()
    return True


def list_rooms_for_user(
    user_id: str, limit: int = 20, include_empty: bool = False
) -> list[dict[str, Any]]:
    """A user's rooms, most recently updated first, with a last-message preview.

    Rooms without messages are skipped unless include_empty is set.
    """
    results = []
    rooms = sorted(list_rooms(), key=lambda r: r.updated_at, reverse=True)
    for room in rooms:
        if user_id not in room.participants:
            continue
        messages = get_messages(room.id)
        if not messages and not include_empty:
            continue
        results.append({
            "roomId": room.id,
            "participants": room.participants,
            "lastMessage": room.updated_at.isoformat(),
            "lastMessageText": messages[-1].content if messages else "No messages yet",
            "createdAt": room.created_at.isoformat(),
        })
        if len(results) >= limit:
            break
    return results


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------

def _load_messages(room_id: str) -> list[ChatMessage]:
    path = _messages_path(room_id)
    if not path.is_file():
        return []
    return [ChatMessage.model_validate(m) for m in read_json(path)]


def _save_messages(room_id: str, messages: list[ChatMessage]) -> None:
    write_json(_messages_path(room_id), [m.model_dump(mode="json") for m in messages])


def get_messages(
    room_id: str, limit: int | None = None, before: datetime | None = None
) -> list[ChatMessage]:
    """Messages in chronological order; with `limit`, the newest `limit` of them."""
    if not is_valid_id(room_id):
        return []
    messages = _load_messages(room_id)
    if before is not None:
        messages = [m for m in messages if m.created_at < before]
    if limit is not None:
        messages = messages[-limit:] if limit > 0 else []
    return messages


def get_message(room_id: str, message_id: str) -> ChatMessage | None:
    for message in _load_messages(room_id):
        if message.id == message_id:
            return message
    return None


def count_messages(room_id: str) -> int:
    return len(_load_messages(room_id))


def append_message(message: ChatMessage) -> ChatMessage:
    """Append a message to its room's log. Does not touch the room."""
    if get_room(message.room_id) is None:
        raise KeyError(f"Room {message.room_id} not found")
    messages = _load_messages(message.room_id)
    messages.append(message)
    _save_messages(message.room_id, messages)
    return message


def update_message(room_id: str, message_id: str, fields: dict[str, Any]) -> ChatMessage | None:
    """Update visual fields of a stored message (content, title, panels, visual_status, read)."""
    messages = _load_messages(room_id)
    allowed = {"content", "title", "panels", "visual_status", "read"}
    for i, message in enumerate(messages):
        if message.id != message_id:
            continue
        update = {k: v for k, v in fields.items() if k in allowed}
        messages[i] = message.model_copy(update=update)
        _save_messages(room_id, messages)
        return messages[i]
    return None


def count_visual_messages_since(sender_id: str, since: datetime) -> int:
    """Visual messages sent by `sender_id` at or after `since`, across all rooms."""
    count = 0
    for path in messages_dir().glob("*.json"):
        for raw in read_json(path):
            if raw.get("sender_id") != sender_id or raw.get("type") != "visual":
                continue
            if datetime.fromisoformat(raw["created_at"]) >= since:
                count += 1
    return count


def reconcile_stale_visual_messages() -> int:
    """Mark visual messages left pending/generating by a previous process as failed.

    Returns the number of messages changed.
    """
    changed = 0
    for path in messages_dir().glob("*.json"):
        room_id = path.stem
        messages = _load_messages(room_id)
        dirty = False
        for i, message in enumerate(messages):
            if message.type == "visual" and message.visual_status in ("pending", "generating"):
                messages[i] = message.model_copy(update={"visual_status": "failed"})
                dirty = True
                changed += 1
        if dirty:
            _save_messages(room_id, messages)
    if changed:
        logger.info("Marked %d interrupted visual messages as failed", changed)
    return changed
