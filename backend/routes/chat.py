"""Chat room HTTP endpoints and the /ws socket."""

from datetime import datetime, timezone

from fastapi import APIRouter, HTTPException, Query, WebSocket

from backend import storage
from backend.chat import serve_websocket
from backend.chat.frames import message_frame

from .models import CreateRoomBody

router = APIRouter()
ws_router = APIRouter()


@router.get("/chat/rooms/{user_id}")
async def list_rooms(user_id: str):
    """A user's 20 most recent rooms that have messages."""
    return {"rooms": storage.list_rooms_for_user(user_id)}


@router.get("/chat/room/{room_id}/messages")
async def get_room_messages(
    room_id: str,
    limit: int = Query(50, ge=1, le=500),
    before: datetime | None = None,
):
    """Messages in chronological order; `before` pages back in time."""
    if storage.get_room(room_id) is None:
        raise HTTPException(404, "Chat room not found")
    if before is not None and before.tzinfo is None:
        before = before.replace(tzinfo=timezone.utc)
    messages = storage.get_messages(room_id, limit=limit, before=before)
    return {"messages": [message_frame(m) for m in messages]}


@router.post("/chat/room/create")
async def create_room(body: CreateRoomBody):
    """Create a room for two participants, or return the one they already share."""
    if len(body.participants) != 2:
        raise HTTPException(400, "Exactly 2 participants required")
    existing = storage.find_room_for_pair(body.participants)
    if existing:
        return {"roomId": existing.id, "existing": True}
    try:
        room = storage.create_room(body.participants)
    except ValueError as e:
        raise HTTPException(400, str(e))
    return {"roomId": room.id, "existing": False}


@router.delete("/chat/room/{room_id}")
async def delete_room(room_id: str):
    """Delete a room and all of its messages."""
    if not storage.delete_room(room_id):
        raise HTTPException(404, "Chat room not found")
    return {"ok": True}


@ws_router.websocket("/ws")
async def chat_socket(websocket: WebSocket):
    await serve_websocket(websocket.app.state.chat_hub, websocket)
