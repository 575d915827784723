"""Chat / matchmaking hub.

One ChatSession per open socket. The hub owns the process-wide state:

  clients   anonymous user ID -> live connection (last register wins)
  waiting   FIFO of user IDs looking for a random partner

Both live in memory only, so matchmaking works within a single process.
Frames that call the generative providers (visual messages, AI co-author) run
as their own tasks so the socket keeps reading while they work. Any error
while handling a frame is reported to that socket as {"type": "error"} and the
connection stays open.
"""

import asyncio
import json
import logging
from collections.abc import Awaitable
from typing import Any, Protocol

from fastapi import WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from ananse.models import AI_SENDER, MAX_MESSAGE_LENGTH, ChatMessage, ChatRoom

from backend import storage

from .coauthor import CoAuthor
from .frames import (
    FindMatchFrame,
    GetRoomsFrame,
    JoinRoomFrame,
    LeaveRoomFrame,
    RegisterFrame,
    SendAiMessageFrame,
    SendMessageFrame,
    SendVisualMessageFrame,
    StartAiStoryFrame,
    message_frame,
    panel_frame,
    parse_frame,
)
from .visual import VisualStoryService

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
ROOMS_LIMIT = 20

WAITING_MESSAGE = "No other wanderers online. Waiting for someone to join..."


class ChatError(Exception):
    """A frame that can't be served (unknown room, not registered, ...)."""


class Connection(Protocol):
    @property
    def open(self) -> bool: ...

    async def send(self, frame: dict[str, Any]) -> None: ...


class WebSocketConnection:
    """Adapts a FastAPI WebSocket to the hub's Connection protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket
        self.closed = False

    @property
    def open(self) -> bool:
        return (
            not self.closed
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, frame: dict[str, Any]) -> None:
        if not self.open:
            return
        try:
            await self.websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError) as e:
            self.closed = True
            logger.debug("Dropping frame %s for closed socket: %s", frame.get("type"), e)


class ChatSession:
    def __init__(self, connection: Connection) -> None:
        self.connection = connection
        self.user_id: str | None = None


class ChatHub:
    def __init__(
        self,
        visual: VisualStoryService | None = None,
        coauthor: CoAuthor | None = None,
    ) -> None:
        self.clients: dict[str, Connection] = {}
        self.waiting: list[str] = []
        self._lock = asyncio.Lock()
        self._tasks: set[asyncio.Task] = set()
        self._visual = visual
        self._coauthor = coauthor

    @property
    def visual(self) -> VisualStoryService:
        if self._visual is None:
            self._visual = VisualStoryService()
        return self._visual

    @property
    def coauthor(self) -> CoAuthor:
        if self._coauthor is None:
            self._coauthor = CoAuthor()
        return self._coauthor

    # ── Connection lifecycle ─────────────────────────────

    def is_live(self, user_id: str) -> bool:
        conn = self.clients.get(user_id)
        return conn is not None and conn.open

    async def send_to(self, user_id: str | None, frame: dict[str, Any]) -> bool:
        """Send to a user if they are connected. Returns whether it was sent."""
        if user_id is None or not self.is_live(user_id):
            return False
        await self.clients[user_id].send(frame)
        return True

    async def disconnect(self, session: ChatSession) -> None:
        user_id = session.user_id
        if user_id is None:
            return
        async with self._lock:
            # A newer socket may have re-registered the same ID
            if self.clients.get(user_id) is session.connection:
                del self.clients[user_id]
            if user_id in self.waiting:
                self.waiting.remove(user_id)
        logger.info("User disconnected: %s", user_id)

    async def drain(self) -> None:
        """Wait for all background frame tasks to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks))

    def _spawn(self, session: ChatSession, work: Awaitable[None]) -> None:
        task = asyncio.create_task(self._guarded(session, work))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guarded(self, session: ChatSession, work: Awaitable[None]) -> None:
        try:
            await work
        except Exception as e:
            logger.exception("Chat frame failed for %s", session.user_id)
            await session.connection.send({"type": "error", "message": str(e)})

    # ── Dispatch ─────────────────────────────────────────

    async def handle(self, session: ChatSession, raw: str | dict[str, Any]) -> None:
        """Handle one inbound frame (JSON text or an already-decoded dict)."""
        try:
            data = json.loads(raw) if isinstance(raw, str) else raw
            frame = parse_frame(data)
            if isinstance(frame, RegisterFrame):
                await self.register(session, frame.userId)
                return
            if session.user_id is None:
                raise ChatError("Register before sending other messages")

            if isinstance(frame, FindMatchFrame):
                await self.find_match(session)
            elif isinstance(frame, SendMessageFrame):
                await self.send_message(session, frame.roomId, frame.content)
            elif isinstance(frame, SendVisualMessageFrame):
                self._spawn(session, self.send_visual_message(
                    session, frame.roomId, frame.content, frame.panelCount,
                ))
            elif isinstance(frame, StartAiStoryFrame):
                self._spawn(session, self.start_ai_story(session, frame.roomId, frame.prompt))
            elif isinstance(frame, SendAiMessageFrame):
                self._spawn(session, self.send_ai_message(session, frame.roomId, frame.content))
            elif isinstance(frame, JoinRoomFrame):
                await self.join_room(session, frame.roomId)
            elif isinstance(frame, LeaveRoomFrame):
                await self.leave_room(session, frame.roomId)
            elif isinstance(frame, GetRoomsFrame):
                await self.get_rooms(session)
        except Exception as e:
            logger.warning("Chat frame rejected for %s: %s", session.user_id, e)
            await session.connection.send({"type": "error", "message": str(e)})

    def _room_for(self, session: ChatSession, room_id: str) -> ChatRoom:
        room = storage.get_room(room_id)
        if room is None:
            raise ChatError("Chat room not found")
        if session.user_id not in room.participants:
            raise ChatError("Not a participant in this room")
        return room

    # ── Handlers ─────────────────────────────────────────

    async def register(self, session: ChatSession, user_id: str) -> None:
        async with self._lock:
            previous = session.user_id
            if previous and previous != user_id and self.clients.get(previous) is session.connection:
                del self.clients[previous]
                if previous in self.waiting:
                    self.waiting.remove(previous)
            session.user_id = user_id
            self.clients[user_id] = session.connection
        logger.info("User registered: %s", user_id)

    async def find_match(self, session: ChatSession) -> None:
        user_id = session.user_id
        async with self._lock:
            if user_id in self.waiting:
                await session.connection.send({
                    "type": "already_searching",
                    "message": "You are already searching for a wanderer...",
                })
                return

            self.waiting = [u for u in self.waiting if self.is_live(u)]

            if self.waiting:
                partner_id = self.waiting.pop(0)
                if self.is_live(partner_id):
                    room = storage.create_room([user_id, partner_id])
                    await session.connection.send({
                        "type": "match_found", "room": room.id, "partnerId": partner_id,
                    })
                    await self.send_to(partner_id, {
                        "type": "match_found", "room": room.id, "partnerId": user_id,
                    })
                    logger.info("Match created: %s <-> %s", user_id, partner_id)
                    return

            self.waiting.append(user_id)
            await session.connection.send({
                "type": "waiting",
                "message": WAITING_MESSAGE,
                "position": len(self.waiting),
            })
            logger.info("User %s waiting for a match", user_id)

    async def send_message(self, session: ChatSession, room_id: str, content: str) -> None:
        room = self._room_for(session, room_id)
        message = storage.append_message(ChatMessage(
            room_id=room_id, sender_id=session.user_id, content=content, type="text",
        ))
        storage.touch_room(room_id)
        await self.send_to(room.other_participant(session.user_id), {
            "type": "message",
            "roomId": room_id,
            "messageId": message.id,
            "senderId": session.user_id,
            "content": content,
            "timestamp": message.created_at.isoformat(),
        })

    async def send_visual_message(
        self, session: ChatSession, room_id: str, content: str, panel_count: int | None
    ) -> None:
        user_id = session.user_id
        room = self._room_for(session, room_id)

        quota = self.visual.check_daily_limit(user_id)
        if not quota["allowed"]:
            await session.connection.send({
                "type": "visual_limit_reached",
                "message": f"Daily limit reached ({quota['limit']} visual messages). Try again tomorrow!",
                "used": quota["used"],
                "limit": quota["limit"],
            })
            return

        # The placeholder counts against the quota, so write it before yielding
        placeholder = storage.append_message(ChatMessage(
            room_id=room_id, sender_id=user_id, content=content,
            type="visual", visual_status="generating",
        ))
        await session.connection.send({
            "type": "visual_generating",
            "message": "Generating your visual story...",
            "messageId": placeholder.id,
            "remaining": quota["remaining"] - 1,
        })

        try:
            story = await self.visual.process_visual_message(content, panel_count or 3)
        except Exception as e:
            logger.warning("Visual message failed in room %s: %s", room_id, e)
            storage.update_message(room_id, placeholder.id, {"visual_status": "failed"})
            await session.connection.send({
                "type": "visual_error",
                "message": "Failed to generate visual story. Please try again.",
                "messageId": placeholder.id,
                "error": str(e),
            })
            return

        message = storage.update_message(room_id, placeholder.id, {
            "title": story.title,
            "panels": story.panels,
            "visual_status": "complete",
        })
        storage.touch_room(room_id)

        frame = {
            "type": "visual_message",
            "roomId": room_id,
            "messageId": placeholder.id,
            "senderId": user_id,
            "content": content,
            "title": story.title,
            "panels": [panel_frame(p) for p in story.panels],
            "timestamp": (message or placeholder).created_at.isoformat(),
        }
        await session.connection.send(frame)
        await self.send_to(room.other_participant(user_id), frame)
        logger.info("Visual message sent: %s (%d panels)", story.title, len(story.panels))

    async def _relay_ai_turn(self, session: ChatSession, room: ChatRoom, text: str, signature: str | None) -> None:
        ai_message = storage.append_message(ChatMessage(
            room_id=room.id, sender_id=AI_SENDER, content=text[:MAX_MESSAGE_LENGTH], type="ai_story",
        ))
        storage.touch_room(room.id)
        frame = {
            "type": "ai_story_response",
            "roomId": room.id,
            "messageId": ai_message.id,
            "content": ai_message.content,
            "hasThoughtSignature": bool(signature),
            "timestamp": ai_message.created_at.isoformat(),
        }
        await session.connection.send(frame)
        await self.send_to(room.other_participant(session.user_id), frame)

    async def start_ai_story(self, session: ChatSession, room_id: str, prompt: str) -> None:
        room = self._room_for(session, room_id)
        user_message = storage.append_message(ChatMessage(
            room_id=room_id, sender_id=session.user_id, content=prompt, type="text",
        ))
        await session.connection.send({
            "type": "ai_thinking",
            "message": "Ananse is weaving the beginning of your story...",
        })
        await self.send_to(room.other_participant(session.user_id), {
            "type": "message",
            "roomId": room_id,
            "messageId": user_message.id,
            "senderId": session.user_id,
            "content": prompt,
            "timestamp": user_message.created_at.isoformat(),
        })
        try:
            generation = await self.coauthor.start_story(room_id, prompt)
        except Exception as e:
            logger.warning("AI story start failed in room %s: %s", room_id, e)
            await session.connection.send({
                "type": "ai_error",
                "message": "Failed to start story. Please try again.",
                "error": str(e),
            })
            return
        await self._relay_ai_turn(session, room, generation.text, generation.thought_signature)
        logger.info("AI story started in room %s", room_id)

    async def send_ai_message(self, session: ChatSession, room_id: str, content: str) -> None:
        room = self._room_for(session, room_id)
        user_message = storage.append_message(ChatMessage(
            room_id=room_id, sender_id=session.user_id, content=content, type="text",
        ))
        await session.connection.send({
            "type": "ai_thinking",
            "message": "Ananse is contemplating the story...",
        })
        await self.send_to(room.other_participant(session.user_id), {
            "type": "message",
            "roomId": room_id,
            "messageId": user_message.id,
            "senderId": session.user_id,
            "content": content,
            "timestamp": user_message.created_at.isoformat(),
        })
        try:
            generation = await self.coauthor.generate_chat_response(room_id, content)
        except Exception as e:
            logger.warning("AI reply failed in room %s: %s", room_id, e)
            await session.connection.send({
                "type": "ai_error",
                "message": "Ananse lost the thread of the story. Please try again.",
                "error": str(e),
            })
            return
        await self._relay_ai_turn(session, room, generation.text, generation.thought_signature)

    async def join_room(self, session: ChatSession, room_id: str) -> None:
        self._room_for(session, room_id)
        messages = storage.get_messages(room_id, limit=HISTORY_LIMIT)
        await session.connection.send({
            "type": "room_history",
            "roomId": room_id,
            "messages": [message_frame(m) for m in messages],
        })

    async def leave_room(self, session: ChatSession, room_id: str) -> None:
        room = self._room_for(session, room_id)
        await self.send_to(room.other_participant(session.user_id), {
            "type": "user_disconnected",
            "roomId": room_id,
        })

    async def get_rooms(self, session: ChatSession) -> None:
        rooms = storage.list_rooms_for_user(session.user_id, limit=ROOMS_LIMIT, include_empty=True)
        await session.connection.send({"type": "rooms_list", "rooms": rooms})


async def serve_websocket(hub: ChatHub, websocket: WebSocket) -> None:
    """Read frames from one socket until it closes."""
    await websocket.accept()
    connection = WebSocketConnection(websocket)
    session = ChatSession(connection)
    try:
        while True:
            raw = await websocket.receive_text()
            await hub.handle(session, raw)
    except WebSocketDisconnect as e:
        logger.debug("Socket closed for %s (code %s)", session.user_id, e.code)
    finally:
        connection.closed = True
        await hub.disconnect(session)
