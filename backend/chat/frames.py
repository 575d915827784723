"""Inbound chat frames.

Every frame is a JSON object tagged by `type`; field names are camelCase as
the browser client sends them.
"""

from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ananse.models import MAX_MESSAGE_LENGTH, ChatMessage, Panel


class RegisterFrame(BaseModel):
    type: Literal["register"]
    userId: str = Field(min_length=1)


class FindMatchFrame(BaseModel):
    type: Literal["find_match"]
    matchType: Literal["random"] = "random"


class SendMessageFrame(BaseModel):
    type: Literal["send_message"]
    roomId: str
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


class SendVisualMessageFrame(BaseModel):
    type: Literal["send_visual_message"]
    roomId: str
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    panelCount: int | None = None


class StartAiStoryFrame(BaseModel):
    type: Literal["start_ai_story"]
    roomId: str
    prompt: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


class SendAiMessageFrame(BaseModel):
    type: Literal["send_ai_message"]
    roomId: str
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)


class JoinRoomFrame(BaseModel):
    type: Literal["join_room"]
    roomId: str


class LeaveRoomFrame(BaseModel):
    type: Literal["leave_room"]
    roomId: str


class GetRoomsFrame(BaseModel):
    type: Literal["get_rooms"]


InboundFrame = Annotated[
    Union[
        RegisterFrame,
        FindMatchFrame,
        SendMessageFrame,
        SendVisualMessageFrame,
        StartAiStoryFrame,
        SendAiMessageFrame,
        JoinRoomFrame,
        LeaveRoomFrame,
        GetRoomsFrame,
    ],
    Field(discriminator="type"),
]

_adapter: TypeAdapter = TypeAdapter(InboundFrame)


class FrameError(ValueError):
    """Raised for frames that are not valid JSON objects of a known type."""


def parse_frame(data: Any) -> BaseModel:
    if not isinstance(data, dict):
        raise FrameError("Frame must be a JSON object")
    try:
        return _adapter.validate_python(data)
    except ValidationError as e:
        first = e.errors()[0]
        if first["type"] in ("union_tag_invalid", "union_tag_not_found"):
            raise FrameError(f"Unknown message type: {data.get('type')}") from e
        location = ".".join(str(p) for p in first["loc"][1:]) or "frame"
        raise FrameError(f"Invalid {data.get('type')} frame: {location}: {first['msg']}") from e


# ── Outbound helpers ─────────────────────────────────────


def panel_frame(panel: Panel) -> dict[str, Any]:
    return {
        "number": panel.number,
        "scene": panel.scene,
        "description": panel.description,
        "dialogue": panel.dialogue,
        "imageRef": panel.image_ref,
    }


def message_frame(message: ChatMessage) -> dict[str, Any]:
    """History entry for one stored message."""
    frame: dict[str, Any] = {
        "messageId": message.id,
        "senderId": message.sender_id,
        "content": message.content,
        "type": message.type,
        "timestamp": message.created_at.isoformat(),
    }
    if message.type == "visual":
        frame["title"] = message.title
        frame["panels"] = [panel_frame(p) for p in message.panels]
        frame["visualStatus"] = message.visual_status
    return frame
