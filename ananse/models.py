"""Core domain models.

Stories, chat rooms and chat messages are persisted as JSON documents; the
style and prompt-template entities are read-only configuration shipped as
presets. Pydantic is used for validation and serialisation at every data
boundary.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field, field_validator

StoryType = Literal["write", "speak", "sketch"]
StoryStatus = Literal["pending", "processing", "complete", "failed"]
MessageType = Literal["text", "system", "visual", "ai_story"]
VisualStatus = Literal["pending", "generating", "complete", "failed"]

TERMINAL_STATUSES: frozenset[str] = frozenset({"complete", "failed"})

MAX_MESSAGE_LENGTH = 2000
AI_SENDER = "AI"


def new_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Stories
# ---------------------------------------------------------------------------

class Panel(BaseModel):
    """One unit of a visual narrative."""

    number: int
    scene: str = ""
    description: str = ""
    dialogue: str = ""
    image_ref: str | None = None  # media store id of the rendered image


class OriginalContent(BaseModel):
    """What the user submitted.

    Exactly one of text / audio_ref / image_ref is set when the story is
    created; transcript is filled in by speech or sketch understanding.
    """

    text: str | None = None
    audio_ref: str | None = None
    image_ref: str | None = None
    transcript: str | None = None


class VisualNarrative(BaseModel):
    panels: list[Panel] = Field(default_factory=list)
    style: str = "default"
    video_ref: str | None = None
    video_duration_seconds: float | None = None


class AudioNarrative(BaseModel):
    script: str = ""
    audio_ref: str | None = None
    duration_ms: int = 0
    style: str = "default"


class StoryMetadata(BaseModel):
    views: int = 0
    likes: int = 0


class Story(BaseModel):
    """One submission's lifecycle record."""

    id: str = Field(default_factory=new_id)
    type: StoryType
    original_content: OriginalContent = Field(default_factory=OriginalContent)
    visual_narrative: VisualNarrative = Field(default_factory=VisualNarrative)
    audio_narrative: AudioNarrative = Field(default_factory=AudioNarrative)
    visual_style_id: str | None = None
    audio_style_id: str | None = None
    prompt_template_id: str | None = None
    status: StoryStatus = "pending"
    processing_time_ms: int | None = None
    error_message: str | None = None
    metadata: StoryMetadata = Field(default_factory=StoryMetadata)
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


def renumber_panels(panels: list[Panel]) -> list[Panel]:
    """Number panels 1..N in display order."""
    return [p.model_copy(update={"number": i}) for i, p in enumerate(panels, start=1)]


def panels_from_raw(raw: Any) -> list[Panel]:
    """Build panels from provider JSON, tolerating missing or null fields."""
    if not isinstance(raw, list):
        return []
    panels: list[Panel] = []
    for item in raw:
        if not isinstance(item, dict):
            continue
        panels.append(Panel(
            number=0,
            scene=str(item.get("scene") or ""),
            description=str(item.get("description") or ""),
            dialogue=str(item.get("dialogue") or ""),
        ))
    return renumber_panels(panels)


# ---------------------------------------------------------------------------
# Configuration entities (read-only to the pipeline)
# ---------------------------------------------------------------------------

class StyleCharacteristics(BaseModel):
    color_palette: list[str] = Field(default_factory=list)
    lighting: str = ""
    mood: str = ""
    artistic_influence: str = ""


class ArtisticStyle(BaseModel):
    id: str
    name: str
    slug: str
    description: str = ""
    characteristics: StyleCharacteristics = Field(default_factory=StyleCharacteristics)
    prompt_modifiers: list[str] = Field(default_factory=list)
    is_active: bool = True


class VoiceSettings(BaseModel):
    voice_type: str = ""
    speaking_rate: float = 1.0
    pitch: float = 0.0
    volume_gain: float = 0.0


class AudioStyle(BaseModel):
    id: str
    name: str
    slug: str
    description: str = ""
    voice_settings: VoiceSettings = Field(default_factory=VoiceSettings)
    mood: str = ""
    is_active: bool = True


class PromptTemplate(BaseModel):
    id: str
    name: str
    type: StoryType
    prompt_text: str
    guidelines: list[str] = Field(default_factory=list)
    version: str = "1.0"
    is_active: bool = True


# ---------------------------------------------------------------------------
# Chat
# ---------------------------------------------------------------------------

class ChatRoom(BaseModel):
    """A two-party conversation."""

    id: str = Field(default_factory=new_id)
    participants: list[str]
    active: bool = True
    thought_signature: str | None = None  # opaque provider token, never parsed
    story_context: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("participants")
    @classmethod
    def _exactly_two(cls, value: list[str]) -> list[str]:
        if len(value) != 2:
            raise ValueError("Chat room must have exactly 2 participants")
        return value

    def other_participant(self, user_id: str) -> str | None:
        for p in self.participants:
            if p != user_id:
                return p
        return None


class ChatMessage(BaseModel):
    """One turn in a room."""

    id: str = Field(default_factory=new_id)
    room_id: str
    sender_id: str
    content: str = Field(min_length=1, max_length=MAX_MESSAGE_LENGTH)
    type: MessageType = "text"
    created_at: datetime = Field(default_factory=utcnow)
    read: bool = False
    # Visual messages only
    title: str | None = None
    panels: list[Panel] = Field(default_factory=list)
    visual_status: VisualStatus | None = None


# ---------------------------------------------------------------------------
# Media
# ---------------------------------------------------------------------------

class MediaInfo(BaseModel):
    """Metadata stored beside a media blob."""

    id: str
    filename: str
    content_type: str = "application/octet-stream"
    size: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
