"""Pydantic request models for API endpoints."""

from pydantic import BaseModel

MAX_STORY_TEXT = 5000


class WriteStoryBody(BaseModel):
    text: str = ""
    visualStyleId: str | None = None
    audioStyleId: str | None = None


class CreateRoomBody(BaseModel):
    participants: list[str] = []
