"""Visual chat messages: a short comic (2-5 panels) generated from one line of chat.

The text provider writes the panel structure, then each panel is rendered and
stored in the media store. Generations are bounded by a semaphore so a busy
room cannot flood the image provider; each sender gets a daily quota.
"""

import asyncio
import json
import logging
from dataclasses import dataclass
from datetime import datetime, time, timezone
from typing import Any

from ananse.models import ArtisticStyle, Panel, panels_from_raw, renumber_panels

from backend import storage
from backend.config import Settings, get_settings
from backend.prompts import VISUAL_STORY_PROMPT, render_prompt
from backend.providers import Providers, get_providers

logger = logging.getLogger(__name__)

MIN_PANELS = 2
MAX_PANELS = 5

CHAT_COMIC_STYLE = ArtisticStyle(
    id="visual-chat",
    name="Visual Chat",
    slug="visual-chat",
    prompt_modifiers=[
        "comic book style",
        "dramatic lighting",
        "vivid colors",
        "professional illustration",
        "high quality",
    ],
)


class VisualStoryError(RuntimeError):
    """Raised when the provider's panel structure is unusable."""


@dataclass
class VisualStory:
    title: str
    panels: list[Panel]
    original_text: str


def clamp_panel_count(panel_count: int | None) -> int:
    return min(MAX_PANELS, max(MIN_PANELS, panel_count or 3))


def extract_json_object(text: str) -> str | None:
    """Return the first balanced {...} block in `text`, or None.

    Braces inside JSON string literals are ignored.
    """
    start = text.find("{")
    while start != -1:
        depth = 0
        in_string = False
        escaped = False
        for i in range(start, len(text)):
            ch = text[i]
            if in_string:
                if escaped:
                    escaped = False
                elif ch == "\\":
                    escaped = True
                elif ch == '"':
                    in_string = False
            elif ch == '"':
                in_string = True
            elif ch == "{":
                depth += 1
            elif ch == "}":
                depth -= 1
                if depth == 0:
                    return text[start:i + 1]
        start = text.find("{", start + 1)
    return None


def start_of_day_utc(now: datetime | None = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return datetime.combine(now.date(), time.min, tzinfo=timezone.utc)


class VisualStoryService:
    """Generates visual chat messages.

    Args:
        providers:   Provider bundle; defaults to the app-wide one on first use.
        settings:    Settings; defaults to get_settings().
    """

    def __init__(self, providers: Providers | None = None, settings: Settings | None = None) -> None:
        self._providers = providers
        self.settings = settings or get_settings()
        self.daily_limit = self.settings.visual_chat_daily_limit
        self.panel_delay = self.settings.visual_panel_delay_seconds
        self._semaphore = asyncio.Semaphore(max(1, self.settings.visual_chat_concurrency))

    @property
    def providers(self) -> Providers:
        if self._providers is None:
            self._providers = get_providers()
        return self._providers

    def check_daily_limit(self, sender_id: str, now: datetime | None = None) -> dict[str, Any]:
        """Visual messages used today (UTC) by this sender against the daily limit."""
        used = storage.count_visual_messages_since(sender_id, start_of_day_utc(now))
        return {
            "allowed": used < self.daily_limit,
            "remaining": max(0, self.daily_limit - used),
            "used": used,
            "limit": self.daily_limit,
        }

    async def generate_visual_story(self, text: str, panel_count: int = 3) -> tuple[str, list[Panel]]:
        """Ask the text provider for a titled N-panel structure."""
        count = clamp_panel_count(panel_count)
        prompt = render_prompt(VISUAL_STORY_PROMPT, {"panel_count": count, "text": text})
        generation = await self.providers.text("visual_story", prompt)

        block = extract_json_object(generation.text)
        if block is None:
            raise VisualStoryError("Failed to parse story structure from AI response")
        try:
            data = json.loads(block)
        except json.JSONDecodeError as e:
            raise VisualStoryError(f"Failed to parse story structure from AI response: {e}") from e

        panels = panels_from_raw(data.get("panels"))
        if len(panels) < MIN_PANELS:
            raise VisualStoryError("Invalid story structure: not enough panels")
        if len(panels) > count:
            logger.info("Provider returned %d panels, keeping the first %d", len(panels), count)
            panels = renumber_panels(panels[:count])
        title = str(data.get("title") or "Untitled")
        return title, panels

    async def generate_and_store_panel_images(self, panels: list[Panel]) -> list[Panel]:
        """Render each panel with the chat comic style; failed panels keep image_ref=None."""
        generator = self.providers.images
        result: list[Panel] = []
        for index, panel in enumerate(panels):
            if index and self.panel_delay:
                await asyncio.sleep(self.panel_delay)
            try:
                image = await generator.generate_panel_image(panel, CHAT_COMIC_STYLE)
                media_id = storage.put_media(
                    image.data, f"chat-panel-{panel.number}.png", image.content_type,
                    {"type": "chat-panel", "panel_number": panel.number},
                )
                result.append(panel.model_copy(update={"image_ref": media_id}))
            except Exception as e:
                logger.warning("Visual chat panel %d image failed: %s", panel.number, e)
                result.append(panel.model_copy(update={"image_ref": None}))
        return result

    async def process_visual_message(self, text: str, panel_count: int = 3) -> VisualStory:
        async with self._semaphore:
            logger.info("Processing visual chat message: %r", text[:50])
            title, panels = await self.generate_visual_story(text, panel_count)
            logger.info("Visual story structure generated: %s (%d panels)", title, len(panels))
            panels = await self.generate_and_store_panel_images(panels)
            return VisualStory(title=title, panels=panels, original_text=text)
