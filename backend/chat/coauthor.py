"""AI co-author for collaborative stories in a chat room.

Continuity between turns comes from two places: the opaque thought signature
the provider hands back (stored on the room and returned with the next
request) and a periodically refreshed plain-text summary (`story_context`).
"""

import logging

from ananse.llm import Continuation, Generation, ProviderError
from ananse.models import AI_SENDER

from backend import storage
from backend.prompts import (
    COAUTHOR_REPLY_PROMPT,
    COAUTHOR_START_PROMPT,
    COAUTHOR_SUMMARY_PROMPT,
    format_conversation,
    render_prompt,
)
from backend.providers import Providers, get_providers

logger = logging.getLogger(__name__)

HISTORY_WINDOW = 10
SUMMARY_EVERY = 5
SUMMARY_WINDOW = 50
SUMMARY_MIN_MESSAGES = 5


class CoAuthor:
    def __init__(self, providers: Providers | None = None) -> None:
        self._providers = providers

    @property
    def providers(self) -> Providers:
        if self._providers is None:
            self._providers = get_providers()
        return self._providers

    async def start_story(self, room_id: str, prompt: str) -> Generation:
        """Write the opening of a new story and reset the room's continuity."""
        if storage.get_room(room_id) is None:
            raise LookupError("Chat room not found")
        text = render_prompt(COAUTHOR_START_PROMPT, {"prompt": prompt})
        generation = await self.providers.text("coauthor_start", text, thinking_level="high")
        storage.update_room(room_id, {
            "thought_signature": generation.thought_signature,
            "story_context": f"Story premise: {prompt}",
        })
        logger.info("AI story started in room %s", room_id)
        return generation

    async def generate_chat_response(self, room_id: str, message: str) -> Generation:
        """Continue the story from the room's recent conversation."""
        room = storage.get_room(room_id)
        if room is None:
            raise LookupError("Chat room not found")

        recent = storage.get_messages(room_id, limit=HISTORY_WINDOW)
        text = render_prompt(COAUTHOR_REPLY_PROMPT, {
            "story_context": room.story_context or "",
            "history": format_conversation(recent),
            "message": message,
        })

        continuation = None
        if room.thought_signature:
            last_ai = next((m for m in reversed(recent) if m.sender_id == AI_SENDER), None)
            continuation = Continuation(
                thought_signature=room.thought_signature,
                prior_reply=last_ai.content if last_ai else "",
            )

        generation = await self.providers.text(
            "coauthor", text, thinking_level="high", continuation=continuation,
        )

        if storage.count_messages(room_id) % SUMMARY_EVERY == 0:
            await self.update_story_context(room_id)

        signature = generation.thought_signature or room.thought_signature
        if signature != room.thought_signature:
            storage.update_room(room_id, {"thought_signature": signature})
            logger.debug("Updated thought signature for room %s", room_id)
        return Generation(text=generation.text, thought_signature=signature)

    async def update_story_context(self, room_id: str) -> None:
        """Regenerate the room's summary from its latest 50 messages.

        Failures are logged; the previous summary stays in place.
        """
        messages = storage.get_messages(room_id, limit=SUMMARY_WINDOW)
        if len(messages) < SUMMARY_MIN_MESSAGES:
            return
        text = render_prompt(COAUTHOR_SUMMARY_PROMPT, {
            "conversation": format_conversation(messages),
        })
        try:
            generation = await self.providers.text("coauthor_summary", text, thinking_level="low")
        except ProviderError as e:
            logger.warning("Failed to update story context for room %s: %s", room_id, e)
            return
        storage.update_room(room_id, {"story_context": generation.text})
        logger.info("Updated story context for room %s", room_id)
