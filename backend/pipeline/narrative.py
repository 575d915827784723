"""Parsing and shaping of the provider's story output."""

import json
import logging
import random
import re
from typing import Any

from ananse.models import Panel

logger = logging.getLogger(__name__)

NO_NARRATION = "No narration available."

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


class StoryFormatError(ValueError):
    """Raised when the provider's story output is not a JSON object."""


def parse_story_json(text: str) -> dict[str, Any]:
    """Parse the story JSON, ignoring markdown code fences around it."""
    cleaned = _FENCE_RE.sub("", text).strip()
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise StoryFormatError(f"Story response is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise StoryFormatError("Story response must be a JSON object")
    return data


def extract_narration_from_panels(panels: list[Panel]) -> str:
    """Join each panel's description and dialogue into one script.

    Within a panel the non-empty parts are joined with ". ", panels with a
    space: [{description: "A", dialogue: "B"}, {description: "C"}] -> "A. B C".
    """
    if not panels:
        return NO_NARRATION
    pieces = []
    for panel in panels:
        parts = [p for p in (panel.description, panel.dialogue) if p]
        if parts:
            pieces.append(". ".join(parts))
    return " ".join(pieces)


def narration_script(story_data: dict[str, Any], panels: list[Panel]) -> str:
    for key in ("narration", "script"):
        value = story_data.get(key)
        if isinstance(value, str) and value.strip():
            return value
    return extract_narration_from_panels(panels)


async def synthesize_narration(script: str, audio_style: Any) -> tuple[bytes | None, int]:
    """Text-to-speech for the narration script.

    Speech synthesis is switched off; the narrative keeps its script with no
    audio and a zero duration.
    """
    logger.info("Skipping narration audio (%d chars)", len(script))
    return None, 0


def should_generate_video(probability: float, rng: random.Random | None = None) -> bool:
    """One random draw against the configured video probability (clamped to 0..1)."""
    p = min(1.0, max(0.0, probability))
    draw = (rng or random).random()
    return draw < p
