"""Story records, one JSON document per story.

Status transitions go through claim_story / complete_story / fail_story so a
terminal record is never rewritten by a late pipeline run.
"""

import logging
from typing import Any

from ananse.models import (
    TERMINAL_STATUSES,
    AudioNarrative,
    Story,
    VisualNarrative,
    utcnow,
)

from .core import is_valid_id, read_json, stories_dir, write_json

logger = logging.getLogger(__name__)


def _story_path(story_id: str):
    return stories_dir() / f"{story_id}.json"


def _write(story: Story) -> Story:
    story.updated_at = utcnow()
    write_json(_story_path(story.id), story.model_dump(mode="json"))
    return story


def create_story(story: Story) -> Story:
    if _story_path(story.id).exists():
        raise FileExistsError(f"Story {story.id} already exists")
    return _write(story)


def get_story(story_id: str) -> Story | None:
    if not is_valid_id(story_id):
        return None
    path = _story_path(story_id)
    if not path.is_file():
        return None
    return Story.model_validate(read_json(path))


def list_stories(status: str | None = None) -> list[Story]:
    results = []
    for path in stories_dir().glob("*.json"):
        story = Story.model_validate(read_json(path))
        if status is None or story.status == status:
            results.append(story)
    return results


def claim_story(story_id: str, expected: str = "pending") -> Story | None:
    """Move a story from `expected` to processing.

    Returns the claimed story, or None if the record is missing or its status
    is not `expected` (someone else already claimed or finished it).
    """
    story = get_story(story_id)
    if story is None or story.status != expected:
        return None
    story.status = "processing"
    return _write(story)


def save_transcript(story_id: str, transcript: str, text: str | None = None) -> Story | None:
    """Persist speech/sketch understanding output before the story run."""
    story = get_story(story_id)
    if story is None:
        return None
    story.original_content.transcript = transcript
    if text is not None:
        story.original_content.text = text
    return _write(story)


def complete_story(
    story_id: str,
    visual_narrative: VisualNarrative,
    audio_narrative: AudioNarrative,
    prompt_template_id: str | None,
    processing_time_ms: int,
) -> Story | None:
    story = get_story(story_id)
    if story is None:
        return None
    if story.status in TERMINAL_STATUSES:
        logger.warning("Story %s already %s, not completing", story_id, story.status)
        return story
    story.visual_narrative = visual_narrative
    story.audio_narrative = audio_narrative
    story.prompt_template_id = prompt_template_id
    story.status = "complete"
    story.processing_time_ms = processing_time_ms
    story.error_message = None
    return _write(story)


def fail_story(story_id: str, message: str, processing_time_ms: int) -> Story | None:
    story = get_story(story_id)
    if story is None:
        return None
    if story.status in TERMINAL_STATUSES:
        logger.warning("Story %s already %s, not failing", story_id, story.status)
        return story
    story.status = "failed"
    story.error_message = message
    story.processing_time_ms = processing_time_ms
    return _write(story)


def _sort_stories(stories: list[Story], sort: str) -> None:
    if sort == "popular":
        stories.sort(key=lambda s: (s.metadata.likes, s.created_at), reverse=True)
    elif sort == "viewed":
        stories.sort(key=lambda s: (s.metadata.views, s.created_at), reverse=True)
    elif sort == "oldest":
        stories.sort(key=lambda s: s.created_at)
    else:
        stories.sort(key=lambda s: s.created_at, reverse=True)


def list_feed(page: int = 1, limit: int = 20, sort: str = "recent") -> tuple[list[Story], int]:
    """One page of complete stories plus the total number of complete stories."""
    stories = list_stories(status="complete")
    _sort_stories(stories, sort)
    start = (page - 1) * limit
    return stories[start:start + limit], len(stories)


def search_stories(query: str, limit: int = 5) -> list[Story]:
    """Case-insensitive match on the submitted text and panel descriptions."""
    needle = query.lower()
    matches = []
    for story in sorted(list_stories(), key=lambda s: s.created_at, reverse=True):
        haystack = [story.original_content.text or ""]
        haystack += [p.description for p in story.visual_narrative.panels]
        if any(needle in h.lower() for h in haystack):
            matches.append(story)
            if len(matches) >= limit:
                break
    return matches


def _increment(story_id: str, field: str) -> Story | None:
    story = get_story(story_id)
    if story is None:
        return None
    setattr(story.metadata, field, getattr(story.metadata, field) + 1)
    return _write(story)


def increment_views(story_id: str) -> Story | None:
    return _increment(story_id, "views")


def increment_likes(story_id: str) -> Story | None:
    return _increment(story_id, "likes")


def story_summary(story: Story) -> dict[str, Any]:
    return {
        "id": story.id,
        "excerpt": (story.original_content.text or "")[:100] or "No excerpt",
        "style": story.visual_narrative.style or "unknown",
        "createdAt": story.created_at.isoformat(),
    }
