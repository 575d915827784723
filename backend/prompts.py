"""Handlebars prompt rendering for the story pipeline and the chat services.

Values are inserted with triple-stash ({{{ }}}) so user text reaches the model
without HTML escaping.
"""

from collections.abc import Callable, Sequence
from typing import Any

import pybars

from ananse.models import AI_SENDER, ArtisticStyle, ChatMessage, PromptTemplate


_compiler = pybars.Compiler()
_cache: dict[str, Callable] = {}


class PromptError(Exception):
    """Raised when a Handlebars template fails to compile or render."""


def render_prompt(template_str: str, context: dict[str, Any]) -> str:
    """Compile and render a Handlebars template with the given context.

    Templates are cached by source string to avoid recompilation.
    """
    try:
        compiled = _cache.get(template_str)
        if compiled is None:
            compiled = _compiler.compile(template_str)
            _cache[template_str] = compiled
        return str(compiled(context))
    except Exception as e:
        raise PromptError(f"Template error: {e}") from e


# ── Story pipeline ───────────────────────────────────────


SENSING_INSTRUCTION = (
    "Pay close attention to the TONE and EMOTIONAL QUALITY of the attached media.\n"
    "If it's audio, consider the speaker's emotion (excited, scared, calm, angry).\n"
    "If it's an image, consider the artistic style (dark, bright, messy, clean).\n"
    "Let these qualities influence the mood and style of the story you generate.\n\n"
)

TRANSCRIBE_PROMPT = "Transcribe this audio accurately:"

ANALYZE_IMAGE_PROMPT = (
    "Analyze this image and describe the story it tells.\n"
    "Describe the scene, characters, usage of color, mood, and any specific actions "
    "taking place.\n"
    "Also note the ARTISTIC STYLE of the image (is it sketchy, clean, dark, bright, "
    "cartoonish, realistic?).\n"
    "This description will be used to generate a narrative story that matches the "
    "visual style."
)


def assemble_story_prompt(
    template: PromptTemplate,
    content: str,
    style: ArtisticStyle | None,
    with_media: bool = False,
) -> str:
    """Template text, then the user's story, then the style's modifiers.

    The template text itself may use {{{style_name}}} and {{{story_type}}}.
    """
    context = {
        "story_type": template.type,
        "style_name": style.name if style else "default",
    }
    prompt = render_prompt(template.prompt_text, context)
    prompt += f"\n\nUser Story: {content}"
    if style is not None and style.prompt_modifiers:
        prompt += f"\n\nVisual Style Guidelines: {', '.join(style.prompt_modifiers)}"
    if with_media:
        prompt = SENSING_INSTRUCTION + prompt
    return prompt


# ── Visual chat messages ─────────────────────────────────


VISUAL_STORY_PROMPT = """You are a visual storyteller. Create a short {{{panel_count}}}-panel comic/story based on this user message:

"{{{text}}}"

Return ONLY valid JSON in this exact format:
{
  "title": "Short story title",
  "panels": [
    {
      "number": 1,
      "scene": "Brief scene description for image generation",
      "description": "Detailed visual description for AI image generation",
      "dialogue": "What characters say or narration text (keep short)"
    }
  ]
}

Rules:
- Create exactly {{{panel_count}}} panels
- Make descriptions vivid and visual for image generation
- Keep dialogue/narration under 100 characters per panel
- Tell a cohesive mini-story with beginning, middle, end
- Style: dramatic, comic book aesthetic
"""


# ── AI co-author ─────────────────────────────────────────


COAUTHOR_START_PROMPT = """You are Ananse, a wise storytelling AI. The user wants to start a collaborative story.
Based on their prompt, begin an engaging story opening (3-4 sentences).
Set the scene, introduce a character or situation, and leave room for the user to continue.

User's story idea: {{{prompt}}}

Begin the story:"""

COAUTHOR_REPLY_PROMPT = """You are Ananse, a wise and creative storytelling AI inspired by Akan folklore.
You are engaged in a collaborative storytelling chat. Your role is to:
1. Continue the story naturally based on what the user says
2. Maintain consistency with characters, plot, and world established earlier
3. Be creative but respect the established narrative
4. Keep responses conversational and engaging (2-4 sentences usually)

{{#if story_context}}STORY CONTEXT (remember this):
{{{story_context}}}
{{/if}}
RECENT CONVERSATION:
{{{history}}}

User's new message: {{{message}}}

Respond as Ananse, continuing the story or conversation naturally:"""

COAUTHOR_SUMMARY_PROMPT = """Summarize the key story elements from this conversation in a concise format:
- Main characters introduced
- Key plot points
- Current situation/conflict
- Important world details

CONVERSATION:
{{{conversation}}}

SUMMARY (keep under 500 words):"""


def format_conversation(messages: Sequence[ChatMessage]) -> str:
    """One `AI: ...` / `User: ...` line per message, in the given order."""
    lines = []
    for msg in messages:
        speaker = "AI" if msg.sender_id == AI_SENDER else "User"
        lines.append(f"{speaker}: {msg.content}")
    return "\n".join(lines)
