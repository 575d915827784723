"""Tests for backend.prompts."""

from ananse.models import AI_SENDER, ArtisticStyle, ChatMessage, PromptTemplate
from backend.prompts import (
    COAUTHOR_REPLY_PROMPT,
    SENSING_INSTRUCTION,
    VISUAL_STORY_PROMPT,
    assemble_story_prompt,
    format_conversation,
    render_prompt,
)


def _template(text: str = "Write a {{{story_type}}} story in {{{style_name}}} style.") -> PromptTemplate:
    return PromptTemplate(id="t1", name="Write", type="write", prompt_text=text)


def _style(*modifiers: str) -> ArtisticStyle:
    return ArtisticStyle(id="noir", name="Noir", slug="noir", prompt_modifiers=list(modifiers))


# ---------------------------------------------------------------------------
# render_prompt
# ---------------------------------------------------------------------------

class TestRenderPrompt:
    def test_triple_stash_does_not_escape(self):
        assert render_prompt("{{{x}}}", {"x": "<b>&</b>"}) == "<b>&</b>"

    def test_missing_variable_renders_empty(self):
        assert render_prompt("a{{{x}}}b", {}) == "ab"

    def test_if_block(self):
        tpl = "{{#if ctx}}CTX: {{{ctx}}}{{/if}}"
        assert render_prompt(tpl, {"ctx": "dragons"}) == "CTX: dragons"
        assert render_prompt(tpl, {"ctx": ""}) == ""


# ---------------------------------------------------------------------------
# assemble_story_prompt
# ---------------------------------------------------------------------------

class TestAssembleStoryPrompt:
    def test_template_then_story_then_style(self):
        prompt = assemble_story_prompt(_template(), "A lantern in the rain.", _style("ink wash", "high contrast"))
        assert prompt.startswith("Write a write story in Noir style.")
        story_at = prompt.index("User Story: A lantern in the rain.")
        style_at = prompt.index("Visual Style Guidelines: ink wash, high contrast")
        assert story_at < style_at

    def test_no_style_section_without_modifiers(self):
        prompt = assemble_story_prompt(_template(), "text", _style())
        assert "Visual Style Guidelines" not in prompt

    def test_no_style_uses_default_name(self):
        prompt = assemble_story_prompt(_template(), "text", None)
        assert "in default style" in prompt
        assert "Visual Style Guidelines" not in prompt

    def test_media_prepends_sensing_instruction(self):
        prompt = assemble_story_prompt(_template(), "text", None, with_media=True)
        assert prompt.startswith(SENSING_INSTRUCTION)

    def test_user_text_is_not_rendered(self):
        prompt = assemble_story_prompt(_template(), "{{{style_name}}}", None)
        assert prompt.endswith("User Story: {{{style_name}}}")


# ---------------------------------------------------------------------------
# Chat prompts
# ---------------------------------------------------------------------------

def test_visual_story_prompt_mentions_panel_count():
    prompt = render_prompt(VISUAL_STORY_PROMPT, {"panel_count": 4, "text": "a cat on a roof"})
    assert "4-panel" in prompt
    assert "Create exactly 4 panels" in prompt
    assert '"a cat on a roof"' in prompt


def test_reply_prompt_omits_empty_context():
    prompt = render_prompt(COAUTHOR_REPLY_PROMPT, {"story_context": "", "history": "", "message": "go"})
    assert "STORY CONTEXT" not in prompt
    prompt = render_prompt(COAUTHOR_REPLY_PROMPT, {"story_context": "A fox.", "history": "", "message": "go"})
    assert "STORY CONTEXT (remember this):\nA fox." in prompt


def test_format_conversation_labels_speakers():
    messages = [
        ChatMessage(room_id="r", sender_id="alice", content="Once upon a time"),
        ChatMessage(room_id="r", sender_id=AI_SENDER, content="a spider spun", type="ai_story"),
    ]
    assert format_conversation(messages) == "User: Once upon a time\nAI: a spider spun"
