"""Artistic styles, audio styles and prompt templates.

Each kind lives in presets/<kind>/<id>.json and may be overridden (or added
to) by data/styles/<kind>/<id>.json. User data wins on ID collision.
"""

from pathlib import Path
from typing import TypeVar

from pydantic import BaseModel

from ananse.models import ArtisticStyle, AudioStyle, PromptTemplate

from .core import presets_dir, read_json, styles_dir

T = TypeVar("T", bound=BaseModel)

ARTISTIC = "artistic-styles"
AUDIO = "audio-styles"
PROMPTS = "prompt-templates"


def _load_kind(kind: str, model: type[T]) -> dict[str, T]:
    by_id: dict[str, T] = {}
    # Presets first (lower priority)
    for base in (presets_dir() / kind, styles_dir() / kind):
        if not base.is_dir():
            continue
        for path in sorted(base.glob("*.json")):
            data = read_json(path)
            data.setdefault("id", path.stem)
            item = model.model_validate(data)
            by_id[item.id] = item
    return by_id


def user_styles_dir(kind: str) -> Path:
    path = styles_dir() / kind
    path.mkdir(parents=True, exist_ok=True)
    return path


# ── Artistic styles ──────────────────────────────────────


def list_artistic_styles(active_only: bool = True) -> list[ArtisticStyle]:
    styles = _load_kind(ARTISTIC, ArtisticStyle).values()
    return [s for s in styles if s.is_active or not active_only]


def get_artistic_style(style_id: str | None) -> ArtisticStyle | None:
    if not style_id:
        return None
    return _load_kind(ARTISTIC, ArtisticStyle).get(style_id)


def get_artistic_style_by_slug(slug: str) -> ArtisticStyle | None:
    for style in list_artistic_styles():
        if style.slug == slug:
            return style
    return None


# ── Audio styles ─────────────────────────────────────────


def list_audio_styles(active_only: bool = True) -> list[AudioStyle]:
    styles = _load_kind(AUDIO, AudioStyle).values()
    return [s for s in styles if s.is_active or not active_only]


def get_audio_style(style_id: str | None) -> AudioStyle | None:
    if not style_id:
        return None
    return _load_kind(AUDIO, AudioStyle).get(style_id)


def get_audio_style_by_slug(slug: str) -> AudioStyle | None:
    for style in list_audio_styles():
        if style.slug == slug:
            return style
    return None


def resolve_style_ids(
    visual_style_id: str | None, audio_style_id: str | None
) -> tuple[str | None, str | None]:
    """Map missing or "default" style IDs to the styles whose slug is `default`."""
    if not visual_style_id or visual_style_id == "default":
        style = get_artistic_style_by_slug("default")
        visual_style_id = style.id if style else None
    if not audio_style_id or audio_style_id == "default":
        audio = get_audio_style_by_slug("default")
        audio_style_id = audio.id if audio else None
    return visual_style_id, audio_style_id


# ── Prompt templates ─────────────────────────────────────


def list_prompt_templates() -> list[PromptTemplate]:
    return list(_load_kind(PROMPTS, PromptTemplate).values())


def get_active_prompt_template(story_type: str) -> PromptTemplate | None:
    """The newest active template for a story type (highest version wins)."""
    candidates = [
        t for t in list_prompt_templates() if t.type == story_type and t.is_active
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda t: _version_key(t.version))


def _version_key(version: str) -> tuple[int, ...]:
    parts = []
    for piece in version.split("."):
        parts.append(int(piece) if piece.isdigit() else 0)
    return tuple(parts)
