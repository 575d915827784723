"""Visual and audio style listings."""

from fastapi import APIRouter

from backend import storage

router = APIRouter()


@router.get("/styles/visual")
async def list_visual_styles():
    """Active artistic styles (presets merged with user overrides)."""
    return {"styles": [s.model_dump() for s in storage.list_artistic_styles()]}


@router.get("/styles/audio")
async def list_audio_styles():
    """Active narration styles."""
    return {"styles": [s.model_dump() for s in storage.list_audio_styles()]}
