"""Story submission and status endpoints.

Submissions create a `pending` record, answer 201 straight away and run the
pipeline as a background task; clients poll /status.
"""

from fastapi import APIRouter, BackgroundTasks, File, Form, HTTPException, UploadFile

from ananse.models import OriginalContent, Story

from backend import storage
from backend.config import get_settings
from backend.pipeline import process_sketch_story, process_speak_story, process_story

from .models import MAX_STORY_TEXT, WriteStoryBody

router = APIRouter()


def _style_ref(value: str | None) -> str | None:
    # Clients sometimes send a file path or URL instead of an ID
    if not value or "/" in value:
        return None
    return value


def _accepted(story: Story, message: str) -> dict:
    return {"storyId": story.id, "status": story.status, "message": message}


async def _read_upload(upload: UploadFile | None, kind: str, max_size: int) -> bytes:
    if upload is None:
        raise HTTPException(400, f"{kind.capitalize()} file is required")
    content_type = upload.content_type or ""
    if not content_type.startswith(f"{kind}/"):
        raise HTTPException(400, f"Invalid file type {content_type!r}; expected an {kind} file")
    data = await upload.read()
    if not data:
        raise HTTPException(400, f"{kind.capitalize()} file is empty")
    if len(data) > max_size:
        raise HTTPException(413, f"{kind.capitalize()} file exceeds {max_size} bytes")
    return data


@router.post("/stories/write", status_code=201)
async def create_write_story(body: WriteStoryBody, background_tasks: BackgroundTasks):
    """Submit a written story."""
    text = body.text
    if not text.strip():
        raise HTTPException(400, "Text content is required")
    if len(text) > MAX_STORY_TEXT:
        raise HTTPException(400, f"Text exceeds maximum length of {MAX_STORY_TEXT} characters")

    visual_style_id, audio_style_id = storage.resolve_style_ids(
        _style_ref(body.visualStyleId), _style_ref(body.audioStyleId),
    )
    story = storage.create_story(Story(
        type="write",
        original_content=OriginalContent(text=text),
        visual_style_id=visual_style_id,
        audio_style_id=audio_style_id,
    ))
    background_tasks.add_task(process_story, story.id, text, visual_style_id, audio_style_id)
    return _accepted(story, "Story is being processed")


@router.post("/stories/speak", status_code=201)
async def create_speak_story(
    background_tasks: BackgroundTasks,
    audio: UploadFile | None = File(None),
    visualStyleId: str | None = Form(None),
    audioStyleId: str | None = Form(None),
):
    """Submit a spoken story (multipart field `audio`)."""
    data = await _read_upload(audio, "audio", get_settings().max_file_size_audio)
    visual_style_id, audio_style_id = storage.resolve_style_ids(
        _style_ref(visualStyleId), _style_ref(audioStyleId),
    )
    audio_ref = storage.put_media(
        data, audio.filename or "story-speak.mp3", audio.content_type,
        {"type": "original-audio"},
    )
    story = storage.create_story(Story(
        type="speak",
        original_content=OriginalContent(audio_ref=audio_ref),
        visual_style_id=visual_style_id,
        audio_style_id=audio_style_id,
    ))
    background_tasks.add_task(process_speak_story, story.id, visual_style_id, audio_style_id)
    return _accepted(story, "Audio story received and processing started")


@router.post("/stories/sketch", status_code=201)
async def create_sketch_story(
    background_tasks: BackgroundTasks,
    image: UploadFile | None = File(None),
    visualStyleId: str | None = Form(None),
    audioStyleId: str | None = Form(None),
):
    """Submit a sketch (multipart field `image`)."""
    data = await _read_upload(image, "image", get_settings().max_file_size_image)
    visual_style_id, audio_style_id = storage.resolve_style_ids(
        _style_ref(visualStyleId), _style_ref(audioStyleId),
    )
    image_ref = storage.put_media(
        data, image.filename or "story-sketch.png", image.content_type,
        {"type": "original-image"},
    )
    story = storage.create_story(Story(
        type="sketch",
        original_content=OriginalContent(image_ref=image_ref),
        visual_style_id=visual_style_id,
        audio_style_id=audio_style_id,
    ))
    background_tasks.add_task(process_sketch_story, story.id, visual_style_id, audio_style_id)
    return _accepted(story, "Sketch story received and processing started")


@router.get("/stories/{story_id}/status")
async def get_story_status(story_id: str):
    """Poll a story's processing status."""
    story = storage.get_story(story_id)
    if not story:
        raise HTTPException(404, "Story not found")
    result = {
        "status": story.status,
        "type": story.type,
        "processingTimeMs": story.processing_time_ms,
    }
    if story.error_message:
        result["error"] = story.error_message
    return result


@router.get("/stories/{story_id}")
async def get_story(story_id: str):
    """Get the full story document."""
    story = storage.get_story(story_id)
    if not story:
        raise HTTPException(404, "Story not found")
    return story.model_dump(mode="json")
