"""Story runs: text -> panels (+ images, video) with a single error boundary.

A run only proceeds if it wins the pending -> processing claim; whatever goes
wrong after that ends in `failed` with the error message and elapsed time.
Image and video problems are logged and the story completes without them.
"""

import logging
import random
import time

from ananse.images import ImageGenerationError
from ananse.llm import InlineMedia
from ananse.models import ArtisticStyle, AudioNarrative, Panel, VisualNarrative, panels_from_raw
from ananse.video import VideoAssemblyError, estimate_duration, get_video_style

from backend import storage
from backend.config import Settings, get_settings
from backend.prompts import ANALYZE_IMAGE_PROMPT, TRANSCRIBE_PROMPT, assemble_story_prompt
from backend.providers import Providers, get_providers

from .narrative import (
    narration_script,
    parse_story_json,
    should_generate_video,
    synthesize_narration,
)

logger = logging.getLogger(__name__)


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


async def process_story(
    story_id: str,
    text: str,
    visual_style_id: str | None = None,
    audio_style_id: str | None = None,
    media: InlineMedia | None = None,
    *,
    providers: Providers | None = None,
    settings: Settings | None = None,
    rng: random.Random | None = None,
    claimed: bool = False,
    started: float | None = None,
) -> None:
    """Run the story pipeline for one record.

    `media` is the original audio/image for speak/sketch stories; it is sent
    alongside the prompt so the model picks up tone and style. Pass
    claimed=True when the caller already moved the record to processing.
    """
    started = started if started is not None else time.monotonic()
    if not claimed and storage.claim_story(story_id) is None:
        logger.warning("Story %s is not pending, skipping run", story_id)
        return

    try:
        story = storage.get_story(story_id)
        if story is None:
            raise LookupError(f"Story {story_id} not found")
        settings = settings or get_settings()
        providers = providers or get_providers()

        # 1. Prompt template for this story type
        template = storage.get_active_prompt_template(story.type)
        if template is None:
            raise LookupError(f"No active prompt template found for {story.type.upper()} stories")

        # 2. Styles (optional)
        visual_style = storage.get_artistic_style(visual_style_id)
        audio_style = storage.get_audio_style(audio_style_id)

        # 3. Story structure
        prompt = assemble_story_prompt(template, text, visual_style, with_media=media is not None)
        logger.info("Generating story %s (%s, template %s)", story_id, story.type, template.id)
        generation = await providers.text(
            "story", prompt, media=[media] if media else (), thinking_level="high",
        )

        # 4. Panels + narration script
        story_data = parse_story_json(generation.text)
        panels = panels_from_raw(story_data.get("panels"))
        script = narration_script(story_data, panels)

        # 5. Narration audio
        audio_bytes, duration_ms = await synthesize_narration(script, audio_style)
        audio_ref = None
        if audio_bytes:
            audio_ref = storage.put_media(
                audio_bytes, f"story-{story_id}-audio.mp3", "audio/mpeg",
                {"story_id": story_id, "type": "audio-narration"},
            )

        # 6. Panel images
        if settings.enable_image_generation and panels:
            await _generate_panel_images(story_id, panels, visual_style, providers)

        # 7. Video
        video_ref = None
        video_duration = None
        has_images = any(p.image_ref for p in panels)
        if (
            settings.enable_video_generation
            and has_images
            and should_generate_video(settings.video_generation_probability, rng)
        ):
            video_ref, video_duration = await _generate_video(
                story_id, panels, visual_style, audio_bytes, duration_ms, settings, providers,
            )

        # 8. Complete
        elapsed = _elapsed_ms(started)
        storage.complete_story(
            story_id,
            VisualNarrative(
                panels=panels,
                style=visual_style.name if visual_style else "default",
                video_ref=video_ref,
                video_duration_seconds=video_duration,
            ),
            AudioNarrative(
                script=script,
                audio_ref=audio_ref,
                duration_ms=duration_ms,
                style=audio_style.name if audio_style else "default",
            ),
            template.id,
            elapsed,
        )
        logger.info("Story %s complete: %d panels in %dms", story_id, len(panels), elapsed)
    except Exception as e:
        logger.exception("Story %s failed", story_id)
        storage.fail_story(story_id, str(e), _elapsed_ms(started))


async def _generate_panel_images(
    story_id: str,
    panels: list[Panel],
    style: ArtisticStyle | None,
    providers: Providers,
) -> None:
    """Render panels one by one, storing each image as soon as it arrives."""
    stored = 0
    async for index, image in providers.images.iter_panel_images(panels, style):
        if image is None:
            continue
        number = index + 1
        try:
            panels[index].image_ref = storage.put_media(
                image.data, f"story-{story_id}-panel-{number}.png", image.content_type,
                {"story_id": story_id, "type": "panel-image", "panel_number": number},
            )
        except OSError as e:
            logger.warning("Storing image for panel %d of story %s failed: %s", number, story_id, e)
            continue
        stored += 1
    logger.info("Stored %d/%d panel images for story %s", stored, len(panels), story_id)


async def _generate_video(
    story_id: str,
    panels: list[Panel],
    style: ArtisticStyle | None,
    audio: bytes | None,
    audio_duration_ms: int,
    settings: Settings,
    providers: Providers,
) -> tuple[str | None, float | None]:
    """Render and store the story video. Returns (media id, seconds) or (None, None)."""
    try:
        images: list[bytes] = []
        if settings.video_image_model:
            logger.info("Regenerating panel images with %s for video", settings.video_image_model)
            results = await providers.images.generate_all_panel_images(
                panels, style, model=settings.video_image_model,
            )
            images = [r.data for r in results if r is not None]
        if not images:
            for panel in panels:
                data = storage.read_media(panel.image_ref) if panel.image_ref else None
                if data:
                    images.append(data)

        video = await providers.video.generate_story_video(
            images,
            audio=audio,
            style=settings.default_video_style,
            story_meta={"id": story_id},
        )
        video_ref = storage.put_media(
            video, f"story-{story_id}-video.mp4", "video/mp4",
            {"story_id": story_id, "type": "story-video", "style": settings.default_video_style},
        )
    except (VideoAssemblyError, ImageGenerationError, OSError) as e:
        logger.warning("Video generation failed for story %s, continuing: %s", story_id, e)
        return None, None

    if audio and audio_duration_ms:
        duration = audio_duration_ms / 1000
    else:
        duration = estimate_duration(len(images), get_video_style(settings.default_video_style))
    return video_ref, duration


# ── Speak / sketch precursors ─────────────────────────────


def _load_original(media_ref: str | None, default_type: str) -> InlineMedia:
    info = storage.get_media_info(media_ref) if media_ref else None
    data = storage.read_media(media_ref) if info else None
    if info is None or data is None:
        raise LookupError(f"Original upload {media_ref} not found")
    content_type = info.content_type
    if content_type == "application/octet-stream":
        content_type = default_type
    return InlineMedia(data=data, mime_type=content_type)


async def _run_with_understanding(
    story_id: str,
    stage: str,
    prompt: str,
    default_type: str,
    failure_prefix: str,
    visual_style_id: str | None,
    audio_style_id: str | None,
    providers: Providers | None,
    settings: Settings | None,
    rng: random.Random | None,
) -> None:
    started = time.monotonic()
    story = storage.claim_story(story_id)
    if story is None:
        logger.warning("Story %s is not pending, skipping run", story_id)
        return

    try:
        content = story.original_content
        media_ref = content.audio_ref if story.type == "speak" else content.image_ref
        media = _load_original(media_ref, default_type)
        providers = providers or get_providers()
        generation = await providers.text(stage, prompt, media=[media])
        derived = generation.text.strip()
        storage.save_transcript(story_id, derived, text=derived)
        logger.info("Story %s %s complete (%d chars)", story_id, stage, len(derived))
    except Exception as e:
        logger.exception("Story %s %s failed", story_id, stage)
        storage.fail_story(story_id, f"{failure_prefix}{e}", _elapsed_ms(started))
        return

    await process_story(
        story_id, derived, visual_style_id, audio_style_id, media,
        providers=providers, settings=settings, rng=rng, claimed=True, started=started,
    )


async def process_speak_story(
    story_id: str,
    visual_style_id: str | None = None,
    audio_style_id: str | None = None,
    *,
    providers: Providers | None = None,
    settings: Settings | None = None,
    rng: random.Random | None = None,
) -> None:
    """Transcribe the uploaded recording, then run the story pipeline with it."""
    await _run_with_understanding(
        story_id, "transcribe", TRANSCRIBE_PROMPT, "audio/mpeg", "Transcription failed: ",
        visual_style_id, audio_style_id, providers, settings, rng,
    )


async def process_sketch_story(
    story_id: str,
    visual_style_id: str | None = None,
    audio_style_id: str | None = None,
    *,
    providers: Providers | None = None,
    settings: Settings | None = None,
    rng: random.Random | None = None,
) -> None:
    """Describe the uploaded sketch, then run the story pipeline with it."""
    await _run_with_understanding(
        story_id, "analyze_image", ANALYZE_IMAGE_PROMPT, "image/jpeg", "Image analysis failed: ",
        visual_style_id, audio_style_id, providers, settings, rng,
    )
