"""Provider wiring: which text, image and video implementations the service uses.

The bundle is built lazily from Settings the first time it is needed, so a
missing API key only fails the run that needed it. Tests install their own
bundle with set_providers().
"""

import logging
from dataclasses import dataclass

from ananse.images import (
    GeminiImageBackend,
    ImageBackend,
    ImageGenerator,
    ImagenBackend,
    StabilityBackend,
)
from ananse.llm import GeminiProvider, TextProvider
from ananse.video import VideoAssembler

from backend.config import ConfigError, Settings, get_settings

logger = logging.getLogger(__name__)

IMAGE_PROVIDERS = ("gemini-image", "stability", "imagen")


def make_image_backend(name: str, settings: Settings) -> ImageBackend:
    """Instantiate the image backend selected by IMAGE_PROVIDER."""
    if name == "gemini-image":
        return GeminiImageBackend(
            api_key=settings.gemini_api_key,
            model=settings.gemini_image_model,
            aspect_ratio=settings.gemini_image_aspect_ratio,
            timeout=settings.provider_timeout,
        )
    if name == "stability":
        return StabilityBackend(
            api_key=settings.stability_api_key,
            engine=settings.stability_engine,
            timeout=settings.provider_timeout,
        )
    if name == "imagen":
        return ImagenBackend()
    raise ConfigError(
        f"Unknown IMAGE_PROVIDER {name!r}; expected one of {', '.join(IMAGE_PROVIDERS)}"
    )


@dataclass
class Providers:
    text: TextProvider
    images: ImageGenerator
    video: VideoAssembler


def build_providers(settings: Settings) -> Providers:
    logger.info(
        "Using text model %s, image provider %s",
        settings.gemini_model, settings.image_provider,
    )
    return Providers(
        text=GeminiProvider(
            api_key=settings.gemini_api_key,
            model=settings.gemini_model,
            timeout=settings.provider_timeout,
        ),
        images=ImageGenerator(
            make_image_backend(settings.image_provider, settings),
            delay_seconds=settings.image_delay_seconds,
        ),
        video=VideoAssembler(timeout=settings.video_timeout),
    )


_providers: Providers | None = None


def get_providers() -> Providers:
    global _providers
    if _providers is None:
        _providers = build_providers(get_settings())
    return _providers


def set_providers(providers: Providers | None) -> None:
    """Replace the active bundle (None rebuilds from settings on next use)."""
    global _providers
    _providers = providers
