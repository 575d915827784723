"""Panel image generation.

A backend turns one text prompt into one raster image. Backends differ only
in request/response mapping:

    GeminiImageBackend: POST .../models/{model}:generateContent
                        {"contents": [...], "generationConfig": {"responseModalities": ["IMAGE"]}}
                        Response: candidates[0].content.parts[*].inlineData
    StabilityBackend  : POST /v1/generation/{engine}/text-to-image
                        Response: {"artifacts": [{"base64": ...}]}
    ImagenBackend     : declared for configuration parity, not implemented.

ImageGenerator builds the panel prompt and runs panels strictly one after
another with a fixed delay, so a story never bursts the provider's quota.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import AsyncIterator, Sequence
from dataclasses import dataclass
from typing import Protocol

import httpx

from ananse.models import ArtisticStyle, Panel

logger = logging.getLogger(__name__)

QUALITY_SUFFIX = "high quality, detailed, comic book panel, professional illustration"


@dataclass(frozen=True)
class ImageResult:
    data: bytes
    content_type: str = "image/png"


class ImageGenerationError(RuntimeError):
    """Raised when a backend fails or returns no image."""


def build_image_prompt(panel: Panel, style: ArtisticStyle | None) -> str:
    """Scene, description, dialogue context, style modifiers, quality suffix."""
    parts: list[str] = []
    if panel.scene:
        parts.append(panel.scene)
    if panel.description:
        parts.append(panel.description)
    if panel.dialogue:
        parts.append(f'Characters are saying: "{panel.dialogue}"')
    if style is not None and style.prompt_modifiers:
        parts.append(", ".join(style.prompt_modifiers))
    parts.append(QUALITY_SUFFIX)
    return ". ".join(parts)


# ---------------------------------------------------------------------------
# Backends
# ---------------------------------------------------------------------------

class ImageBackend(Protocol):
    name: str

    async def __call__(self, prompt: str, model: str | None = None) -> ImageResult: ...


async def _post_json(url: str, body: dict, headers: dict[str, str], timeout: float, label: str) -> dict:
    try:
        async with httpx.AsyncClient(timeout=timeout) as client:
            resp = await client.post(url, json=body, headers=headers)
            resp.raise_for_status()
    except httpx.ConnectError as e:
        raise ImageGenerationError(f"Cannot connect to {label}") from e
    except httpx.HTTPStatusError as e:
        raise ImageGenerationError(f"{label} returned HTTP {e.response.status_code}") from e
    except httpx.TimeoutException as e:
        raise ImageGenerationError(f"{label} timed out after {timeout}s") from e
    except httpx.RequestError as e:
        raise ImageGenerationError(f"{label} request failed: {e}") from e
    try:
        return resp.json()
    except ValueError as e:
        raise ImageGenerationError(f"{label} returned a non-JSON body") from e


class GeminiImageBackend:
    name = "gemini-image"
    base_url = "https://generativelanguage.googleapis.com/v1beta"

    def __init__(
        self,
        api_key: str,
        model: str = "gemini-2.5-flash-image",
        aspect_ratio: str = "1:1",
        timeout: float = 120.0,
    ) -> None:
        self._api_key = api_key
        self._model = model
        self._aspect_ratio = aspect_ratio
        self._timeout = timeout

    async def __call__(self, prompt: str, model: str | None = None) -> ImageResult:
        if not self._api_key:
            raise ImageGenerationError("GEMINI_API_KEY not configured")
        url = f"{self.base_url}/models/{model or self._model}:generateContent"
        body = {
            "contents": [{"parts": [{"text": prompt}]}],
            "generationConfig": {
                "responseModalities": ["IMAGE"],
                "imageConfig": {"aspectRatio": self._aspect_ratio},
            },
        }
        headers = {"Content-Type": "application/json", "x-goog-api-key": self._api_key}
        data = await _post_json(url, body, headers, self._timeout, "Gemini image model")

        candidates = data.get("candidates") or [{}]
        parts = (candidates[0].get("content") or {}).get("parts") or []
        for part in parts:
            inline = part.get("inlineData")
            if inline and inline.get("data"):
                return ImageResult(
                    data=base64.b64decode(inline["data"]),
                    content_type=inline.get("mimeType") or "image/png",
                )
        raise ImageGenerationError("No image data returned from Gemini image model")


class StabilityBackend:
    name = "stability"
    base_url = "https://api.stability.ai/v1/generation"

    def __init__(
        self,
        api_key: str,
        engine: str = "stable-diffusion-xl-1024-v1-0",
        timeout: float = 60.0,
    ) -> None:
        self._api_key = api_key
        self._engine = engine
        self._timeout = timeout

    async def __call__(self, prompt: str, model: str | None = None) -> ImageResult:
        if not self._api_key:
            raise ImageGenerationError("STABILITY_API_KEY not configured")
        url = f"{self.base_url}/{model or self._engine}/text-to-image"
        body = {
            "text_prompts": [{"text": prompt, "weight": 1}],
            "cfg_scale": 7,
            "height": 1024,
            "width": 1024,
            "samples": 1,
            "steps": 30,
        }
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "Authorization": f"Bearer {self._api_key}",
        }
        data = await _post_json(url, body, headers, self._timeout, "Stability AI")

        artifacts = data.get("artifacts") or []
        if not artifacts or not artifacts[0].get("base64"):
            raise ImageGenerationError("No image artifacts returned from Stability AI")
        return ImageResult(data=base64.b64decode(artifacts[0]["base64"]), content_type="image/png")


class ImagenBackend:
    name = "imagen"

    async def __call__(self, prompt: str, model: str | None = None) -> ImageResult:
        # Needs a Vertex AI project; only the Gemini API key flow is wired up.
        raise ImageGenerationError("Imagen provider is not implemented yet")


# ---------------------------------------------------------------------------
# ImageGenerator: prompt building + sequential, rate-limited panel loop
# ---------------------------------------------------------------------------

class ImageGenerator:
    def __init__(self, backend: ImageBackend, delay_seconds: float = 1.0) -> None:
        self.backend = backend
        self.delay_seconds = delay_seconds

    async def generate_panel_image(
        self, panel: Panel, style: ArtisticStyle | None, model: str | None = None
    ) -> ImageResult:
        prompt = build_image_prompt(panel, style)
        logger.info("Generating image for panel %d using %s", panel.number, self.backend.name)
        logger.debug("Image prompt: %s", prompt[:200])
        return await self.backend(prompt, model)

    async def iter_panel_images(
        self, panels: Sequence[Panel], style: ArtisticStyle | None, model: str | None = None
    ) -> AsyncIterator[tuple[int, ImageResult | None]]:
        """Yield (index, image) in panel order; failed panels yield None."""
        for index, panel in enumerate(panels):
            if index and self.delay_seconds:
                await asyncio.sleep(self.delay_seconds)
            try:
                image = await self.generate_panel_image(panel, style, model)
            except Exception as e:
                logger.warning("Image generation failed for panel %d: %s", panel.number, e)
                image = None
            yield index, image

    async def generate_all_panel_images(
        self, panels: Sequence[Panel], style: ArtisticStyle | None, model: str | None = None
    ) -> list[ImageResult | None]:
        """One slot per panel, in order; None where generation failed."""
        results: list[ImageResult | None] = []
        async for _, image in self.iter_panel_images(panels, style, model):
            results.append(image)
        logger.info(
            "Generated %d/%d panel images",
            sum(1 for r in results if r is not None), len(panels),
        )
        return results
