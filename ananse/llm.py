"""Generative text/vision provider.

The pipeline and the chat services inject a provider callable matching the
protocol:

    async def __call__(self, stage, prompt, *, media=(), thinking_level=None,
                       continuation=None) -> Generation: ...

`stage` identifies the caller (e.g. "story", "transcribe", "coauthor") and is
used for logging. `media` carries raw audio/image bytes sent inline next to
the prompt. `continuation` hands back the opaque thought signature from an
earlier call so the model can pick up its own reasoning.

Two implementations are provided:

    GeminiProvider: google-genai SDK client (async surface).
    EchoProvider  : returns the prompt back unchanged. Useful for
                    smoke-testing the wiring without an API key.

Tests use ScriptedProvider (defined in the test helpers) instead.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

from google import genai
from google.genai import errors as genai_errors
from google.genai import types

logger = logging.getLogger(__name__)

ThinkingLevel = Literal["low", "high"]


@dataclass(frozen=True)
class InlineMedia:
    """Raw bytes attached to a request (audio or image)."""

    data: bytes
    mime_type: str


@dataclass(frozen=True)
class Continuation:
    """Previous model turn plus its opaque thought signature."""

    thought_signature: str
    prior_reply: str = ""


@dataclass(frozen=True)
class Generation:
    text: str
    thought_signature: str | None = None  # base64 text; treat as opaque


# ---------------------------------------------------------------------------
# Protocol: every provider implementation must match this signature
# ---------------------------------------------------------------------------

class TextProvider(Protocol):
    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        media: Sequence[InlineMedia] = (),
        thinking_level: ThinkingLevel | None = None,
        continuation: Continuation | None = None,
    ) -> Generation: ...


# ---------------------------------------------------------------------------
# GeminiProvider: google-genai SDK
# ---------------------------------------------------------------------------

class GeminiProvider:
    """Async Gemini client.

    Args:
        api_key: Gemini API key.
        model:   Model identifier, e.g. "gemini-2.5-flash".
        timeout: Caller-side timeout in seconds for a single request.
    """

    def __init__(self, api_key: str, model: str, timeout: float = 120.0) -> None:
        if not api_key:
            raise ProviderError("GEMINI_API_KEY is not configured")
        self._client = genai.Client(api_key=api_key)
        self._model = model
        self._timeout = timeout

    def _build_contents(
        self,
        prompt: str,
        media: Sequence[InlineMedia],
        continuation: Continuation | None,
    ) -> list[types.Content]:
        parts: list[types.Part] = [
            types.Part.from_bytes(data=m.data, mime_type=m.mime_type) for m in media
        ]
        parts.append(types.Part.from_text(text=prompt))

        contents: list[types.Content] = []
        if continuation is not None:
            contents.append(types.Content(role="model", parts=[types.Part(
                text=continuation.prior_reply,
                thought_signature=base64.b64decode(continuation.thought_signature),
            )]))
        contents.append(types.Content(role="user", parts=parts))
        return contents

    def _build_config(self, thinking_level: ThinkingLevel | None) -> types.GenerateContentConfig | None:
        if thinking_level is None:
            return None
        return types.GenerateContentConfig(
            thinking_config=types.ThinkingConfig(thinking_level=thinking_level.upper()),
        )

    @staticmethod
    def _extract_signature(response: types.GenerateContentResponse) -> str | None:
        candidates = response.candidates or []
        if not candidates or candidates[0].content is None:
            return None
        for part in candidates[0].content.parts or []:
            if part.thought_signature:
                return base64.b64encode(part.thought_signature).decode("ascii")
        return None

    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        media: Sequence[InlineMedia] = (),
        thinking_level: ThinkingLevel | None = None,
        continuation: Continuation | None = None,
    ) -> Generation:
        logger.debug(
            "gemini call stage=%s model=%s prompt_len=%d media=%d",
            stage, self._model, len(prompt), len(media),
        )
        try:
            response = await asyncio.wait_for(
                self._client.aio.models.generate_content(
                    model=self._model,
                    contents=self._build_contents(prompt, media, continuation),
                    config=self._build_config(thinking_level),
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError as e:
            raise ProviderError(f"Gemini timed out after {self._timeout}s ({stage})") from e
        except genai_errors.APIError as e:
            raise ProviderError(f"Gemini returned {e.code}: {e.message}") from e

        text = response.text
        if not text:
            raise ProviderError(f"Gemini returned an empty response ({stage})")
        logger.debug("gemini response stage=%s len=%d", stage, len(text))
        return Generation(text=text, thought_signature=self._extract_signature(response))


# ---------------------------------------------------------------------------
# EchoProvider: returns the prompt unchanged
# ---------------------------------------------------------------------------

class EchoProvider:
    """Returns the prompt text as-is. No network calls.

    The output is not valid story JSON, so a pipeline run against it ends in
    `failed`, which is still enough to exercise the state machine.
    """

    async def __call__(
        self,
        stage: str,
        prompt: str,
        *,
        media: Sequence[InlineMedia] = (),
        thinking_level: ThinkingLevel | None = None,
        continuation: Continuation | None = None,
    ) -> Generation:
        logger.debug("EchoProvider stage=%s prompt_len=%d", stage, len(prompt))
        return Generation(text=prompt)


# ---------------------------------------------------------------------------
# ProviderError: raised for all connection and protocol failures
# ---------------------------------------------------------------------------

class ProviderError(RuntimeError):
    """Raised when the generative provider cannot be reached or misbehaves."""
