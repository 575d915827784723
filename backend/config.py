"""Environment-driven settings.

Values come from the process environment (a `.env` at the repo root is loaded
by the app). get_settings() caches the parsed result; tests swap it out with
set_settings().
"""

import logging
import os
import sys

from pydantic import BaseModel, field_validator


class ConfigError(RuntimeError):
    """Raised for invalid or unknown configuration values."""


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "")
    try:
        return float(raw) if raw else default
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "")
    try:
        return int(raw) if raw else default
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


class Settings(BaseModel):
    # Feature flags
    enable_image_generation: bool = False
    enable_video_generation: bool = False
    video_generation_probability: float = 0.25
    video_image_model: str = ""
    default_video_style: str = "motion-comic"

    # Visual chat
    visual_chat_daily_limit: int = 5
    visual_chat_concurrency: int = 2

    # Providers
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    image_provider: str = "gemini-image"
    gemini_image_model: str = "gemini-2.5-flash-image"
    gemini_image_aspect_ratio: str = "1:1"
    stability_api_key: str = ""
    stability_engine: str = "stable-diffusion-xl-1024-v1-0"
    provider_timeout: float = 120.0
    video_timeout: float = 600.0
    image_delay_seconds: float = 1.0
    visual_panel_delay_seconds: float = 0.5

    # Uploads
    max_file_size_audio: int = 10 * 1024 * 1024
    max_file_size_image: int = 5 * 1024 * 1024

    log_level: str = "INFO"

    @field_validator("video_generation_probability")
    @classmethod
    def _clamp_probability(cls, value: float) -> float:
        return min(1.0, max(0.0, value))


def load_settings() -> Settings:
    """Build settings from environment variables."""
    return Settings(
        enable_image_generation=_env_bool("ENABLE_IMAGE_GENERATION"),
        enable_video_generation=_env_bool("ENABLE_VIDEO_GENERATION"),
        video_generation_probability=_env_float("VIDEO_GENERATION_PROBABILITY", 0.25),
        video_image_model=os.getenv("VIDEO_IMAGE_MODEL", ""),
        default_video_style=os.getenv("DEFAULT_VIDEO_STYLE", "motion-comic"),
        visual_chat_daily_limit=_env_int("VISUAL_CHAT_DAILY_LIMIT", 5),
        visual_chat_concurrency=_env_int("VISUAL_CHAT_CONCURRENCY", 2),
        gemini_api_key=os.getenv("GEMINI_API_KEY", ""),
        gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.5-flash"),
        image_provider=os.getenv("IMAGE_PROVIDER", "gemini-image"),
        gemini_image_model=os.getenv("GEMINI_IMAGE_MODEL", "gemini-2.5-flash-image"),
        gemini_image_aspect_ratio=os.getenv("GEMINI_IMAGE_ASPECT_RATIO", "1:1"),
        stability_api_key=os.getenv("STABILITY_API_KEY", ""),
        stability_engine=os.getenv("STABILITY_ENGINE", "stable-diffusion-xl-1024-v1-0"),
        provider_timeout=_env_float("PROVIDER_TIMEOUT", 120.0),
        video_timeout=_env_float("VIDEO_TIMEOUT", 600.0),
        image_delay_seconds=_env_float("IMAGE_DELAY_SECONDS", 1.0),
        visual_panel_delay_seconds=_env_float("VISUAL_PANEL_DELAY_SECONDS", 0.5),
        max_file_size_audio=_env_int("MAX_FILE_SIZE_AUDIO", 10 * 1024 * 1024),
        max_file_size_image=_env_int("MAX_FILE_SIZE_IMAGE", 5 * 1024 * 1024),
        log_level=os.getenv("LOG_LEVEL", "INFO"),
    )


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def set_settings(settings: Settings | None) -> None:
    """Replace the cached settings (None forces a reload from the environment)."""
    global _settings
    _settings = settings


def setup_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
    )
