"""Health check endpoint."""

from fastapi import APIRouter

from ananse.models import utcnow

from backend.config import get_settings

router = APIRouter()


@router.get("/health")
async def health():
    """Health check plus the feature flags the service is running with."""
    settings = get_settings()
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "imageGeneration": settings.enable_image_generation,
        "videoGeneration": settings.enable_video_generation,
        "imageProvider": settings.image_provider,
    }
