"""Media streaming endpoints."""

from fastapi import APIRouter, HTTPException
from fastapi.responses import FileResponse

from backend import storage

router = APIRouter()


def _media_response(media_id: str, default_type: str, prefix: str = "", **headers: str) -> FileResponse:
    if not storage.is_valid_id(media_id):
        raise HTTPException(400, "Invalid file id")
    info = storage.get_media_info(media_id)
    path = storage.media_path(media_id)
    if info is None or path is None:
        raise HTTPException(404, "File not found")
    media_type = info.content_type
    if not media_type.startswith(prefix) or media_type == "application/octet-stream":
        media_type = default_type
    return FileResponse(
        path,
        media_type=media_type,
        headers={"Accept-Ranges": "bytes", **headers},
    )


@router.get("/files/audio/{media_id}")
async def get_audio(media_id: str):
    """Stream an audio file."""
    return _media_response(media_id, "audio/mpeg", prefix="audio/")


@router.get("/files/image/{media_id}")
async def get_image(media_id: str):
    """Stream an image file."""
    return _media_response(
        media_id, "image/png", prefix="image/", **{"Cache-Control": "public, max-age=86400"},
    )


@router.get("/files/video/{media_id}")
async def get_video(media_id: str):
    """Stream a story video."""
    return _media_response(media_id, "video/mp4", prefix="video/")


@router.get("/files/{media_id}")
async def get_file(media_id: str):
    """Stream any stored file with its recorded content type."""
    return _media_response(media_id, "application/octet-stream")
