"""Media blobs (uploads, panel images, videos).

Each entry is data/media/<id>.bin with a <id>.json MediaInfo sidecar.
"""

from pathlib import Path
from typing import Any

from ananse.models import MediaInfo, new_id

from .core import is_valid_id, media_dir, read_json, write_json


def _blob_path(media_id: str) -> Path:
    return media_dir() / f"{media_id}.bin"


def _info_path(media_id: str) -> Path:
    return media_dir() / f"{media_id}.json"


def put_media(
    data: bytes,
    filename: str,
    content_type: str = "application/octet-stream",
    metadata: dict[str, Any] | None = None,
) -> str:
    """Store a blob and return its new ID."""
    media_id = new_id()
    _blob_path(media_id).write_bytes(data)
    info = MediaInfo(
        id=media_id,
        filename=filename,
        content_type=content_type,
        size=len(data),
        metadata=metadata or {},
    )
    write_json(_info_path(media_id), info.model_dump(mode="json"))
    return media_id


def get_media_info(media_id: str) -> MediaInfo | None:
    if not is_valid_id(media_id):
        return None
    path = _info_path(media_id)
    if not path.is_file() or not _blob_path(media_id).is_file():
        return None
    return MediaInfo.model_validate(read_json(path))


def media_path(media_id: str) -> Path | None:
    """Filesystem path of a stored blob, or None if it doesn't exist."""
    if get_media_info(media_id) is None:
        return None
    return _blob_path(media_id)


def read_media(media_id: str) -> bytes | None:
    path = media_path(media_id)
    if path is None:
        return None
    return path.read_bytes()


def media_exists(media_id: str) -> bool:
    return get_media_info(media_id) is not None


def delete_media(media_id: str) -> bool:
    if get_media_info(media_id) is None:
        return False
    _blob_path(media_id).unlink()
    _info_path(media_id).unlink()
    return True
