"""Storage initialization, path helpers, and JSON read/write helpers."""

import json
import re
from pathlib import Path
from typing import Any

_data_dir: Path | None = None
_presets_dir: Path | None = None

_ID_RE = re.compile(r"^[0-9a-f]{32}$")


def is_valid_id(value: str) -> bool:
    """Record and media IDs are 32 lowercase hex chars."""
    return bool(_ID_RE.match(value or ""))


def init_storage(data_dir: Path, presets_dir: Path | None = None) -> None:
    global _data_dir, _presets_dir

    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    for path in (stories_dir(), rooms_dir(), messages_dir(), media_dir(), styles_dir()):
        path.mkdir(parents=True, exist_ok=True)
    if presets_dir is None:
        # Default: repo_root/presets
        presets_dir = Path(__file__).parent.parent.parent / "presets"
    _presets_dir = presets_dir


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def presets_dir() -> Path:
    assert _presets_dir is not None, "Call init_storage() before using storage"
    return _presets_dir


def stories_dir() -> Path:
    return data_dir() / "stories"


def rooms_dir() -> Path:
    return data_dir() / "chat" / "rooms"


def messages_dir() -> Path:
    return data_dir() / "chat" / "messages"


def media_dir() -> Path:
    return data_dir() / "media"


def styles_dir() -> Path:
    return data_dir() / "styles"


def read_json(path: Path) -> Any:
    return json.loads(path.read_text())


def write_json(path: Path, data: Any) -> None:
    """Write via a temp file + rename so readers never see a half-written file."""
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2))
    tmp.replace(path)
