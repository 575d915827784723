"""FastAPI API endpoints under /api, plus the /ws chat socket.

Endpoint groups: health, stories (submit + poll), feed (paginated complete
stories, views, likes), files (media streaming), styles, chat (rooms +
history). The websocket router is mounted at the app root.
"""

from fastapi import APIRouter

from .chat import router as chat_router
from .chat import ws_router  # noqa: F401
from .feed import router as feed_router
from .files import router as files_router
from .settings import router as settings_router
from .stories import router as stories_router
from .styles import router as styles_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(stories_router)
router.include_router(feed_router)
router.include_router(files_router)
router.include_router(styles_router)
router.include_router(chat_router)
