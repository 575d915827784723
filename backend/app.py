import logging
import os
from contextlib import asynccontextmanager
from pathlib import Path

from dotenv import load_dotenv
from fastapi import FastAPI

from backend import storage
from backend.chat import ChatHub
from backend.config import get_settings, setup_logging
from backend.routes import router, ws_router

load_dotenv(Path(__file__).parent.parent / ".env")

DEFAULT_DATA_DIR = Path(__file__).parent.parent / "data"

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Visual messages still generating belong to a process that no longer exists
    storage.reconcile_stale_visual_messages()
    logger.info("Ananse backend ready (data: %s)", storage.data_dir())
    yield


def create_app(data_dir: Path | None = None, hub: ChatHub | None = None) -> FastAPI:
    resolved = data_dir or Path(os.getenv("DATA_DIR", str(DEFAULT_DATA_DIR)))
    storage.init_storage(resolved)
    setup_logging(get_settings().log_level)

    app = FastAPI(title="Ananse", lifespan=lifespan)
    app.state.chat_hub = hub or ChatHub()
    app.include_router(router, prefix="/api")
    app.include_router(ws_router)
    return app


# Default app instance for uvicorn (uses DATA_DIR env var or default)
app = create_app()
