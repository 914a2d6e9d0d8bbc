"""API gateway entrypoint."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from libs.infra.debug_viewer import cleanup_pages, enable_debug
from services.api_gateway.dependencies import get_session_registry
from services.api_gateway.logging_config import setup_logging
from services.api_gateway.presentation.http.routes import router
from services.api_gateway.settings import get_settings

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_: FastAPI):
    settings = get_settings()
    setup_logging(settings.log_level)
    if settings.collision_debug:
        enable_debug()
    logger.info("Collision watch API started")
    yield
    await get_session_registry().close_all()
    cleanup_pages()
    logger.info("Collision watch API stopped")


app = FastAPI(title="Collision Watch API", lifespan=lifespan)
app.include_router(router)
