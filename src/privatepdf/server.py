import asyncio
import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from privatepdf import __version__
from privatepdf.api import router
from privatepdf.config import get_settings
from privatepdf.logging_config import setup_logging
from privatepdf.ollama.service import get_service

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    service = get_service()
    # Bounded: a hung kill command must not hold up exit
    await asyncio.to_thread(service.stop_on_exit)
    await service.cleanup()


def create_app() -> FastAPI:
    app = FastAPI(title="PrivatePDF backend", version=__version__, lifespan=lifespan)
    app.include_router(router)
    return app


def main() -> None:
    settings = get_settings()
    setup_logging(settings)
    logger.info("Starting PrivatePDF backend on 127.0.0.1:%d", settings.api_port)
    uvicorn.run(create_app(), host="127.0.0.1", port=settings.api_port, log_level="warning")


if __name__ == "__main__":
    main()
