"""FastAPI application entrypoint."""
import os
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from channel_poster_api.logging import configure_logging
from channel_poster_api.routers import health, config, uploads, jobs
from channel_poster_api.settings import get_settings
from channel_poster_core.jobs import get_registry

configure_logging(os.environ.get("LOG_LEVEL", "INFO"))
logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Stop running jobs when the server shuts down."""
    logger.info("api_starting")
    yield
    logger.info("api_stopping")
    await get_registry().shutdown()


app = FastAPI(title="Channel Poster API", version="1.0.0", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router, prefix="/api")
app.include_router(config.router, prefix="/api")
app.include_router(uploads.router, prefix="/api")
app.include_router(jobs.router, prefix="/api")
