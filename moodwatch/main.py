"""moodwatch API — FastAPI application entry point.

Hosts the collection loops for one wearable owner and the endpoints the
device uses to push live readings.

Run locally:
    uvicorn moodwatch.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import Depends, FastAPI

from moodwatch.config import get_settings
from moodwatch.dependencies import require_device_token
from moodwatch.routers import collection, health, sensor
from moodwatch.sampling.service import CollectionService
from moodwatch.services.factory import create_sink

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s — %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("moodwatch")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings = get_settings()
    logger.info(
        "Starting moodwatch v%s [%s] for user %s",
        settings.app_version,
        settings.environment,
        settings.user_id,
    )
    sink = create_sink(settings)
    await sink.open()
    service = CollectionService(settings, sink)
    app.state.collection = service
    service.start()
    try:
        yield
    finally:
        await service.stop()
        await sink.close()
        app.state.collection = None
        logger.info("moodwatch shut down")


# ---------- App factory ----------

def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="moodwatch API",
        description=(
            "Wearable companion collector — periodic biometric samples and "
            "audio events pushed to a document store."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ---------- Health check (outside v1 prefix — always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    v1_prefix = "/api/v1"
    device_auth = [Depends(require_device_token)]

    app.include_router(sensor.router, prefix=v1_prefix, dependencies=device_auth)
    app.include_router(collection.router, prefix=v1_prefix, dependencies=device_auth)

    return app


app = create_app()
