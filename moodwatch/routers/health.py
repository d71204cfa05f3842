"""Health check endpoint — public, no auth required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from moodwatch.dependencies import AppSettings, Collection

router = APIRouter(tags=["system"])
logger = logging.getLogger("moodwatch.health")


@router.get("/health")
async def health_check(settings: AppSettings, service: Collection) -> dict:
    """Liveness probe. Returns 200 if the process is up.

    Also probes the document sink.
    """
    sink_ok = False
    try:
        sink_ok = await service.sink.ping()
    except Exception as exc:
        logger.warning("Health check sink probe failed: %s", exc)

    return {
        "status": "healthy" if sink_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "sink": service.sink.BACKEND,
        "sink_reachable": sink_ok,
        "collecting": service.running,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
