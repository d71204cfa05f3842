"""Live sensor ingestion: the device pushes heart-rate readings here."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter, HTTPException

from moodwatch.dependencies import Collection
from moodwatch.models.collection import HeartRateIn, HeartRateRead

router = APIRouter(prefix="/sensor", tags=["sensor"])
logger = logging.getLogger("moodwatch.routers.sensor")


@router.post("/heart-rate", response_model=HeartRateRead, status_code=202)
async def push_heart_rate(body: HeartRateIn, service: Collection) -> Any:
    try:
        reading = service.sensor.update(body.bpm, body.observed_at)
    except ValueError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    if reading is None:
        raise HTTPException(status_code=409, detail="Heart-rate sensor access is disabled")
    logger.debug("Heart-rate reading %.1f bpm at %d", reading.bpm, reading.observed_at)
    return HeartRateRead(bpm=reading.bpm, observed_at=reading.observed_at)


@router.get("/heart-rate", response_model=HeartRateRead)
async def get_heart_rate(service: Collection) -> Any:
    reading = service.sensor.latest()
    if reading is None:
        raise HTTPException(status_code=404, detail="No heart-rate reading yet")
    return HeartRateRead(bpm=reading.bpm, observed_at=reading.observed_at)
