"""Manual collection triggers and loop status."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException

from moodwatch.dependencies import Collection
from moodwatch.models.collection import (
    AudioEventRead,
    AudioTickResponse,
    ConfigReloadResponse,
    LoopStatusRead,
    ManualEventIn,
    ManualEventResponse,
    PeriodicSampleRead,
    PeriodicTickResponse,
    StatusResponse,
    WriteResultRead,
)
from moodwatch.sampling.base import EventType
from moodwatch.sampling.config_loader import (
    ConfigValidationError,
    get_sampling_config,
    reload_sampling_config,
)

router = APIRouter(tags=["collection"])


@router.post("/collect/periodic", response_model=PeriodicTickResponse)
async def collect_periodic(service: Collection) -> Any:
    """Run one periodic tick now, outside the schedule."""
    sample, write = await service.periodic.tick()
    return PeriodicTickResponse(
        sample=PeriodicSampleRead.model_validate(sample.to_document()),
        write=WriteResultRead.model_validate(write),
    )


@router.post("/collect/audio", response_model=AudioTickResponse)
async def collect_audio(service: Collection) -> Any:
    """Run one audio tick now, outside the schedule."""
    outcome = await service.audio.tick()
    return AudioTickResponse(
        action=outcome.action.value,
        timestamp=outcome.timestamp,
        level=outcome.features.level if outcome.features else None,
        is_silent=outcome.features.is_silent if outcome.features else None,
        event=(
            AudioEventRead.model_validate(outcome.record.to_document())
            if outcome.record
            else None
        ),
        write=WriteResultRead.model_validate(outcome.write) if outcome.write else None,
    )


@router.post("/events/dummy", response_model=ManualEventResponse, status_code=201)
async def send_dummy_event(body: ManualEventIn, service: Collection) -> Any:
    """Write a debug laughter/sigh event. Does not reset the dummy timer."""
    record, write = await service.audio.send_manual_event(EventType(body.event_type))
    return ManualEventResponse(
        event=AudioEventRead.model_validate(record.to_document()),
        write=WriteResultRead.model_validate(write),
    )


@router.get("/status", response_model=StatusResponse)
async def collection_status(service: Collection) -> Any:
    return StatusResponse(
        user_id=service.settings.user_id,
        sink=service.sink.BACKEND,
        sensor=service.sensor.capability().value,
        audio=service.audio.capture_capability().value,
        loops=[LoopStatusRead.model_validate(loop) for loop in service.status()],
    )


@router.post("/config/reload", response_model=ConfigReloadResponse)
async def reload_config() -> Any:
    """Re-read sampling_config.yaml; the loops use it from their next tick."""
    previous = get_sampling_config().version
    try:
        config = reload_sampling_config()
    except ConfigValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc
    return ConfigReloadResponse(previous_version=previous, version=config.version)
