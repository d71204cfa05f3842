"""Pydantic models for the sensor and collection endpoints."""

from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from moodwatch.models.base import MoodwatchBase


# ---------- Sensor ----------


class HeartRateIn(MoodwatchBase):
    bpm: float = Field(gt=20, lt=250)
    observed_at: int | None = Field(default=None, ge=0, description="Epoch ms")


class HeartRateRead(MoodwatchBase):
    bpm: float
    observed_at: int


# ---------- Records ----------


class PeriodicSampleRead(MoodwatchBase):
    timestamp: int
    heart_rate_avg: int
    heart_rate_min: int
    heart_rate_max: int
    hrv_sdnn: int
    respiratory_rate_avg: int
    movement_count: int
    is_fallback: bool


class AudioEventRead(MoodwatchBase):
    timestamp: int
    event_type_guess: Literal["laughter", "sigh", "unknown"]
    event_dbfs: int
    event_duration_ms: int
    audio_base64: str | None = None
    is_fallback: bool
    storage_path: str | None = None


class WriteResultRead(MoodwatchBase):
    ok: bool
    collection_path: str
    document_id: str | None = None
    error: str | None = None
    attempts: int


# ---------- Responses ----------


class PeriodicTickResponse(MoodwatchBase):
    sample: PeriodicSampleRead
    write: WriteResultRead


class AudioTickResponse(MoodwatchBase):
    action: Literal["real", "dummy", "skipped"]
    timestamp: int
    level: int | None = None
    is_silent: bool | None = None
    event: AudioEventRead | None = None
    write: WriteResultRead | None = None


class ManualEventIn(MoodwatchBase):
    event_type: Literal["laughter", "sigh"]


class ManualEventResponse(MoodwatchBase):
    event: AudioEventRead
    write: WriteResultRead


class LoopStatusRead(MoodwatchBase):
    name: str
    enabled: bool
    running: bool
    interval_ms: int
    ticks: int
    errors: int
    last: dict[str, Any]


class StatusResponse(MoodwatchBase):
    user_id: str
    sink: str
    sensor: Literal["available", "denied"]
    audio: Literal["available", "denied"]
    loops: list[LoopStatusRead]


class ConfigReloadResponse(MoodwatchBase):
    previous_version: str
    version: str
