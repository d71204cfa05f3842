"""Collection service: owns the periodic and audio loops.

Wires together:
1. HeartRateSensor fed by the HTTP API
2. PeriodicCollector on the periodic ticker → users/{uid}/raw_periodic
3. AudioEventCollector on the audio ticker   → users/{uid}/raw_events
4. The document sink, wrapped in a SinkWriter

Default intervals:
    periodic: 60 s
    audio:    60 s (2 s capture window)
    dummy:    1 h without an accepted event
"""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from typing import Any

from moodwatch.config import Settings
from moodwatch.sampling.audio.capture import ArecordSource, AudioCapture, AudioSource, NullAudioSource
from moodwatch.sampling.audio.injector import AudioEventCollector, DummyEventInjector
from moodwatch.sampling.base import Clock, system_clock
from moodwatch.sampling.config_loader import SamplingConfig
from moodwatch.sampling.sampler import PeriodicCollector, PeriodicSampler
from moodwatch.sampling.sensor import HeartRateSensor
from moodwatch.sampling.ticker import Ticker
from moodwatch.services.sink import DocumentSink, SinkWriter

logger = logging.getLogger("moodwatch.sampling.service")


def create_audio_source(settings: Settings) -> AudioSource:
    backend = settings.audio_backend.strip().lower()
    if backend == "arecord":
        return ArecordSource(device=settings.audio_device, sample_rate=settings.sample_rate_hz)
    if backend == "none":
        return NullAudioSource()
    raise KeyError(f"Unknown audio backend '{backend}'. Available: ['arecord', 'none']")


@dataclass
class LoopStatus:
    """Snapshot of one loop for the status endpoint."""

    name: str
    enabled: bool
    running: bool
    interval_ms: int
    ticks: int = 0
    errors: int = 0
    last: dict[str, Any] = field(default_factory=dict)


class CollectionService:
    """Build and run both collection loops.

    Usage::

        service = CollectionService(settings, sink)
        service.start()     # inside the running event loop
        ...
        await service.stop()

    Args:
        settings:     Application settings.
        sink:         Document sink the loops write to.
        config:       Pinned sampling thresholds.  When omitted every component
                      reads the global config per tick, so
                      ``reload_sampling_config()`` applies to the running loops.
        audio_source: Override the source chosen by ``settings.audio_backend``.
        clock:        Epoch-ms clock shared by every component.
        rng:          Random source; seeded from ``settings.random_seed`` if omitted.
    """

    def __init__(
        self,
        settings: Settings,
        sink: DocumentSink,
        config: SamplingConfig | None = None,
        audio_source: AudioSource | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self.settings = settings
        self.sink = sink
        clock = clock or system_clock
        rng = rng or random.Random(settings.random_seed)

        self.writer = SinkWriter(
            sink,
            max_retries=settings.sink_max_retries,
            backoff_ms=settings.sink_retry_backoff_ms,
        )
        self.sensor = HeartRateSensor(
            enabled=settings.sensor_enabled,
            clock=clock,
            max_skew_ms=settings.sensor_max_skew_ms,
        )
        self.periodic = PeriodicCollector(
            user_id=settings.user_id,
            sensor=self.sensor,
            sampler=PeriodicSampler(config=config, rng=rng),
            writer=self.writer,
            interval_ms=settings.periodic_interval_ms,
            clock=clock,
            first_reading_wait_ms=settings.first_reading_wait_ms,
        )
        self.audio = AudioEventCollector(
            user_id=settings.user_id,
            capture=AudioCapture(
                audio_source or create_audio_source(settings),
                config.capture if config else None,
            ),
            injector=DummyEventInjector(
                dummy_interval_ms=settings.dummy_interval_ms,
                config=config.dummy_event if config else None,
                rng=rng,
            ),
            writer=self.writer,
            window_ms=settings.capture_window_ms,
            config=config,
            clock=clock,
            rng=rng,
            storage_bucket=settings.storage_bucket,
        )
        self.periodic_ticker = Ticker("periodic")
        self.audio_ticker = Ticker("audio")

    def start(self) -> None:
        """Start the enabled loops. Both fire once immediately."""
        if self.settings.enable_periodic_loop:
            self.periodic_ticker.start(self.settings.periodic_interval_ms, self.periodic.tick)
        if self.settings.enable_audio_loop:
            self.audio_ticker.start(self.settings.event_interval_ms, self.audio.tick)
        logger.info(
            "Collection started for user %s (periodic=%s, audio=%s, sink=%s)",
            self.settings.user_id,
            self.periodic_ticker.running,
            self.audio_ticker.running,
            self.sink.BACKEND,
        )

    async def stop(self) -> None:
        """Halt both loops immediately."""
        await self.periodic_ticker.stop()
        await self.audio_ticker.stop()
        logger.info("Collection stopped")

    @property
    def running(self) -> bool:
        return self.periodic_ticker.running or self.audio_ticker.running

    def status(self) -> list[LoopStatus]:
        periodic_last: dict[str, Any] = {}
        if self.periodic.last_sample is not None:
            periodic_last = {
                "timestamp": self.periodic.last_sample.timestamp,
                "is_fallback": self.periodic.last_sample.is_fallback,
                "write_ok": self.periodic.last_write.ok if self.periodic.last_write else None,
            }
        audio_last: dict[str, Any] = {}
        outcome = self.audio.last_outcome
        if outcome is not None:
            audio_last = {
                "timestamp": outcome.timestamp,
                "action": outcome.action.value,
                "write_ok": outcome.write.ok if outcome.write else None,
            }
        audio_last["last_real_event_ms"] = self.audio.injector.state.last_real_event_ms

        return [
            LoopStatus(
                name="periodic",
                enabled=self.settings.enable_periodic_loop,
                running=self.periodic_ticker.running,
                interval_ms=self.settings.periodic_interval_ms,
                ticks=self.periodic_ticker.tick_count,
                errors=self.periodic_ticker.error_count,
                last=periodic_last,
            ),
            LoopStatus(
                name="audio",
                enabled=self.settings.enable_audio_loop,
                running=self.audio_ticker.running,
                interval_ms=self.settings.event_interval_ms,
                ticks=self.audio_ticker.tick_count,
                errors=self.audio_ticker.error_count,
                last=audio_last,
            ),
        ]
