"""Audio event loop: real events, dummy injection and manual events.

Every audio tick captures one window and classifies it.  A real (non-silent,
non-unknown) event is written to raw_events.  Otherwise, once more than
``dummy_interval_ms`` has passed since the last accepted event, a synthetic
laughter/sigh event is written so downstream consumers never go longer than
that without an event.
"""

from __future__ import annotations

import asyncio
import logging
import random
from dataclasses import dataclass

from moodwatch.sampling.audio.capture import AudioCapture
from moodwatch.sampling.audio.classifier import classify
from moodwatch.sampling.base import (
    DUMMY_EVENT_TYPES,
    AudioEventSample,
    Capability,
    Clock,
    EventType,
    TickAction,
    TickOutcome,
    system_clock,
)
from moodwatch.sampling.config_loader import DummyEventConfig, SamplingConfig, get_sampling_config
from moodwatch.services.sink import RAW_EVENTS, SinkWriter, WriteResult, collection_path

logger = logging.getLogger("moodwatch.sampling.audio.injector")


@dataclass
class InjectorState:
    """Epoch ms of the last accepted real event or injected dummy (0 = never)."""

    last_real_event_ms: int = 0


class DummyEventInjector:
    """Decide when a synthetic event is due and build it.

    Args:
        dummy_interval_ms: Maximum gap before a dummy is injected.
        config:            Dummy event constants; the global sampling config
                           is read per event when omitted.
        rng:               Random source for the event type.
        state:             Shared marker; a fresh one is created if omitted.
    """

    def __init__(
        self,
        dummy_interval_ms: int = 3_600_000,
        config: DummyEventConfig | None = None,
        rng: random.Random | None = None,
        state: InjectorState | None = None,
    ) -> None:
        self.dummy_interval_ms = dummy_interval_ms
        self._config = config
        self._rng = rng or random.Random()
        self.state = state or InjectorState()

    @property
    def config(self) -> DummyEventConfig:
        return self._config or get_sampling_config().dummy_event

    def is_due(self, now: int) -> bool:
        return now - self.state.last_real_event_ms > self.dummy_interval_ms

    def mark(self, now: int) -> None:
        self.state.last_real_event_ms = now

    def build(self, now: int) -> AudioEventSample:
        return AudioEventSample(
            timestamp=now,
            event_type_guess=self._rng.choice(DUMMY_EVENT_TYPES),
            event_dbfs=self.config.event_dbfs,
            event_duration_ms=self.config.event_duration_ms,
            audio_base64=None,
            is_fallback=True,
        )


class AudioEventCollector:
    """One audio tick: capture, classify, then write a real or dummy event.

    Ticks are serialized by a lock so the loop and manual triggers never race
    on the injector marker.
    """

    def __init__(
        self,
        user_id: str,
        capture: AudioCapture,
        injector: DummyEventInjector,
        writer: SinkWriter,
        window_ms: int = 2000,
        config: SamplingConfig | None = None,
        clock: Clock | None = None,
        rng: random.Random | None = None,
        storage_bucket: str = "mood-manager-storage",
    ) -> None:
        self._path = collection_path(user_id, RAW_EVENTS)
        self._storage_bucket = storage_bucket
        self._capture = capture
        self.injector = injector
        self._writer = writer
        self._window_ms = window_ms
        self._config = config
        self._clock = clock or system_clock
        self._rng = rng or random.Random()
        self._lock = asyncio.Lock()
        self.last_outcome: TickOutcome | None = None

    @property
    def config(self) -> SamplingConfig:
        return self._config or get_sampling_config()

    @property
    def collection_path(self) -> str:
        return self._path

    def capture_capability(self) -> Capability:
        return self._capture.source.capability()

    async def tick(self) -> TickOutcome:
        async with self._lock:
            outcome = await self._tick()
        self.last_outcome = outcome
        return outcome

    async def _tick(self) -> TickOutcome:
        now = self._clock()
        features = await self._capture.capture(self._window_ms)
        event_type = classify(features, self.config.classifier)

        if not features.is_silent and event_type is not EventType.UNKNOWN:
            record = AudioEventSample(
                timestamp=now,
                event_type_guess=event_type,
                event_dbfs=features.level,
                event_duration_ms=features.duration_ms,
                audio_base64=features.encoded_audio,
                is_fallback=False,
            )
            write = await self._writer.write(self._path, record.to_document())
            self.injector.mark(now)
            logger.info("Real audio event: %s (level=%d)", event_type.value, features.level)
            return TickOutcome(TickAction.REAL, record, write, features, now)

        if self.injector.is_due(now):
            record = self.injector.build(now)
            write = await self._writer.write(self._path, record.to_document())
            self.injector.mark(now)
            logger.info("Injected dummy audio event: %s", record.event_type_guess.value)
            return TickOutcome(TickAction.DUMMY, record, write, features, now)

        logger.debug("No audio event this tick (silent=%s)", features.is_silent)
        return TickOutcome(TickAction.SKIPPED, features=features, timestamp=now)

    async def send_manual_event(self, event_type: EventType) -> tuple[AudioEventSample, WriteResult]:
        """Write a debug event of the given type without touching the marker.

        The record names a placeholder ``storage_path`` in the audio bucket;
        no object is uploaded.

        Raises:
            ValueError: If ``event_type`` is UNKNOWN.
        """
        if event_type not in DUMMY_EVENT_TYPES:
            raise ValueError(f"Manual events must be one of {[t.value for t in DUMMY_EVENT_TYPES]}")
        de = self.config.dummy_event
        now = self._clock()
        record = AudioEventSample(
            timestamp=now,
            event_type_guess=event_type,
            event_dbfs=de.manual_dbfs.draw(self._rng),
            event_duration_ms=de.manual_duration_ms.draw(self._rng),
            audio_base64=None,
            is_fallback=True,
            storage_path=(
                f"gs://{self._storage_bucket}/audio/dummy_{event_type.value}_{now}.mp3"
            ),
        )
        write = await self._writer.write(self._path, record.to_document())
        logger.info("Manual audio event: %s", event_type.value)
        return record, write
