"""Tests for the audio event loop and dummy event injection."""

from __future__ import annotations

import base64
import random

import pytest

from moodwatch.sampling.audio.capture import AudioCapture, BufferAudioSource, NullAudioSource
from moodwatch.sampling.audio.injector import (
    AudioEventCollector,
    DummyEventInjector,
    InjectorState,
)
from moodwatch.sampling.audio.wav import parse_wav_header
from moodwatch.sampling.base import EventType, TickAction
from moodwatch.services.sink import RAW_EVENTS, InMemoryDocumentSink, SinkWriter, collection_path

INTERVAL_MS = 60_000
DUMMY_MS = 3_600_000
EVENTS_PATH = collection_path("testUser", RAW_EVENTS)


class _BrokenSink(InMemoryDocumentSink):
    async def put(self, collection_path, record, document_id=None):
        raise ConnectionError("offline")


def _collector(source, writer, clock, rng, sampling_config, last_ms: int = 0) -> AudioEventCollector:
    injector = DummyEventInjector(
        dummy_interval_ms=DUMMY_MS,
        config=sampling_config.dummy_event,
        rng=rng,
        state=InjectorState(last_real_event_ms=last_ms),
    )
    return AudioEventCollector(
        user_id="testUser",
        capture=AudioCapture(source, sampling_config.capture),
        injector=injector,
        writer=writer,
        window_ms=2000,
        config=sampling_config,
        clock=clock,
        rng=rng,
    )


class TestDummyEventInjector:
    def test_strictly_greater_than_interval(self) -> None:
        injector = DummyEventInjector(dummy_interval_ms=1000, state=InjectorState(500))
        assert not injector.is_due(1500)
        assert injector.is_due(1501)

    def test_build_uses_fixed_constants(self, rng: random.Random) -> None:
        injector = DummyEventInjector(rng=rng)
        record = injector.build(42)
        assert record.timestamp == 42
        assert record.event_type_guess in (EventType.LAUGHTER, EventType.SIGH)
        assert record.event_dbfs == 70
        assert record.event_duration_ms == 2000
        assert record.audio_base64 is None
        assert record.is_fallback is True

    def test_type_choice_is_seedable(self) -> None:
        a = DummyEventInjector(rng=random.Random(7))
        b = DummyEventInjector(rng=random.Random(7))
        assert [a.build(i).event_type_guess for i in range(20)] == [
            b.build(i).event_type_guess for i in range(20)
        ]

    def test_both_types_drawn(self, rng: random.Random) -> None:
        injector = DummyEventInjector(rng=rng)
        assert {injector.build(0).event_type_guess for _ in range(100)} == {
            EventType.LAUGHTER,
            EventType.SIGH,
        }


class TestAudioEventCollector:
    @pytest.mark.asyncio
    async def test_silence_inside_interval_writes_nothing(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(
            BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config,
            last_ms=clock.now - DUMMY_MS,
        )
        outcome = await collector.tick()
        assert outcome.action is TickAction.SKIPPED
        assert outcome.record is None
        assert memory_sink.count(EVENTS_PATH) == 0

    @pytest.mark.asyncio
    async def test_one_ms_past_interval_injects_once(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(
            BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config,
            last_ms=clock.now - DUMMY_MS,
        )
        await collector.tick()
        clock.advance(1)
        outcome = await collector.tick()
        assert outcome.action is TickAction.DUMMY
        assert collector.injector.state.last_real_event_ms == clock.now

        clock.advance(INTERVAL_MS)
        assert (await collector.tick()).action is TickAction.SKIPPED

        docs = memory_sink.documents(EVENTS_PATH)
        assert len(docs) == 1
        (doc,) = docs.values()
        assert doc["is_fallback"] is True
        assert doc["event_dbfs"] == 70
        assert doc["event_duration_ms"] == 2000
        assert doc["audio_base64"] is None
        assert doc["event_type_guess"] in ("laughter", "sigh")

    @pytest.mark.asyncio
    async def test_dummy_after_long_quiet_stretch(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(
            BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config,
            last_ms=clock.now,
        )
        clock.advance(3_700_000)
        outcome = await collector.tick()
        assert outcome.action is TickAction.DUMMY
        assert outcome.write.ok
        assert memory_sink.count(EVENTS_PATH) == 1

    @pytest.mark.asyncio
    async def test_first_quiet_tick_injects_immediately(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config)
        assert (await collector.tick()).action is TickAction.DUMMY

    @pytest.mark.asyncio
    async def test_laughter_is_written_as_real_event(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        source = BufferAudioSource(tone(21299))
        collector = _collector(source, writer, clock, rng, sampling_config, last_ms=clock.now)
        clock.advance(INTERVAL_MS)
        outcome = await collector.tick()

        assert outcome.action is TickAction.REAL
        assert collector.injector.state.last_real_event_ms == clock.now
        assert source.opened == source.released == 1
        (doc,) = memory_sink.documents(EVENTS_PATH).values()
        assert doc["event_type_guess"] == "laughter"
        assert doc["event_dbfs"] == 65
        assert doc["event_duration_ms"] == 2000
        assert doc["is_fallback"] is False
        assert doc["timestamp"] == clock.now
        header = parse_wav_header(base64.b64decode(doc["audio_base64"]))
        assert header.sample_rate == 8000

    @pytest.mark.asyncio
    async def test_sigh_is_written_as_real_event(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(BufferAudioSource(tone(13107)), writer, clock, rng, sampling_config)
        outcome = await collector.tick()
        assert outcome.action is TickAction.REAL
        assert outcome.record.event_type_guess is EventType.SIGH
        assert outcome.record.event_dbfs == 40

    @pytest.mark.asyncio
    async def test_real_event_defers_dummy(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        loud = _collector(BufferAudioSource(tone(21299)), writer, clock, rng, sampling_config)
        await loud.tick()
        quiet = AudioEventCollector(
            user_id="testUser",
            capture=AudioCapture(BufferAudioSource(tone(1000))),
            injector=loud.injector,
            writer=writer,
            config=sampling_config,
            clock=clock,
            rng=rng,
        )
        clock.advance(DUMMY_MS)
        assert (await quiet.tick()).action is TickAction.SKIPPED
        clock.advance(1)
        assert (await quiet.tick()).action is TickAction.DUMMY
        assert memory_sink.count(EVENTS_PATH) == 2

    @pytest.mark.asyncio
    async def test_denied_microphone_still_injects(
        self, writer, memory_sink, clock, rng, sampling_config
    ) -> None:
        collector = _collector(NullAudioSource(), writer, clock, rng, sampling_config)
        outcome = await collector.tick()
        assert outcome.features.is_silent
        assert outcome.action is TickAction.DUMMY

    @pytest.mark.asyncio
    async def test_failed_write_still_moves_marker(
        self, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(
            BufferAudioSource(tone(1000)), SinkWriter(_BrokenSink()), clock, rng, sampling_config
        )
        outcome = await collector.tick()
        assert outcome.action is TickAction.DUMMY
        assert not outcome.write.ok
        assert collector.injector.state.last_real_event_ms == clock.now

    @pytest.mark.asyncio
    async def test_last_outcome_recorded(
        self, writer, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config)
        assert collector.last_outcome is None
        outcome = await collector.tick()
        assert collector.last_outcome is outcome


class TestManualEvents:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("event_type", [EventType.LAUGHTER, EventType.SIGH])
    async def test_manual_event_ranges(
        self, event_type, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(
            BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config, last_ms=123
        )
        for _ in range(50):
            record, write = await collector.send_manual_event(event_type)
            assert write.ok
            assert record.event_type_guess is event_type
            assert 50 <= record.event_dbfs <= 85
            assert 500 <= record.event_duration_ms <= 4000
            assert record.is_fallback is True
            assert record.audio_base64 is None
        assert memory_sink.count(EVENTS_PATH) == 50
        assert collector.injector.state.last_real_event_ms == 123

    @pytest.mark.asyncio
    async def test_unknown_rejected(self, writer, memory_sink, clock, rng, sampling_config, tone) -> None:
        collector = _collector(BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config)
        with pytest.raises(ValueError):
            await collector.send_manual_event(EventType.UNKNOWN)
        assert memory_sink.count(EVENTS_PATH) == 0

    @pytest.mark.asyncio
    async def test_manual_event_names_storage_path(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config)
        record, write = await collector.send_manual_event(EventType.LAUGHTER)
        expected = f"gs://mood-manager-storage/audio/dummy_laughter_{clock.now}.mp3"
        assert record.storage_path == expected
        assert memory_sink.documents(EVENTS_PATH)[write.document_id]["storage_path"] == expected

    @pytest.mark.asyncio
    async def test_loop_events_carry_no_storage_path(
        self, writer, memory_sink, clock, rng, sampling_config, tone
    ) -> None:
        collector = _collector(BufferAudioSource(tone(1000)), writer, clock, rng, sampling_config)
        outcome = await collector.tick()
        assert outcome.action is TickAction.DUMMY
        assert "storage_path" not in memory_sink.documents(EVENTS_PATH)[outcome.write.document_id]
