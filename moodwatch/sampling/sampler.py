"""Periodic biometric sampling.

Each tick builds one PeriodicSample.  With a fresh live heart-rate reading the
heart-rate fields are derived from it; otherwise every field is drawn from the
fallback ranges in sampling_config.yaml.  HRV, respiration and movement are
always synthesized.
"""

from __future__ import annotations

import logging
import math
import random

from moodwatch.sampling.base import Capability, Clock, PeriodicSample, system_clock
from moodwatch.sampling.config_loader import SamplingConfig, get_sampling_config
from moodwatch.sampling.sensor import HeartRateSensor
from moodwatch.services.sink import RAW_PERIODIC, SinkWriter, WriteResult, collection_path

logger = logging.getLogger("moodwatch.sampling.sampler")


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class PeriodicSampler:
    """Build PeriodicSample records from an optional live reading.

    Args:
        config: Sampling thresholds. Defaults to the global config.
        rng:    Random source; pass a seeded ``random.Random`` for reproducibility.
    """

    def __init__(
        self,
        config: SamplingConfig | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._rng = rng or random.Random()

    @property
    def config(self) -> SamplingConfig:
        return self._config or get_sampling_config()

    def sample(self, reading: float | None, timestamp: int) -> PeriodicSample:
        """Return the sample for one tick.

        Args:
            reading:   Live heart rate in bpm, or None when unavailable.
            timestamp: Tick time in epoch ms.
        """
        cfg = self.config
        if reading is not None:
            hr = cfg.heart_rate
            live = cfg.live_ranges
            avg = round_half_up(reading)
            return PeriodicSample(
                timestamp=timestamp,
                heart_rate_avg=avg,
                heart_rate_min=max(hr.floor_bpm, avg - hr.min_offset_bpm),
                heart_rate_max=min(hr.ceiling_bpm, avg + hr.max_offset_bpm),
                hrv_sdnn=live["hrv_sdnn"].draw(self._rng),
                respiratory_rate_avg=live["respiratory_rate_avg"].draw(self._rng),
                movement_count=live["movement_count"].draw(self._rng),
                is_fallback=False,
            )

        fb = cfg.fallback_ranges
        return PeriodicSample(
            timestamp=timestamp,
            heart_rate_avg=fb["heart_rate_avg"].draw(self._rng),
            heart_rate_min=fb["heart_rate_min"].draw(self._rng),
            heart_rate_max=fb["heart_rate_max"].draw(self._rng),
            hrv_sdnn=fb["hrv_sdnn"].draw(self._rng),
            respiratory_rate_avg=fb["respiratory_rate_avg"].draw(self._rng),
            movement_count=fb["movement_count"].draw(self._rng),
            is_fallback=True,
        )


class PeriodicCollector:
    """One periodic tick: read the sensor, sample, write to raw_periodic.

    A reading counts as live only if it was observed within one tick interval,
    i.e. no earlier than the previous tick.
    """

    def __init__(
        self,
        user_id: str,
        sensor: HeartRateSensor,
        sampler: PeriodicSampler,
        writer: SinkWriter,
        interval_ms: int,
        clock: Clock | None = None,
        first_reading_wait_ms: int = 0,
    ) -> None:
        self._path = collection_path(user_id, RAW_PERIODIC)
        self._sensor = sensor
        self._sampler = sampler
        self._writer = writer
        self._interval_ms = interval_ms
        self._clock = clock or system_clock
        self._first_reading_wait_ms = first_reading_wait_ms
        self._first_tick_done = False
        self.last_sample: PeriodicSample | None = None
        self.last_write: WriteResult | None = None

    @property
    def collection_path(self) -> str:
        return self._path

    async def tick(self) -> tuple[PeriodicSample, WriteResult]:
        if not self._first_tick_done:
            self._first_tick_done = True
            if self._first_reading_wait_ms > 0:
                await self._sensor.wait_for_reading(self._first_reading_wait_ms)

        now = self._clock()
        reading = None
        if self._sensor.capability() is Capability.AVAILABLE:
            reading = self._sensor.fresh_bpm(now, self._interval_ms)

        sample = self._sampler.sample(reading, now)
        result = await self._writer.write(
            self._path, sample.to_document(), document_id=sample.document_id
        )
        self.last_sample, self.last_write = sample, result

        if result.ok:
            logger.info(
                "Periodic sample %s written (hr=%d, fallback=%s)",
                sample.document_id,
                sample.heart_rate_avg,
                sample.is_fallback,
            )
        return sample, result
