"""Latest-value heart-rate sensor.

The device pushes readings whenever its optical sensor produces one
(``POST /api/v1/sensor/heart-rate``).  The periodic sampler reads the most
recent value without blocking.  No reading at all is a normal state.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

from moodwatch.sampling.base import Capability, Clock, system_clock

logger = logging.getLogger("moodwatch.sampling.sensor")


@dataclass(frozen=True)
class HeartRateReading:
    bpm: float
    observed_at: int  # epoch ms


class HeartRateSensor:
    """Holds the most recent heart-rate reading.

    Args:
        enabled:     False models a device where body-sensor access was denied.
                     Updates are then ignored and ``capability()`` is DENIED.
        clock:       Epoch-ms clock used when a reading carries no timestamp.
        max_skew_ms: How far ahead of ``clock`` an ``observed_at`` may be.
                     Stamps slightly ahead are clamped to now; anything
                     further ahead is rejected.
    """

    def __init__(
        self,
        enabled: bool = True,
        clock: Clock | None = None,
        max_skew_ms: int = 5_000,
    ) -> None:
        self._enabled = enabled
        self._max_skew_ms = max_skew_ms
        self._clock = clock or system_clock
        self._latest: HeartRateReading | None = None
        self._arrived = asyncio.Event()

    def capability(self) -> Capability:
        return Capability.AVAILABLE if self._enabled else Capability.DENIED

    def update(self, bpm: float, observed_at: int | None = None) -> HeartRateReading | None:
        """Record a new reading. Returns None when the sensor is disabled.

        Raises:
            ValueError: If ``observed_at`` is more than ``max_skew_ms`` ahead
                of the clock.
        """
        if not self._enabled:
            logger.debug("Sensor disabled; dropping reading %.1f bpm", bpm)
            return None
        now = self._clock()
        if observed_at is None:
            observed_at = now
        elif observed_at > now + self._max_skew_ms:
            raise ValueError(
                f"observed_at {observed_at} is {observed_at - now} ms ahead of the clock"
            )
        reading = HeartRateReading(bpm=bpm, observed_at=min(observed_at, now))
        # Out-of-order deliveries never replace a newer reading
        if self._latest is None or reading.observed_at >= self._latest.observed_at:
            self._latest = reading
        self._arrived.set()
        return reading

    def latest(self) -> HeartRateReading | None:
        if not self._enabled:
            return None
        return self._latest

    def fresh_bpm(self, now: int, max_age_ms: int) -> float | None:
        """Return the latest bpm if it was observed within ``max_age_ms`` of ``now``."""
        reading = self.latest()
        if reading is None:
            return None
        age = now - reading.observed_at
        if age < 0 or age > max_age_ms:
            logger.debug(
                "Latest reading is unusable (%d ms old, limit %d ms)",
                age,
                max_age_ms,
            )
            return None
        return reading.bpm

    async def wait_for_reading(self, timeout_ms: int) -> bool:
        """Wait up to ``timeout_ms`` for any reading to arrive.

        Returns True if a reading is available.
        """
        if self.latest() is not None:
            return True
        if not self._enabled or timeout_ms <= 0:
            return False
        try:
            await asyncio.wait_for(self._arrived.wait(), timeout=timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            return False
        return self.latest() is not None
