"""Fixed-interval async ticker.

A Ticker invokes its callback once immediately and then every ``interval_ms``
until stopped.  Ticks never overlap: the next sleep starts only after the
callback returns.

Failure policy: an exception raised by the callback is logged with its
traceback and the ticker keeps running.  Cancellation is the only way to end
the loop.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

logger = logging.getLogger("moodwatch.sampling.ticker")

TickCallback = Callable[[], Awaitable[object]]


class Ticker:
    """Run an async callback on a fixed interval.

    Usage::

        ticker = Ticker("periodic")
        ticker.start(60_000, collector.tick)
        ...
        await ticker.stop()
    """

    def __init__(self, name: str) -> None:
        self.name = name
        self._interval_ms: int | None = None
        self._task: asyncio.Task | None = None
        self.tick_count = 0
        self.error_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def interval_ms(self) -> int | None:
        return self._interval_ms

    def start(self, interval_ms: int, callback: TickCallback) -> None:
        """Schedule ``callback`` now and every ``interval_ms`` afterwards.

        Must be called from inside a running event loop.

        Raises:
            ValueError:   If ``interval_ms`` is not positive.
            RuntimeError: If the ticker is already running.
        """
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        if self.running:
            raise RuntimeError(f"Ticker '{self.name}' is already running")
        self._interval_ms = interval_ms
        self._task = asyncio.create_task(
            self._run(interval_ms / 1000.0, callback), name=f"ticker:{self.name}"
        )
        logger.info("Ticker '%s' started (every %d ms)", self.name, interval_ms)

    async def stop(self) -> None:
        """Cancel the loop, including a tick that is already scheduled."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Ticker '%s' stopped after %d ticks", self.name, self.tick_count)

    async def _run(self, interval_s: float, callback: TickCallback) -> None:
        while True:
            self.tick_count += 1
            try:
                await callback()
            except asyncio.CancelledError:
                raise
            except Exception:
                self.error_count += 1
                logger.exception("Ticker '%s': tick %d failed", self.name, self.tick_count)
            await asyncio.sleep(interval_s)
