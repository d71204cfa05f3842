"""Short-window audio capture and feature extraction.

Sources hand back raw mono S16_LE PCM.  ``AudioCapture`` acquires a source
right before the window and releases it on every exit path, then reduces the
PCM to ``AudioFeatures``.  Nothing here raises into the tick loop: a denied
source, a crashed recorder or an empty window all become a silent capture.
"""

from __future__ import annotations

import asyncio
import logging
import math
import shutil
from abc import ABC, abstractmethod
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import AsyncIterator

import numpy as np

from moodwatch.sampling.audio.wav import encode_wav_base64
from moodwatch.sampling.base import AudioFeatures, Capability
from moodwatch.sampling.config_loader import CaptureConfig, get_sampling_config

logger = logging.getLogger("moodwatch.sampling.audio")

FULL_SCALE = 32767
BYTES_PER_SAMPLE = 2


def analyze_pcm(
    pcm: bytes | np.ndarray,
    duration_ms: int,
    sample_rate: int,
    config: CaptureConfig | None = None,
) -> AudioFeatures:
    """Summarize one window of 16-bit mono samples.

    ``level`` is the RMS amplitude as a percentage of full scale.  The window
    is silent when fewer than ``silence_fraction`` of samples exceed
    ``loud_amplitude`` in absolute value.  Audio is only encoded for
    non-silent windows.
    """
    cfg = config or CaptureConfig()
    if isinstance(pcm, np.ndarray):
        samples = pcm.astype(np.int16, copy=False)
    else:
        usable = len(pcm) - (len(pcm) % BYTES_PER_SAMPLE)
        samples = np.frombuffer(pcm[:usable], dtype="<i2")

    if samples.size == 0:
        return AudioFeatures(level=cfg.fallback_level, duration_ms=duration_ms, is_silent=True)

    wide = samples.astype(np.float64)
    rms = float(np.sqrt(np.mean(wide * wide)))
    pct = min(max(rms / FULL_SCALE * 100.0, 0.0), 100.0)
    level = int(math.floor(pct + 0.5))
    loud = int(np.count_nonzero(np.abs(wide) > cfg.loud_amplitude))
    silent = (loud / samples.size) < cfg.silence_fraction

    encoded = None if silent else encode_wav_base64(samples, sample_rate)
    return AudioFeatures(
        level=level, duration_ms=duration_ms, is_silent=silent, encoded_audio=encoded
    )


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class AudioSource(ABC):
    """Something that can record a short mono 16-bit window."""

    sample_rate: int = 8000

    def capability(self) -> Capability:
        return Capability.AVAILABLE

    @abstractmethod
    def open(self, window_ms: int) -> AbstractAsyncContextManager[AudioStream]:
        """Async context manager yielding an open stream for one window."""


class AudioStream(ABC):
    @abstractmethod
    async def read(self, nbytes: int) -> bytes:
        """Read up to ``nbytes`` of PCM; fewer bytes means the source ended."""


class _BufferStream(AudioStream):
    def __init__(self, pcm: bytes) -> None:
        self._pcm = pcm
        self._pos = 0

    async def read(self, nbytes: int) -> bytes:
        chunk = self._pcm[self._pos : self._pos + nbytes]
        self._pos += len(chunk)
        return chunk


class BufferAudioSource(AudioSource):
    """Replays a fixed PCM buffer; each window starts from the beginning.

    Counts acquisitions and releases so callers can check the scope discipline.
    """

    def __init__(self, pcm: bytes, sample_rate: int = 8000) -> None:
        self._pcm = pcm
        self.sample_rate = sample_rate
        self.opened = 0
        self.released = 0

    @asynccontextmanager
    async def open(self, window_ms: int) -> AsyncIterator[AudioStream]:
        self.opened += 1
        try:
            yield _BufferStream(self._pcm)
        finally:
            self.released += 1


class NullAudioSource(AudioSource):
    """A source whose use is not permitted (no microphone access)."""

    def capability(self) -> Capability:
        return Capability.DENIED

    @asynccontextmanager
    async def open(self, window_ms: int) -> AsyncIterator[AudioStream]:
        raise PermissionError("audio capture is not permitted")
        yield  # pragma: no cover


class _ProcessStream(AudioStream):
    def __init__(self, proc: asyncio.subprocess.Process) -> None:
        self._proc = proc

    async def read(self, nbytes: int) -> bytes:
        assert self._proc.stdout is not None
        try:
            return await self._proc.stdout.readexactly(nbytes)
        except asyncio.IncompleteReadError as exc:
            return exc.partial


class ArecordSource(AudioSource):
    """ALSA ``arecord`` subprocess emitting raw S16_LE mono PCM on stdout."""

    def __init__(self, device: str = "default", sample_rate: int = 8000) -> None:
        self.device = device
        self.sample_rate = sample_rate

    def command(self) -> list[str]:
        return [
            "arecord",
            "-q",
            "-D", self.device,
            "-c", "1",
            "-f", "S16_LE",
            "-r", str(self.sample_rate),
            "-t", "raw",
            "-",
        ]

    def capability(self) -> Capability:
        return Capability.AVAILABLE if shutil.which("arecord") else Capability.DENIED

    @asynccontextmanager
    async def open(self, window_ms: int) -> AsyncIterator[AudioStream]:
        proc = await asyncio.create_subprocess_exec(
            *self.command(),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            stdin=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
        try:
            yield _ProcessStream(proc)
        finally:
            if proc.returncode is None:
                proc.terminate()
                try:
                    await asyncio.wait_for(proc.wait(), timeout=2.0)
                except asyncio.TimeoutError:
                    proc.kill()
                    await proc.wait()


# ---------------------------------------------------------------------------
# Capture
# ---------------------------------------------------------------------------


class AudioCapture:
    """Record one window from a source and summarize it.

    Args:
        source: Where PCM comes from.
        config: Silence / level thresholds.  When omitted the global sampling
                config is read on every capture, so a reload takes effect.
    """

    def __init__(self, source: AudioSource, config: CaptureConfig | None = None) -> None:
        self.source = source
        self._config = config

    @property
    def config(self) -> CaptureConfig:
        return self._config or get_sampling_config().capture

    def _silent(self, window_ms: int) -> AudioFeatures:
        return AudioFeatures(
            level=self.config.fallback_level, duration_ms=window_ms, is_silent=True
        )

    async def capture(self, window_ms: int) -> AudioFeatures:
        if self.source.capability() is Capability.DENIED:
            logger.debug("Audio capture denied; reporting silence")
            return self._silent(window_ms)

        rate = self.source.sample_rate
        wanted = rate * window_ms // 1000 * BYTES_PER_SAMPLE
        try:
            async with self.source.open(window_ms) as stream:
                pcm = await asyncio.wait_for(
                    stream.read(wanted), timeout=window_ms / 1000.0 + 2.0
                )
        except (OSError, asyncio.TimeoutError) as exc:
            logger.warning("Audio capture failed: %s", exc)
            return self._silent(window_ms)

        if not pcm:
            logger.warning("Audio capture returned no samples")
        return analyze_pcm(pcm, window_ms, rate, self.config)
