"""Shared fixtures for the sampling core tests."""

from __future__ import annotations

import random

import numpy as np
import pytest

from moodwatch.sampling.config_loader import SamplingConfig, load_sampling_config
from moodwatch.services.sink import InMemoryDocumentSink, SinkWriter

TEST_USER_ID = "testUser"
T0 = 1_700_000_000_000  # 2023-11-14T22:13:20Z in epoch ms


class FakeClock:
    """Epoch-ms clock that only moves when told to."""

    def __init__(self, now: int = T0) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def tone_pcm(amplitude: int, n_samples: int = 16_000) -> bytes:
    """Square wave at +/-amplitude, as raw S16_LE bytes."""
    signs = np.where(np.arange(n_samples) % 2 == 0, 1, -1)
    return (signs * amplitude).astype("<i2").tobytes()


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def sampling_config() -> SamplingConfig:
    """The bundled sampling_config.yaml."""
    return load_sampling_config()


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_sink() -> InMemoryDocumentSink:
    return InMemoryDocumentSink()


@pytest.fixture
def writer(memory_sink: InMemoryDocumentSink) -> SinkWriter:
    return SinkWriter(memory_sink)


@pytest.fixture
def tone():
    """Factory for square-wave PCM buffers: ``tone(amplitude, n_samples)``."""
    return tone_pcm
