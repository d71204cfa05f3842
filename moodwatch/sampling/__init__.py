"""moodwatch sampling core.

Everything that turns a clock tick and an optional sensor reading into a
record for the document sink.

Subpackages:
    audio/  — Capture, classification, WAV encoding and dummy-event injection

Core modules:
    base          — Canonical records, capabilities, clock type
    config_loader — Load/validate/hot-reload sampling_config.yaml
    sensor        — Latest-value heart-rate sensor
    sampler       — Periodic biometric sampling and collector
    ticker        — Fixed-interval async ticker
    service       — Owns both loops for the application lifespan
"""

from moodwatch.sampling.base import (
    AudioEventSample,
    AudioFeatures,
    Capability,
    EventType,
    PeriodicSample,
    TickAction,
    TickOutcome,
)
from moodwatch.sampling.config_loader import SamplingConfig, get_sampling_config

__all__ = [
    "AudioEventSample",
    "AudioFeatures",
    "Capability",
    "EventType",
    "PeriodicSample",
    "TickAction",
    "TickOutcome",
    "SamplingConfig",
    "get_sampling_config",
]
