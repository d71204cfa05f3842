"""Threshold classifier for captured audio windows."""

from __future__ import annotations

from moodwatch.sampling.base import AudioFeatures, EventType
from moodwatch.sampling.config_loader import ClassifierConfig

_DEFAULT_RULES = ClassifierConfig()


def classify(features: AudioFeatures, rules: ClassifierConfig | None = None) -> EventType:
    """Guess the event category of one capture window.

    Laughter is checked before sigh because the two ranges overlap.
    """
    r = rules or _DEFAULT_RULES
    if features.is_silent:
        return EventType.UNKNOWN

    level, duration = features.level, features.duration_ms
    if level >= r.laughter_min_level and duration in r.laughter_duration_ms:
        return EventType.LAUGHTER
    if duration >= r.sigh_min_duration_ms and level in r.sigh_level:
        return EventType.SIGH
    return EventType.UNKNOWN
