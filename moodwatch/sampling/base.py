"""Canonical records produced by the moodwatch collection loops.

PeriodicSample and AudioEventSample are the only shapes handed to a document
sink.  Their ``to_document()`` output is a wire contract with downstream
consumers (stress / sleep scoring, event analysis): field names must not change.
"""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable

from moodwatch.services.sink import WriteResult

#: Returns the current wall-clock time in epoch milliseconds.
Clock = Callable[[], int]


def system_clock() -> int:
    return int(time.time() * 1000)


# ---------------------------------------------------------------------------
# Capabilities
# ---------------------------------------------------------------------------


class Capability(str, Enum):
    """Whether a sensor or capture source may be used right now."""

    AVAILABLE = "available"
    DENIED = "denied"


# ---------------------------------------------------------------------------
# Event categories
# ---------------------------------------------------------------------------


class EventType(str, Enum):
    LAUGHTER = "laughter"
    SIGH = "sigh"
    UNKNOWN = "unknown"


#: Categories a synthetic event may carry.
DUMMY_EVENT_TYPES: tuple[EventType, ...] = (EventType.LAUGHTER, EventType.SIGH)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PeriodicSample:
    """One biometric snapshot, built fresh on every periodic tick.

    Attributes:
        timestamp:            Epoch milliseconds of the tick.
        heart_rate_avg:       Average heart rate (bpm).
        heart_rate_min:       Minimum heart rate (bpm).
        heart_rate_max:       Maximum heart rate (bpm).
        hrv_sdnn:             Heart-rate variability SDNN (ms).
        respiratory_rate_avg: Average breaths per minute.
        movement_count:       Movement events in the window.
        is_fallback:          True when heart-rate fields are synthesized.
    """

    timestamp: int
    heart_rate_avg: int
    heart_rate_min: int
    heart_rate_max: int
    hrv_sdnn: int
    respiratory_rate_avg: int
    movement_count: int
    is_fallback: bool

    @property
    def document_id(self) -> str:
        """Identity under which this sample is stored (one per tick)."""
        return str(self.timestamp)

    def to_document(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class AudioEventSample:
    """One audio event (real, synthetic or manual).

    Attributes:
        timestamp:         Epoch milliseconds of capture.
        event_type_guess:  Classified category.
        event_dbfs:        Level estimate (0–100 scale).
        event_duration_ms: Capture / event duration.
        audio_base64:      Base64-encoded WAV, only for real events.
        is_fallback:       True for synthetic events.
        storage_path:      Placeholder object path, only on manual events;
                           omitted from the document when None.
    """

    timestamp: int
    event_type_guess: EventType
    event_dbfs: int
    event_duration_ms: int
    audio_base64: str | None = None
    is_fallback: bool = False
    storage_path: str | None = None

    def to_document(self) -> dict[str, Any]:
        doc = {
            "timestamp": self.timestamp,
            "event_type_guess": self.event_type_guess.value,
            "event_dbfs": self.event_dbfs,
            "event_duration_ms": self.event_duration_ms,
            "audio_base64": self.audio_base64,
            "is_fallback": self.is_fallback,
        }
        if self.storage_path is not None:
            doc["storage_path"] = self.storage_path
        return doc


@dataclass(frozen=True)
class AudioFeatures:
    """Summary of one capture window.

    Attributes:
        level:         RMS level as a percentage of full scale (0–100).
        duration_ms:   Length of the capture window.
        is_silent:     True when under 1% of samples are loud.
        encoded_audio: Base64 WAV of the window, or None when silent.
    """

    level: int
    duration_ms: int
    is_silent: bool
    encoded_audio: str | None = None


class TickAction(str, Enum):
    REAL = "real"
    DUMMY = "dummy"
    SKIPPED = "skipped"


@dataclass
class TickOutcome:
    """What one audio tick did."""

    action: TickAction
    record: AudioEventSample | None = None
    write: WriteResult | None = None
    features: AudioFeatures | None = None
    timestamp: int = 0
