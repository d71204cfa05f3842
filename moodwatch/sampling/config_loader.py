"""Load, validate, and hot-reload the moodwatch sampling thresholds.

The config lives in ``sampling_config.yaml`` alongside this module.  At startup
it is loaded once and cached.  Call ``reload_sampling_config()`` to re-read
from disk (``POST /api/v1/config/reload`` does this).  Components built
without a pinned config call ``get_sampling_config()`` on every tick, so the
running loops pick up the new object on their next tick.

Usage::

    from moodwatch.sampling.config_loader import get_sampling_config

    config = get_sampling_config()
    config.fallback_ranges["heart_rate_avg"]   # IntRange(low=60, high=85)
    config.capture.loud_amplitude              # 5000
"""

from __future__ import annotations

import logging
import random
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger("moodwatch.sampling.config")

# Path to the YAML file sitting next to this module
_CONFIG_PATH = Path(__file__).parent / "sampling_config.yaml"

LIVE_RANGE_KEYS = ("hrv_sdnn", "respiratory_rate_avg", "movement_count")
FALLBACK_RANGE_KEYS = (
    "heart_rate_avg",
    "heart_rate_min",
    "heart_rate_max",
    "hrv_sdnn",
    "respiratory_rate_avg",
    "movement_count",
)


# ---------------------------------------------------------------------------
# Typed config sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IntRange:
    """Inclusive integer range."""

    low: int
    high: int

    def draw(self, rng: random.Random) -> int:
        return rng.randint(self.low, self.high)

    def __contains__(self, value: object) -> bool:
        return isinstance(value, int) and self.low <= value <= self.high


@dataclass
class HeartRateConfig:
    floor_bpm: int = 40
    ceiling_bpm: int = 150
    min_offset_bpm: int = 5
    max_offset_bpm: int = 10


@dataclass
class CaptureConfig:
    loud_amplitude: int = 5000
    silence_fraction: float = 0.01
    fallback_level: int = 60


@dataclass
class ClassifierConfig:
    """Threshold rules for laughter / sigh detection."""

    laughter_min_level: int = 60
    laughter_duration_ms: IntRange = field(default_factory=lambda: IntRange(500, 2500))
    sigh_min_duration_ms: int = 1800
    sigh_level: IntRange = field(default_factory=lambda: IntRange(30, 80))


@dataclass
class DummyEventConfig:
    event_dbfs: int = 70
    event_duration_ms: int = 2000
    manual_dbfs: IntRange = field(default_factory=lambda: IntRange(50, 85))
    manual_duration_ms: IntRange = field(default_factory=lambda: IntRange(500, 4000))


@dataclass
class SamplingConfig:
    """Complete, validated sampling configuration.

    This is the single in-memory representation of sampling_config.yaml.
    The sampler, capture, classifier and injector all read from this object.

    Attributes:
        version:          Config schema version string.
        heart_rate:       Clamps and offsets for the live heart-rate path.
        live_ranges:      Ranges drawn alongside a live reading.
        fallback_ranges:  Ranges drawn when no live reading exists.
        capture:          Silence / level thresholds for audio windows.
        classifier:       Laughter / sigh rules.
        dummy_event:      Constants for synthetic and manual events.
    """

    version: str
    heart_rate: HeartRateConfig
    live_ranges: dict[str, IntRange]
    fallback_ranges: dict[str, IntRange]
    capture: CaptureConfig
    classifier: ClassifierConfig
    dummy_event: DummyEventConfig
    _raw: dict = field(default_factory=dict, repr=False)


# ---------------------------------------------------------------------------
# Loader / validation
# ---------------------------------------------------------------------------


class ConfigValidationError(ValueError):
    """Raised when sampling_config.yaml fails validation."""


def _load_yaml(path: Path) -> dict:
    """Read and parse a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist.
        ConfigValidationError: If the YAML is malformed.
    """
    if not path.exists():
        raise FileNotFoundError(f"Sampling config not found: {path}")

    with path.open("r", encoding="utf-8") as fh:
        try:
            return yaml.safe_load(fh) or {}
        except yaml.YAMLError as exc:
            raise ConfigValidationError(f"YAML parse error in {path}: {exc}") from exc


def _parse_range(value: Any, where: str, errors: list[str]) -> IntRange | None:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        errors.append(f"{where} must be a [min, max] pair, got {value!r}")
        return None
    try:
        low, high = int(value[0]), int(value[1])
    except (TypeError, ValueError):
        errors.append(f"{where} must contain integers, got {value!r}")
        return None
    if low > high:
        errors.append(f"{where} has min {low} greater than max {high}")
        return None
    return IntRange(low, high)


def _validate_and_build(raw: dict) -> SamplingConfig:
    """Validate the raw YAML dict and construct a SamplingConfig.

    Every problem is collected before raising so one edit fixes them all.

    Raises:
        ConfigValidationError: If required sections are missing or invalid.
    """
    errors: list[str] = []

    version = str(raw.get("version", "1.0"))

    # ── Heart rate ──
    hr_raw = raw.get("heart_rate", {}) or {}
    heart_rate = HeartRateConfig(
        floor_bpm=int(hr_raw.get("floor_bpm", 40)),
        ceiling_bpm=int(hr_raw.get("ceiling_bpm", 150)),
        min_offset_bpm=int(hr_raw.get("min_offset_bpm", 5)),
        max_offset_bpm=int(hr_raw.get("max_offset_bpm", 10)),
    )
    if heart_rate.floor_bpm >= heart_rate.ceiling_bpm:
        errors.append("heart_rate.floor_bpm must be below heart_rate.ceiling_bpm")

    # ── Ranges ──
    def _ranges(section: str, keys: tuple[str, ...]) -> dict[str, IntRange]:
        section_raw = raw.get(section)
        if not isinstance(section_raw, dict) or not section_raw:
            errors.append(f"'{section}' section is missing or empty")
            return {}
        parsed: dict[str, IntRange] = {}
        for key in keys:
            if key not in section_raw:
                errors.append(f"Missing required key '{key}' in section '{section}'")
                continue
            rng = _parse_range(section_raw[key], f"{section}.{key}", errors)
            if rng is not None:
                parsed[key] = rng
        return parsed

    live_ranges = _ranges("live_ranges", LIVE_RANGE_KEYS)
    fallback_ranges = _ranges("fallback_ranges", FALLBACK_RANGE_KEYS)

    # ── Capture ──
    cap_raw = raw.get("capture", {}) or {}
    capture = CaptureConfig(
        loud_amplitude=int(cap_raw.get("loud_amplitude", 5000)),
        silence_fraction=float(cap_raw.get("silence_fraction", 0.01)),
        fallback_level=int(cap_raw.get("fallback_level", 60)),
    )
    if not (0 < capture.loud_amplitude <= 32767):
        errors.append(f"capture.loud_amplitude = {capture.loud_amplitude} is out of range")
    if not (0.0 <= capture.silence_fraction <= 1.0):
        errors.append(
            f"capture.silence_fraction = {capture.silence_fraction} is out of range [0.0, 1.0]"
        )

    # ── Classifier ──
    cls_raw = raw.get("classifier", {}) or {}
    laughter_raw = cls_raw.get("laughter", {}) or {}
    sigh_raw = cls_raw.get("sigh", {}) or {}
    classifier = ClassifierConfig(
        laughter_min_level=int(laughter_raw.get("min_level", 60)),
        laughter_duration_ms=_parse_range(
            laughter_raw.get("duration_ms", [500, 2500]),
            "classifier.laughter.duration_ms",
            errors,
        ) or IntRange(500, 2500),
        sigh_min_duration_ms=int(sigh_raw.get("min_duration_ms", 1800)),
        sigh_level=_parse_range(
            sigh_raw.get("level", [30, 80]), "classifier.sigh.level", errors
        ) or IntRange(30, 80),
    )

    # ── Dummy events ──
    de_raw = raw.get("dummy_event", {}) or {}
    dummy_event = DummyEventConfig(
        event_dbfs=int(de_raw.get("event_dbfs", 70)),
        event_duration_ms=int(de_raw.get("event_duration_ms", 2000)),
        manual_dbfs=_parse_range(
            de_raw.get("manual_dbfs", [50, 85]), "dummy_event.manual_dbfs", errors
        ) or IntRange(50, 85),
        manual_duration_ms=_parse_range(
            de_raw.get("manual_duration_ms", [500, 4000]),
            "dummy_event.manual_duration_ms",
            errors,
        ) or IntRange(500, 4000),
    )

    if errors:
        raise ConfigValidationError(
            f"sampling_config.yaml has {len(errors)} validation error(s):\n"
            + "\n".join(f"  • {e}" for e in errors)
        )

    return SamplingConfig(
        version=version,
        heart_rate=heart_rate,
        live_ranges=live_ranges,
        fallback_ranges=fallback_ranges,
        capture=capture,
        classifier=classifier,
        dummy_event=dummy_event,
        _raw=raw,
    )


def load_sampling_config(path: Path | None = None) -> SamplingConfig:
    """Load and validate the sampling config from disk.

    Args:
        path: Override path to YAML. Uses the bundled sampling_config.yaml by default.
    """
    target = path or _CONFIG_PATH
    raw = _load_yaml(target)
    config = _validate_and_build(raw)
    logger.info("Loaded sampling config v%s from %s", config.version, target)
    return config


# ---------------------------------------------------------------------------
# Global singleton with hot-reload support
# ---------------------------------------------------------------------------

_config: SamplingConfig | None = None
_config_lock = threading.Lock()


def get_sampling_config() -> SamplingConfig:
    """Return the global SamplingConfig singleton, loading it on first call."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:  # double-checked locking
                _config = load_sampling_config()
    return _config


def reload_sampling_config(path: Path | None = None) -> SamplingConfig:
    """Reload the sampling config from disk and replace the global singleton.

    If validation fails, the old config is retained and the error is re-raised.

    Raises:
        ConfigValidationError: If the new config is invalid.
        FileNotFoundError:     If the config file is missing.
    """
    global _config
    new_config = load_sampling_config(path)  # validate before acquiring lock
    with _config_lock:
        old_version = _config.version if _config else "none"
        _config = new_config
    logger.info("Reloaded sampling config: %s → %s", old_version, new_config.version)
    return new_config
