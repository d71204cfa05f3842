"""Minimal RIFF/WAVE container for mono 16-bit PCM.

Layout (all little-endian)::

    0  "RIFF"           4  total size - 8    8  "WAVE"
    12 "fmt "           16 16 (fmt size)     20 format tag (1 = PCM)
    22 channels         24 sample rate       28 byte rate
    32 block align      34 bits per sample   36 "data"
    40 data length      44 samples...
"""

from __future__ import annotations

import base64
import struct
from dataclasses import dataclass
from typing import Iterable

import numpy as np

HEADER_SIZE = 44
PCM_FORMAT_TAG = 1
CHANNELS = 1
BITS_PER_SAMPLE = 16

_HEADER = struct.Struct("<4sI4s4sIHHIIHH4sI")


@dataclass(frozen=True)
class WavHeader:
    riff_size: int
    format_tag: int
    channels: int
    sample_rate: int
    byte_rate: int
    block_align: int
    bits_per_sample: int
    data_length: int


def _to_int16_bytes(samples: Iterable[int] | np.ndarray | bytes) -> bytes:
    if isinstance(samples, (bytes, bytearray, memoryview)):
        raw = bytes(samples)
        return raw[: len(raw) - (len(raw) % 2)]
    array = np.asarray(samples)
    if array.size and (array.min() < -32768 or array.max() > 32767):
        raise ValueError("samples must fit in signed 16-bit range")
    return array.astype("<i2").tobytes()


def encode_wav(samples: Iterable[int] | np.ndarray | bytes, sample_rate: int) -> bytes:
    """Wrap 16-bit mono samples in a 44-byte WAV header.

    Args:
        samples:     int16 sample values, or raw S16_LE bytes.
        sample_rate: Samples per second.
    """
    if sample_rate <= 0:
        raise ValueError("sample_rate must be positive")
    data = _to_int16_bytes(samples)
    block_align = CHANNELS * BITS_PER_SAMPLE // 8
    header = _HEADER.pack(
        b"RIFF",
        len(data) + HEADER_SIZE - 8,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_TAG,
        CHANNELS,
        sample_rate,
        sample_rate * CHANNELS * BITS_PER_SAMPLE // 8,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        len(data),
    )
    return header + data


def encode_wav_base64(samples: Iterable[int] | np.ndarray | bytes, sample_rate: int) -> str:
    """Base64 (no line wrapping) of ``encode_wav``; the raw_events audio field."""
    return base64.b64encode(encode_wav(samples, sample_rate)).decode("ascii")


def parse_wav_header(data: bytes) -> WavHeader:
    """Read back the fixed header written by ``encode_wav``.

    Raises:
        ValueError: If ``data`` is too short or the chunk tags do not match.
    """
    if len(data) < HEADER_SIZE:
        raise ValueError(f"WAV data too short: {len(data)} bytes")
    (
        riff,
        riff_size,
        wave,
        fmt,
        fmt_size,
        format_tag,
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits,
        data_tag,
        data_length,
    ) = _HEADER.unpack_from(data, 0)
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_tag != b"data":
        raise ValueError("Not a canonical RIFF/WAVE header")
    if fmt_size != 16:
        raise ValueError(f"Unexpected fmt chunk size {fmt_size}")
    return WavHeader(
        riff_size=riff_size,
        format_tag=format_tag,
        channels=channels,
        sample_rate=sample_rate,
        byte_rate=byte_rate,
        block_align=block_align,
        bits_per_sample=bits,
        data_length=data_length,
    )
