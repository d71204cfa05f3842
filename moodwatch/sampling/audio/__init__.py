"""Audio capture, classification and event injection.

Modules:
    wav        — 44-byte RIFF/WAVE container for mono 16-bit PCM
    capture    — Audio sources (arecord, buffer, null) and feature extraction
    classifier — Laughter / sigh threshold rules
    injector   — Audio tick: real events, dummy injection, manual events
"""
