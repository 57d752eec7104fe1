"""Per-frame loudness gate used for voice-activity detection."""

from __future__ import annotations

import numpy as np

# Byte-scaled spectrum range, matching the browser analyser node defaults.
MIN_DECIBELS = -100.0
MAX_DECIBELS = -30.0


def magnitude_frame(pcm: np.ndarray) -> np.ndarray:
    """Convert int16 PCM into a 0-255 frequency-magnitude frame."""

    samples = np.asarray(pcm, dtype=np.float32).reshape(-1)
    if samples.size == 0:
        return np.zeros(0, dtype=np.uint8)
    samples = samples / 32768.0
    window = np.hanning(samples.size) if samples.size > 1 else np.ones(1)
    spectrum = np.abs(np.fft.rfft(samples * window)) / samples.size
    decibels = 20.0 * np.log10(np.maximum(spectrum, 1e-12))
    scaled = (decibels - MIN_DECIBELS) / (MAX_DECIBELS - MIN_DECIBELS) * 255.0
    return np.clip(scaled, 0, 255).astype(np.uint8)


class EnergyGate:
    """Classifies a magnitude frame as speech when its peak exceeds ``min_volume``."""

    def __init__(self, min_volume: float = 5) -> None:
        self.min_volume = max(0.0, min(float(min_volume), 255.0))

    def peak(self, frame: np.ndarray) -> float:
        data = np.asarray(frame)
        if data.size == 0:
            return 0.0
        return float(np.max(data))

    def is_speech(self, frame: np.ndarray) -> bool:
        return self.peak(frame) > self.min_volume

    def level(self, frame: np.ndarray) -> float:
        """Peak as 0.0-1.0 for level meters."""
        return self.peak(frame) / 255.0

    def set_min_volume(self, value: float) -> None:
        self.min_volume = max(0.0, min(float(value), 255.0))


__all__ = ["EnergyGate", "magnitude_frame"]
