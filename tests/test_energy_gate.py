import numpy as np

from mobile.pitchside.audio.energy_gate import EnergyGate, magnitude_frame


def _tone(amplitude, samples=800, sr=16000, freq=440):
    t = np.arange(samples) / sr
    return (amplitude * np.sin(2 * np.pi * freq * t)).astype(np.int16)


def test_silence_is_not_speech():
    gate = EnergyGate(min_volume=5)
    frame = magnitude_frame(np.zeros(800, dtype=np.int16))
    assert frame.dtype == np.uint8
    assert gate.peak(frame) == 0
    assert gate.is_speech(frame) is False


def test_loud_tone_is_speech():
    gate = EnergyGate(min_volume=5)
    frame = magnitude_frame(_tone(10000))
    assert gate.is_speech(frame) is True
    assert 0.0 < gate.level(frame) <= 1.0


def test_faint_tone_stays_below_threshold():
    gate = EnergyGate(min_volume=5)
    assert gate.is_speech(magnitude_frame(_tone(1))) is False


def test_threshold_is_strict():
    gate = EnergyGate(min_volume=5)
    assert gate.is_speech(np.array([5, 2, 0], dtype=np.uint8)) is False
    assert gate.is_speech(np.array([6], dtype=np.uint8)) is True


def test_empty_frame_is_silent():
    gate = EnergyGate()
    empty = magnitude_frame(np.zeros(0, dtype=np.int16))
    assert empty.size == 0
    assert gate.is_speech(empty) is False
    assert gate.level(empty) == 0.0


def test_min_volume_is_clamped():
    gate = EnergyGate(min_volume=-3)
    assert gate.min_volume == 0
    gate.set_min_volume(999)
    assert gate.min_volume == 255
    assert gate.is_speech(np.array([255], dtype=np.uint8)) is False
