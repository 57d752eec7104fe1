"""Lazy faster-whisper loader with an explicit mock mode."""

from __future__ import annotations

import io
import logging
import threading
from typing import Iterable

try:  # pragma: no cover - optional heavy dependency
    from faster_whisper import WhisperModel  # type: ignore
except ImportError:  # pragma: no cover
    WhisperModel = None  # type: ignore

from ..errors import TranscriptionError
from ..settings import APISettings

LOGGER = logging.getLogger("pitchside.whisper")


class WhisperEngine:
    """Loads the local Whisper model on first use; mock mode echoes a fixed transcript."""

    def __init__(self, settings: APISettings) -> None:
        self.settings = settings
        self._lock = threading.Lock()
        self._model = None
        self._mock = settings.whisper_mock_transcriber
        if self._mock:
            LOGGER.warning(
                "Whisper mock mode enabled (set WHISPER_USE_MOCK=0 and configure "
                "WHISPER_MODEL to enable real transcription)."
            )

    @property
    def is_mock(self) -> bool:
        return self._mock

    def _load_model(self):
        if WhisperModel is None:
            raise TranscriptionError("faster-whisper is not installed; install the 'whisper' extra")
        if self._model is None:
            with self._lock:
                if self._model is None:
                    try:
                        self._model = WhisperModel(
                            self.settings.whisper_model,
                            device=self.settings.whisper_device,
                            compute_type=self.settings.whisper_compute_type,
                        )
                    except Exception as exc:  # pragma: no cover - hardware/env dep
                        LOGGER.error(
                            "Failed to load Whisper model '%s': %s",
                            self.settings.whisper_model,
                            exc,
                        )
                        raise TranscriptionError(f"Whisper model unavailable: {exc}") from exc
        return self._model

    def transcribe_bytes(self, audio: bytes, language: str | None = None) -> str:
        if self._mock:
            return f"[mock transcript {len(audio)} bytes]"
        model = self._load_model()
        segments, _info = model.transcribe(io.BytesIO(audio), language=language, beam_size=5)
        return _join_segments(segments)


def _join_segments(segments: Iterable) -> str:
    pieces = [segment.text.strip() for segment in segments]
    return " ".join(piece for piece in pieces if piece).strip()
