"""Transcription adapters: OpenAI Whisper API or the local faster-whisper engine."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from openai import AsyncOpenAI, OpenAIError

from ..errors import TranscriptionError
from ..settings import APISettings
from .whisper_engine import WhisperEngine

LOGGER = logging.getLogger("pitchside.api.transcriber")


class Transcriber(Protocol):
    name: str

    async def transcribe(
        self,
        audio: bytes,
        language_hint: str | None,
        *,
        filename: str = "recording.flac",
        content_type: str = "audio/flac",
    ) -> str:
        ...


class OpenAITranscriber:
    name = "openai"

    def __init__(self, api_key: str, model: str = "whisper-1", client: Optional[AsyncOpenAI] = None) -> None:
        self.model = model
        self._client = client or AsyncOpenAI(api_key=api_key)

    async def transcribe(
        self,
        audio: bytes,
        language_hint: str | None,
        *,
        filename: str = "recording.flac",
        content_type: str = "audio/flac",
    ) -> str:
        kwargs = {"model": self.model, "file": (filename, audio, content_type)}
        if language_hint and language_hint != "auto":
            kwargs["language"] = language_hint
        try:
            transcript = await self._client.audio.transcriptions.create(**kwargs)
        except OpenAIError as exc:
            raise TranscriptionError(f"OpenAI transcription failed: {exc}") from exc
        return (transcript.text or "").strip()


class LocalWhisperTranscriber:
    name = "whisper"

    def __init__(self, engine: WhisperEngine) -> None:
        self.engine = engine

    async def transcribe(
        self,
        audio: bytes,
        language_hint: str | None,
        *,
        filename: str = "recording.flac",
        content_type: str = "audio/flac",
    ) -> str:
        language = None if language_hint in (None, "", "auto") else language_hint
        try:
            return await asyncio.to_thread(self.engine.transcribe_bytes, audio, language)
        except TranscriptionError:
            raise
        except Exception as exc:
            LOGGER.exception("Local transcription of %s failed", filename)
            raise TranscriptionError(f"Local transcription failed: {exc}") from exc


def build_transcriber(settings: APISettings) -> Transcriber:
    if settings.whisper_use_openai:
        if not settings.openai_api_key:
            raise RuntimeError("WHISPER_USE_OPENAI=1 but OPENAI_API_KEY is missing")
        return OpenAITranscriber(settings.openai_api_key, settings.openai_whisper_model)
    return LocalWhisperTranscriber(WhisperEngine(settings))


__all__ = ["LocalWhisperTranscriber", "OpenAITranscriber", "Transcriber", "build_transcriber"]
