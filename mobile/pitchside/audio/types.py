"""Dataclasses shared across audio helpers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class RecorderState(str, Enum):
    IDLE = "idle"
    ARMED = "armed"
    RECORDING = "recording"
    STOPPED = "stopped"


@dataclass(slots=True)
class RecordingSession:
    """Mutable state of one recording; owned by a single recorder and dropped on stop."""

    started_at: float
    speech_detected: bool = False
    last_speech_at: Optional[float] = None
    silence_timer: Optional[asyncio.TimerHandle] = None
    raw_chunks: List[bytes] = field(default_factory=list)

    def cancel_silence_timer(self) -> None:
        if self.silence_timer is not None:
            self.silence_timer.cancel()
            self.silence_timer = None


@dataclass(slots=True)
class RecordingResult:
    """Finished recording handed to the submission layer."""

    audio: bytes
    duration_sec: float
    mime_type: str
    sample_rate: int
    speech_detected: bool

    @property
    def extension(self) -> str:
        return self.mime_type.split("/", 1)[-1].split(";", 1)[0]
