"""One prompt → record → submit round, wiring the recorder to the submitter."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from .audio.device import SoundDeviceSource
from .audio.recorder import ActivityRecorder, AudioSource
from .audio.types import RecordingResult
from .config import CONFIG, ClientConfig
from .services.logger import LogBuffer
from .services.network import ApiClient, ApiError
from .services.uploader import AttemptSubmitter, new_attempt_id
from .store.queue_store import AttemptOutbox
from .store.settings_store import SettingsStore


@dataclass(slots=True)
class PracticeItem:
    item_id: str
    target_en: str
    category: str = ""
    expected_phrases: List[str] = field(default_factory=list)
    max_latency_ms: Optional[int] = None
    key_word: str = ""
    challenge_type: str = ""

    def fields(self) -> Dict[str, Any]:
        return {
            "item_id": self.item_id,
            "target_en": self.target_en,
            "category": self.category,
            "expected_phrases": self.expected_phrases or None,
            "max_latency_ms": self.max_latency_ms,
            "key_word": self.key_word or None,
            "challenge_type": self.challenge_type or None,
        }


@dataclass(slots=True)
class RoundOutcome:
    attempt_id: str
    recording: RecordingResult
    response: Optional[Dict[str, Any]] = None
    error: Optional[ApiError] = None

    @property
    def ok(self) -> bool:
        return self.response is not None


class PracticeRound:
    """Latency is measured from the prompt being shown until the recording completes."""

    def __init__(
        self,
        recorder_factory: Callable[[AudioSource], ActivityRecorder],
        source_factory: Callable[[], AudioSource],
        submitter: AttemptSubmitter,
        *,
        session_id: str = "",
        session_mode: str = "practice",
        measurement_type: str = "baseline",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.recorder_factory = recorder_factory
        self.source_factory = source_factory
        self.submitter = submitter
        self.session_id = session_id
        self.session_mode = session_mode
        self.measurement_type = measurement_type
        self.clock = clock

    async def run(self, item: PracticeItem, *, attempt_id: Optional[str] = None) -> RoundOutcome:
        attempt_id = attempt_id or new_attempt_id()
        shown_at = self.clock()
        recorder = self.recorder_factory(self.source_factory())
        recording = await recorder.record()
        latency_ms = int(round((self.clock() - shown_at) * 1000))
        fields = item.fields()
        fields.update(
            {
                "session_id": self.session_id or None,
                "session_mode": self.session_mode,
                "measurement_type": self.measurement_type,
            }
        )
        try:
            response = await asyncio.to_thread(
                self.submitter.submit,
                recording,
                fields,
                attempt_id=attempt_id,
                time_to_first_response_ms=latency_ms,
            )
        except ApiError as exc:
            return RoundOutcome(attempt_id=attempt_id, recording=recording, error=exc)
        return RoundOutcome(attempt_id=attempt_id, recording=recording, response=response)


def create_round(
    config: ClientConfig = CONFIG,
    *,
    logger: Optional[LogBuffer] = None,
    source_factory: Optional[Callable[[], AudioSource]] = None,
    **round_kwargs: Any,
) -> PracticeRound:
    """Assemble a round from the on-disk settings, outbox and the default microphone."""

    logger = logger or LogBuffer()
    settings = SettingsStore(config.settings_path)
    outbox = AttemptOutbox(config.outbox_path, config.outbox_audio_dir)
    submitter = AttemptSubmitter(ApiClient(settings), outbox, logger, settings)

    def recorder_factory(source: AudioSource) -> ActivityRecorder:
        return ActivityRecorder.from_settings(settings.get(), source, on_status=logger)

    def default_source() -> AudioSource:
        return SoundDeviceSource(sample_rate=config.sample_rate, channels=config.channels)

    return PracticeRound(recorder_factory, source_factory or default_source, submitter, **round_kwargs)
