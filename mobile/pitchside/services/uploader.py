"""Submits finished recordings and keeps failed ones for a user-initiated retry."""

from __future__ import annotations

import uuid
from typing import Any, Dict, List, Optional

from ..audio.types import RecordingResult
from ..store.queue_store import AttemptOutbox
from ..store.settings_store import SettingsStore
from .logger import LogBuffer
from .network import ApiClient, ApiError


def new_attempt_id() -> str:
    return uuid.uuid4().hex


class AttemptSubmitter:
    def __init__(
        self,
        client: ApiClient,
        outbox: AttemptOutbox,
        logger: LogBuffer,
        settings: SettingsStore,
    ) -> None:
        self.client = client
        self.outbox = outbox
        self.logger = logger
        self.settings = settings

    def submit(
        self,
        recording: RecordingResult,
        fields: Dict[str, Any],
        *,
        attempt_id: Optional[str] = None,
        time_to_first_response_ms: int = 0,
    ) -> Dict[str, Any]:
        """Send one attempt. On failure the recording is parked and ApiError is re-raised."""

        attempt_id = attempt_id or new_attempt_id()
        payload = self._payload(fields)
        payload["duration_sec"] = recording.duration_sec
        payload["time_to_first_response_ms"] = int(time_to_first_response_ms)
        filename = f"recording.{recording.extension}"
        try:
            self.logger.add(f"Submitting attempt {attempt_id[:6]}...")
            response = self.client.submit_attempt(
                attempt_id,
                recording.audio,
                filename=filename,
                mime_type=recording.mime_type,
                fields=payload,
            )
        except ApiError as exc:
            self.logger.add(f"Submit failed ({attempt_id[:6]}): {exc}")
            if exc.retryable:
                self.outbox.park(
                    attempt_id,
                    recording.audio,
                    extension=recording.extension,
                    mime_type=recording.mime_type,
                    fields=payload,
                    error=str(exc),
                    step=exc.step or "unknown",
                )
            raise
        self.logger.add(f"Attempt {attempt_id[:6]} scored {response.get('score')}")
        return response

    def retry(self, attempt_id: str) -> Dict[str, Any]:
        """Resubmit a parked attempt under the same id; the server will not duplicate it."""

        entry = self.outbox.get(attempt_id)
        if entry is None:
            raise KeyError(attempt_id)
        audio = self.outbox.read_audio(attempt_id)
        extension = entry["path"].rsplit(".", 1)[-1]
        try:
            self.logger.add(f"Retrying attempt {attempt_id[:6]}...")
            response = self.client.submit_attempt(
                attempt_id,
                audio,
                filename=f"recording.{extension}",
                mime_type=entry["mime_type"],
                fields=entry["fields"],
            )
        except ApiError as exc:
            self.logger.add(f"Retry failed ({attempt_id[:6]}): {exc}")
            if exc.retryable:
                self.outbox.park(
                    attempt_id,
                    audio,
                    extension=extension,
                    mime_type=entry["mime_type"],
                    fields=entry["fields"],
                    error=str(exc),
                    step=exc.step or "unknown",
                )
            raise
        self.outbox.remove(attempt_id)
        self.logger.add(f"Attempt {attempt_id[:6]} scored {response.get('score')}")
        return response

    def pending(self) -> List[Dict[str, Any]]:
        return self.outbox.list()

    def _payload(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        settings = self.settings.get()
        payload: Dict[str, Any] = {"language": settings.language}
        if settings.player_id:
            payload["player_id"] = settings.player_id
        if settings.player_name:
            payload["player_name"] = settings.player_name
        payload.update({key: value for key, value in fields.items() if value is not None})
        for key in ("expected_phrases", "variations"):
            if isinstance(payload.get(key), (list, tuple)):
                payload[key] = "\n".join(payload[key])
        return payload
