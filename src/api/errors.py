"""Exception types raised along the attempt pipeline."""

from __future__ import annotations


class AttemptError(Exception):
    """Base error carrying the pipeline step that failed."""

    step = "unknown"
    status_code = 500

    def __init__(self, message: str, *, step: str | None = None, attempt_id: str | None = None) -> None:
        super().__init__(message)
        if step:
            self.step = step
        self.attempt_id = attempt_id


class UploadError(AttemptError):
    step = "upload"
    status_code = 502


class TranscriptionError(AttemptError):
    step = "transcribe"
    status_code = 502


class StoreNotFound(AttemptError):
    step = "store"
    status_code = 404

    def __init__(self, attempt_id: str) -> None:
        super().__init__(f"Attempt {attempt_id} not found", attempt_id=attempt_id)


class StoreUnavailable(AttemptError):
    step = "store"
    status_code = 503


__all__ = [
    "AttemptError",
    "StoreNotFound",
    "StoreUnavailable",
    "TranscriptionError",
    "UploadError",
]
