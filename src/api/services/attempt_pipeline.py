"""Upload → transcribe → score → persist, one attempt at a time."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

from ..errors import AttemptError, StoreUnavailable, TranscriptionError, UploadError
from ..metrics import ATTEMPT_COUNTER, ATTEMPT_DURATION, ATTEMPT_STEP_FAILURES
from ..schemas import AttemptRecord
from .evaluator import EvaluationInput, ScoreResult, evaluate
from .ledger import FINALIZED, AttemptLedger
from .storage import ObjectStorage, guess_extension, object_path
from .transcriber import Transcriber

LOGGER = logging.getLogger("pitchside.api.pipeline")


@dataclass(slots=True)
class SubmissionContext:
    """Who is submitting; passed in per request instead of read from global state."""

    player_id: str = "anon"
    player_name: str = "Anonymous"
    session_id: str = ""
    session_mode: str = "practice"


@dataclass(slots=True)
class AttemptSubmission:
    attempt_id: str
    audio: bytes
    category: str
    target_text: str = ""
    item_id: str = "unknown"
    filename: str = "recording.flac"
    content_type: str = "audio/flac"
    expected_phrases: List[str] = field(default_factory=list)
    variations: List[str] = field(default_factory=list)
    keyword: str = ""
    max_latency_ms: int = 1500
    duration_sec: float = 0.0
    time_to_first_response_ms: int = 0
    challenge_type: str = ""
    measurement_type: str = "baseline"
    language: str | None = None


@dataclass(slots=True)
class AttemptOutcome:
    record: AttemptRecord
    result: ScoreResult
    transcript: str
    audio_url: str


class AttemptPipeline:
    def __init__(
        self,
        ledger: AttemptLedger,
        storage: ObjectStorage,
        transcriber: Transcriber,
        *,
        namespace: str = "attempts",
        default_language: str | None = "en",
    ) -> None:
        self.ledger = ledger
        self.storage = storage
        self.transcriber = transcriber
        self.namespace = namespace
        self.default_language = default_language

    async def process(self, submission: AttemptSubmission, context: SubmissionContext) -> AttemptOutcome:
        start = time.perf_counter()
        attempt_id = submission.attempt_id
        try:
            previous = self.ledger.find(attempt_id)
            if previous is not None and previous.status == FINALIZED:
                LOGGER.info("Attempt %s already finalized; replaying stored result", attempt_id)
                ATTEMPT_COUNTER.labels(status="replayed").inc()
                return self._replay(previous)
            existed = self.ledger.ensure_pending(attempt_id, self._pending_fields(submission, context))
        except StoreUnavailable:
            LOGGER.error("Attempt %s could not be recorded as pending", attempt_id)
            ATTEMPT_STEP_FAILURES.labels(step="store").inc()
            raise
        if existed:
            LOGGER.info("Attempt %s resubmitted", attempt_id)

        try:
            audio_url = await self._upload(submission, context)
            transcript = await self._transcribe(submission)
        except (UploadError, TranscriptionError) as exc:
            self._fail(attempt_id, exc)
            ATTEMPT_DURATION.observe(time.perf_counter() - start)
            raise

        result = evaluate(self._evaluation_input(submission, transcript))
        try:
            record = self.ledger.finalize(attempt_id, self._final_fields(submission, transcript, audio_url, result))
        except AttemptError as exc:
            LOGGER.error("Attempt %s scored %s but could not be finalized: %s", attempt_id, result.score, exc)
            ATTEMPT_STEP_FAILURES.labels(step="store").inc()
            ATTEMPT_DURATION.observe(time.perf_counter() - start)
            raise
        ATTEMPT_COUNTER.labels(status="finalized").inc()
        ATTEMPT_DURATION.observe(time.perf_counter() - start)
        LOGGER.info("Attempt %s finalized with score %s", attempt_id, result.score)
        return AttemptOutcome(record=record, result=result, transcript=transcript, audio_url=audio_url)

    async def _upload(self, submission: AttemptSubmission, context: SubmissionContext) -> str:
        try:
            ext = guess_extension(submission.filename, submission.content_type)
            path = object_path(context.player_id or self.namespace, submission.attempt_id, ext)
            return await self.storage.upload(path, submission.audio, submission.content_type)
        except UploadError:
            raise
        except Exception as exc:
            LOGGER.exception("Attempt %s upload crashed", submission.attempt_id)
            raise UploadError(f"Upload failed: {exc}") from exc

    async def _transcribe(self, submission: AttemptSubmission) -> str:
        try:
            return await self.transcriber.transcribe(
                submission.audio,
                submission.language or self.default_language,
                filename=submission.filename,
                content_type=submission.content_type,
            )
        except TranscriptionError:
            raise
        except Exception as exc:
            LOGGER.exception("Attempt %s transcription crashed", submission.attempt_id)
            raise TranscriptionError(f"Transcription failed: {exc}") from exc

    def _fail(self, attempt_id: str, exc: AttemptError) -> None:
        LOGGER.warning("Attempt %s failed at %s: %s", attempt_id, exc.step, exc)
        ATTEMPT_COUNTER.labels(status="failed").inc()
        ATTEMPT_STEP_FAILURES.labels(step=exc.step).inc()
        try:
            self.ledger.fail(attempt_id, str(exc), step=exc.step)
        except AttemptError as store_exc:
            LOGGER.error("Attempt %s failure could not be recorded: %s", attempt_id, store_exc)
            raise StoreUnavailable(
                f"{exc} (and the failure could not be recorded: {store_exc})", step=exc.step
            ) from exc

    @staticmethod
    def _replay(record: AttemptRecord) -> AttemptOutcome:
        result = ScoreResult(
            score=record.score or 0,
            feedback=record.feedback or "",
            matched_text=record.matched_text,
            sentence_count=record.sentence_count,
            structure_score=record.structure_score,
        )
        return AttemptOutcome(
            record=record,
            result=result,
            transcript=record.transcript or "",
            audio_url=record.audio_url or "",
        )

    @staticmethod
    def _pending_fields(submission: AttemptSubmission, context: SubmissionContext) -> Dict[str, Any]:
        return {
            "category": submission.category,
            "target_text": submission.target_text,
            "item_id": submission.item_id,
            "player_id": context.player_id,
            "player_name": context.player_name,
            "session_id": context.session_id,
            "session_mode": context.session_mode,
            "challenge_type": submission.challenge_type,
            "measurement_type": submission.measurement_type,
            "duration_sec": submission.duration_sec,
            "time_to_first_response_ms": submission.time_to_first_response_ms,
        }

    @staticmethod
    def _evaluation_input(submission: AttemptSubmission, transcript: str) -> EvaluationInput:
        return EvaluationInput(
            category=submission.category,
            target_text=submission.target_text,
            transcript=transcript,
            expected_phrases=list(submission.expected_phrases),
            variations=list(submission.variations),
            latency_ms=submission.time_to_first_response_ms,
            max_latency_ms=submission.max_latency_ms,
            keyword=submission.keyword,
            duration_sec=submission.duration_sec,
        )

    @staticmethod
    def _final_fields(
        submission: AttemptSubmission, transcript: str, audio_url: str, result: ScoreResult
    ) -> Dict[str, Any]:
        return {
            "transcript": transcript,
            "score": result.score,
            "feedback": result.feedback,
            "matched_text": result.matched_text,
            "audio_url": audio_url,
            "latency_ms": submission.time_to_first_response_ms,
            "duration_sec": submission.duration_sec,
            "sentence_count": result.sentence_count,
            "structure_score": result.structure_score,
        }


__all__ = ["AttemptOutcome", "AttemptPipeline", "AttemptSubmission", "SubmissionContext"]
