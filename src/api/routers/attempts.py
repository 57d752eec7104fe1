"""Attempt submission endpoints."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile

from ..deps.auth import get_api_key
from ..errors import AttemptError
from ..schemas import AttemptRecord, AttemptResponse, ReviewRequest
from ..services.attempt_pipeline import AttemptPipeline, AttemptSubmission, SubmissionContext
from ..services.evaluator import parse_phrases
from ..services.ledger import AttemptLedger
from ..services.storage import build_storage, is_safe_segment
from ..services.table_store import shared_table_store
from ..services.transcriber import build_transcriber
from ..settings import APISettings, get_settings

router = APIRouter(prefix="/v1", tags=["attempts"])


def get_ledger(settings: APISettings = Depends(get_settings)) -> AttemptLedger:
    return AttemptLedger(shared_table_store(settings.attempts_table_path))


def get_pipeline(
    settings: APISettings = Depends(get_settings),
    ledger: AttemptLedger = Depends(get_ledger),
) -> AttemptPipeline:
    return AttemptPipeline(
        ledger,
        build_storage(settings),
        build_transcriber(settings),
        namespace=settings.storage_namespace,
        default_language=settings.transcribe_language,
    )


@router.post("/attempts", response_model=AttemptResponse)
async def submit_attempt(
    file: UploadFile = File(...),
    attempt_id: str | None = Form(None),
    category: str = Form(""),
    target_en: str = Form(""),
    item_id: str = Form("unknown"),
    duration_sec: float = Form(0.0),
    time_to_first_response_ms: int = Form(0),
    expected_phrases: str | None = Form(None),
    max_latency_ms: int | None = Form(None),
    key_word: str = Form(""),
    variations: str | None = Form(None),
    player_id: str = Form("anon"),
    player_name: str = Form("Anonymous"),
    session_id: str = Form(""),
    session_mode: str = Form("practice"),
    challenge_type: str = Form(""),
    measurement_type: str = Form("baseline"),
    language: str | None = Form(None),
    _: str = Depends(get_api_key),
    settings: APISettings = Depends(get_settings),
    pipeline: AttemptPipeline = Depends(get_pipeline),
):
    audio = await file.read()
    if not audio:
        raise HTTPException(status_code=400, detail="No file uploaded")
    attempt_id = (attempt_id or "").strip() or uuid.uuid4().hex
    if not is_safe_segment(attempt_id):
        raise HTTPException(status_code=400, detail="attempt_id must be 1-64 letters, digits, '_' or '-'")
    submission = AttemptSubmission(
        attempt_id=attempt_id,
        audio=audio,
        category=category,
        target_text=target_en,
        item_id=item_id,
        filename=file.filename or "recording.flac",
        content_type=file.content_type or "application/octet-stream",
        expected_phrases=parse_phrases(expected_phrases),
        variations=parse_phrases(variations),
        keyword=key_word,
        max_latency_ms=max_latency_ms or settings.default_max_latency_ms,
        duration_sec=duration_sec,
        time_to_first_response_ms=time_to_first_response_ms,
        challenge_type=challenge_type,
        measurement_type=measurement_type,
        language=language,
    )
    context = SubmissionContext(
        player_id=player_id,
        player_name=player_name,
        session_id=session_id,
        session_mode=session_mode,
    )
    try:
        outcome = await pipeline.process(submission, context)
    except AttemptError as exc:
        exc.attempt_id = exc.attempt_id or submission.attempt_id
        raise
    return AttemptResponse(
        attempt_id=submission.attempt_id,
        score=outcome.result.score,
        feedback=outcome.result.feedback,
        stt_text=outcome.transcript,
        audio_url=outcome.audio_url,
        latency_ms=outcome.record.latency_ms or 0,
        sentence_count=outcome.result.sentence_count,
        structure_score=outcome.result.structure_score,
        matched_text=outcome.result.matched_text,
    )


@router.get("/attempts/{attempt_id}", response_model=AttemptRecord)
async def get_attempt(
    attempt_id: str,
    _: str = Depends(get_api_key),
    ledger: AttemptLedger = Depends(get_ledger),
):
    return ledger.get(attempt_id)


@router.post("/attempts/{attempt_id}/review", response_model=AttemptRecord)
async def review_attempt(
    attempt_id: str,
    payload: ReviewRequest,
    _: str = Depends(get_api_key),
    ledger: AttemptLedger = Depends(get_ledger),
):
    return ledger.review(
        attempt_id,
        coach_score=payload.coach_score,
        coach_feedback=payload.coach_feedback,
        ai_score=payload.ai_score,
    )
