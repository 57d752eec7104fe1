"""Pydantic schemas for API contracts."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class AttemptRecord(BaseModel):
    attempt_id: str
    status: str = "pending"
    category: str = ""
    target_text: str = ""
    transcript: str | None = None
    score: int | None = None
    feedback: str | None = None
    matched_text: str | None = None
    audio_url: str | None = None
    latency_ms: int | None = None
    duration_sec: float | None = None
    time_to_first_response_ms: int | None = None
    sentence_count: int | None = None
    structure_score: int | None = None
    item_id: str | None = None
    player_id: str | None = None
    player_name: str | None = None
    session_id: str | None = None
    session_mode: str | None = None
    challenge_type: str | None = None
    measurement_type: str | None = None
    coach_score: str | None = None
    coach_feedback: str | None = None
    created_at: str | None = None
    finalized_at: str | None = None
    error_message: str | None = None
    error_step: str | None = None


class AttemptResponse(BaseModel):
    attempt_id: str
    score: int
    feedback: str
    stt_text: str
    audio_url: str
    latency_ms: int
    sentence_count: Optional[int] = None
    structure_score: Optional[int] = None
    matched_text: Optional[str] = None


class AttemptErrorResponse(BaseModel):
    error: str
    step: str
    attempt_id: Optional[str] = None


class ReviewRequest(BaseModel):
    coach_score: Optional[str] = None
    coach_feedback: Optional[str] = None
    ai_score: Optional[int] = Field(default=None, ge=0, le=100)


class HealthResponse(BaseModel):
    ok: bool
    store: str
    storage: str
    transcriber: str
    timestamp: datetime
