"""Liveness endpoint."""

from __future__ import annotations

import os
from datetime import datetime, timezone
from pathlib import Path

from fastapi import APIRouter, Depends

from ..deps.auth import get_api_key
from ..schemas import HealthResponse
from ..settings import APISettings, get_settings

router = APIRouter(tags=["health"])


def _store_status(settings: APISettings) -> str:
    parent = Path(settings.attempts_table_path).resolve().parent
    target = parent if parent.exists() else Path(settings.data_dir).resolve()
    if target.exists() and not os.access(target, os.W_OK):
        return "read-only"
    return "ok"


def _transcriber_status(settings: APISettings) -> str:
    if settings.whisper_use_openai:
        return "openai" if settings.openai_api_key else "missing-key"
    return "mock" if settings.whisper_mock_transcriber else "whisper"


@router.get("/healthz", response_model=HealthResponse)
async def healthz(
    _: str = Depends(get_api_key),
    settings: APISettings = Depends(get_settings),
):
    store = _store_status(settings)
    transcriber = _transcriber_status(settings)
    return HealthResponse(
        ok=store == "ok" and transcriber != "missing-key",
        store=store,
        storage=settings.storage_backend,
        transcriber=transcriber,
        timestamp=datetime.now(timezone.utc),
    )
