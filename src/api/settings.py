"""API settings resolved from the environment."""

from __future__ import annotations

import os
from functools import lru_cache
from typing import List

from pydantic import BaseModel, Field


def _flag(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes"}


class APISettings(BaseModel):
    app_name: str = Field(default="Pitchside Attempt API")
    version: str = Field(default="1.0.0")
    data_dir: str = Field(default=os.getenv("DATA_DIR", "data"))
    attempts_table_path: str = Field(
        default=os.getenv("ATTEMPTS_TABLE_PATH", "data/attempts.json")
    )
    api_keys: List[str] = Field(default_factory=lambda: _split_keys())
    storage_backend: str = Field(default=os.getenv("STORAGE_BACKEND", "local"))
    storage_namespace: str = Field(default=os.getenv("STORAGE_NAMESPACE", "attempts"))
    public_audio_base_url: str | None = Field(default=os.getenv("PUBLIC_AUDIO_BASE_URL"))
    supabase_url: str | None = Field(default=os.getenv("SUPABASE_URL"))
    supabase_service_key: str | None = Field(default=os.getenv("SUPABASE_SERVICE_KEY"))
    supabase_bucket: str = Field(default=os.getenv("SUPABASE_BUCKET", "tal-audio"))
    storage_timeout_sec: float = Field(default=float(os.getenv("STORAGE_TIMEOUT_SEC", "30")))
    transcribe_language: str = Field(default=os.getenv("TRANSCRIBE_LANGUAGE", "en"))
    default_max_latency_ms: int = Field(
        default=int(os.getenv("DEFAULT_MAX_LATENCY_MS", "1500"))
    )
    openai_api_key: str | None = Field(default=os.getenv("OPENAI_API_KEY"))
    whisper_model: str = Field(default=os.getenv("WHISPER_MODEL", "tiny"))
    whisper_device: str = Field(default=os.getenv("WHISPER_DEVICE", "cpu"))
    whisper_compute_type: str = Field(
        default=os.getenv("WHISPER_COMPUTE_TYPE", "int8")
    )
    whisper_mock_transcriber: bool = Field(default=_flag("WHISPER_USE_MOCK"))
    whisper_use_openai: bool = Field(default=_flag("WHISPER_USE_OPENAI"))
    openai_whisper_model: str = Field(
        default=os.getenv("OPENAI_WHISPER_MODEL", "whisper-1")
    )


def _split_keys() -> List[str]:
    raw = os.getenv("API_KEYS") or os.getenv("API_KEY") or ""
    return [key.strip() for key in raw.split(",") if key.strip()]


@lru_cache()
def get_settings() -> APISettings:
    return APISettings()
