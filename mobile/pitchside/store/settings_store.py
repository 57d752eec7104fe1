"""Persistent client settings (server, API key, recorder tuning)."""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from pathlib import Path


@dataclass(slots=True)
class AppSettings:
    server_url: str = ""
    api_key: str = ""
    player_id: str = ""
    player_name: str = ""
    language: str = "en"
    min_volume: int = 5
    silence_duration_ms: int = 1500
    auto_stop: bool = True


class SettingsStore:
    def __init__(self, path: Path) -> None:
        self.path = path
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._settings = self._load()

    def _load(self) -> AppSettings:
        if not self.path.exists():
            return AppSettings()
        try:
            raw = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            raw = {}
        if not isinstance(raw, dict):
            raw = {}
        settings = AppSettings()
        self._apply(settings, raw)
        return settings

    def get(self) -> AppSettings:
        return self._settings

    def update(self, **kwargs) -> AppSettings:
        self._apply(self._settings, kwargs)
        self._persist()
        return self._settings

    @staticmethod
    def _apply(settings: AppSettings, values: dict) -> None:
        for key, value in values.items():
            if not hasattr(settings, key):
                continue
            current = getattr(settings, key)
            if isinstance(current, bool):
                if isinstance(value, str):
                    value = value.strip().lower() in {"1", "true", "yes", "on"}
                setattr(settings, key, bool(value))
            elif isinstance(current, int):
                try:
                    setattr(settings, key, int(value))
                except (TypeError, ValueError):
                    continue
            else:
                setattr(settings, key, str(value or ""))

    def _persist(self) -> None:
        self.path.write_text(json.dumps(asdict(self._settings)), encoding="utf-8")
