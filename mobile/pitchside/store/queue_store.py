"""Persistent outbox of attempts whose submission failed, keyed by attempt id."""

from __future__ import annotations

import json
import time
from pathlib import Path
from typing import Any, Dict, List, Optional


class AttemptOutbox:
    def __init__(self, path: Path, audio_dir: Path) -> None:
        self.path = path
        self.audio_dir = audio_dir
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.audio_dir.mkdir(parents=True, exist_ok=True)
        self._data = self._load()

    def park(
        self,
        attempt_id: str,
        audio: bytes,
        *,
        extension: str,
        mime_type: str,
        fields: Dict[str, Any],
        error: str,
        step: str = "unknown",
    ) -> Dict[str, Any]:
        """Keep a failed attempt for a later retry; parking the same id again updates it."""
        entry = self.get(attempt_id)
        if entry is None:
            audio_path = self.audio_dir / f"{attempt_id}.{extension}"
            audio_path.write_bytes(audio)
            entry = {
                "id": attempt_id,
                "path": str(audio_path),
                "mime_type": mime_type,
                "fields": dict(fields),
                "created_at": time.time(),
                "attempts": 0,
            }
            self._data.append(entry)
        entry["attempts"] += 1
        entry["last_error"] = error[-200:]
        entry["last_step"] = step
        entry["updated_at"] = time.time()
        self._persist()
        return dict(entry)

    def get(self, attempt_id: str) -> Optional[Dict[str, Any]]:
        for item in self._data:
            if item["id"] == attempt_id:
                return item
        return None

    def read_audio(self, attempt_id: str) -> bytes:
        entry = self.get(attempt_id)
        if entry is None:
            raise KeyError(attempt_id)
        return Path(entry["path"]).read_bytes()

    def list(self) -> List[Dict[str, Any]]:
        return [dict(item) for item in sorted(self._data, key=lambda item: item["created_at"])]

    def remove(self, attempt_id: str) -> None:
        entry = self.get(attempt_id)
        if entry is None:
            return
        Path(entry["path"]).unlink(missing_ok=True)
        self._data = [item for item in self._data if item["id"] != attempt_id]
        self._persist()

    def clear(self) -> None:
        for item in self._data:
            Path(item["path"]).unlink(missing_ok=True)
        self._data = []
        self._persist()

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, attempt_id: str) -> bool:
        return self.get(attempt_id) is not None

    def _load(self) -> List[Dict[str, Any]]:
        if not self.path.exists():
            return []
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return []
        return data if isinstance(data, list) else []

    def _persist(self) -> None:
        self.path.write_text(json.dumps(self._data, ensure_ascii=False), encoding="utf-8")
