"""Static client configuration."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path


def _default_data_dir() -> Path:
    return Path(os.getenv("PITCHSIDE_DATA_DIR", str(Path.home() / ".pitchside")))


@dataclass(slots=True)
class ClientConfig:
    sample_rate: int = int(os.getenv("PITCHSIDE_SAMPLE_RATE", "16000"))
    channels: int = 1
    poll_interval_ms: int = int(os.getenv("PITCHSIDE_POLL_INTERVAL_MS", "50"))
    data_dir: Path = field(default_factory=_default_data_dir)

    @property
    def settings_path(self) -> Path:
        return self.data_dir / "settings.json"

    @property
    def outbox_path(self) -> Path:
        return self.data_dir / "outbox.json"

    @property
    def outbox_audio_dir(self) -> Path:
        return self.data_dir / "outbox"


CONFIG = ClientConfig()
