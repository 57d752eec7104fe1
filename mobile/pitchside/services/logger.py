"""Bounded activity log shown to the learner, mirrored into ``logging``."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Deque, List

LOGGER = logging.getLogger("pitchside.activity")


class LogBuffer:
    def __init__(self, max_lines: int = 200) -> None:
        self._lines: Deque[str] = deque(maxlen=max_lines)
        self._lock = threading.Lock()

    def add(self, message: str) -> None:
        stamp = datetime.now().strftime("%H:%M:%S")
        with self._lock:
            self._lines.append(f"[{stamp}] {message}")
        LOGGER.info(message)

    def __call__(self, message: str) -> None:
        self.add(message)

    def lines(self) -> List[str]:
        with self._lock:
            return list(self._lines)

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()
