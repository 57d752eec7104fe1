"""Microphone source backed by ``sounddevice``."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Deque, List, Optional

import numpy as np

from ..config import CONFIG
from .errors import DeviceError, PermissionDenied

LOGGER = logging.getLogger("pitchside.device")


class SoundDeviceSource:
    """Captures mono int16 blocks on the PortAudio thread; the recorder drains them per tick."""

    def __init__(
        self,
        *,
        sample_rate: int | None = None,
        channels: int | None = None,
        device: int | str | None = None,
        block_ms: int | None = None,
    ) -> None:
        self.sample_rate = sample_rate or CONFIG.sample_rate
        self.channels = channels or CONFIG.channels
        self.device = device
        block_ms = block_ms or CONFIG.poll_interval_ms
        self.blocksize = max(1, int(self.sample_rate * block_ms / 1000))
        self._blocks: Deque[np.ndarray] = deque()
        self._stream = None

    async def open(self) -> None:
        if self._stream is not None:
            return
        sd = self._import_sounddevice()
        try:
            stream = sd.InputStream(
                samplerate=self.sample_rate,
                channels=self.channels,
                dtype="int16",
                blocksize=self.blocksize,
                device=self.device,
                callback=self._on_block,
            )
        except sd.PortAudioError as exc:
            raise DeviceError(f"Cannot open input device: {exc}") from exc
        except PermissionError as exc:
            raise PermissionDenied(str(exc)) from exc
        self._stream = stream
        try:
            await asyncio.to_thread(stream.start)
        except PermissionError as exc:
            self.close()
            raise PermissionDenied(str(exc)) from exc
        except sd.PortAudioError as exc:
            self.close()
            raise DeviceError(f"Cannot start input stream: {exc}") from exc
        LOGGER.info("Input stream open at %d Hz", self.sample_rate)

    def read(self) -> List[np.ndarray]:
        blocks: List[np.ndarray] = []
        while self._blocks:
            blocks.append(self._blocks.popleft())
        return blocks

    def close(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            stream.stop()
        finally:
            stream.close()
        LOGGER.info("Input stream closed")

    def _on_block(self, indata, frames, time_info, status) -> None:  # noqa: ARG002
        if status:
            LOGGER.debug("Input stream status: %s", status)
        data = np.array(indata, dtype=np.int16, copy=True)
        self._blocks.append(data[:, 0] if data.ndim > 1 else data)

    @staticmethod
    def _import_sounddevice():
        try:
            import sounddevice as sd  # type: ignore
        except (ImportError, OSError) as exc:
            raise DeviceError(f"sounddevice unavailable: {exc}") from exc
        return sd


__all__ = ["SoundDeviceSource"]
