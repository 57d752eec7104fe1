"""Voice-activity-gated recorder.

The recorder walks ``idle -> armed -> recording -> stopped``. A polling task
feeds the newest audio block to the :class:`EnergyGate` on every tick; once
speech has been heard, a silence window longer than ``silence_duration`` stops
the recording. Leaving ``recording`` (silence, manual stop, cancel, device
failure) always cancels the timer and the polling task and releases the device.
"""

from __future__ import annotations

import asyncio
import io
import logging
from typing import Callable, List, Optional, Protocol

import numpy as np
import soundfile as sf

from ..config import CONFIG
from .energy_gate import EnergyGate, magnitude_frame
from .errors import DeviceError, PermissionDenied, RecorderError
from .types import RecorderState, RecordingResult, RecordingSession

LOGGER = logging.getLogger("pitchside.recorder")

_ACTIVE = (RecorderState.ARMED, RecorderState.RECORDING)


class AudioSource(Protocol):
    sample_rate: int

    async def open(self) -> None:
        """Acquire the microphone and start capturing. May wait on a permission prompt."""

    def read(self) -> List[np.ndarray]:
        """Return PCM blocks captured since the previous call, oldest first."""

    def close(self) -> None:
        """Release the device. Must be safe to call more than once."""


class ActivityRecorder:
    def __init__(
        self,
        source: AudioSource,
        *,
        min_volume: float = 5,
        silence_duration: float = 1.5,
        poll_interval: float | None = None,
        auto_stop: bool = True,
        max_duration: float | None = None,
        on_status: Callable[[str], None] | None = None,
        on_level: Callable[[float], None] | None = None,
        on_complete: Callable[[RecordingResult], None] | None = None,
    ) -> None:
        self.source = source
        self.gate = EnergyGate(min_volume)
        self.silence_duration = max(0.0, float(silence_duration))
        self.poll_interval = poll_interval if poll_interval is not None else CONFIG.poll_interval_ms / 1000.0
        self.auto_stop = auto_stop
        self.max_duration = max_duration
        self.on_status = on_status
        self.on_level = on_level
        self.on_complete = on_complete
        self._state = RecorderState.IDLE
        self._session: Optional[RecordingSession] = None
        self._monitor_task: Optional[asyncio.Task] = None
        self._result: Optional[asyncio.Future] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None

    @classmethod
    def from_settings(cls, settings, source: AudioSource, **kwargs) -> "ActivityRecorder":
        return cls(
            source,
            min_volume=settings.min_volume,
            silence_duration=settings.silence_duration_ms / 1000.0,
            auto_stop=settings.auto_stop,
            **kwargs,
        )

    @property
    def state(self) -> RecorderState:
        return self._state

    @property
    def session(self) -> Optional[RecordingSession]:
        return self._session

    async def start(self) -> None:
        if self._state is not RecorderState.IDLE:
            raise RecorderError(f"Recorder cannot start from '{self._state.value}'")
        self._loop = asyncio.get_running_loop()
        try:
            await self.source.open()
        except PermissionDenied as exc:
            self._release()
            self._state = RecorderState.STOPPED
            self._report(f"Microphone permission denied: {exc}")
            raise
        except DeviceError as exc:
            self._release()
            self._report(f"Microphone unavailable: {exc}")
            raise
        except asyncio.CancelledError:
            self._release()
            raise
        except Exception as exc:
            self._release()
            self._report(f"Microphone unavailable: {exc}")
            raise DeviceError(str(exc)) from exc
        self._session = RecordingSession(started_at=self._loop.time())
        self._result = self._loop.create_future()
        self._state = RecorderState.ARMED
        self._monitor_task = self._loop.create_task(self._monitor())
        self._report("Microphone ready")

    async def wait(self) -> RecordingResult:
        """Wait for the single result of this session."""
        if self._result is None:
            raise RecorderError("Recorder was never started")
        return await self._result

    async def record(self) -> RecordingResult:
        await self.start()
        try:
            return await self.wait()
        finally:
            self.cancel()

    def stop(self) -> Optional[RecordingResult]:
        """Stop now and emit the result. Returns None if nothing was recording."""
        if self._state not in _ACTIVE:
            return None
        session = self._session
        assert session is not None and self._loop is not None
        try:
            self._collect(session)
        except Exception as exc:
            self._report(f"Final read failed: {exc}")
        duration = max(0.0, self._loop.time() - session.started_at)
        self._teardown()
        result = RecordingResult(
            audio=self._encode(session.raw_chunks),
            duration_sec=round(duration, 3),
            mime_type="audio/flac",
            sample_rate=self.source.sample_rate,
            speech_detected=session.speech_detected,
        )
        self._report(f"Recording stopped ({result.duration_sec:.1f}s)")
        if self._result is not None and not self._result.done():
            self._result.set_result(result)
        if self.on_complete:
            self.on_complete(result)
        return result

    def cancel(self) -> None:
        """Tear down without emitting a result."""
        if self._state not in _ACTIVE:
            return
        self._teardown()
        if self._result is not None and not self._result.done():
            self._result.cancel()
        self._report("Recording cancelled")

    async def __aenter__(self) -> "ActivityRecorder":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.cancel()

    def set_min_volume(self, value: float) -> None:
        self.gate.set_min_volume(value)

    def set_silence_duration(self, seconds: float) -> None:
        self.silence_duration = max(0.0, float(seconds))

    async def _monitor(self) -> None:
        while self._state in _ACTIVE:
            try:
                self._tick()
            except Exception as exc:
                self._report(f"Capture failed: {exc}")
                self._abort(DeviceError(str(exc)))
                return
            if self._state not in _ACTIVE:
                return
            await asyncio.sleep(self.poll_interval)

    def _tick(self) -> None:
        session = self._session
        assert session is not None and self._loop is not None
        latest = self._collect(session)
        if self._state is RecorderState.ARMED:
            if not session.raw_chunks:
                return
            self._state = RecorderState.RECORDING
            self._report("Recording started")

        frame = magnitude_frame(latest) if latest is not None else np.zeros(0, dtype=np.uint8)
        if self.on_level:
            self.on_level(self.gate.level(frame))
        now = self._loop.time()
        if self.gate.is_speech(frame):
            session.speech_detected = True
            session.last_speech_at = now
            session.cancel_silence_timer()
        elif self.auto_stop and session.speech_detected and session.silence_timer is None:
            elapsed = now - (session.last_speech_at or now)
            delay = max(0.0, self.silence_duration - elapsed)
            session.silence_timer = self._loop.call_later(delay, self._on_silence_elapsed)

        if self.max_duration and now - session.started_at >= self.max_duration:
            self._report("Maximum duration reached")
            self.stop()

    def _on_silence_elapsed(self) -> None:
        if self._session is not None:
            self._session.silence_timer = None
        if self._state is RecorderState.RECORDING:
            self._report("Silence detected; stopping")
            self.stop()

    def _collect(self, session: RecordingSession) -> Optional[np.ndarray]:
        latest = None
        for block in self.source.read():
            mono = self._to_mono_array(np.asarray(block))
            if mono.size == 0:
                continue
            session.raw_chunks.append(mono.astype(np.int16, copy=False).tobytes())
            latest = mono
        return latest

    def _abort(self, exc: RecorderError) -> None:
        self._teardown()
        if self._result is not None and not self._result.done():
            self._result.set_exception(exc)

    def _teardown(self) -> None:
        if self._session is not None:
            self._session.cancel_silence_timer()
        task = self._monitor_task
        self._monitor_task = None
        if task is not None and not task.done() and task is not _current_task():
            task.cancel()
        self._release()
        self._state = RecorderState.STOPPED
        self._session = None

    def _release(self) -> None:
        try:
            self.source.close()
        except Exception as exc:
            LOGGER.warning("Releasing audio device failed: %s", exc)

    def _encode(self, chunks: List[bytes]) -> bytes:
        pcm = np.frombuffer(b"".join(chunks), dtype=np.int16)
        if pcm.size == 0:
            return b""
        buffer = io.BytesIO()
        sf.write(buffer, pcm, self.source.sample_rate, format="FLAC", subtype="PCM_16")
        return buffer.getvalue()

    def _to_mono_array(self, data: np.ndarray) -> np.ndarray:
        if data.ndim == 1:
            return data
        return data[:, 0]

    def _report(self, message: str) -> None:
        LOGGER.debug(message)
        if self.on_status:
            self.on_status(message)


def _current_task() -> Optional[asyncio.Task]:
    try:
        return asyncio.current_task()
    except RuntimeError:
        return None


__all__ = ["ActivityRecorder", "AudioSource"]
