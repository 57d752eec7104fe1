"""Recorder error taxonomy."""

from __future__ import annotations


class RecorderError(Exception):
    pass


class PermissionDenied(RecorderError):
    """Microphone access refused; the session cannot continue without a new user gesture."""


class DeviceError(RecorderError):
    """Capture could not be set up or broke mid-session; starting again may succeed."""
