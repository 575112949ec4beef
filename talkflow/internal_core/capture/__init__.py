from __future__ import annotations

from .base import AudioCaptureError, AudioCaptureService, AudioDevice
from .mock import MockAudioCaptureService
from .sounddevice_capture import SoundDeviceCaptureService

__all__ = [
    "AudioCaptureError",
    "AudioCaptureService",
    "AudioDevice",
    "MockAudioCaptureService",
    "SoundDeviceCaptureService",
]
