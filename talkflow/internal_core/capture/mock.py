from __future__ import annotations

from typing import Callable, Optional

from ..contracts import CapturedAudio
from .base import AudioCaptureService


class MockAudioCaptureService(AudioCaptureService):
    is_recording: bool = False
    audio_level: float = 0.0

    def __init__(self) -> None:
        self.is_recording = False
        self.audio_level = 0.0
        self._mock_captured_audio: Optional[CapturedAudio] = None
        self.start_call_count = 0
        self.stop_call_count = 0

    def set_mock_audio_data(self, data: bytes, sample_rate: float = 44100) -> None:
        self._mock_captured_audio = CapturedAudio(data=data, sample_rate=sample_rate)

    def request_microphone_access(self, completion: Callable[[bool], None]) -> None:
        completion(True)

    def start_recording(self) -> None:
        self.start_call_count += 1
        self.is_recording = True

    def stop_recording(self) -> CapturedAudio:
        self.stop_call_count += 1
        self.is_recording = False
        return self._mock_captured_audio or CapturedAudio.empty()
