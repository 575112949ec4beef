from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from ..contracts import CapturedAudio

_CAPTURE_MESSAGES = {
    "ALREADY_RECORDING": "Already recording",
    "ENGINE_CREATION_FAILED": "Failed to create audio engine",
    "DEVICE_DISCONNECTED": "Audio device disconnected",
}


class AudioCaptureError(RuntimeError):
    def __init__(self, code: str, message: str = ""):
        message = message or _CAPTURE_MESSAGES.get(code, code)
        super().__init__(message)
        self.code = code
        self.message = message


@dataclass(frozen=True)
class AudioDevice:
    uid: str
    name: str


class AudioCaptureService(ABC):
    @property
    @abstractmethod
    def is_recording(self) -> bool: ...

    @property
    @abstractmethod
    def audio_level(self) -> float: ...

    @abstractmethod
    def request_microphone_access(self, completion: Callable[[bool], None]) -> None: ...

    @abstractmethod
    def start_recording(self) -> None: ...

    @abstractmethod
    def stop_recording(self) -> CapturedAudio: ...
