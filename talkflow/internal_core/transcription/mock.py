from __future__ import annotations

from threading import Lock
from typing import List, Optional

from ..contracts import TranscriptionResult
from .base import TranscriptionService

DEFAULT_MOCK_TEXT = "Mock transcription"


class MockTranscriptionService(TranscriptionService):
    def __init__(
        self,
        mock_result: Optional[TranscriptionResult] = None,
        mock_error: Optional[BaseException] = None,
    ) -> None:
        self.mock_result = mock_result
        self.mock_error = mock_error
        self.received_audio: List[bytes] = []
        self._lock = Lock()
        self._transcribe_call_count = 0

    @property
    def transcribe_call_count(self) -> int:
        with self._lock:
            return self._transcribe_call_count

    def name(self) -> str:
        return "mock"

    async def transcribe(self, audio: bytes) -> TranscriptionResult:
        with self._lock:
            self._transcribe_call_count += 1
            self.received_audio.append(audio)
            error = self.mock_error
            result = self.mock_result

        if error is not None:
            raise error

        return result or TranscriptionResult(text=DEFAULT_MOCK_TEXT, source="mock")
