from __future__ import annotations

from abc import ABC, abstractmethod

from ..contracts import TranscriptionResult

_ERROR_DESCRIPTIONS = {
    "NO_API_KEY": "No API key configured. Please add your OpenAI API key in Settings.",
    "NETWORK_ERROR": "Network error: {detail}",
    "API_ERROR": "API error: {detail}",
    "INVALID_RESPONSE": "Invalid response from API",
    "RATE_LIMITED": "Rate limited by API. Please try again later.",
    "MAX_RETRIES_EXCEEDED": "Transcription failed after multiple attempts",
    "MODEL_NOT_DOWNLOADED": "The selected local model is not downloaded.",
    "MODEL_LOAD_FAILED": "Failed to load local model: {detail}",
    "LOCAL_TRANSCRIPTION_FAILED": "Local transcription failed: {detail}",
    "DOWNLOAD_IN_PROGRESS": "A model download is in progress. Please wait for it to finish.",
}

# API_ERROR means the request itself is wrong; retrying cannot help.
NON_RETRYABLE_CODES = frozenset({"NO_API_KEY", "API_ERROR"})


class TranscriptionError(RuntimeError):
    def __init__(self, code: str, detail: str = "", provider_name: str = ""):
        template = _ERROR_DESCRIPTIONS.get(code, "{detail}")
        message = template.format(detail=detail) if "{detail}" in template else template
        super().__init__(message)
        self.code = code
        self.detail = detail
        self.message = message
        self.provider_name = provider_name

    @property
    def retryable(self) -> bool:
        return self.code not in NON_RETRYABLE_CODES

    @classmethod
    def no_api_key(cls, provider_name: str = "") -> "TranscriptionError":
        return cls("NO_API_KEY", provider_name=provider_name)

    @classmethod
    def network_error(cls, detail: str, provider_name: str = "") -> "TranscriptionError":
        return cls("NETWORK_ERROR", detail, provider_name)

    @classmethod
    def api_error(cls, detail: str, provider_name: str = "") -> "TranscriptionError":
        return cls("API_ERROR", detail, provider_name)

    @classmethod
    def invalid_response(cls, provider_name: str = "") -> "TranscriptionError":
        return cls("INVALID_RESPONSE", provider_name=provider_name)

    @classmethod
    def rate_limited(cls, provider_name: str = "") -> "TranscriptionError":
        return cls("RATE_LIMITED", provider_name=provider_name)

    @classmethod
    def max_retries_exceeded(cls, provider_name: str = "") -> "TranscriptionError":
        return cls("MAX_RETRIES_EXCEEDED", provider_name=provider_name)


class TranscriptionService(ABC):
    @abstractmethod
    async def transcribe(self, audio: bytes) -> TranscriptionResult: ...

    @abstractmethod
    def name(self) -> str: ...
