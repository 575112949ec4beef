from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import OPENAI_BASE_URL, ConfigurationManager
from ..contracts import TranscriptionResult
from ..credentials.base import CredentialStore
from .base import TranscriptionError, TranscriptionService

logger = logging.getLogger(__name__)

TRANSCRIPTIONS_PATH = "/audio/transcriptions"


class _WhisperSegment(BaseModel):
    model_config = ConfigDict(extra="ignore")

    avg_logprob: Optional[float] = None


class _WhisperResponse(BaseModel):
    model_config = ConfigDict(extra="ignore")

    text: str
    language: Optional[str] = None
    duration: Optional[float] = None
    segments: List[_WhisperSegment] = []


def _confidence_from_segments(segments: List[_WhisperSegment]) -> Optional[float]:
    logprobs = [s.avg_logprob for s in segments if s.avg_logprob is not None]
    if not logprobs:
        return None
    return float(math.exp(sum(logprobs) / len(logprobs)))


def _parse_error_message(response: httpx.Response) -> Optional[str]:
    try:
        payload = response.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    error = payload.get("error")
    if isinstance(error, dict) and isinstance(error.get("message"), str):
        return error["message"]
    return None


class OpenAIWhisperService(TranscriptionService):
    def __init__(
        self,
        credential_store: CredentialStore,
        configuration_manager: ConfigurationManager,
        dictionary_manager: Optional[Any] = None,
        *,
        base_url: str = OPENAI_BASE_URL,
        timeout_sec: float = 60.0,
        max_retries: int = 3,
        retry_delay_sec: float = 0.5,
        rate_limit_backoff_sec: float = 2.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        self._credential_store = credential_store
        self._configuration_manager = configuration_manager
        self._dictionary_manager = dictionary_manager
        self._base_url = base_url.rstrip("/")
        self._timeout_sec = float(timeout_sec)
        self._max_retries = max(1, int(max_retries))
        self._retry_delay_sec = float(retry_delay_sec)
        self._rate_limit_backoff_sec = float(rate_limit_backoff_sec)
        self._transport = transport
        self._sleep = sleep or asyncio.sleep

    def name(self) -> str:
        return "openai_whisper"

    async def transcribe(self, audio: bytes) -> TranscriptionResult:
        api_key = self._credential_store.get_api_key()
        if not api_key:
            raise TranscriptionError.no_api_key(self.name())

        last_error: Optional[TranscriptionError] = None
        for attempt in range(1, self._max_retries + 1):
            try:
                return await self._perform_transcription(audio, api_key)
            except TranscriptionError as exc:
                if not exc.retryable:
                    raise
                last_error = exc
                logger.warning("Transcription attempt %d failed: %s", attempt, exc.message)
                if exc.code == "RATE_LIMITED" and attempt < self._max_retries:
                    await self._sleep(attempt * self._rate_limit_backoff_sec)

            if attempt < self._max_retries:
                await self._sleep(self._retry_delay_sec)

        raise last_error or TranscriptionError.max_retries_exceeded(self.name())

    def _form_fields(self) -> Dict[str, str]:
        config = self._configuration_manager.configuration
        fields = {
            "model": config.whisper_model,
            "response_format": "verbose_json",
        }
        if config.language:
            fields["language"] = config.language
        if self._dictionary_manager is not None:
            prompt = self._dictionary_manager.build_prompt()
            if prompt:
                fields["prompt"] = prompt
                logger.debug("Including dictionary prompt in transcription request")
        return fields

    async def _perform_transcription(self, audio: bytes, api_key: str) -> TranscriptionResult:
        fields = self._form_fields()
        logger.debug("Sending transcription request, audio size: %d bytes", len(audio))
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url,
                timeout=self._timeout_sec,
                transport=self._transport,
            ) as client:
                response = await client.post(
                    TRANSCRIPTIONS_PATH,
                    headers={"Authorization": f"Bearer {api_key}"},
                    data=fields,
                    files={"file": ("audio.wav", audio, "audio/wav")},
                )
        except httpx.HTTPError as exc:
            raise TranscriptionError.network_error(str(exc) or type(exc).__name__, self.name()) from exc

        status = response.status_code
        if status == 200:
            return self._parse_response(response, model=fields["model"])
        if status == 401:
            raise TranscriptionError.api_error("Invalid API key", self.name())
        if status == 429:
            raise TranscriptionError.rate_limited(self.name())
        if 400 <= status < 500:
            raise TranscriptionError.api_error(_parse_error_message(response) or "Client error", self.name())
        if 500 <= status < 600:
            raise TranscriptionError.network_error(f"Server error (status {status})", self.name())
        raise TranscriptionError.network_error(f"Unexpected status code: {status}", self.name())

    def _parse_response(self, response: httpx.Response, model: str) -> TranscriptionResult:
        try:
            parsed = _WhisperResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.error("Failed to parse response: %s", exc)
            raise TranscriptionError.invalid_response(self.name()) from exc

        logger.info("Transcription successful, %d characters", len(parsed.text))
        return TranscriptionResult(
            text=parsed.text,
            confidence=_confidence_from_segments(parsed.segments),
            language=parsed.language,
            duration=parsed.duration,
            source="api",
            model=model,
        )
