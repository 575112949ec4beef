from __future__ import annotations

from .base import NON_RETRYABLE_CODES, TranscriptionError, TranscriptionService
from .mock import MockTranscriptionService
from .models import LOCAL_MODELS, LocalModelManager, LocalWhisperModel, model_for_id
from .openai_whisper import OpenAIWhisperService
from .router import TranscriptionRouter
from .whisper_cpp import LocalTranscriptionService

__all__ = [
    "LOCAL_MODELS",
    "NON_RETRYABLE_CODES",
    "LocalModelManager",
    "LocalTranscriptionService",
    "LocalWhisperModel",
    "MockTranscriptionService",
    "OpenAIWhisperService",
    "TranscriptionError",
    "TranscriptionRouter",
    "TranscriptionService",
    "model_for_id",
]
