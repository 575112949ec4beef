from __future__ import annotations

import datetime as _dt
import uuid
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

TranscriptionSource = Literal["api", "local", "mock"]

PREVIEW_MAX_CHARS = 100


def _utc_now() -> _dt.datetime:
    return _dt.datetime.now(_dt.timezone.utc)


class CapturedAudio(BaseModel):
    """Raw capture snapshot: signed 16-bit little-endian mono PCM."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    data: bytes = b""
    sample_rate: float = 44100.0

    @classmethod
    def empty(cls) -> "CapturedAudio":
        return cls()

    @property
    def is_empty(self) -> bool:
        return len(self.data) == 0

    @property
    def duration_sec(self) -> float:
        if self.sample_rate <= 0:
            return 0.0
        return (len(self.data) // 2) / float(self.sample_rate)


class ProcessedAudioResult(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    audio_data: bytes = b""
    is_empty: bool = True
    content_type: str = "audio/wav"

    @classmethod
    def empty(cls) -> "ProcessedAudioResult":
        return cls()


class TranscriptionResult(BaseModel):
    model_config = ConfigDict(extra="forbid")

    text: str
    confidence: Optional[float] = None
    language: Optional[str] = None
    duration: Optional[float] = None
    source: TranscriptionSource = "api"
    model: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None


class TranscriptionRecord(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    text: str
    timestamp: _dt.datetime = Field(default_factory=_utc_now)
    duration_ms: Optional[int] = None
    confidence: Optional[float] = None
    source: Optional[TranscriptionSource] = None
    model: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: _dt.datetime = Field(default_factory=_utc_now)

    @property
    def preview(self) -> str:
        if len(self.text) <= PREVIEW_MAX_CHARS:
            return self.text
        return self.text[:PREVIEW_MAX_CHARS] + "..."

    @property
    def formatted_duration(self) -> Optional[str]:
        if self.duration_ms is None:
            return None
        return f"{self.duration_ms / 1000.0:.1f}s"


class DictionaryTerm(BaseModel):
    model_config = ConfigDict(extra="forbid")

    id: Optional[int] = None
    term: str
    is_enabled: bool = True
    created_at: _dt.datetime = Field(default_factory=_utc_now)
    updated_at: _dt.datetime = Field(default_factory=_utc_now)
