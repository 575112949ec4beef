from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, ValidationError

logger = logging.getLogger(__name__)

TranscriptionMode = Literal["api", "local"]

DEFAULT_SILENCE_THRESHOLD_DB = -40.0
DEFAULT_NOISE_GATE_THRESHOLD_DB = -50.0
DEFAULT_SAMPLE_RATE = 44100
DEFAULT_WHISPER_MODEL = "whisper-1"
OPENAI_BASE_URL = "https://api.openai.com/v1"
MAX_LOG_AGE_DAYS = 7


def _default_home() -> Path:
    return Path("~/.talkflow").expanduser()


def _getenv_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return default if value is None else value


def _getenv_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return value.strip().lower() in {"1", "true", "t", "yes", "y", "on"}


def _getenv_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    return float(value)


def _getenv_path(name: str, default: Path) -> Path:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return Path(value.strip()).expanduser()


@dataclass(frozen=True)
class Settings:
    TALKFLOW_HOME: Path
    TALKFLOW_LOG_LEVEL: str
    TALKFLOW_LOG_DIR: Path
    TALKFLOW_CONFIG_PATH: Path
    TALKFLOW_DATABASE_PATH: Path
    TALKFLOW_OPENAI_BASE_URL: str
    TALKFLOW_OPENAI_TIMEOUT_SEC: float
    TALKFLOW_WHISPER_CPP_BIN: str
    TALKFLOW_MODELS_DIR: Path
    TALKFLOW_DEBUG_AUDIO: bool
    TALKFLOW_DEBUG_AUDIO_DIR: Path


def load_settings() -> Settings:
    home = _getenv_path("TALKFLOW_HOME", _default_home())
    return Settings(
        TALKFLOW_HOME=home,
        TALKFLOW_LOG_LEVEL=_getenv_str("TALKFLOW_LOG_LEVEL", "INFO"),
        TALKFLOW_LOG_DIR=_getenv_path("TALKFLOW_LOG_DIR", home / "logs"),
        TALKFLOW_CONFIG_PATH=_getenv_path("TALKFLOW_CONFIG_PATH", home / "configuration.json"),
        TALKFLOW_DATABASE_PATH=_getenv_path(
            "TALKFLOW_DATABASE_PATH", home / "transcriptions.sqlite"
        ),
        TALKFLOW_OPENAI_BASE_URL=_getenv_str("TALKFLOW_OPENAI_BASE_URL", OPENAI_BASE_URL),
        TALKFLOW_OPENAI_TIMEOUT_SEC=_getenv_float("TALKFLOW_OPENAI_TIMEOUT_SEC", 60.0),
        TALKFLOW_WHISPER_CPP_BIN=_getenv_str("TALKFLOW_WHISPER_CPP_BIN", "whisper-cli"),
        TALKFLOW_MODELS_DIR=_getenv_path("TALKFLOW_MODELS_DIR", home / "models"),
        TALKFLOW_DEBUG_AUDIO=_getenv_bool("TALKFLOW_DEBUG_AUDIO", False),
        TALKFLOW_DEBUG_AUDIO_DIR=_getenv_path("TALKFLOW_DEBUG_AUDIO_DIR", home / "debug-audio"),
    )


class AppConfiguration(BaseModel):
    """User preferences persisted between runs.

    Unknown keys are ignored and missing keys fall back to defaults so that
    configuration files written by older versions keep loading.
    """

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    # Shortcut
    minimum_hold_duration_ms: int = 300

    # Audio
    input_device_uid: Optional[str] = None
    silence_threshold_db: float = DEFAULT_SILENCE_THRESHOLD_DB
    noise_gate_threshold_db: float = DEFAULT_NOISE_GATE_THRESHOLD_DB
    bypass_audio_processing: bool = False

    # Recording limits
    max_recording_duration_seconds: int = 120
    warning_duration_seconds: int = 60

    # Transcription - API
    whisper_model: str = DEFAULT_WHISPER_MODEL
    language: Optional[str] = None

    # Transcription - local
    transcription_mode: TranscriptionMode = "api"
    selected_local_model: Optional[str] = None
    transcription_language: str = "auto"

    # Output
    strip_punctuation: bool = False


class ConfigurationManager:
    def __init__(self, path: Optional[Path] = None):
        self._path = Path(path) if path is not None else None
        self._lock = RLock()
        self._configuration = self._load()

    @property
    def configuration(self) -> AppConfiguration:
        with self._lock:
            return self._configuration

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _load(self) -> AppConfiguration:
        if self._path is None or not self._path.exists():
            return AppConfiguration()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Ignoring unreadable configuration at %s: %s", self._path, exc)
            return AppConfiguration()
        if not isinstance(raw, dict):
            return AppConfiguration()
        try:
            return AppConfiguration.model_validate(raw)
        except ValidationError as exc:
            logger.warning("Ignoring invalid configuration at %s: %s", self._path, exc)
            return AppConfiguration()

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        payload = self._configuration.model_dump(mode="json")
        self._path.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")
        logger.debug("Configuration saved")

    def update(self, **changes: Any) -> AppConfiguration:
        with self._lock:
            merged = {**self._configuration.model_dump(), **changes}
            self._configuration = AppConfiguration.model_validate(merged)
            self._save()
            return self._configuration

    def reset(self) -> AppConfiguration:
        with self._lock:
            self._configuration = AppConfiguration()
            self._save()
        logger.info("Configuration reset to defaults")
        return self._configuration
