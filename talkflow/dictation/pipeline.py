from __future__ import annotations

import asyncio
import logging
import time
from threading import RLock
from typing import Callable, Literal, Optional

from pydantic import BaseModel, ConfigDict

from ..audio.processor import AudioProcessor
from ..history.storage import HistoryStorage
from ..internal_core.capture.base import AudioCaptureError, AudioCaptureService
from ..internal_core.config import ConfigurationManager
from ..internal_core.contracts import CapturedAudio, TranscriptionRecord
from ..internal_core.text_utils import is_blank, strip_punctuation, truncated
from ..internal_core.transcription.base import TranscriptionError, TranscriptionService
from .output import TextOutput

logger = logging.getLogger(__name__)

PipelineState = Literal["idle", "recording", "processing"]
OutcomeStatus = Literal["success", "no_speech", "error"]


class DictationOutcome(BaseModel):
    model_config = ConfigDict(extra="forbid")

    status: OutcomeStatus
    text: Optional[str] = None
    record_id: Optional[str] = None
    duration_ms: int = 0
    source: Optional[str] = None
    model: Optional[str] = None
    error_code: Optional[str] = None
    error_message: Optional[str] = None


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, (TranscriptionError, AudioCaptureError)):
        return exc.code
    return "PROCESSING_FAILED"


class DictationPipeline:
    """One dictation at a time: start, then stop (or cancel).

    ``stop`` runs processing, transcription, output and history in order
    and reports the result as a ``DictationOutcome``. ``process_captured``
    runs the same stages on audio that was captured elsewhere.

    Push-to-talk callers report key events through ``key_down``, ``key_up``
    and ``other_key`` and call ``tick`` periodically; the hold delay and the
    grace period after release both last ``minimum_hold_duration_ms``.
    """

    def __init__(
        self,
        configuration_manager: ConfigurationManager,
        audio_capture: AudioCaptureService,
        audio_processor: AudioProcessor,
        transcription_service: TranscriptionService,
        text_output: TextOutput,
        history_storage: Optional[HistoryStorage] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._configuration_manager = configuration_manager
        self._audio_capture = audio_capture
        self._audio_processor = audio_processor
        self._transcription_service = transcription_service
        self._text_output = text_output
        self._history_storage = history_storage
        self._clock = clock
        self._lock = RLock()
        self._state: PipelineState = "idle"
        self._recording_started_at: Optional[float] = None
        self._hold_deadline: Optional[float] = None
        self._grace_deadline: Optional[float] = None

    @property
    def state(self) -> PipelineState:
        with self._lock:
            return self._state

    @property
    def recording_elapsed_sec(self) -> float:
        with self._lock:
            if self._state != "recording" or self._recording_started_at is None:
                return 0.0
            return max(0.0, self._clock() - self._recording_started_at)

    @property
    def warning_due(self) -> bool:
        limit = self._configuration_manager.configuration.warning_duration_seconds
        return self.recording_elapsed_sec >= limit

    @property
    def limit_reached(self) -> bool:
        limit = self._configuration_manager.configuration.max_recording_duration_seconds
        return self.recording_elapsed_sec >= limit

    @property
    def hold_pending(self) -> bool:
        with self._lock:
            return self._hold_deadline is not None

    @property
    def in_grace_period(self) -> bool:
        with self._lock:
            return self._grace_deadline is not None

    def _hold_sec(self) -> float:
        return max(0, self._configuration_manager.configuration.minimum_hold_duration_ms) / 1000.0

    def start(self) -> bool:
        with self._lock:
            if self._state != "idle":
                logger.debug("Ignoring start while %s", self._state)
                return False
            try:
                self._audio_capture.start_recording()
            except AudioCaptureError as exc:
                logger.error("Failed to start recording: %s", exc.message)
                return False
            self._state = "recording"
            self._recording_started_at = self._clock()
            self._hold_deadline = None
        logger.info("Recording started")
        return True

    def cancel(self) -> None:
        with self._lock:
            self._hold_deadline = None
            self._grace_deadline = None
            if self._state != "recording":
                return
            self._audio_capture.stop_recording()
            self._state = "idle"
            self._recording_started_at = None
        logger.info("Recording cancelled")

    def key_down(self) -> None:
        """Shortcut pressed: arm the hold timer, or resume during a grace period."""
        with self._lock:
            if self._grace_deadline is not None:
                logger.debug("Key re-pressed during grace period, continuing recording")
                self._grace_deadline = None
                return
            if self._state != "idle" or self._hold_deadline is not None:
                logger.debug("Ignoring key down while %s", self._state)
                return
            hold = self._hold_sec()
            if hold > 0:
                self._hold_deadline = self._clock() + hold
                logger.debug("Key down detected, starting hold timer")
                return
        logger.debug("Key down detected, instant recording")
        self.start()

    def key_up(self) -> None:
        with self._lock:
            if self._hold_deadline is not None:
                self._hold_deadline = None
                logger.debug("Key released before recording started (tap)")
                return
            if self._state == "recording" and self._grace_deadline is None:
                hold = self._hold_sec()
                self._grace_deadline = self._clock() + hold
                logger.debug("Key released, starting grace period of %d ms", int(hold * 1000))

    def other_key(self) -> None:
        with self._lock:
            active = (
                self._hold_deadline is not None
                or self._grace_deadline is not None
                or self._state == "recording"
            )
        if active:
            logger.info("Recording cancelled - another key was pressed")
            self.cancel()

    async def tick(self) -> Optional[DictationOutcome]:
        """Fire whichever of the hold, grace or length deadlines has passed.

        Returns the outcome when this call finished a recording.
        """
        now = self._clock()
        with self._lock:
            hold_due = self._hold_deadline is not None and now >= self._hold_deadline
            grace_due = self._grace_deadline is not None and now >= self._grace_deadline
            if hold_due:
                self._hold_deadline = None
            if grace_due:
                self._grace_deadline = None

        if hold_due:
            self.start()
            return None
        if grace_due:
            logger.debug("Grace period ended, stopping recording")
            return await self.stop()
        if self.state == "recording" and self.limit_reached:
            logger.info("Maximum recording duration reached")
            return await self.stop()
        return None

    async def stop(self) -> Optional[DictationOutcome]:
        """Finish the current recording; returns ``None`` when not recording."""
        with self._lock:
            self._hold_deadline = None
            self._grace_deadline = None
            if self._state != "recording":
                return None
            duration = self.recording_elapsed_sec
            captured = self._audio_capture.stop_recording()
            self._state = "processing"
            self._recording_started_at = None
        logger.info("Recording stopped, duration: %.1fs", duration)

        try:
            return await self._process(captured, duration)
        finally:
            with self._lock:
                self._state = "idle"

    async def process_captured(self, captured: CapturedAudio, duration_sec: Optional[float] = None) -> DictationOutcome:
        with self._lock:
            if self._state != "idle":
                return DictationOutcome(
                    status="error",
                    error_code="BUSY",
                    error_message=f"Dictation is {self._state}",
                )
            self._state = "processing"
        try:
            duration = captured.duration_sec if duration_sec is None else duration_sec
            return await self._process(captured, duration)
        finally:
            with self._lock:
                self._state = "idle"

    async def _process(self, captured: CapturedAudio, duration_sec: float) -> DictationOutcome:
        duration_ms = int(duration_sec * 1000)
        config = self._configuration_manager.configuration
        try:
            processed = await asyncio.to_thread(self._audio_processor.process, captured)
            if processed.is_empty:
                logger.info("No speech detected in recording")
                return DictationOutcome(status="no_speech", duration_ms=duration_ms)

            result = await self._transcription_service.transcribe(processed.audio_data)
        except Exception as exc:
            logger.error("Processing failed: %s", exc)
            return DictationOutcome(
                status="error",
                duration_ms=duration_ms,
                error_code=_error_code(exc),
                error_message=str(exc),
            )

        text = strip_punctuation(result.text) if config.strip_punctuation else result.text
        if is_blank(text):
            logger.info("Transcription returned empty text, skipping")
            return DictationOutcome(
                status="no_speech", duration_ms=duration_ms, source=result.source, model=result.model
            )

        self._text_output.insert(text)

        record = TranscriptionRecord(
            text=text,
            duration_ms=duration_ms,
            confidence=result.confidence,
            source=result.source,
            model=result.model,
            metadata=result.metadata,
        )
        saved = self._history_storage.save(record) if self._history_storage is not None else False

        logger.info("Transcription complete: %s", truncated(text, 50))
        return DictationOutcome(
            status="success",
            text=text,
            record_id=record.id if saved else None,
            duration_ms=duration_ms,
            source=result.source,
            model=result.model,
        )
