from __future__ import annotations

"""
Local API surface for the TalkFlow dictation service.

Design intent:
- Keep orchestration in DictationPipeline; handlers only translate I/O.
- Let tests swap any collaborator by assigning it on app.state.
- Never return the stored API key, only whether one is configured.
"""

import base64
import binascii
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field, ValidationError

from talkflow.audio.processor import AudioProcessor
from talkflow.dictation.output import BufferTextOutput
from talkflow.dictation.pipeline import DictationOutcome, DictationPipeline
from talkflow.dictionary.manager import DictionaryError, DictionaryManager
from talkflow.dictionary.storage import DictionaryStorage
from talkflow.history.storage import HistoryStorage
from talkflow.internal_core.capture.base import AudioCaptureService
from talkflow.internal_core.capture.sounddevice_capture import SoundDeviceCaptureService
from talkflow.internal_core.config import AppConfiguration, ConfigurationManager, Settings, load_settings
from talkflow.internal_core.contracts import CapturedAudio, DictionaryTerm, TranscriptionRecord
from talkflow.internal_core.credentials.base import CredentialStore
from talkflow.internal_core.credentials.keyring_store import KeyringCredentialStore
from talkflow.internal_core.logging_setup import configure_logging
from talkflow.internal_core.transcription.base import TranscriptionService
from talkflow.internal_core.transcription.models import LOCAL_MODELS, LocalModelManager
from talkflow.internal_core.transcription.openai_whisper import OpenAIWhisperService
from talkflow.internal_core.transcription.router import TranscriptionRouter
from talkflow.internal_core.transcription.whisper_cpp import LocalTranscriptionService


class TranscribeRequest(BaseModel):
    audio_base64: str = Field(min_length=1)
    sample_rate: float = Field(default=44100.0, gt=0.0, le=192000.0)


class HistoryRecordResponse(BaseModel):
    id: str
    text: str
    preview: str
    timestamp: str
    duration_ms: Optional[int] = None
    formatted_duration: Optional[str] = None
    confidence: Optional[float] = None
    source: Optional[str] = None
    model: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None


class HistoryListResponse(BaseModel):
    records: list[HistoryRecordResponse] = Field(default_factory=list)
    count: int = 0


class DictionaryTermCreateRequest(BaseModel):
    term: str = Field(max_length=200)


class DictionaryTermPatchRequest(BaseModel):
    term: Optional[str] = Field(default=None, max_length=200)
    is_enabled: Optional[bool] = None


class DictionaryListResponse(BaseModel):
    terms: list[DictionaryTerm] = Field(default_factory=list)
    count: int = 0
    max_terms: int
    prompt: str = ""


class ApiKeyRequest(BaseModel):
    api_key: str = Field(min_length=1)


class ApiKeyStatusResponse(BaseModel):
    configured: bool


class DictationStatusResponse(BaseModel):
    state: str
    elapsed_sec: float = 0.0
    warning_due: bool = False
    limit_reached: bool = False
    hold_pending: bool = False
    in_grace_period: bool = False


class DictationTickResponse(BaseModel):
    status: DictationStatusResponse
    outcome: Optional[DictationOutcome] = None


class LocalModelResponse(BaseModel):
    id: str
    display_name: str
    size_description: str
    quality_description: str
    downloaded: bool
    selected: bool


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = _get_settings()
    configure_logging(settings.TALKFLOW_LOG_LEVEL, settings.TALKFLOW_LOG_DIR)
    logger.info("talkflow service starting, logs in %s", settings.TALKFLOW_LOG_DIR)
    yield


app = FastAPI(title="talkflow dictation service", lifespan=lifespan)
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_DICTIONARY_ERROR_STATUS = {
    "EMPTY_TERM": 400,
    "DUPLICATE_TERM": 409,
    "LIMIT_REACHED": 409,
    "STORAGE_ERROR": 500,
}

_OUTCOME_ERROR_STATUS = {
    "BUSY": 409,
    "NO_API_KEY": 400,
    "MODEL_NOT_DOWNLOADED": 409,
    "DOWNLOAD_IN_PROGRESS": 409,
}


def _get_settings() -> Settings:
    existing = getattr(app.state, "settings", None)
    if isinstance(existing, Settings):
        return existing
    created = load_settings()
    app.state.settings = created
    return created


def _get_configuration_manager() -> ConfigurationManager:
    existing = getattr(app.state, "configuration_manager", None)
    if existing is not None:
        return existing
    created = ConfigurationManager(_get_settings().TALKFLOW_CONFIG_PATH)
    app.state.configuration_manager = created
    return created


def _get_credential_store() -> CredentialStore:
    existing = getattr(app.state, "credential_store", None)
    if existing is not None:
        return existing
    created = KeyringCredentialStore()
    app.state.credential_store = created
    return created


def _get_history_storage() -> HistoryStorage:
    existing = getattr(app.state, "history_storage", None)
    if existing is not None:
        return existing
    created = HistoryStorage(_get_settings().TALKFLOW_DATABASE_PATH)
    app.state.history_storage = created
    return created


def _get_dictionary_manager() -> DictionaryManager:
    existing = getattr(app.state, "dictionary_manager", None)
    if existing is not None:
        return existing
    created = DictionaryManager(DictionaryStorage(_get_settings().TALKFLOW_DATABASE_PATH))
    app.state.dictionary_manager = created
    return created


def _get_model_manager() -> LocalModelManager:
    existing = getattr(app.state, "model_manager", None)
    if existing is not None:
        return existing
    created = LocalModelManager(_get_settings().TALKFLOW_MODELS_DIR)
    app.state.model_manager = created
    return created


def _get_transcription_service() -> TranscriptionService:
    existing = getattr(app.state, "transcription_service", None)
    if existing is not None:
        return existing
    settings = _get_settings()
    configuration_manager = _get_configuration_manager()
    model_manager = _get_model_manager()
    created = TranscriptionRouter(
        api_service=OpenAIWhisperService(
            _get_credential_store(),
            configuration_manager,
            _get_dictionary_manager(),
            base_url=settings.TALKFLOW_OPENAI_BASE_URL,
            timeout_sec=settings.TALKFLOW_OPENAI_TIMEOUT_SEC,
        ),
        local_service=LocalTranscriptionService(
            configuration_manager,
            model_manager,
            bin_path=settings.TALKFLOW_WHISPER_CPP_BIN,
        ),
        configuration_manager=configuration_manager,
        model_manager=model_manager,
    )
    app.state.transcription_service = created
    return created


def _get_audio_capture() -> AudioCaptureService:
    existing = getattr(app.state, "audio_capture", None)
    if existing is not None:
        return existing
    created = SoundDeviceCaptureService(_get_configuration_manager())
    app.state.audio_capture = created
    return created


def _get_pipeline() -> DictationPipeline:
    existing = getattr(app.state, "pipeline", None)
    if existing is not None:
        return existing
    settings = _get_settings()
    configuration_manager = _get_configuration_manager()
    debug_dir = settings.TALKFLOW_DEBUG_AUDIO_DIR if settings.TALKFLOW_DEBUG_AUDIO else None
    created = DictationPipeline(
        configuration_manager=configuration_manager,
        audio_capture=_get_audio_capture(),
        audio_processor=AudioProcessor(configuration_manager, debug_dir=debug_dir),
        transcription_service=_get_transcription_service(),
        text_output=getattr(app.state, "text_output", None) or BufferTextOutput(),
        history_storage=_get_history_storage(),
    )
    app.state.pipeline = created
    return created


def _record_response(record: TranscriptionRecord) -> HistoryRecordResponse:
    return HistoryRecordResponse(
        id=record.id,
        text=record.text,
        preview=record.preview,
        timestamp=record.timestamp.isoformat(),
        duration_ms=record.duration_ms,
        formatted_duration=record.formatted_duration,
        confidence=record.confidence,
        source=record.source,
        model=record.model,
        metadata=record.metadata,
    )


def _raise_for_outcome(outcome: DictationOutcome) -> DictationOutcome:
    if outcome.status != "error":
        return outcome
    status = _OUTCOME_ERROR_STATUS.get(outcome.error_code or "", 502)
    raise HTTPException(status_code=status, detail=outcome.error_message or "Dictation failed.")


def _dictionary_http_error(exc: DictionaryError) -> HTTPException:
    return HTTPException(status_code=_DICTIONARY_ERROR_STATUS.get(exc.code, 400), detail=exc.message)


def _find_term_or_404(manager: DictionaryManager, term_id: int) -> DictionaryTerm:
    term = manager.find_term(term_id)
    if term is None:
        raise HTTPException(status_code=404, detail=f"Dictionary term not found: {term_id}")
    return term


@app.get("/healthz")
async def healthz() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/transcribe", response_model=DictationOutcome)
async def transcribe(req: TranscribeRequest) -> DictationOutcome:
    try:
        pcm = base64.b64decode(req.audio_base64, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise HTTPException(status_code=400, detail=f"Invalid audio_base64: {exc}") from exc
    if not pcm:
        raise HTTPException(status_code=400, detail="Audio payload is empty.")

    outcome = await _get_pipeline().process_captured(CapturedAudio(data=pcm, sample_rate=req.sample_rate))
    return _raise_for_outcome(outcome)


def _status_response(pipeline: DictationPipeline) -> DictationStatusResponse:
    return DictationStatusResponse(
        state=pipeline.state,
        elapsed_sec=pipeline.recording_elapsed_sec,
        warning_due=pipeline.warning_due,
        limit_reached=pipeline.limit_reached,
        hold_pending=pipeline.hold_pending,
        in_grace_period=pipeline.in_grace_period,
    )


@app.get("/dictation/status", response_model=DictationStatusResponse)
async def dictation_status() -> DictationStatusResponse:
    return _status_response(_get_pipeline())


@app.post("/dictation/start", response_model=DictationStatusResponse)
async def dictation_start() -> DictationStatusResponse:
    pipeline = _get_pipeline()
    if not pipeline.start():
        raise HTTPException(status_code=409, detail=f"Cannot start recording while {pipeline.state}.")
    return DictationStatusResponse(state=pipeline.state)


@app.post("/dictation/stop", response_model=DictationOutcome)
async def dictation_stop() -> DictationOutcome:
    outcome = await _get_pipeline().stop()
    if outcome is None:
        raise HTTPException(status_code=409, detail="Not recording.")
    return _raise_for_outcome(outcome)


@app.post("/dictation/cancel", response_model=DictationStatusResponse)
async def dictation_cancel() -> DictationStatusResponse:
    pipeline = _get_pipeline()
    pipeline.cancel()
    return DictationStatusResponse(state=pipeline.state)


@app.post("/dictation/key-down", response_model=DictationStatusResponse)
async def dictation_key_down() -> DictationStatusResponse:
    pipeline = _get_pipeline()
    pipeline.key_down()
    return _status_response(pipeline)


@app.post("/dictation/key-up", response_model=DictationStatusResponse)
async def dictation_key_up() -> DictationStatusResponse:
    pipeline = _get_pipeline()
    pipeline.key_up()
    return _status_response(pipeline)


@app.post("/dictation/other-key", response_model=DictationStatusResponse)
async def dictation_other_key() -> DictationStatusResponse:
    pipeline = _get_pipeline()
    pipeline.other_key()
    return _status_response(pipeline)


@app.post("/dictation/tick", response_model=DictationTickResponse)
async def dictation_tick() -> DictationTickResponse:
    pipeline = _get_pipeline()
    outcome = await pipeline.tick()
    return DictationTickResponse(status=_status_response(pipeline), outcome=outcome)


@app.get("/history", response_model=HistoryListResponse)
async def list_history(
    q: str = Query(default="", max_length=500),
    limit: int | None = Query(default=None, ge=1, le=1000),
) -> HistoryListResponse:
    storage = _get_history_storage()
    records = storage.search(q) if q.strip() else storage.fetch_all()
    if limit is not None:
        records = records[:limit]
    return HistoryListResponse(records=[_record_response(r) for r in records], count=len(records))


@app.get("/history/{record_id}", response_model=HistoryRecordResponse)
async def get_history_record(record_id: str) -> HistoryRecordResponse:
    record = _get_history_storage().get_record(record_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Record not found: {record_id}")
    return _record_response(record)


@app.delete("/history/{record_id}")
async def delete_history_record(record_id: str) -> dict[str, Any]:
    deleted = _get_history_storage().delete(record_id)
    if deleted is None:
        raise HTTPException(status_code=500, detail="Failed to delete history record.")
    if not deleted:
        raise HTTPException(status_code=404, detail=f"Record not found: {record_id}")
    return {"deleted": record_id}


@app.delete("/history")
async def delete_all_history() -> dict[str, Any]:
    if not _get_history_storage().delete_all():
        raise HTTPException(status_code=500, detail="Failed to delete history.")
    return {"deleted": "all"}


def _dictionary_response(manager: DictionaryManager, q: str = "") -> DictionaryListResponse:
    terms = manager.filter_terms(q)
    return DictionaryListResponse(
        terms=terms,
        count=manager.term_count,
        max_terms=manager.max_terms,
        prompt=manager.build_prompt(),
    )


@app.get("/dictionary", response_model=DictionaryListResponse)
async def list_dictionary(q: str = Query(default="", max_length=200)) -> DictionaryListResponse:
    return _dictionary_response(_get_dictionary_manager(), q)


@app.post("/dictionary", response_model=DictionaryTerm, status_code=201)
async def add_dictionary_term(req: DictionaryTermCreateRequest) -> DictionaryTerm:
    try:
        return _get_dictionary_manager().add_term(req.term)
    except DictionaryError as exc:
        raise _dictionary_http_error(exc) from exc


@app.patch("/dictionary/{term_id}", response_model=DictionaryTerm)
async def patch_dictionary_term(term_id: int, req: DictionaryTermPatchRequest) -> DictionaryTerm:
    manager = _get_dictionary_manager()
    term = _find_term_or_404(manager, term_id)
    try:
        if req.term is not None:
            term = manager.update_term(term, req.term)
        if req.is_enabled is not None and req.is_enabled != term.is_enabled:
            term = manager.toggle_term(term)
    except DictionaryError as exc:
        raise _dictionary_http_error(exc) from exc
    return term


@app.post("/dictionary/{term_id}/toggle", response_model=DictionaryTerm)
async def toggle_dictionary_term(term_id: int) -> DictionaryTerm:
    manager = _get_dictionary_manager()
    term = _find_term_or_404(manager, term_id)
    try:
        return manager.toggle_term(term)
    except DictionaryError as exc:
        raise _dictionary_http_error(exc) from exc


@app.delete("/dictionary/{term_id}")
async def delete_dictionary_term(term_id: int) -> dict[str, Any]:
    manager = _get_dictionary_manager()
    term = _find_term_or_404(manager, term_id)
    try:
        manager.delete_term(term)
    except DictionaryError as exc:
        raise _dictionary_http_error(exc) from exc
    return {"deleted": term_id}


@app.get("/credentials/api-key", response_model=ApiKeyStatusResponse)
async def api_key_status() -> ApiKeyStatusResponse:
    return ApiKeyStatusResponse(configured=_get_credential_store().has_api_key())


@app.put("/credentials/api-key", response_model=ApiKeyStatusResponse)
async def set_api_key(req: ApiKeyRequest) -> ApiKeyStatusResponse:
    key = req.api_key.strip()
    if not key:
        raise HTTPException(status_code=400, detail="API key cannot be blank.")
    store = _get_credential_store()
    store.set_api_key(key)
    return ApiKeyStatusResponse(configured=store.has_api_key())


@app.delete("/credentials/api-key", response_model=ApiKeyStatusResponse)
async def delete_api_key() -> ApiKeyStatusResponse:
    store = _get_credential_store()
    store.delete_api_key()
    return ApiKeyStatusResponse(configured=store.has_api_key())


@app.get("/configuration", response_model=AppConfiguration)
async def get_configuration() -> AppConfiguration:
    return _get_configuration_manager().configuration


@app.patch("/configuration", response_model=AppConfiguration)
async def patch_configuration(changes: dict[str, Any]) -> AppConfiguration:
    manager = _get_configuration_manager()
    unknown = sorted(set(changes) - set(AppConfiguration.model_fields))
    if unknown:
        raise HTTPException(status_code=400, detail=f"Unknown configuration keys: {', '.join(unknown)}")
    try:
        return manager.update(**changes)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/models/local", response_model=list[LocalModelResponse])
async def list_local_models() -> list[LocalModelResponse]:
    model_manager = _get_model_manager()
    selected = _get_configuration_manager().configuration.selected_local_model
    return [
        LocalModelResponse(
            id=m.id,
            display_name=m.display_name,
            size_description=m.size_description,
            quality_description=m.quality_description,
            downloaded=model_manager.is_model_downloaded(m.id),
            selected=m.id == selected,
        )
        for m in LOCAL_MODELS
    ]
