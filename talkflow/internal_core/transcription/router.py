from __future__ import annotations

import logging

from ..config import ConfigurationManager, TranscriptionMode
from ..contracts import TranscriptionResult
from .base import TranscriptionService
from .models import LocalModelManager

logger = logging.getLogger(__name__)


class TranscriptionRouter(TranscriptionService):
    """Picks the API or local service per call, so mode changes apply immediately."""

    def __init__(
        self,
        api_service: TranscriptionService,
        local_service: TranscriptionService,
        configuration_manager: ConfigurationManager,
        model_manager: LocalModelManager,
    ):
        self._api_service = api_service
        self._local_service = local_service
        self._configuration_manager = configuration_manager
        self._model_manager = model_manager

    def name(self) -> str:
        return "router"

    @property
    def current_mode(self) -> TranscriptionMode:
        return self._configuration_manager.configuration.transcription_mode

    def is_local_available(self) -> bool:
        selected = self._configuration_manager.configuration.selected_local_model
        if not selected:
            return False
        return not self._model_manager.is_downloading and self._model_manager.is_model_downloaded(
            selected
        )

    async def transcribe(self, audio: bytes) -> TranscriptionResult:
        if self.current_mode == "local":
            logger.debug("Routing transcription to local model")
            return await self._local_service.transcribe(audio)
        logger.debug("Routing transcription to OpenAI API")
        return await self._api_service.transcribe(audio)
