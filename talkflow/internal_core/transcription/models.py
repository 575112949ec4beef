from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from threading import RLock
from typing import List, Optional, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalWhisperModel:
    id: str
    display_name: str
    size_description: str
    quality_description: str

    @property
    def file_name(self) -> str:
        return f"ggml-{self.id}.bin"


LOCAL_MODELS: Tuple[LocalWhisperModel, ...] = (
    LocalWhisperModel("tiny", "Tiny", "~75 MB", "Fast, basic quality"),
    LocalWhisperModel("small", "Small", "~466 MB", "Balanced quality and size"),
    LocalWhisperModel("large-v3-turbo", "Large v3 Turbo", "~1.5 GB", "Best quality"),
)


def model_for_id(model_id: str) -> Optional[LocalWhisperModel]:
    for model in LOCAL_MODELS:
        if model.id == model_id:
            return model
    return None


class LocalModelManager:
    """Tracks which whisper.cpp ggml models are present under ``models_dir``.

    Downloads happen outside this process; callers flag one as running with
    ``mark_download_started`` so transcription can refuse to race it.
    """

    def __init__(self, models_dir: Path):
        self._models_dir = Path(models_dir)
        self._lock = RLock()
        self._downloading_model_id: Optional[str] = None

    @property
    def models_dir(self) -> Path:
        return self._models_dir

    @property
    def is_downloading(self) -> bool:
        with self._lock:
            return self._downloading_model_id is not None

    @property
    def downloading_model_id(self) -> Optional[str]:
        with self._lock:
            return self._downloading_model_id

    def mark_download_started(self, model_id: str) -> None:
        with self._lock:
            if self._downloading_model_id is not None:
                raise RuntimeError("Another download is in progress")
            if model_for_id(model_id) is None:
                raise ValueError(f"Unknown model: {model_id}")
            self._downloading_model_id = model_id
        logger.info("Download of model %s started", model_id)

    def mark_download_finished(self) -> None:
        with self._lock:
            self._downloading_model_id = None

    def model_path(self, model_id: str) -> Optional[Path]:
        model = model_for_id(model_id)
        if model is None:
            return None
        return self._models_dir / model.file_name

    def is_model_downloaded(self, model_id: str) -> bool:
        path = self.model_path(model_id)
        return path is not None and path.is_file() and path.stat().st_size > 0

    def downloaded_models(self) -> List[str]:
        found = [m.id for m in LOCAL_MODELS if self.is_model_downloaded(m.id)]
        logger.debug("Found %d downloaded models: %s", len(found), found)
        return found

    def delete_model(self, model_id: str) -> bool:
        path = self.model_path(model_id)
        if path is None or not path.exists():
            return False
        path.unlink()
        logger.info("Deleted model %s", model_id)
        return True
