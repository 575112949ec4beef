from __future__ import annotations

import asyncio
import logging
import os
import shutil
import subprocess
import tempfile
import time
from pathlib import Path
from typing import Optional

from ..config import ConfigurationManager
from ..contracts import TranscriptionResult
from .base import TranscriptionError, TranscriptionService
from .models import LocalModelManager

logger = logging.getLogger(__name__)


def _resolve_binary(bin_path: str) -> Optional[str]:
    if not bin_path:
        return None
    if Path(bin_path).exists():
        return bin_path
    return shutil.which(bin_path)


def _with_dyld_paths(bin_path: str) -> dict[str, str]:
    env_out = dict(os.environ)
    try:
        build_dir = Path(bin_path).resolve().parents[1]
    except IndexError:
        return env_out

    candidates = [
        build_dir / "src",
        build_dir / "ggml" / "src",
        build_dir / "ggml" / "src" / "ggml-metal",
    ]
    new_paths = [str(p) for p in candidates if p.exists()]
    if not new_paths:
        return env_out

    existing = env_out.get("DYLD_LIBRARY_PATH", "")
    joined = os.pathsep.join(new_paths)
    env_out["DYLD_LIBRARY_PATH"] = joined if not existing else f"{joined}{os.pathsep}{existing}"
    return env_out


class LocalTranscriptionService(TranscriptionService):
    """On-device transcription through the whisper.cpp ``whisper-cli`` binary.

    The audio is written to a temporary WAV file and the transcript is read
    from stdout.
    """

    def __init__(
        self,
        configuration_manager: ConfigurationManager,
        model_manager: LocalModelManager,
        bin_path: str = "whisper-cli",
        timeout_sec: int = 120,
        no_gpu: bool = False,
    ):
        self._configuration_manager = configuration_manager
        self._model_manager = model_manager
        self._bin_path = bin_path
        self._timeout_sec = int(timeout_sec)
        self._no_gpu = bool(no_gpu)

    def name(self) -> str:
        return "whisper_cpp"

    def build_command(
        self, binary: str, model_path: Path, wav_path: Path, language: str
    ) -> list[str]:
        cmd = [
            binary,
            "-m",
            str(model_path),
            "-f",
            str(wav_path),
            "--no-timestamps",
            "--no-prints",
        ]
        if language and language != "auto":
            cmd.extend(["-l", language])
        if self._no_gpu:
            cmd.insert(1, "-ng")
        return cmd

    async def transcribe(self, audio: bytes) -> TranscriptionResult:
        if self._model_manager.is_downloading:
            raise TranscriptionError("DOWNLOAD_IN_PROGRESS", provider_name=self.name())

        config = self._configuration_manager.configuration
        model_id = config.selected_local_model
        if not model_id or not self._model_manager.is_model_downloaded(model_id):
            raise TranscriptionError("MODEL_NOT_DOWNLOADED", provider_name=self.name())

        binary = _resolve_binary(self._bin_path)
        if binary is None:
            raise TranscriptionError(
                "MODEL_LOAD_FAILED",
                f"whisper.cpp binary not found: {self._bin_path}",
                self.name(),
            )

        model_path = self._model_manager.model_path(model_id)
        language = config.transcription_language
        logger.debug("Starting local transcription, audio size: %d bytes", len(audio))

        started = time.monotonic()
        text = await asyncio.to_thread(self._run, binary, model_path, audio, language)
        elapsed = time.monotonic() - started
        logger.info("Local transcription completed in %.2fs, %d characters", elapsed, len(text))

        return TranscriptionResult(
            text=text,
            language=None if language == "auto" else language,
            duration=elapsed,
            source="local",
            model=model_id,
            metadata={"decoding_time": elapsed, "language": language},
        )

    def _run(self, binary: str, model_path: Path, audio: bytes, language: str) -> str:
        with tempfile.TemporaryDirectory(prefix="talkflow_local_") as tmp_dir:
            wav_path = Path(tmp_dir) / "audio.wav"
            wav_path.write_bytes(audio)
            cmd = self.build_command(binary, model_path, wav_path, language)
            try:
                res = subprocess.run(
                    cmd,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    timeout=self._timeout_sec,
                    env=_with_dyld_paths(binary),
                )
            except subprocess.TimeoutExpired as exc:
                raise TranscriptionError(
                    "LOCAL_TRANSCRIPTION_FAILED", "whisper.cpp timed out", self.name()
                ) from exc
            except OSError as exc:
                raise TranscriptionError("MODEL_LOAD_FAILED", str(exc), self.name()) from exc

        if res.returncode != 0:
            msg = (res.stderr or "").strip() or f"exit_code={res.returncode}"
            if len(msg) > 200:
                msg = msg[:200] + "..."
            raise TranscriptionError("LOCAL_TRANSCRIPTION_FAILED", msg, self.name())

        return " ".join((res.stdout or "").split()).strip()
