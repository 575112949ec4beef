from __future__ import annotations

import datetime as _dt
import logging
from pathlib import Path
from typing import Optional

import numpy as np

from ..internal_core.audio_utils import encode_wav, float32_to_pcm16, pcm16_to_float32, write_wav
from ..internal_core.config import ConfigurationManager
from ..internal_core.contracts import CapturedAudio, ProcessedAudioResult
from .noise_gate import NoiseGate
from .vad import VoiceActivityDetector

logger = logging.getLogger(__name__)


class AudioProcessor:
    """Noise gate, then voice activity detection, then WAV encoding.

    Thresholds are read from the configuration on every call. When
    ``debug_dir`` is set each stage is also written there as a WAV file.
    """

    def __init__(self, configuration_manager: ConfigurationManager, debug_dir: Optional[Path] = None):
        self._configuration_manager = configuration_manager
        self._debug_dir = Path(debug_dir) if debug_dir is not None else None

    def _write_debug_audio(self, samples: np.ndarray, sample_rate: int, stage: str) -> None:
        if self._debug_dir is None:
            return
        stamp = _dt.datetime.now().strftime("%H-%M-%S")
        path = self._debug_dir / f"{stamp}_{stage}.wav"
        try:
            write_wav(path, float32_to_pcm16(samples), sample_rate)
        except OSError as exc:
            logger.error("Failed to write debug audio: %s", exc)
            return
        logger.info("Debug audio written: %s (%d samples)", path.name, samples.size)

    def process(self, captured: CapturedAudio) -> ProcessedAudioResult:
        config = self._configuration_manager.configuration
        sample_rate = int(captured.sample_rate)
        logger.debug("Processing %d bytes of raw audio at %d Hz", len(captured.data), sample_rate)

        samples = pcm16_to_float32(captured.data)
        if samples.size == 0 or sample_rate <= 0:
            logger.debug("No samples to process")
            return ProcessedAudioResult.empty()

        self._write_debug_audio(samples, sample_rate, "1_raw")

        if config.bypass_audio_processing:
            logger.info("Audio processing bypassed (noise gate and VAD disabled)")
            self._write_debug_audio(samples, sample_rate, "3_final_speech_bypassed")
            return ProcessedAudioResult(
                audio_data=encode_wav(float32_to_pcm16(samples), sample_rate), is_empty=False
            )

        gate = NoiseGate(threshold_db=config.noise_gate_threshold_db, sample_rate=sample_rate)
        vad = VoiceActivityDetector(
            sample_rate=sample_rate, silence_threshold_db=config.silence_threshold_db
        )

        gated = gate.process(samples)
        self._write_debug_audio(gated, sample_rate, "2_after_noisegate")

        segments = vad.detect_speech_segments(gated)
        if not segments:
            logger.info(
                "No speech detected (silence threshold: %.1f dB, noise gate: %.1f dB)",
                config.silence_threshold_db,
                config.noise_gate_threshold_db,
            )
            return ProcessedAudioResult.empty()

        speech = np.concatenate([gated[s.start_sample : s.end_sample] for s in segments])
        self._write_debug_audio(speech, sample_rate, "3_final_speech")
        logger.debug("Extracted %d speech samples from %d total", speech.size, gated.size)

        encoded = encode_wav(float32_to_pcm16(speech), sample_rate)
        logger.info("Audio processed: %d -> %d bytes", len(captured.data), len(encoded))
        return ProcessedAudioResult(audio_data=encoded, is_empty=False)
