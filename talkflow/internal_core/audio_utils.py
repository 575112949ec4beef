from __future__ import annotations

import io
import wave
from pathlib import Path

import numpy as np

INT16_MAX = 32767.0
LEVEL_FLOOR_DB = -60.0


def pcm16_to_float32(data: bytes) -> np.ndarray:
    usable = len(data) - (len(data) % 2)
    if usable <= 0:
        return np.zeros(0, dtype=np.float32)
    audio_i16 = np.frombuffer(data[:usable], dtype="<i2")
    return (audio_i16.astype(np.float32) / INT16_MAX).clip(-1.0, 1.0)


def float32_to_pcm16(samples: np.ndarray) -> bytes:
    audio = np.asarray(samples, dtype=np.float32).clip(-1.0, 1.0)
    return (audio * INT16_MAX).astype("<i2").tobytes()


def compute_rms(audio: np.ndarray) -> float:
    if audio.size == 0:
        return 0.0
    x = audio.astype(np.float32)
    return float(np.sqrt(np.mean(x * x)))


def rms_to_db(rms: float, floor: float = 1e-10) -> float:
    return float(20.0 * np.log10(max(rms, floor)))


def normalized_level(audio: np.ndarray) -> float:
    """Map RMS to 0..1 over the -60 dB..0 dB range."""
    db = rms_to_db(compute_rms(audio), floor=1e-5)
    return float(max(0.0, min(1.0, (db - LEVEL_FLOOR_DB) / -LEVEL_FLOOR_DB)))


def encode_wav(pcm: bytes, sample_rate: int) -> bytes:
    buf = io.BytesIO()
    with wave.open(buf, "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(int(sample_rate))
        wf.writeframes(pcm)
    return buf.getvalue()


def write_wav(path: Path, pcm: bytes, sample_rate: int) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with wave.open(str(path), "wb") as wf:
        wf.setnchannels(1)
        wf.setsampwidth(2)
        wf.setframerate(int(sample_rate))
        wf.writeframes(pcm)


def load_wav_pcm16(path: Path) -> tuple[bytes, int]:
    with wave.open(str(path), "rb") as wf:
        channels = wf.getnchannels()
        width = wf.getsampwidth()
        rate = wf.getframerate()
        if channels != 1:
            raise ValueError(f"Expected mono WAV, got {channels} channels")
        if width != 2:
            raise ValueError(f"Expected 16-bit PCM WAV, got sampwidth={width}")
        return wf.readframes(wf.getnframes()), rate
