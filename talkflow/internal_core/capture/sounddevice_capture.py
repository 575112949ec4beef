from __future__ import annotations

import logging
from threading import Lock, RLock
from typing import Any, Callable, List, Optional

import numpy as np

from ..audio_utils import float32_to_pcm16, normalized_level
from ..config import DEFAULT_SAMPLE_RATE, ConfigurationManager
from ..contracts import CapturedAudio
from .base import AudioCaptureError, AudioCaptureService, AudioDevice

logger = logging.getLogger(__name__)

BLOCK_SIZE = 4096


def _import_sounddevice() -> Any:
    try:
        import sounddevice  # type: ignore
    except (ImportError, OSError) as exc:
        raise AudioCaptureError(
            "ENGINE_CREATION_FAILED",
            "Audio capture requires the Python dependency `sounddevice` and a PortAudio runtime.",
        ) from exc
    return sounddevice


class _BufferStore:
    """Frames appended from the stream callback thread, read from callers."""

    def __init__(self) -> None:
        self._lock = Lock()
        self._buffers: List[np.ndarray] = []

    def append(self, frames: np.ndarray) -> None:
        with self._lock:
            self._buffers.append(frames)

    def last(self) -> Optional[np.ndarray]:
        with self._lock:
            return self._buffers[-1] if self._buffers else None

    def drain(self) -> List[np.ndarray]:
        with self._lock:
            out = self._buffers
            self._buffers = []
            return out

    def clear(self) -> None:
        with self._lock:
            self._buffers = []


class SoundDeviceCaptureService(AudioCaptureService):
    def __init__(
        self,
        configuration_manager: ConfigurationManager,
        *,
        sample_rate: int = DEFAULT_SAMPLE_RATE,
        stream_factory: Optional[Callable[..., Any]] = None,
        device_query: Optional[Callable[[], Any]] = None,
    ):
        self._configuration_manager = configuration_manager
        self._sample_rate = int(sample_rate)
        self._stream_factory = stream_factory
        self._device_query = device_query
        self._buffers = _BufferStore()
        self._lock = RLock()
        self._stream: Any = None
        self._is_recording = False

    @property
    def is_recording(self) -> bool:
        with self._lock:
            return self._is_recording

    @property
    def audio_level(self) -> float:
        if not self.is_recording:
            return 0.0
        last = self._buffers.last()
        if last is None:
            return 0.0
        return normalized_level(last)

    def _resolve_stream_factory(self) -> Callable[..., Any]:
        if self._stream_factory is not None:
            return self._stream_factory
        return _import_sounddevice().InputStream

    def _query_devices(self) -> Any:
        if self._device_query is not None:
            return self._device_query()
        return _import_sounddevice().query_devices()

    def request_microphone_access(self, completion: Callable[[bool], None]) -> None:
        # PortAudio has no permission prompt; access means an input device exists.
        try:
            granted = bool(self.list_input_devices())
        except AudioCaptureError as exc:
            logger.warning("Microphone access check failed: %s", exc.message)
            granted = False
        completion(granted)

    def _on_frames(self, indata: Any, frames: int, time_info: Any, status: Any) -> None:
        if status:
            logger.debug("Input stream status: %s", status)
        block = np.asarray(indata, dtype=np.float32)
        if block.ndim > 1:
            block = block[:, 0]
        self._buffers.append(block.copy())

    def start_recording(self) -> None:
        with self._lock:
            if self._is_recording:
                raise AudioCaptureError("ALREADY_RECORDING")

            self._buffers.clear()
            factory = self._resolve_stream_factory()
            device = self._configuration_manager.configuration.input_device_uid
            if device:
                logger.debug("Input device configuration requested: %s", device)

            try:
                stream = factory(
                    samplerate=self._sample_rate,
                    channels=1,
                    dtype="float32",
                    blocksize=BLOCK_SIZE,
                    device=device or None,
                    callback=self._on_frames,
                )
                stream.start()
            except AudioCaptureError:
                raise
            except Exception as exc:
                raise AudioCaptureError("ENGINE_CREATION_FAILED", f"Failed to create audio engine: {exc}") from exc

            self._stream = stream
            self._is_recording = True
        logger.info("Audio capture started at %d Hz", self._sample_rate)

    def stop_recording(self) -> CapturedAudio:
        with self._lock:
            if not self._is_recording:
                return CapturedAudio.empty()
            stream = self._stream
            self._stream = None
            self._is_recording = False

        try:
            stream.stop()
            stream.close()
        except Exception as exc:
            logger.warning("Failed to close input stream cleanly: %s", exc)

        buffers = self._buffers.drain()
        if buffers:
            pcm = float32_to_pcm16(np.concatenate(buffers))
        else:
            pcm = b""
        logger.info("Audio capture stopped, captured %d bytes", len(pcm))
        return CapturedAudio(data=pcm, sample_rate=float(self._sample_rate))

    def list_input_devices(self) -> List[AudioDevice]:
        devices: List[AudioDevice] = []
        for item in self._query_devices():
            if int(item.get("max_input_channels", 0) or 0) <= 0:
                continue
            name = str(item.get("name", "")).strip()
            if not name:
                continue
            devices.append(AudioDevice(uid=name, name=name))
        return devices
