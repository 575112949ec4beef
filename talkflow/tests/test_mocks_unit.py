import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from talkflow.internal_core.capture import MockAudioCaptureService
from talkflow.internal_core.contracts import CapturedAudio, TranscriptionResult
from talkflow.internal_core.credentials import MockKeychainService
from talkflow.internal_core.transcription import MockTranscriptionService, TranscriptionError


def test_mock_capture_returns_configured_audio_and_counts_calls() -> None:
    capture = MockAudioCaptureService()
    capture.set_mock_audio_data(b"\x01\x00\x02\x00", sample_rate=16000)

    capture.start_recording()
    assert capture.is_recording is True
    captured = capture.stop_recording()

    assert capture.is_recording is False
    assert captured == CapturedAudio(data=b"\x01\x00\x02\x00", sample_rate=16000)
    assert capture.start_call_count == 1
    assert capture.stop_call_count == 1


def test_mock_capture_defaults_to_empty_snapshot() -> None:
    capture = MockAudioCaptureService()
    capture.start_recording()
    captured = capture.stop_recording()

    assert captured.is_empty
    assert captured.sample_rate == 44100
    assert capture.audio_level == 0.0


def test_mock_capture_level_and_recording_flag_are_settable() -> None:
    capture = MockAudioCaptureService()
    capture.audio_level = 0.75
    capture.is_recording = True

    assert capture.audio_level == 0.75
    assert capture.is_recording is True
    assert MockAudioCaptureService().audio_level == 0.0


def test_mock_capture_grants_microphone_access() -> None:
    granted: list[bool] = []
    MockAudioCaptureService().request_microphone_access(granted.append)
    assert granted == [True]


def test_mock_keychain_round_trip() -> None:
    store = MockKeychainService()
    assert store.has_api_key() is False
    assert store.get_api_key() is None

    store.set_api_key("sk-test")
    assert store.get_api_key() == "sk-test"
    assert store.has_api_key() is True
    assert store.has_api_key_without_fetch() is True

    store.delete_api_key()
    assert store.get_api_key() is None
    assert store.has_api_key() is False
    assert store.migrate_if_needed() is None


def test_mock_transcription_returns_configured_result() -> None:
    expected = TranscriptionResult(text="configured", confidence=0.9, source="api", model="whisper-1")
    service = MockTranscriptionService(mock_result=expected)

    result = asyncio.run(service.transcribe(b"audio"))

    assert result is expected
    assert service.transcribe_call_count == 1
    assert service.received_audio == [b"audio"]


def test_mock_transcription_default_result() -> None:
    result = asyncio.run(MockTranscriptionService().transcribe(b""))
    assert result.text == "Mock transcription"
    assert result.source == "mock"


def test_mock_transcription_raises_configured_error_and_still_counts() -> None:
    error = TranscriptionError.rate_limited()
    service = MockTranscriptionService(
        mock_result=TranscriptionResult(text="unused"),
        mock_error=error,
    )

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value is error
    assert service.transcribe_call_count == 1


def test_mock_transcription_counter_is_exact_under_threads() -> None:
    service = MockTranscriptionService()

    def worker() -> None:
        for _ in range(50):
            asyncio.run(service.transcribe(b"x"))

    with ThreadPoolExecutor(max_workers=8) as pool:
        futures = [pool.submit(worker) for _ in range(8)]
        for future in futures:
            future.result()

    assert service.transcribe_call_count == 400
    assert len(service.received_audio) == 400
