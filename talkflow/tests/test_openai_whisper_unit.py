import asyncio
import json
import math

import httpx
import pytest

from talkflow.dictionary import DictionaryManager, DictionaryStorage
from talkflow.internal_core.config import ConfigurationManager
from talkflow.internal_core.credentials import MockKeychainService
from talkflow.internal_core.transcription import OpenAIWhisperService, TranscriptionError

_OK_PAYLOAD = {
    "text": "hello world",
    "language": "english",
    "duration": 1.5,
    "segments": [{"avg_logprob": -0.1}, {"avg_logprob": -0.3}],
}


def _service(handler, *, api_key="sk-test", dictionary_manager=None, manager=None):
    delays: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    service = OpenAIWhisperService(
        MockKeychainService(api_key),
        manager or ConfigurationManager(),
        dictionary_manager,
        base_url="https://api.test/v1",
        transport=httpx.MockTransport(handler),
        sleep=fake_sleep,
    )
    return service, delays


def _responder(*responses: httpx.Response):
    calls: list[httpx.Request] = []
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        template = queue.pop(0) if len(queue) > 1 else queue[0]
        return httpx.Response(template.status_code, headers=template.headers, content=template.content)

    return handler, calls


def test_transcribe_posts_multipart_and_parses_result() -> None:
    handler, calls = _responder(httpx.Response(200, json=_OK_PAYLOAD))
    service, delays = _service(handler)

    result = asyncio.run(service.transcribe(b"RIFFdata"))

    assert result.text == "hello world"
    assert result.language == "english"
    assert result.duration == 1.5
    assert result.source == "api"
    assert result.model == "whisper-1"
    assert result.confidence == pytest.approx(math.exp(-0.2))
    assert delays == []

    request = calls[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.test/v1/audio/transcriptions"
    assert request.headers["Authorization"] == "Bearer sk-test"
    assert b'name="model"' in request.content
    assert b"whisper-1" in request.content
    assert b"verbose_json" in request.content
    assert b'filename="audio.wav"' in request.content
    assert b"RIFFdata" in request.content
    assert b'name="prompt"' not in request.content
    assert b'name="language"' not in request.content


def test_transcribe_includes_language_and_dictionary_prompt(tmp_path) -> None:
    manager = ConfigurationManager()
    manager.update(language="en")
    dictionary = DictionaryManager(DictionaryStorage(tmp_path / "talkflow.sqlite"))
    dictionary.add_term("Kubernetes")

    handler, calls = _responder(httpx.Response(200, json=_OK_PAYLOAD))
    service, _ = _service(handler, dictionary_manager=dictionary, manager=manager)
    asyncio.run(service.transcribe(b"audio"))

    body = calls[0].content
    assert b'name="language"' in body
    assert b'name="prompt"' in body
    assert b"Common terms: Kubernetes" in body


def test_transcribe_without_key_makes_no_request() -> None:
    handler, calls = _responder(httpx.Response(200, json=_OK_PAYLOAD))
    service, _ = _service(handler, api_key=None)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.code == "NO_API_KEY"
    assert calls == []


def test_invalid_key_is_not_retried() -> None:
    handler, calls = _responder(httpx.Response(401, json={"error": {"message": "nope"}}))
    service, delays = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.code == "API_ERROR"
    assert "Invalid API key" in str(excinfo.value)
    assert len(calls) == 1
    assert delays == []


def test_client_error_uses_api_message() -> None:
    handler, calls = _responder(httpx.Response(400, json={"error": {"message": "Audio file is too short"}}))
    service, _ = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.code == "API_ERROR"
    assert excinfo.value.detail == "Audio file is too short"
    assert len(calls) == 1


def test_client_error_without_body_falls_back() -> None:
    handler, _ = _responder(httpx.Response(413, text="too large"))
    service, _ = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.detail == "Client error"


def test_server_errors_retry_then_raise_last_error() -> None:
    handler, calls = _responder(httpx.Response(500))
    service, delays = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.code == "NETWORK_ERROR"
    assert excinfo.value.detail == "Server error (status 500)"
    assert len(calls) == 3
    assert delays == [0.5, 0.5]


def test_rate_limit_backs_off_between_attempts() -> None:
    handler, calls = _responder(httpx.Response(429))
    service, delays = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.code == "RATE_LIMITED"
    assert len(calls) == 3
    assert delays == [2.0, 0.5, 4.0, 0.5]


def test_recovers_after_transient_failure() -> None:
    handler, calls = _responder(httpx.Response(503), httpx.Response(200, json=_OK_PAYLOAD))
    service, delays = _service(handler)

    result = asyncio.run(service.transcribe(b"audio"))

    assert result.text == "hello world"
    assert len(calls) == 2
    assert delays == [0.5]


def test_unexpected_status_maps_to_network_error() -> None:
    handler, _ = _responder(httpx.Response(302))
    service, _ = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.detail == "Unexpected status code: 302"


def test_invalid_json_is_reported() -> None:
    handler, calls = _responder(httpx.Response(200, content=b"not json"))
    service, _ = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.code == "INVALID_RESPONSE"
    assert len(calls) == 3


def test_missing_text_field_is_invalid_response() -> None:
    handler, _ = _responder(httpx.Response(200, content=json.dumps({"language": "en"}).encode()))
    service, _ = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.code == "INVALID_RESPONSE"


def test_transport_failure_maps_to_network_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    service, delays = _service(handler)

    with pytest.raises(TranscriptionError) as excinfo:
        asyncio.run(service.transcribe(b"audio"))

    assert excinfo.value.code == "NETWORK_ERROR"
    assert "connection refused" in excinfo.value.detail
    assert delays == [0.5, 0.5]
