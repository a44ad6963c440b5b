"""
Tests for transcription providers and fallback
"""
import base64
import json

import httpx
import pytest

from voice_intake.core.config import ProviderSettings, Settings
from voice_intake.voice.errors import (
    ErrorKind,
    ProviderNotConfiguredError,
    ProviderRequestFailedError,
    RelayUnreachableError,
)
from voice_intake.voice.providers import (
    GoogleSpeechProvider,
    OpenAIWhisperProvider,
    RelayProvider,
)
from voice_intake.voice.transcriber import (
    TranscriptionClient,
    build_providers,
    build_transcription_client,
)
from voice_intake.voice.types import AudioSample, ProviderName, TranscriptionResult
from voice_fakes import FakeProvider

OPENAI_URL = "https://api.openai.com/v1/audio/transcriptions"
GOOGLE_URL = "https://speech.googleapis.com/v1/speech:recognize"
RELAY_URL = "http://localhost:5000/chat"

SAMPLE = AudioSample(data=b"\x1aE\xdf\xa3webm-bytes", mime_type="audio/webm;codecs=opus")


class Recorder:
    """MockTransport handler that answers per host and keeps every request"""

    def __init__(self, responses):
        self.responses = responses
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        answer = self.responses[request.url.host]
        if isinstance(answer, Exception):
            raise answer
        return answer

    def hosts(self):
        return [r.url.host for r in self.requests]


def make_client(responses, openai_key="sk-test", google_key="g-test", relay=False):
    providers = [
        OpenAIWhisperProvider(OPENAI_URL, api_key=openai_key),
        GoogleSpeechProvider(GOOGLE_URL, api_key=google_key),
    ]
    if relay:
        providers.append(RelayProvider(RELAY_URL))
    handler = Recorder(responses)
    return TranscriptionClient(providers, transport=httpx.MockTransport(handler)), handler


class TestFallback:
    """Test ordered fallback between providers"""

    @pytest.mark.asyncio
    async def test_server_error_falls_back_transparently(self):
        client, handler = make_client({
            "api.openai.com": httpx.Response(500, json={"error": {"message": "Server overloaded"}}),
            "speech.googleapis.com": httpx.Response(200, json={
                "results": [{"alternatives": [{"transcript": "fever for two days", "confidence": 0.87}]}]
            }),
        })

        result = await client.transcribe(SAMPLE, ProviderName.OPENAI)

        assert result.text == "fever for two days"
        assert result.confidence == pytest.approx(0.87)
        assert result.error_kind is None
        assert result.provider == "google"
        assert handler.hosts() == ["api.openai.com", "speech.googleapis.com"]

    @pytest.mark.asyncio
    async def test_fallback_result_equals_alternate_result(self):
        alternate = FakeProvider("google", payload={"text": "sore throat", "confidence": 0.6})
        client = TranscriptionClient([
            FakeProvider("openai", transport_error=httpx.ConnectError("connection refused")),
            alternate,
        ])

        result = await client.transcribe(SAMPLE, "openai")

        assert result == TranscriptionResult(text="sore throat", confidence=0.6, provider="google")
        assert alternate.calls == 1

    @pytest.mark.asyncio
    async def test_all_providers_failed(self):
        client, _ = make_client({
            "api.openai.com": httpx.Response(500, json={}),
            "speech.googleapis.com": httpx.Response(403, json={"error": {"message": "API key invalid"}}),
        })

        result = await client.transcribe(SAMPLE, "openai")

        assert result.error_kind is ErrorKind.ALL_PROVIDERS_FAILED
        assert result.text == ""
        assert result.error == "Google Speech API error: 403 - API key invalid"
        assert not result.is_success

    @pytest.mark.asyncio
    async def test_missing_credential_skips_network(self):
        client, handler = make_client({
            "speech.googleapis.com": httpx.Response(200, json={
                "results": [{"alternatives": [{"transcript": "chest pain"}]}]
            }),
        }, openai_key=None)

        result = await client.transcribe(SAMPLE, "openai")

        assert result.text == "chest pain"
        assert result.confidence == 0.5
        assert "api.openai.com" not in handler.hosts()

    @pytest.mark.asyncio
    async def test_preferred_provider_goes_first(self):
        client, handler = make_client({
            "speech.googleapis.com": httpx.Response(200, json={
                "results": [{"alternatives": [{"transcript": "dizzy", "confidence": 0.9}]}]
            }),
        })

        result = await client.transcribe(SAMPLE, ProviderName.GOOGLE)

        assert result.text == "dizzy"
        assert handler.hosts() == ["speech.googleapis.com"]

    @pytest.mark.asyncio
    async def test_empty_google_results_is_not_a_failure(self):
        client, handler = make_client({
            "speech.googleapis.com": httpx.Response(200, json={}),
        })

        result = await client.transcribe(SAMPLE, "google")

        assert result.no_speech
        assert result.error_kind is None
        assert handler.hosts() == ["speech.googleapis.com"]

    @pytest.mark.asyncio
    async def test_malformed_body_triggers_fallback(self):
        client, _ = make_client({
            "api.openai.com": httpx.Response(200, content=b"<html>gateway</html>"),
            "speech.googleapis.com": httpx.Response(200, json={
                "results": [{"alternatives": [{"transcript": "rash on arm", "confidence": 0.7}]}]
            }),
        })

        result = await client.transcribe(SAMPLE)

        assert result.text == "rash on arm"

    @pytest.mark.asyncio
    async def test_relay_as_last_resort(self):
        client, handler = make_client({
            "api.openai.com": httpx.ConnectError("offline"),
            "speech.googleapis.com": httpx.ConnectError("offline"),
            "localhost": httpx.Response(200, json={"response": " knee swelling "}),
        }, relay=True)

        result = await client.transcribe(SAMPLE, "openai")

        assert result.text == "knee swelling"
        assert result.confidence == 0.5
        assert result.provider == "relay"
        assert handler.hosts() == ["api.openai.com", "speech.googleapis.com", "localhost"]

    def test_unknown_preferred_keeps_configured_order(self):
        client = TranscriptionClient([FakeProvider("openai"), FakeProvider("google")])
        assert [p.name for p in client.provider_order("whisper-local")] == ["openai", "google"]
        assert [p.name for p in client.provider_order("google")] == ["google", "openai"]

    def test_requires_providers(self):
        with pytest.raises(ValueError):
            TranscriptionClient([])


class TestProviderRequests:
    """Test the wire format of each provider"""

    @pytest.mark.asyncio
    async def test_openai_multipart_request(self):
        handler = Recorder({"api.openai.com": httpx.Response(200, json={"text": " I missed two doses. "})})
        provider = OpenAIWhisperProvider(OPENAI_URL, api_key="sk-test")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await provider.transcribe(SAMPLE, client)

        request = handler.requests[0]
        assert request.method == "POST"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert request.headers["Content-Type"].startswith("multipart/form-data")
        assert b'name="model"' in request.content
        assert b"whisper-1" in request.content
        assert b'name="language"' in request.content
        assert b'filename="audio.webm"' in request.content
        assert SAMPLE.data in request.content
        assert result.text == "I missed two doses."
        assert result.confidence == 1.0

    @pytest.mark.asyncio
    async def test_google_json_request(self):
        handler = Recorder({"speech.googleapis.com": httpx.Response(200, json={"results": []})})
        provider = GoogleSpeechProvider(GOOGLE_URL, api_key="g-test")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            await provider.transcribe(SAMPLE, client)

        request = handler.requests[0]
        assert request.url.params["key"] == "g-test"
        body = json.loads(request.content)
        assert body["config"] == {
            "encoding": "WEBM_OPUS",
            "sampleRateHertz": 16000,
            "languageCode": "en-US",
            "enableAutomaticPunctuation": True,
        }
        assert base64.b64decode(body["audio"]["content"]) == SAMPLE.data

    def test_google_encoding_follows_media_type(self):
        provider = GoogleSpeechProvider(GOOGLE_URL, api_key="g-test")
        wav = AudioSample(data=b"RIFF", mime_type="audio/wav")
        mp4 = AudioSample(data=b"....", mime_type="audio/mp4")
        assert provider.request_body(wav)["config"]["encoding"] == "LINEAR16"
        assert provider.request_body(mp4)["config"]["encoding"] == "ENCODING_UNSPECIFIED"

    @pytest.mark.asyncio
    async def test_google_joins_multiple_results(self):
        handler = Recorder({"speech.googleapis.com": httpx.Response(200, json={"results": [
            {"alternatives": [{"transcript": "headache since Monday", "confidence": 0.8}]},
            {"alternatives": [{"transcript": "worse at night", "confidence": 0.6}]},
        ]})})
        provider = GoogleSpeechProvider(GOOGLE_URL, api_key="g-test")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await provider.transcribe(SAMPLE, client)

        assert result.text == "headache since Monday worse at night"
        assert result.confidence == pytest.approx(0.7)

    @pytest.mark.asyncio
    async def test_google_confidence_kept_in_range(self):
        handler = Recorder({"speech.googleapis.com": httpx.Response(200, json={"results": [
            {"alternatives": [{"transcript": "shortness of breath", "confidence": 1.4}]},
        ]})})
        provider = GoogleSpeechProvider(GOOGLE_URL, api_key="g-test")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await provider.transcribe(SAMPLE, client)

        assert result.confidence == 1.0

    @pytest.mark.asyncio
    async def test_relay_request(self):
        handler = Recorder({"localhost": httpx.Response(200, json={"response": "back pain"})})
        provider = RelayProvider(RELAY_URL)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            result = await provider.transcribe(SAMPLE, client)

        assert json.loads(handler.requests[0].content) == {"audioBase64": SAMPLE.to_base64()}
        assert result.text == "back pain"
        assert provider.is_configured

    @pytest.mark.asyncio
    async def test_not_configured_raises_before_request(self):
        handler = Recorder({})
        provider = OpenAIWhisperProvider(OPENAI_URL, api_key=None)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ProviderNotConfiguredError) as exc_info:
                await provider.transcribe(SAMPLE, client)

        assert exc_info.value.kind is ErrorKind.PROVIDER_NOT_CONFIGURED
        assert handler.requests == []

    @pytest.mark.asyncio
    async def test_error_message_extracted_from_body(self):
        handler = Recorder({"api.openai.com": httpx.Response(401, json={"error": {"message": "Invalid key"}})})
        provider = OpenAIWhisperProvider(OPENAI_URL, api_key="sk-bad")

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(ProviderRequestFailedError) as exc_info:
                await provider.transcribe(SAMPLE, client)

        assert exc_info.value.message == "OpenAI API error: 401 - Invalid key"
        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_unreachable_relay_is_classified(self):
        handler = Recorder({"localhost": httpx.ConnectError("connection refused")})
        provider = RelayProvider(RELAY_URL)

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
            with pytest.raises(RelayUnreachableError) as exc_info:
                await provider.transcribe(SAMPLE, client)

        assert exc_info.value.kind is ErrorKind.RELAY_UNREACHABLE


class TestProviderConfig:
    """Test building providers from settings"""

    def test_default_order(self):
        settings = Settings(providers=ProviderSettings(openai_api_key="sk", google_api_key=None))
        configs = settings.provider_configs()

        assert [c.identifier for c in configs] == ["openai", "google"]
        assert configs[0].credential_present is True
        assert configs[1].credential_present is False

    def test_custom_order_with_relay(self):
        settings = Settings(providers=ProviderSettings(order=["relay", "google", "relay", "bogus"]))
        providers = build_providers(settings)

        assert [p.name for p in providers] == ["relay", "google"]
        assert isinstance(providers[0], RelayProvider)

    def test_client_uses_configured_timeout(self):
        settings = Settings(providers=ProviderSettings(request_timeout=7.5))
        client = build_transcription_client(settings)
        assert client.timeout == 7.5
        assert [p["identifier"] for p in client.get_status()] == ["openai", "google"]
