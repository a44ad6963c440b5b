"""
Tests for the relay and voice transcription API
"""
import base64
import json

import httpx
import pytest
from fastapi.testclient import TestClient

from voice_intake.api.endpoints import (
    get_model_forwarder,
    get_training_store,
    get_transcription_client,
)
from voice_intake.main import app
from voice_intake.relay.forwarder import ModelForwarder
from voice_intake.relay.training import TrainingSampleStore
from voice_intake.voice.transcriber import TranscriptionClient
from voice_fakes import FakeProvider

client = TestClient(app)

MODEL_URL = "http://localhost:11434/api/generate"


@pytest.fixture(autouse=True)
def clear_overrides():
    yield
    app.dependency_overrides.clear()


def use_model(handler):
    """Route the relay's model calls through ``handler`` and keep the requests"""
    requests = []

    def record(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    forwarder = ModelForwarder(MODEL_URL, "med-intake", transport=httpx.MockTransport(record))
    app.dependency_overrides[get_model_forwarder] = lambda: forwarder
    return requests


def use_providers(*providers):
    transcriber = TranscriptionClient(list(providers))
    app.dependency_overrides[get_transcription_client] = lambda: transcriber


class TestRelayChat:
    """Test the /chat relay endpoint"""

    def test_message_forwarded_verbatim(self):
        requests = use_model(lambda request: httpx.Response(200, json={"response": "  Please describe the pain.\n"}))

        response = client.post("/chat", json={"message": "I have chest pain"})

        assert response.status_code == 200
        assert response.json() == {"response": "Please describe the pain."}
        assert json.loads(requests[0].content) == {
            "model": "med-intake",
            "prompt": "I have chest pain",
            "stream": False,
        }

    def test_audio_takes_priority(self):
        requests = use_model(lambda request: httpx.Response(200, json={"response": "knee pain"}))
        audio = base64.b64encode(b"webm-bytes").decode("ascii")

        response = client.post("/chat", json={"message": "ignored", "audioBase64": audio})

        assert response.status_code == 200
        prompt = json.loads(requests[0].content)["prompt"]
        assert prompt == f"Transcribe this patient audio (base64-encoded): {audio}"

    def test_missing_input(self):
        requests = use_model(lambda request: httpx.Response(200, json={"response": "unused"}))

        response = client.post("/chat", json={})

        assert response.status_code == 400
        assert response.json() == {"response": "No message or audioBase64 provided."}
        assert requests == []

    def test_empty_strings_count_as_missing(self):
        use_model(lambda request: httpx.Response(200, json={"response": "unused"}))

        response = client.post("/chat", json={"message": "", "audioBase64": ""})

        assert response.status_code == 400
        assert response.json() == {"response": "No message or audioBase64 provided."}

    def test_model_unreachable(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused")

        use_model(refuse)

        response = client.post("/chat", json={"message": "hello"})

        assert response.status_code == 500
        assert response.json() == {"response": "Error: Unable to reach AI model."}

    def test_model_error_status(self):
        use_model(lambda request: httpx.Response(404, json={"error": "model 'med-intake' not found"}))

        response = client.post("/chat", json={"message": "hello"})

        assert response.status_code == 500
        assert response.json() == {"response": "Error: Unable to reach AI model."}


class TestSystemEndpoints:
    """Test informational endpoints"""

    def test_root_endpoint(self):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert "message" in data
        assert data["endpoints"]["relay"]["chat"] == "/chat"

    def test_health_endpoint(self):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data
        assert "uptime" in data

    def test_providers_endpoint(self):
        response = client.get("/api/v1/voice/providers")
        assert response.status_code == 200
        data = response.json()
        assert [p["identifier"] for p in data["providers"]] == ["openai", "google"]
        for provider in data["providers"]:
            assert set(provider) == {"identifier", "endpoint", "credential_present"}
        assert data["preferred_provider"] == "openai"


class TestTranscribeEndpoint:
    """Test the audio upload transcription endpoint"""

    def test_transcribe_with_fallback(self):
        use_providers(
            FakeProvider("openai", status=500, payload={"error": {"message": "overloaded"}}),
            FakeProvider("google", payload={"text": "fever for two days", "confidence": 0.87}),
        )

        response = client.post(
            "/api/v1/voice/transcribe",
            files={"audio": ("audio.webm", b"webm-bytes", "audio/webm")},
        )

        assert response.status_code == 200
        data = response.json()
        assert data["text"] == "fever for two days"
        assert data["confidence"] == pytest.approx(0.87)
        assert data["provider"] == "google"
        assert data["error_kind"] is None

    def test_rejects_non_audio(self):
        use_providers(FakeProvider("openai"))

        response = client.post(
            "/api/v1/voice/transcribe",
            files={"audio": ("notes.txt", b"hello", "text/plain")},
        )

        assert response.status_code == 415
        assert response.json()["error"] == "Unsupported audio format: text/plain"

    def test_rejects_empty_upload(self):
        use_providers(FakeProvider("openai"))

        response = client.post(
            "/api/v1/voice/transcribe",
            files={"audio": ("audio.wav", b"", "audio/wav")},
        )

        assert response.status_code == 400

    def test_all_providers_failed(self):
        use_providers(
            FakeProvider("openai", transport_error=httpx.ConnectError("offline")),
            FakeProvider("google", status=403, payload={"error": {"message": "API key invalid"}}),
        )

        response = client.post(
            "/api/v1/voice/transcribe",
            files={"audio": ("audio.webm", b"webm-bytes", "audio/webm")},
        )

        assert response.status_code == 502
        assert response.json() == {"error": "Google API error: 403 - API key invalid", "status_code": 502}


class TestTrainingSamples:
    """Test training sample collection"""

    def test_sample_stored(self, tmp_path):
        store = TrainingSampleStore(tmp_path / "training-data.json")
        app.dependency_overrides[get_training_store] = lambda: store

        response = client.post(
            "/api/v1/voice/training-samples",
            files={"file": ("audio.webm", b"webm-bytes", "audio/webm")},
            data={"text": "I am allergic to penicillin"},
        )

        assert response.status_code == 200
        assert response.json() == {"success": True, "sample_count": 1}
        assert store.load() == [{
            "text": "I am allergic to penicillin",
            "base64Audio": base64.b64encode(b"webm-bytes").decode("ascii"),
        }]

    def test_missing_text(self, tmp_path):
        store = TrainingSampleStore(tmp_path / "training-data.json")
        app.dependency_overrides[get_training_store] = lambda: store

        response = client.post(
            "/api/v1/voice/training-samples",
            files={"file": ("audio.webm", b"webm-bytes", "audio/webm")},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "Missing file or text"
        assert store.count() == 0

    def test_missing_file(self, tmp_path):
        store = TrainingSampleStore(tmp_path / "training-data.json")
        app.dependency_overrides[get_training_store] = lambda: store

        response = client.post("/api/v1/voice/training-samples", data={"text": "hello"})

        assert response.status_code == 400
        assert response.json()["error"] == "Missing file or text"
