"""
Transcription provider adapters.

Each adapter accepts an AudioSample and either returns a TranscriptionResult
or raises a classified ProviderError. Adapters never retry; fallback between
providers is handled by TranscriptionClient.
"""

from typing import Any, Dict, Optional

import httpx

from .errors import (
    ProviderNotConfiguredError,
    ProviderRequestFailedError,
    RelayUnreachableError,
)
from .types import AudioSample, ProviderName, TranscriptionResult


# The OpenAI API reports no confidence score
OPENAI_NOMINAL_CONFIDENCE = 1.0
GOOGLE_DEFAULT_CONFIDENCE = 0.5
RELAY_NOMINAL_CONFIDENCE = 0.5

GOOGLE_ENCODINGS = {
    "audio/webm": "WEBM_OPUS",
    "audio/ogg": "OGG_OPUS",
    "audio/wav": "LINEAR16",
    "audio/x-wav": "LINEAR16",
}


def _error_detail(response: httpx.Response) -> str:
    """Pull a human readable message out of an error response body"""
    try:
        body = response.json()
    except ValueError:
        return response.reason_phrase

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if isinstance(body.get("response"), str) and body["response"]:
            return body["response"]
    return response.reason_phrase


class TranscriptionProvider:
    """Base adapter: credential check, HTTP call, failure classification"""

    name = ""
    label = ""
    requires_credential = True
    failure_class = ProviderRequestFailedError

    def __init__(self, endpoint: str, api_key: Optional[str] = None):
        self.endpoint = endpoint
        self.api_key = api_key

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) or not self.requires_credential

    def not_configured_message(self) -> str:
        return f"{self.label} API key not configured."

    async def transcribe(self, sample: AudioSample, client: httpx.AsyncClient) -> TranscriptionResult:
        if not self.is_configured:
            raise ProviderNotConfiguredError(self.name, self.not_configured_message())

        try:
            response = await self._send(sample, client)
        except httpx.HTTPError as e:
            raise self.failure_class(
                self.name, f"{self.label} request failed: {e.__class__.__name__}: {e}"
            ) from e

        if not response.is_success:
            raise self.failure_class(
                self.name,
                f"{self.label} API error: {response.status_code} - {_error_detail(response)}",
                status_code=response.status_code,
            )

        try:
            payload = response.json()
            if not isinstance(payload, dict):
                raise TypeError(f"expected a JSON object, got {type(payload).__name__}")
            return self._parse(payload)
        except (ValueError, KeyError, TypeError, AttributeError, IndexError) as e:
            raise self.failure_class(
                self.name, f"{self.label} returned a malformed response: {e}"
            ) from e

    async def _send(self, sample: AudioSample, client: httpx.AsyncClient) -> httpx.Response:
        raise NotImplementedError

    def _parse(self, payload: Dict[str, Any]) -> TranscriptionResult:
        raise NotImplementedError


class OpenAIWhisperProvider(TranscriptionProvider):
    """OpenAI audio transcription API (multipart upload, bearer auth)"""

    name = ProviderName.OPENAI.value
    label = "OpenAI"

    def __init__(self, endpoint: str, api_key: Optional[str] = None, model: str = "whisper-1", language: str = "en"):
        super().__init__(endpoint, api_key)
        self.model = model
        self.language = language

    async def _send(self, sample: AudioSample, client: httpx.AsyncClient) -> httpx.Response:
        return await client.post(
            self.endpoint,
            headers={"Authorization": f"Bearer {self.api_key}"},
            data={"model": self.model, "language": self.language},
            files={"file": (sample.filename, sample.data, sample.base_mime_type)},
        )

    def _parse(self, payload: Dict[str, Any]) -> TranscriptionResult:
        text = str(payload.get("text") or "").strip()
        return TranscriptionResult(
            text=text,
            confidence=OPENAI_NOMINAL_CONFIDENCE if text else None,
            provider=self.name,
        )


class GoogleSpeechProvider(TranscriptionProvider):
    """Google Cloud Speech-to-Text recognize API (base64 JSON, API key in query)"""

    name = ProviderName.GOOGLE.value
    label = "Google Speech"

    def __init__(
        self,
        endpoint: str,
        api_key: Optional[str] = None,
        language_code: str = "en-US",
        sample_rate: int = 16000
    ):
        super().__init__(endpoint, api_key)
        self.language_code = language_code
        self.sample_rate = sample_rate

    def request_body(self, sample: AudioSample) -> Dict[str, Any]:
        return {
            "config": {
                "encoding": GOOGLE_ENCODINGS.get(sample.base_mime_type, "ENCODING_UNSPECIFIED"),
                "sampleRateHertz": self.sample_rate,
                "languageCode": self.language_code,
                "enableAutomaticPunctuation": True,
            },
            "audio": {
                "content": sample.to_base64(),
            },
        }

    async def _send(self, sample: AudioSample, client: httpx.AsyncClient) -> httpx.Response:
        return await client.post(
            self.endpoint,
            params={"key": self.api_key},
            json=self.request_body(sample),
        )

    def _parse(self, payload: Dict[str, Any]) -> TranscriptionResult:
        results = payload.get("results") or []

        transcripts = []
        confidences = []
        for result in results:
            alternatives = result.get("alternatives") or []
            if not alternatives:
                continue
            best = alternatives[0]
            transcript = str(best.get("transcript") or "").strip()
            if transcript:
                transcripts.append(transcript)
                if best.get("confidence") is not None:
                    confidences.append(min(max(float(best["confidence"]), 0.0), 1.0))

        # No results is "no transcript", not a failure
        if not transcripts:
            return TranscriptionResult(text="", provider=self.name)

        confidence = sum(confidences) / len(confidences) if confidences else GOOGLE_DEFAULT_CONFIDENCE
        return TranscriptionResult(
            text=" ".join(transcripts),
            confidence=confidence,
            provider=self.name,
        )


class RelayProvider(TranscriptionProvider):
    """Local relay that forwards the audio prompt to a generation model"""

    name = ProviderName.RELAY.value
    label = "Relay"
    requires_credential = False
    failure_class = RelayUnreachableError

    async def _send(self, sample: AudioSample, client: httpx.AsyncClient) -> httpx.Response:
        return await client.post(self.endpoint, json={"audioBase64": sample.to_base64()})

    def _parse(self, payload: Dict[str, Any]) -> TranscriptionResult:
        text = str(payload.get("response") or "").strip()
        return TranscriptionResult(
            text=text,
            confidence=RELAY_NOMINAL_CONFIDENCE if text else None,
            provider=self.name,
        )


__all__ = [
    "TranscriptionProvider",
    "OpenAIWhisperProvider",
    "GoogleSpeechProvider",
    "RelayProvider",
]
