"""
Speech-to-text with ordered fallback across transcription providers
"""

import logging
from typing import Dict, List, Optional, Sequence, Union

import httpx

from voice_intake.core.config import Settings
from .errors import ErrorKind, ProviderError
from .providers import (
    GoogleSpeechProvider,
    OpenAIWhisperProvider,
    RelayProvider,
    TranscriptionProvider,
)
from .types import AudioSample, ProviderName, TranscriptionResult

logger = logging.getLogger(__name__)


class TranscriptionClient:
    """
    Transcribes an AudioSample using the first provider that succeeds.

    The preferred provider is tried first, then the remaining providers in
    their configured order. A provider that is not configured is skipped
    without a network call. If every provider fails the result carries
    ``ErrorKind.ALL_PROVIDERS_FAILED`` and the last provider's message.
    """

    def __init__(
        self,
        providers: Sequence[TranscriptionProvider],
        timeout: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        if not providers:
            raise ValueError("At least one transcription provider is required")

        self.providers: List[TranscriptionProvider] = list(providers)
        self.timeout = timeout
        self._transport = transport

    def get_provider(self, name: str) -> Optional[TranscriptionProvider]:
        for provider in self.providers:
            if provider.name == name:
                return provider
        return None

    def provider_order(
        self,
        preferred: Optional[Union[ProviderName, str]] = None
    ) -> List[TranscriptionProvider]:
        """Providers in the order they will be tried"""
        if isinstance(preferred, ProviderName):
            preferred = preferred.value

        first = self.get_provider(preferred) if preferred else None
        if first is None:
            if preferred:
                logger.warning(f"Unknown preferred provider '{preferred}', using configured order")
            return list(self.providers)
        return [first] + [p for p in self.providers if p is not first]

    async def transcribe(
        self,
        sample: AudioSample,
        preferred_provider: Optional[Union[ProviderName, str]] = None
    ) -> TranscriptionResult:
        order = self.provider_order(preferred_provider)
        last_error: Optional[ProviderError] = None

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            for provider in order:
                try:
                    result = await provider.transcribe(sample, client)
                except ProviderError as e:
                    last_error = e
                    logger.warning(f"{provider.name} transcription failed ({e.kind.value}): {e.message}")
                    continue

                logger.info(
                    f"Transcription by {provider.name}: '{result.text[:50]}' "
                    f"(confidence: {result.confidence})"
                )
                return result

        message = last_error.message if last_error else "No transcription provider succeeded"
        logger.error(f"All transcription providers failed: {message}")
        return TranscriptionResult(
            text="",
            error_kind=ErrorKind.ALL_PROVIDERS_FAILED,
            error=message,
            provider=last_error.provider if last_error else None,
        )

    def get_status(self) -> List[Dict[str, object]]:
        return [
            {
                'identifier': provider.name,
                'endpoint': provider.endpoint,
                'credential_present': provider.is_configured,
            }
            for provider in self.providers
        ]


def build_providers(settings: Settings) -> List[TranscriptionProvider]:
    """Create provider adapters in the configured fallback order"""
    cfg = settings.providers
    providers: List[TranscriptionProvider] = []

    for provider_config in settings.provider_configs():
        if provider_config.identifier == ProviderName.OPENAI.value:
            providers.append(OpenAIWhisperProvider(
                endpoint=provider_config.endpoint,
                api_key=cfg.openai_api_key,
                model=cfg.openai_model,
                language=cfg.language,
            ))
        elif provider_config.identifier == ProviderName.GOOGLE.value:
            providers.append(GoogleSpeechProvider(
                endpoint=provider_config.endpoint,
                api_key=cfg.google_api_key,
                language_code=cfg.language_code,
                sample_rate=settings.voice.sample_rate,
            ))
        elif provider_config.identifier == ProviderName.RELAY.value:
            providers.append(RelayProvider(endpoint=provider_config.endpoint))

    return providers


def build_transcription_client(
    settings: Settings,
    transport: Optional[httpx.AsyncBaseTransport] = None
) -> TranscriptionClient:
    return TranscriptionClient(
        build_providers(settings),
        timeout=settings.providers.request_timeout,
        transport=transport,
    )
