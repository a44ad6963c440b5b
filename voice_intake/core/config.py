"""
Configuration settings for the voice intake service and relay
"""

from typing import Optional, List
from pydantic import BaseModel, Field

from pydantic_settings import BaseSettings


class ProviderConfig(BaseModel):
    """One transcription backend in fallback order"""
    identifier: str
    endpoint: str
    credential_present: bool = False


class VoiceSettings(BaseModel):
    """Voice capture and session configuration"""
    sample_rate: int = 16000
    channels: int = 1       # Audio channels (1 = mono)
    chunk_interval: float = 0.1  # Seconds of audio per buffered chunk
    device_index: Optional[int] = None  # Specific audio device index (None for default)

    auto_stop_seconds: float = 30.0   # Recording is stopped automatically after this long
    error_clear_seconds: float = 3.0  # Transient notices are dismissed after this long

    preferred_provider: str = "openai"


class ProviderSettings(BaseModel):
    """Transcription provider configuration"""
    openai_api_key: Optional[str] = None
    openai_endpoint: str = "https://api.openai.com/v1/audio/transcriptions"
    openai_model: str = "whisper-1"
    language: str = "en"

    google_api_key: Optional[str] = None
    google_endpoint: str = "https://speech.googleapis.com/v1/speech:recognize"
    language_code: str = "en-US"

    relay_endpoint: str = "http://localhost:5000/chat"

    # Providers are tried in this order after the preferred one
    order: List[str] = ["openai", "google"]
    request_timeout: float = 15.0


DEFAULT_AUDIO_PROMPT = "Transcribe this patient audio (base64-encoded): "


class RelaySettings(BaseModel):
    """Local generation model relay configuration"""
    model_url: str = "http://localhost:11434/api/generate"
    model: str = "med-intake"
    timeout: float = 60.0
    audio_prompt: str = DEFAULT_AUDIO_PROMPT
    training_data_path: str = "./training-data.json"


class Settings(BaseSettings):
    """Application settings"""

    # API Configuration
    api_title: str = "Voice Intake API"
    api_description: str = "Voice capture transcription and local model relay for patient intake"
    api_version: str = "1.0.0"

    # Server Configuration
    host: str = "0.0.0.0"
    port: int = 5000
    debug: bool = False
    cors_origins: List[str] = ["*"]  # The intake form is served from another origin

    voice: VoiceSettings = Field(default_factory=VoiceSettings)
    providers: ProviderSettings = Field(default_factory=ProviderSettings)
    relay: RelaySettings = Field(default_factory=RelaySettings)

    # Logging
    log_level: str = "INFO"

    class Config:
        env_file = ".env"
        env_prefix = "INTAKE_"
        env_nested_delimiter = "__"
        extra = "ignore"  # Ignore extra environment variables

    def provider_configs(self) -> List[ProviderConfig]:
        """Build the ordered provider list from the configured order"""
        known = {
            "openai": ProviderConfig(
                identifier="openai",
                endpoint=self.providers.openai_endpoint,
                credential_present=bool(self.providers.openai_api_key),
            ),
            "google": ProviderConfig(
                identifier="google",
                endpoint=self.providers.google_endpoint,
                credential_present=bool(self.providers.google_api_key),
            ),
            # The relay needs no credential
            "relay": ProviderConfig(
                identifier="relay",
                endpoint=self.providers.relay_endpoint,
                credential_present=True,
            ),
        }

        configs = []
        for name in self.providers.order:
            name = name.strip().lower()
            if name in known and all(c.identifier != name for c in configs):
                configs.append(known[name])
        return configs


# Global settings instance
settings = Settings()
