"""
Value types passed between capture, transcription and sessions
"""

import base64
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import ErrorKind


class ProviderName(Enum):
    """Known transcription providers"""
    OPENAI = "openai"
    GOOGLE = "google"
    RELAY = "relay"


# File extensions used when a provider needs a filename for the upload
_EXTENSIONS = {
    "audio/webm": "webm",
    "audio/mp4": "mp4",
    "audio/m4a": "m4a",
    "audio/wav": "wav",
    "audio/x-wav": "wav",
    "audio/ogg": "ogg",
    "audio/mpeg": "mp3",
}


@dataclass(frozen=True)
class AudioSample:
    """Finalized encoded audio plus its media type tag"""
    data: bytes
    mime_type: str

    @property
    def base_mime_type(self) -> str:
        """Media type without codec parameters, e.g. 'audio/webm'"""
        return self.mime_type.split(";", 1)[0].strip().lower()

    @property
    def extension(self) -> str:
        return _EXTENSIONS.get(self.base_mime_type, "webm")

    @property
    def filename(self) -> str:
        return f"audio.{self.extension}"

    def __len__(self) -> int:
        return len(self.data)

    def to_base64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")


@dataclass(frozen=True)
class TranscriptionResult:
    """
    Normalized transcription outcome.

    Success is non-empty text with no error kind. Empty text with no error
    kind means no speech was detected.
    """
    text: str = ""
    confidence: Optional[float] = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    provider: Optional[str] = None

    @property
    def is_success(self) -> bool:
        return bool(self.text.strip()) and self.error_kind is None

    @property
    def no_speech(self) -> bool:
        return not self.text.strip() and self.error_kind is None
