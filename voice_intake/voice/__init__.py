"""
Voice input pipeline: microphone capture, transcription with provider fallback,
and per-field voice sessions
"""

from .errors import (
    AlreadyRecordingError,
    DeviceUnavailableError,
    ErrorKind,
    NotRecordingError,
    PermissionDeniedError,
    ProviderError,
    ProviderNotConfiguredError,
    ProviderRequestFailedError,
    RelayUnreachableError,
    VoiceInputError,
)
from .manager import VoicePhase, VoiceSession, VoiceSessionController
from .recorder import AudioCapture, AudioInput, CaptureStream, PyAudioInput
from .transcriber import TranscriptionClient, build_transcription_client
from .types import AudioSample, ProviderName, TranscriptionResult

__all__ = [
    "AlreadyRecordingError",
    "AudioCapture",
    "AudioInput",
    "AudioSample",
    "CaptureStream",
    "DeviceUnavailableError",
    "ErrorKind",
    "NotRecordingError",
    "PermissionDeniedError",
    "ProviderError",
    "ProviderName",
    "ProviderNotConfiguredError",
    "ProviderRequestFailedError",
    "PyAudioInput",
    "RelayUnreachableError",
    "TranscriptionClient",
    "TranscriptionResult",
    "VoiceInputError",
    "VoicePhase",
    "VoiceSession",
    "VoiceSessionController",
    "build_transcription_client",
]
