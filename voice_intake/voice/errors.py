"""
Error taxonomy for voice capture and transcription
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Classified failure kinds surfaced by the voice pipeline"""
    PERMISSION_DENIED = "permission_denied"
    DEVICE_UNAVAILABLE = "device_unavailable"
    ALREADY_RECORDING = "already_recording"
    NOT_RECORDING = "not_recording"
    PROVIDER_NOT_CONFIGURED = "provider_not_configured"
    PROVIDER_REQUEST_FAILED = "provider_request_failed"
    ALL_PROVIDERS_FAILED = "all_providers_failed"
    NO_SPEECH_DETECTED = "no_speech_detected"
    RELAY_UNREACHABLE = "relay_unreachable"


class VoiceInputError(RuntimeError):
    kind = ErrorKind.DEVICE_UNAVAILABLE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class PermissionDeniedError(VoiceInputError):
    kind = ErrorKind.PERMISSION_DENIED


class DeviceUnavailableError(VoiceInputError):
    kind = ErrorKind.DEVICE_UNAVAILABLE


class AlreadyRecordingError(VoiceInputError):
    kind = ErrorKind.ALREADY_RECORDING

    def __init__(self, message: str = "Already recording"):
        super().__init__(message)


class NotRecordingError(VoiceInputError):
    kind = ErrorKind.NOT_RECORDING

    def __init__(self, message: str = "Not currently recording"):
        super().__init__(message)


class ProviderError(VoiceInputError):
    """A single transcription provider call failed"""
    kind = ErrorKind.PROVIDER_REQUEST_FAILED

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class ProviderNotConfiguredError(ProviderError):
    kind = ErrorKind.PROVIDER_NOT_CONFIGURED


class ProviderRequestFailedError(ProviderError):
    kind = ErrorKind.PROVIDER_REQUEST_FAILED


class RelayUnreachableError(ProviderRequestFailedError):
    kind = ErrorKind.RELAY_UNREACHABLE
