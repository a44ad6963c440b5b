"""
Voice session controller that ties recording and transcription to form fields
"""

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, MutableMapping, Optional, Union

from .errors import (
    DeviceUnavailableError,
    ErrorKind,
    PermissionDeniedError,
    VoiceInputError,
)
from .recorder import AudioCapture
from .transcriber import TranscriptionClient
from .types import ProviderName, TranscriptionResult

logger = logging.getLogger(__name__)

PERMISSION_DENIED_MESSAGE = "Microphone access denied. Please allow microphone access and try again."
DEVICE_UNAVAILABLE_MESSAGE = "Microphone unavailable. Please check your microphone and try again."
NO_SPEECH_MESSAGE = "No speech detected. Please try speaking more clearly."
PROCESSING_FAILED_MESSAGE = "Failed to process voice recording"


class VoicePhase(Enum):
    """Voice session phases"""
    IDLE = "idle"
    REQUESTING_PERMISSION = "requesting_permission"
    RECORDING = "recording"
    PROCESSING = "processing"
    ERROR = "error"


# Persistent errors stay until the user retries; the rest auto-clear
PERSISTENT_ERRORS = (ErrorKind.PERMISSION_DENIED, ErrorKind.DEVICE_UNAVAILABLE)


@dataclass
class VoiceSession:
    """One voice capture attempt for a single form field"""
    target_field_id: str
    phase: VoicePhase = VoicePhase.IDLE
    permission_granted: bool = False
    last_error: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    auto_stop_deadline: Optional[float] = None  # time.monotonic() based
    session_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    history: List[VoicePhase] = field(default_factory=lambda: [VoicePhase.IDLE])
    cancelled: bool = False
    result: Optional[TranscriptionResult] = None

    @property
    def is_active(self) -> bool:
        return self.phase in (VoicePhase.REQUESTING_PERMISSION, VoicePhase.RECORDING, VoicePhase.PROCESSING)


PhaseListener = Callable[[VoiceSession], None]


class VoiceSessionController:
    """
    State machine for voice input on one UI surface.

    Only one session exists at a time: starting a session for another field
    first forces the current one back to IDLE, releasing its stream and
    discarding any transcription still in flight.
    """

    def __init__(
        self,
        capture: AudioCapture,
        transcriber: TranscriptionClient,
        form: MutableMapping[str, str],
        preferred_provider: Optional[Union[ProviderName, str]] = None,
        auto_stop_seconds: float = 30.0,
        error_clear_seconds: float = 3.0,
        on_phase_change: Optional[PhaseListener] = None
    ):
        self.capture = capture
        self.transcriber = transcriber
        self.form = form
        self.preferred_provider = preferred_provider
        self.auto_stop_seconds = auto_stop_seconds
        self.error_clear_seconds = error_clear_seconds
        self.on_phase_change = on_phase_change

        self.permission_granted = False
        self._session: Optional[VoiceSession] = None
        self._lock = asyncio.Lock()
        self._auto_stop_task: Optional[asyncio.Task] = None
        self._clear_task: Optional[asyncio.Task] = None
        self._device_task: Optional[asyncio.Task] = None
        capture.on_read_error = self._on_read_error

    @property
    def session(self) -> Optional[VoiceSession]:
        return self._session

    @property
    def active_field(self) -> Optional[str]:
        if self._session is not None and self._session.is_active:
            return self._session.target_field_id
        return None

    def _set_phase(self, session: VoiceSession, phase: VoicePhase) -> None:
        if session.phase is phase:
            return
        session.phase = phase
        session.history.append(phase)
        logger.debug(f"Voice session {session.session_id} ({session.target_field_id}) -> {phase.value}")
        if self.on_phase_change is not None:
            self.on_phase_change(session)

    def _fail(
        self,
        session: VoiceSession,
        kind: ErrorKind,
        message: str,
        persistent: Optional[bool] = None
    ) -> None:
        session.last_error = message
        session.error_kind = kind
        session.auto_stop_deadline = None
        self._set_phase(session, VoicePhase.ERROR)

        if persistent is None:
            persistent = kind in PERSISTENT_ERRORS
        if persistent:
            logger.warning(f"Voice input unavailable: {message}")
        else:
            self._clear_task = asyncio.create_task(self._clear_error_later(session))

    def _cancel_timers(self) -> None:
        current = asyncio.current_task()
        for task in (self._auto_stop_task, self._clear_task, self._device_task):
            if task is not None and task is not current and not task.done():
                task.cancel()
        self._auto_stop_task = None
        self._clear_task = None
        self._device_task = None

    async def _terminate_active(self) -> None:
        """Force the current session to IDLE, releasing the stream"""
        session = self._session
        if session is None:
            return

        session.cancelled = True
        self._cancel_timers()
        if self.capture.is_recording:
            await self.capture.cancel()
        if session.phase is not VoicePhase.IDLE:
            self._set_phase(session, VoicePhase.IDLE)
        self._session = None
        logger.info(f"Voice session for '{session.target_field_id}' terminated")

    async def start(self, field_id: str) -> VoiceSession:
        """Start recording into ``field_id``; failures end in the ERROR phase"""
        async with self._lock:
            await self._terminate_active()

            session = VoiceSession(target_field_id=field_id, permission_granted=self.permission_granted)
            self._session = session

            if not self.permission_granted:
                self._set_phase(session, VoicePhase.REQUESTING_PERMISSION)
                try:
                    granted = await self.capture.request_permission()
                except Exception as e:
                    logger.exception(f"Unexpected error probing microphone: {e}")
                    granted = False
                if not granted:
                    self._fail(session, ErrorKind.PERMISSION_DENIED, PERMISSION_DENIED_MESSAGE)
                    return session
                self.permission_granted = True
                session.permission_granted = True

            try:
                await self.capture.start_recording()
            except PermissionDeniedError as e:
                logger.error(f"Error starting voice recording: {e}")
                self.permission_granted = False
                session.permission_granted = False
                self._fail(session, ErrorKind.PERMISSION_DENIED, PERMISSION_DENIED_MESSAGE)
                return session
            except DeviceUnavailableError as e:
                logger.error(f"Error starting voice recording: {e}")
                self._fail(session, ErrorKind.DEVICE_UNAVAILABLE, DEVICE_UNAVAILABLE_MESSAGE)
                return session
            except VoiceInputError as e:
                logger.error(f"Error starting voice recording: {e}")
                self._fail(session, e.kind, e.message)
                return session
            except Exception as e:
                logger.exception(f"Unexpected error starting voice recording: {e}")
                self._fail(session, ErrorKind.DEVICE_UNAVAILABLE, str(e) or DEVICE_UNAVAILABLE_MESSAGE, persistent=False)
                return session

            session.auto_stop_deadline = time.monotonic() + self.auto_stop_seconds
            session.last_error = None
            session.error_kind = None
            self._set_phase(session, VoicePhase.RECORDING)
            self._auto_stop_task = asyncio.create_task(self._auto_stop(session))
            logger.info(f"Voice recording started for '{field_id}'")
            return session

    async def stop(self) -> Optional[TranscriptionResult]:
        """
        Stop recording and transcribe into the session's field.

        Returns the transcription result, or None when there was nothing to
        stop or the session was cancelled before the result arrived.
        """
        async with self._lock:
            session = self._session
            if session is None or session.phase is not VoicePhase.RECORDING:
                return None

            if self._auto_stop_task is not asyncio.current_task() and self._auto_stop_task is not None:
                self._auto_stop_task.cancel()
            self._auto_stop_task = None
            session.auto_stop_deadline = None
            self._set_phase(session, VoicePhase.PROCESSING)

            try:
                sample = await self.capture.stop_recording()
            except VoiceInputError as e:
                logger.error(f"Error stopping voice recording: {e}")
                self._fail(session, e.kind, e.message)
                return None
            except Exception as e:
                logger.exception(f"Error finalizing voice recording: {e}")
                self._fail(session, ErrorKind.DEVICE_UNAVAILABLE, str(e) or PROCESSING_FAILED_MESSAGE, persistent=False)
                return None

        # Transcription runs outside the lock so a new start can pre-empt it
        try:
            result = await self.transcriber.transcribe(sample, self.preferred_provider)
        except Exception as e:
            logger.exception(f"Unexpected transcription error: {e}")
            result = TranscriptionResult(
                error_kind=ErrorKind.PROVIDER_REQUEST_FAILED,
                error=str(e) or PROCESSING_FAILED_MESSAGE,
            )

        if session.cancelled or self._session is not session:
            logger.info(f"Discarding transcription for cancelled session '{session.target_field_id}'")
            return None

        session.result = result
        if result.error_kind is not None:
            self._fail(session, result.error_kind, result.error or PROCESSING_FAILED_MESSAGE)
        elif result.no_speech:
            self._fail(session, ErrorKind.NO_SPEECH_DETECTED, NO_SPEECH_MESSAGE)
        else:
            self._merge_text(session.target_field_id, result.text)
            session.last_error = None
            session.error_kind = None
            self._set_phase(session, VoicePhase.IDLE)
            self._session = None
        return result

    async def toggle(self, field_id: str) -> Optional[VoiceSession]:
        """Microphone button: stop the field being recorded, otherwise start it"""
        session = self._session
        if session is not None and session.target_field_id == field_id and session.phase is VoicePhase.RECORDING:
            await self.stop()
            return session
        return await self.start(field_id)

    async def cancel(self) -> None:
        """Force the active session back to IDLE without delivering a result"""
        async with self._lock:
            await self._terminate_active()

    async def test_microphone(self) -> bool:
        """Re-probe microphone access and refresh the cached permission"""
        granted = await self.capture.request_permission()
        self.permission_granted = granted
        return granted

    def _merge_text(self, field_id: str, text: str) -> None:
        current = self.form.get(field_id, "") or ""
        text = text.strip()
        self.form[field_id] = current + (" " if current else "") + text

    def _on_read_error(self, error: Exception) -> None:
        session = self._session
        if session is not None and session.phase is VoicePhase.RECORDING:
            self._device_task = asyncio.create_task(self._device_lost(session, error))

    async def _device_lost(self, session: VoiceSession, error: Exception) -> None:
        """The microphone failed mid-recording: release it and surface guidance"""
        async with self._lock:
            if self._session is not session or session.phase is not VoicePhase.RECORDING:
                return
            logger.error(f"Microphone lost while recording '{session.target_field_id}': {error}")
            self._cancel_timers()
            await self.capture.cancel()
            self._fail(session, ErrorKind.DEVICE_UNAVAILABLE, DEVICE_UNAVAILABLE_MESSAGE)

    async def _auto_stop(self, session: VoiceSession) -> None:
        await asyncio.sleep(self.auto_stop_seconds)
        if self._session is session and session.phase is VoicePhase.RECORDING:
            logger.info(f"Auto-stopping voice recording for '{session.target_field_id}'")
            await self.stop()

    async def _clear_error_later(self, session: VoiceSession) -> None:
        await asyncio.sleep(self.error_clear_seconds)
        if self._session is session and session.phase is VoicePhase.ERROR:
            session.last_error = None
            session.error_kind = None
            self._set_phase(session, VoicePhase.IDLE)
            self._session = None

    def get_status(self):
        """Get current status"""
        session = self._session
        return {
            'permission_granted': self.permission_granted,
            'is_recording': self.capture.is_recording,
            'field': session.target_field_id if session else None,
            'phase': session.phase.value if session else VoicePhase.IDLE.value,
            'error': session.last_error if session else None,
        }

    async def close(self) -> None:
        """Clean up resources"""
        async with self._lock:
            await self._terminate_active()
        await self.capture.close()
        logger.info("Voice session controller closed")
