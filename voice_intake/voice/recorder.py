"""
Microphone capture into finalized audio samples
"""

import asyncio
import functools
import io
import logging
import wave
from typing import Callable, List, Optional, Sequence

import numpy as np

try:
    import pyaudio
    PYAUDIO_AVAILABLE = True
except ImportError:
    PYAUDIO_AVAILABLE = False
    pyaudio = None

from .errors import (
    AlreadyRecordingError,
    DeviceUnavailableError,
    NotRecordingError,
    VoiceInputError,
)
from .types import AudioSample

logger = logging.getLogger(__name__)

# Best encodings first; the default is used when none of them is supported
MIME_TYPE_PREFERENCES = ("audio/webm;codecs=opus", "audio/mp4", "audio/wav")
DEFAULT_MIME_TYPE = "audio/webm"


class CaptureStream:
    """A live capture stream holding the microphone until closed"""

    mime_type: str = DEFAULT_MIME_TYPE

    async def read(self) -> bytes:
        """Return the next encoded chunk (one buffering interval of audio)"""
        raise NotImplementedError

    def encode(self, chunks: List[bytes]) -> bytes:
        """Join buffered chunks into one payload of ``mime_type``"""
        return b"".join(chunks)

    def level(self, chunk: bytes) -> float:
        """Audio level of a chunk in 0..1, for meters"""
        return 0.0

    def close(self) -> None:
        """Release the underlying hardware tracks"""
        raise NotImplementedError


class AudioInput:
    """Source of capture streams (a microphone backend)"""

    def is_type_supported(self, mime_type: str) -> bool:
        raise NotImplementedError

    async def open(self, mime_type: str) -> CaptureStream:
        """
        Acquire the microphone.

        Raises PermissionDeniedError or DeviceUnavailableError.
        """
        raise NotImplementedError

    def close(self) -> None:
        pass


class PyAudioStream(CaptureStream):
    """16-bit PCM stream read through PyAudio, finalized as WAV"""

    mime_type = "audio/wav"

    def __init__(self, stream, sample_rate: int, channels: int, frames_per_chunk: int):
        self._stream = stream
        self.sample_rate = sample_rate
        self.channels = channels
        self.frames_per_chunk = frames_per_chunk

    async def read(self) -> bytes:
        # Blocking read; run it off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None,
            functools.partial(self._stream.read, self.frames_per_chunk, exception_on_overflow=False)
        )

    def encode(self, chunks: List[bytes]) -> bytes:
        buffer = io.BytesIO()
        with wave.open(buffer, 'wb') as wav_file:
            wav_file.setnchannels(self.channels)
            wav_file.setsampwidth(2)  # 16-bit
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(b''.join(chunks))
        return buffer.getvalue()

    def level(self, chunk: bytes) -> float:
        if not chunk:
            return 0.0
        audio_array = np.frombuffer(chunk, dtype=np.int16)
        level = np.abs(audio_array).mean() / 32768.0  # Normalize to 0-1
        return float(min(level, 1.0))

    def close(self) -> None:
        if self._stream is None:
            return
        try:
            self._stream.stop_stream()
            self._stream.close()
        except OSError as e:
            logger.error(f"Error closing audio stream: {e}")
        finally:
            self._stream = None


class PyAudioInput(AudioInput):
    """Microphone backend built on PyAudio"""

    SUPPORTED_MIME_TYPES = ("audio/wav",)

    def __init__(
        self,
        sample_rate: int = 16000,
        channels: int = 1,
        chunk_interval: float = 0.1,
        device_index: Optional[int] = None
    ):
        if not PYAUDIO_AVAILABLE:
            raise ImportError(
                "PyAudio is required for microphone capture. Install it with: pip install pyaudio"
            )

        self.sample_rate = sample_rate
        self.channels = channels
        self.chunk_interval = chunk_interval
        self.device_index = device_index
        self.audio = pyaudio.PyAudio()
        logger.info("PyAudio initialized successfully")

    def is_type_supported(self, mime_type: str) -> bool:
        return mime_type in self.SUPPORTED_MIME_TYPES

    async def open(self, mime_type: str) -> CaptureStream:
        if self.audio is None:
            raise DeviceUnavailableError("Audio system has been shut down")

        frames = max(1, int(self.sample_rate * self.chunk_interval))
        loop = asyncio.get_running_loop()
        try:
            stream = await loop.run_in_executor(
                None,
                functools.partial(
                    self.audio.open,
                    format=pyaudio.paInt16,
                    channels=self.channels,
                    rate=self.sample_rate,
                    input=True,
                    input_device_index=self.device_index,
                    frames_per_buffer=frames
                )
            )
        except (OSError, ValueError) as e:
            raise DeviceUnavailableError(f"Microphone unavailable: {e}") from e

        return PyAudioStream(stream, self.sample_rate, self.channels, frames)

    def get_audio_devices(self) -> List[dict]:
        """Get list of available audio input devices"""
        devices = []
        if not self.audio:
            return devices

        for i in range(self.audio.get_device_count()):
            device_info = self.audio.get_device_info_by_index(i)
            if device_info['maxInputChannels'] > 0:  # Input device
                devices.append({
                    'index': i,
                    'name': device_info['name'],
                    'channels': device_info['maxInputChannels'],
                    'sample_rate': device_info['defaultSampleRate']
                })
        return devices

    def close(self) -> None:
        if self.audio:
            try:
                self.audio.terminate()
            finally:
                self.audio = None


class AudioCapture:
    """
    Records one microphone stream at a time into an AudioSample.

    Chunks are buffered every ``chunk_interval`` seconds of audio while the
    stream is open. The stream is released exactly once on every exit path
    of ``stop_recording`` and ``cancel``.
    """

    def __init__(
        self,
        audio_input: AudioInput,
        mime_type_preferences: Sequence[str] = MIME_TYPE_PREFERENCES
    ):
        self.audio_input = audio_input
        self.mime_type_preferences = tuple(mime_type_preferences)

        self._stream: Optional[CaptureStream] = None
        self._opening = False
        self._stopping = False
        self._chunks: List[bytes] = []
        self._stop_event: Optional[asyncio.Event] = None
        self._pump_task: Optional[asyncio.Task] = None
        self.last_read_error: Optional[Exception] = None
        # Called from the pump when the device fails mid-recording
        self.on_read_error: Optional[Callable[[Exception], None]] = None

    @property
    def is_recording(self) -> bool:
        return self._opening or self._stream is not None

    def select_mime_type(self) -> str:
        """Pick the best supported encoding from the preference list"""
        for mime_type in self.mime_type_preferences:
            if self.audio_input.is_type_supported(mime_type):
                return mime_type
        return DEFAULT_MIME_TYPE

    async def request_permission(self) -> bool:
        """Probe microphone access; never raises"""
        try:
            probe = await self.audio_input.open(self.select_mime_type())
        except (VoiceInputError, OSError) as e:
            logger.error(f"Microphone permission error: {e}")
            return False

        # The probe is only for the permission check
        probe.close()
        return True

    async def start_recording(self) -> None:
        if self.is_recording:
            raise AlreadyRecordingError()

        self._opening = True
        mime_type = self.select_mime_type()
        try:
            stream = await self.audio_input.open(mime_type)
        finally:
            self._opening = False

        self._stream = stream
        self._chunks = []
        self.last_read_error = None
        self._stop_event = asyncio.Event()
        self._pump_task = asyncio.create_task(self._pump(stream, self._stop_event))
        logger.info(f"Recording started ({stream.mime_type})")

    async def _pump(self, stream: CaptureStream, stop_event: asyncio.Event) -> None:
        while not stop_event.is_set():
            try:
                chunk = await stream.read()
            except (OSError, VoiceInputError) as e:
                # Keep what was buffered; stop_recording still finalizes it
                logger.error(f"Error reading audio: {e}")
                self.last_read_error = e
                if self.on_read_error is not None:
                    self.on_read_error(e)
                break
            if chunk:
                self._chunks.append(chunk)

    async def _drain(self) -> None:
        """Stop buffering and wait for the in-flight read to finish"""
        if self._stop_event is not None:
            self._stop_event.set()
        if self._pump_task is not None and not self._pump_task.done():
            await self._pump_task

    def _release(self, stream: CaptureStream) -> None:
        if self._pump_task is not None and not self._pump_task.done():
            self._pump_task.cancel()
        try:
            stream.close()
        finally:
            self._stream = None
            self._pump_task = None
            self._stop_event = None
            self._stopping = False
            self._chunks = []

    async def stop_recording(self) -> AudioSample:
        if self._stream is None or self._stopping:
            raise NotRecordingError()

        stream = self._stream
        self._stopping = True
        try:
            await self._drain()
            sample = AudioSample(data=stream.encode(list(self._chunks)), mime_type=stream.mime_type)
            logger.info(f"Recording finished. Chunks: {len(self._chunks)}, Size: {len(sample)} bytes")
            return sample
        finally:
            self._release(stream)

    async def cancel(self) -> None:
        """Release the stream and drop anything buffered"""
        if self._stream is None or self._stopping:
            return

        stream = self._stream
        self._stopping = True
        try:
            await self._drain()
        finally:
            self._release(stream)
        logger.info("Recording cancelled")

    def current_level(self) -> float:
        """Level of the most recent chunk (0.0 to 1.0)"""
        if self._stream is None or not self._chunks:
            return 0.0
        return self._stream.level(self._chunks[-1])

    async def close(self) -> None:
        """Clean up audio resources"""
        await self.cancel()
        self.audio_input.close()
