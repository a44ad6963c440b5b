"""
API endpoints for the relay and voice transcription service
"""
import time
from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from fastapi.responses import JSONResponse
import logging

from voice_intake.models.schemas import (
    HealthResponse,
    ProviderInfo,
    ProviderListResponse,
    RelayChatRequest,
    RelayChatResponse,
    TrainingSampleResponse,
    TranscriptionResponse,
)
from voice_intake.core.config import settings
from voice_intake.relay.forwarder import ModelForwarder, build_prompt
from voice_intake.relay.training import TrainingSampleStore
from voice_intake.voice.errors import ErrorKind, RelayUnreachableError
from voice_intake.voice.transcriber import TranscriptionClient, build_transcription_client
from voice_intake.voice.types import AudioSample

logger = logging.getLogger(__name__)

NO_INPUT_MESSAGE = "No message or audioBase64 provided."
MODEL_UNREACHABLE_MESSAGE = "Error: Unable to reach AI model."

# Relay routes are served at the root, the rest under /api/v1
relay_router = APIRouter()
router = APIRouter()

# Global variable to track server start time
server_start_time = time.time()


def get_model_forwarder() -> ModelForwarder:
    return ModelForwarder.from_settings(settings.relay)


def get_transcription_client() -> TranscriptionClient:
    return build_transcription_client(settings)


def get_training_store() -> TrainingSampleStore:
    return TrainingSampleStore(settings.relay.training_data_path)


@relay_router.post("/chat", response_model=RelayChatResponse)
async def relay_chat(
    request: RelayChatRequest,
    forwarder: ModelForwarder = Depends(get_model_forwarder)
):
    """
    Forward a text message or base64 audio to the local generation model
    """
    prompt = build_prompt(request.message, request.audioBase64, settings.relay.audio_prompt)
    if not prompt:
        return JSONResponse(status_code=400, content={"response": NO_INPUT_MESSAGE})

    logger.info(f"Relaying {'audio' if request.audioBase64 else 'message'} prompt to {forwarder.model}")
    try:
        text = await forwarder.generate(prompt)
    except RelayUnreachableError as e:
        logger.error(f"Relay failed: {e.message}")
        return JSONResponse(status_code=500, content={"response": MODEL_UNREACHABLE_MESSAGE})

    return RelayChatResponse(response=text)


@router.get("/health", response_model=HealthResponse)
async def health_check() -> HealthResponse:
    """
    Health check endpoint
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now().isoformat(),
        uptime=time.time() - server_start_time
    )


@router.get("/voice/providers", response_model=ProviderListResponse)
async def list_providers() -> ProviderListResponse:
    """
    List transcription providers in fallback order
    """
    return ProviderListResponse(
        providers=[ProviderInfo(**config.model_dump()) for config in settings.provider_configs()],
        preferred_provider=settings.voice.preferred_provider
    )


@router.post("/voice/transcribe", response_model=TranscriptionResponse)
async def transcribe_audio(
    audio: UploadFile = File(...),
    preferred_provider: Optional[str] = Form(None),
    client: TranscriptionClient = Depends(get_transcription_client)
) -> TranscriptionResponse:
    """
    Transcribe an uploaded recording, falling back across providers
    """
    content_type = (audio.content_type or "").lower()
    if not content_type.startswith("audio/"):
        raise HTTPException(status_code=415, detail=f"Unsupported audio format: {content_type or 'unknown'}")

    try:
        data = await audio.read()
    finally:
        await audio.close()

    if not data:
        raise HTTPException(status_code=400, detail="Empty audio upload")

    sample = AudioSample(data=data, mime_type=content_type)
    result = await client.transcribe(sample, preferred_provider or settings.voice.preferred_provider)

    if result.error_kind is ErrorKind.ALL_PROVIDERS_FAILED:
        raise HTTPException(status_code=502, detail=result.error or "Transcription failed")

    return TranscriptionResponse(
        text=result.text,
        confidence=result.confidence,
        provider=result.provider,
        error_kind=result.error_kind.value if result.error_kind else None,
        error=result.error
    )


@router.post("/voice/training-samples", response_model=TrainingSampleResponse)
async def collect_training_sample(
    file: Optional[UploadFile] = File(None),
    text: Optional[str] = Form(None),
    store: TrainingSampleStore = Depends(get_training_store)
) -> TrainingSampleResponse:
    """
    Collect a recording and its transcript for voice model training
    """
    if file is None or not text:
        if file is not None:
            await file.close()
        raise HTTPException(status_code=400, detail="Missing file or text")

    try:
        data = await file.read()
    finally:
        await file.close()

    sample = AudioSample(data=data, mime_type=file.content_type or "application/octet-stream")
    count = store.append(text, sample.to_base64())
    return TrainingSampleResponse(success=True, sample_count=count)
