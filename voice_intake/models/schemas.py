"""
Pydantic models for API request/response schemas
"""
from typing import Optional, List
from pydantic import BaseModel, Field


class RelayChatRequest(BaseModel):
    """Request model for the relay chat endpoint"""

    message: Optional[str] = Field(None, description="Text prompt forwarded verbatim")
    audioBase64: Optional[str] = Field(None, description="Base64 encoded patient audio")


class RelayChatResponse(BaseModel):
    """Response model for the relay chat endpoint"""

    response: str = Field(..., description="Model response text, or an error message")


class HealthResponse(BaseModel):
    """Response model for health check"""

    status: str = Field(..., description="Health status")
    timestamp: str = Field(..., description="Current timestamp")
    uptime: float = Field(..., description="Server uptime in seconds")


class ProviderInfo(BaseModel):
    """A configured transcription provider"""

    identifier: str = Field(..., description="Provider name")
    endpoint: str = Field(..., description="Provider endpoint URL")
    credential_present: bool = Field(..., description="Whether a credential is configured")


class ProviderListResponse(BaseModel):
    """Response model for the provider list"""

    providers: List[ProviderInfo] = Field(..., description="Providers in fallback order")
    preferred_provider: str = Field(..., description="Provider tried first by default")


class TranscriptionResponse(BaseModel):
    """Response model for audio transcription"""

    text: str = Field(..., description="Transcribed text, empty when no speech was detected")
    confidence: Optional[float] = Field(None, description="Confidence score in [0, 1]", ge=0.0, le=1.0)
    provider: Optional[str] = Field(None, description="Provider that produced the result")
    error_kind: Optional[str] = Field(None, description="Classified failure kind")
    error: Optional[str] = Field(None, description="Failure message")


class TrainingSampleResponse(BaseModel):
    """Response model for a stored training sample"""

    success: bool = Field(..., description="Whether the sample was stored")
    sample_count: int = Field(..., description="Total samples collected")
