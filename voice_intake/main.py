"""
Main FastAPI application: model relay and voice transcription
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

from voice_intake.core.config import settings
from voice_intake.core.logging import setup_logging
from voice_intake.api.endpoints import relay_router, router

setup_logging()
logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"

ENDPOINTS = {
    "relay": {
        "chat": "/chat"
    },
    "voice": {
        "transcribe": f"{API_PREFIX}/voice/transcribe",
        "providers": f"{API_PREFIX}/voice/providers",
        "training_samples": f"{API_PREFIX}/voice/training-samples"
    },
    "system": {
        "health": f"{API_PREFIX}/health"
    }
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Log the relay target and provider credentials on startup
    """
    logger.info(f"Starting Voice Intake API on {settings.host}:{settings.port}")
    logger.info(f"Relay model: {settings.relay.model} at {settings.relay.model_url}")

    configs = settings.provider_configs()
    for config in configs:
        state = "configured" if config.credential_present else "not configured"
        logger.info(f"Transcription provider {config.identifier}: {state}")
    if not any(config.credential_present for config in configs):
        logger.warning("No transcription provider has a credential; /voice/transcribe will return 502")

    yield

    logger.info("Shutting down Voice Intake API...")


app = FastAPI(
    title=settings.api_title,
    description=settings.api_description,
    version=settings.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# The relay keeps its historical root path
app.include_router(relay_router)
app.include_router(router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """
    Root endpoint with API information
    """
    return {
        "message": settings.api_title,
        "version": settings.api_version,
        "relay_model": settings.relay.model,
        "endpoints": ENDPOINTS,
        "docs": "/docs",
        "openapi": "/openapi.json"
    }


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    logger.error(f"HTTP {exc.status_code} on {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail, "status_code": exc.status_code}
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """
    Unhandled errors become a 500 with the error text
    """
    logger.exception(f"Unhandled exception on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": str(exc)}
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "voice_intake.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )
