"""
Asset Organizer - FastAPI Backend
Main application entry point with health check and API routing.
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from config import settings, validate_security_settings
from database import engine, Base
from logging_config import setup_logging
import models  # noqa: F401
from routers import assets, auth, brand, health, transcripts, upload
from services.ephemeral_store import EphemeralStore
from services.job_queue import recover_stalled_assets, recover_stalled_transcription_jobs

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    setup_logging()
    logger.info("Starting Asset Organizer API...")
    validate_security_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Database schema verified.")
        except Exception as e:
            logger.warning(f"Database bootstrap skipped: {e}")
    try:
        recovered_transcripts = await recover_stalled_transcription_jobs()
        if recovered_transcripts:
            logger.info(f"Marked {recovered_transcripts} stalled transcription jobs as failed after startup.")
    except Exception as exc:
        logger.warning(f"Stalled transcription recovery skipped: {exc}")
    try:
        recovered_assets = await recover_stalled_assets()
        if recovered_assets:
            logger.info(f"Marked {recovered_assets} stalled assets as errored after startup.")
    except Exception as exc:
        logger.warning(f"Stalled asset recovery skipped: {exc}")
    app.state.ephemeral_store.start()
    yield
    # Shutdown
    await app.state.ephemeral_store.stop()
    logger.info("Shutting down API...")


app = FastAPI(
    title="Asset Organizer API",
    description="Upload, AI-analyze and organize marketing assets",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.ephemeral_store = EphemeralStore(redis_url=settings.REDIS_URL)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Render HTTP errors as {error, details?}."""
    detail = exc.detail
    if isinstance(detail, dict):
        content = {"error": str(detail.get("message") or "Request failed")}
        content.update({k: v for k, v in detail.items() if k != "message"})
    else:
        content = {"error": str(detail)}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"error": "Validation failed", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    content = {"error": "Internal server error"}
    if settings.is_development:
        content["details"] = str(exc)
    return JSONResponse(status_code=500, content=content)


# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, prefix="/api/auth", tags=["Authentication"])
app.include_router(upload.router, prefix="/api/upload", tags=["Upload"])
app.include_router(assets.router, prefix="/api/assets", tags=["Assets"])
app.include_router(transcripts.router, prefix="/api/assets", tags=["Transcripts"])
app.include_router(brand.router, prefix="/api", tags=["Brand"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Asset Organizer API",
        "version": "0.1.0",
        "status": "running"
    }
