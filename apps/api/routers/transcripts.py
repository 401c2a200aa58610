"""Transcript generation and retrieval for audio/video assets."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import func
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import get_db
from models.transcription import TranscriptionJob, TranscriptionStatus, TranscriptSegment
from multimodal.media import is_media_type
from routers.assets import get_account_asset
from routers.auth_scope import AuthContext, get_account_context
from routers.rate_limit import rate_limit
from services.job_queue import build_transcription_queue_job_id, enqueue_transcription_job

logger = logging.getLogger(__name__)

router = APIRouter()

MANUAL_TRANSCRIPT_HINT = (
    "Transcript generation is taking too long. Extract the audio locally with "
    "`ffmpeg -i input.mp4 -vn -ac 1 -ar 16000 -b:a 32k audio.mp3`, upload the MP3 "
    "and generate the transcript from that file instead."
)


class GenerateTranscriptRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    process_first10_minutes_only: bool = Field(default=False, alias="processFirst10MinutesOnly")


def _serialize_job(job: TranscriptionJob) -> Dict[str, Any]:
    return {
        "id": job.id,
        "assetId": job.asset_id,
        "status": job.status,
        "progress": int(job.progress or 0),
        "error": job.error,
        "attempts": int(job.attempts or 0),
        "queueJobId": job.queue_job_id,
        "createdAt": job.created_at.isoformat() if job.created_at else None,
        "updatedAt": job.updated_at.isoformat() if job.updated_at else None,
        "completedAt": job.completed_at.isoformat() if job.completed_at else None,
    }


async def _segment_count(db: AsyncSession, asset_id: str) -> int:
    result = await db.execute(
        select(func.count(TranscriptSegment.id)).where(TranscriptSegment.asset_id == asset_id)
    )
    return int(result.scalar() or 0)


@router.post("/{asset_id}/generate-transcript")
async def generate_transcript(
    asset_id: str,
    request: Optional[GenerateTranscriptRequest] = Body(default=None),
    _rate_limit: None = Depends(rate_limit("transcript_generate", limit=60, window_seconds=3600)),
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Queue transcription for an audio/video asset."""
    started = time.monotonic()
    options = request or GenerateTranscriptRequest()

    asset = await get_account_asset(db, auth.account_id, asset_id)
    if not is_media_type(asset.file_type):
        raise HTTPException(status_code=400, detail="Transcripts can only be generated for video or audio assets")

    segments_count = await _segment_count(db, asset.id)
    if segments_count > 0:
        return {
            "success": True,
            "message": "Transcript already exists",
            "segmentsCount": segments_count,
            "method": "existing",
        }

    if time.monotonic() - started > settings.TRANSCRIPT_ROUTE_TIMEOUT_SECONDS:
        return JSONResponse(
            status_code=408,
            content={"error": "Transcript generation timed out", "details": {"hint": MANUAL_TRANSCRIPT_HINT}},
        )

    result = await db.execute(select(TranscriptionJob).where(TranscriptionJob.asset_id == asset.id))
    job = result.scalar_one_or_none()
    if job and job.status in (TranscriptionStatus.PENDING, TranscriptionStatus.PROCESSING):
        return {
            "success": True,
            "message": "Transcription already in progress",
            "jobId": job.id,
            "status": job.status,
        }
    if job is None:
        job = TranscriptionJob(asset_id=asset.id)
        db.add(job)
    job.status = TranscriptionStatus.PENDING
    job.progress = 0
    job.error = None
    job.completed_at = None
    job.first_ten_minutes_only = bool(options.process_first10_minutes_only)
    await db.flush()
    job.queue_job_id = build_transcription_queue_job_id(job.id)
    # Re-triggers reuse the row; the stalled-PENDING sweep reads updated_at.
    job.updated_at = datetime.now(timezone.utc)
    await db.commit()
    await db.refresh(job)

    try:
        enqueue_transcription_job(job.id, job.first_ten_minutes_only, queue_job_id=job.queue_job_id)
    except Exception as exc:
        logger.error("Could not enqueue transcription job %s: %s", job.id, exc)
        job.status = TranscriptionStatus.FAILED
        job.error = f"Transcription queue unavailable: {exc}"[:1000]
        await db.commit()
        raise HTTPException(
            status_code=503,
            detail="Transcription queue unavailable. Check Redis/worker availability and retry.",
        ) from exc

    return {
        "success": True,
        "message": "Transcription started",
        "jobId": job.id,
        "status": TranscriptionStatus.PENDING,
    }


@router.get("/{asset_id}/transcript-status")
async def get_transcript_status(
    asset_id: str,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    asset = await get_account_asset(db, auth.account_id, asset_id)
    result = await db.execute(select(TranscriptionJob).where(TranscriptionJob.asset_id == asset.id))
    job = result.scalar_one_or_none()
    return {
        "job": _serialize_job(job) if job else None,
        "segmentsCount": await _segment_count(db, asset.id),
    }


@router.get("/{asset_id}/transcript-segments")
async def get_transcript_segments(
    asset_id: str,
    auth: AuthContext = Depends(get_account_context),
    db: AsyncSession = Depends(get_db),
):
    """Transcript segments ordered by start time."""
    asset = await get_account_asset(db, auth.account_id, asset_id)
    result = await db.execute(
        select(TranscriptSegment)
        .where(TranscriptSegment.asset_id == asset.id)
        .order_by(TranscriptSegment.start_time.asc(), TranscriptSegment.end_time.asc())
    )
    return {
        "segments": [
            {
                "id": segment.id,
                "text": segment.text,
                "startTime": segment.start_time,
                "endTime": segment.end_time,
                "speaker": segment.speaker,
                "confidence": segment.confidence,
            }
            for segment in result.scalars().all()
        ]
    }
