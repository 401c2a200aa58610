"""Transcription job processing for audio/video assets."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rq import get_current_job
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from database import async_session_maker
from models.asset import Asset
from models.transcription import TranscriptionJob, TranscriptionStatus, TranscriptSegment
from multimodal.media import transcribe_media_file
from services.storage import staged_download

logger = logging.getLogger(__name__)

FIRST_TEN_MINUTES_SECONDS = 600

PROGRESS_STARTED = 10
PROGRESS_DOWNLOADED = 20
PROGRESS_TRANSCRIBED = 50
PROGRESS_PERSISTED = 90
PROGRESS_COMPLETE = 100


class SupersededJobError(Exception):
    """Raised when the row now belongs to a different queued job."""


async def _load_owned_job(db: AsyncSession, job_id: str, queue_job_id: Optional[str]) -> Optional[TranscriptionJob]:
    result = await db.execute(select(TranscriptionJob).where(TranscriptionJob.id == job_id))
    job = result.scalar_one_or_none()
    if job is not None and queue_job_id is not None and job.queue_job_id != queue_job_id:
        raise SupersededJobError(f"Queue job {queue_job_id} superseded for transcription {job_id}")
    return job


async def _update_job(
    job_id: str,
    *,
    queue_job_id: Optional[str] = None,
    status: Optional[str] = None,
    progress: Optional[int] = None,
    error: Optional[str] = None,
    clear_error: bool = False,
    increment_attempts: bool = False,
    completed: bool = False,
) -> None:
    async with async_session_maker() as db:
        job = await _load_owned_job(db, job_id, queue_job_id)
        if not job:
            return
        if status is not None:
            job.status = status
        if progress is not None:
            job.progress = max(0, min(int(progress), 100))
        if clear_error:
            job.error = None
        if error is not None:
            job.error = str(error or "").strip()[:1000]
        if increment_attempts:
            job.attempts = max(int(job.attempts or 0), 0) + 1
        if completed:
            job.completed_at = datetime.now(timezone.utc)
        await db.commit()


async def _transcribe(
    storage_key: str,
    mime_type: str,
    job_id: str,
    queue_job_id: Optional[str],
    max_seconds: Optional[int],
) -> Dict[str, Any]:
    async with staged_download(storage_key) as (local_path, work_dir):
        await _update_job(job_id, queue_job_id=queue_job_id, progress=PROGRESS_DOWNLOADED)
        return await asyncio.to_thread(
            transcribe_media_file,
            local_path,
            mime_type,
            settings.OPENAI_API_KEY,
            work_dir,
            max_seconds,
        )


async def process_transcription_job_async(
    job_id: str,
    first_ten_minutes_only: Optional[bool] = None,
    queue_job_id: Optional[str] = None,
) -> None:
    """Async processor for asset transcription jobs.

    When ``queue_job_id`` is given, every write first checks that the row still
    points at that queued job, so only the latest trigger writes segments.
    """
    async with async_session_maker() as db:
        try:
            job = await _load_owned_job(db, job_id, queue_job_id)
        except SupersededJobError as exc:
            logger.info("Skipping transcription: %s", exc)
            return
        if not job:
            logger.warning("Transcription job %s not found", job_id)
            return
        asset_result = await db.execute(select(Asset).where(Asset.id == job.asset_id))
        asset = asset_result.scalar_one_or_none()
        asset_id = job.asset_id
        limit_first_ten = job.first_ten_minutes_only if first_ten_minutes_only is None else first_ten_minutes_only

    try:
        if asset is None:
            raise RuntimeError("Asset not found for transcription job.")

        await _update_job(
            job_id,
            queue_job_id=queue_job_id,
            status=TranscriptionStatus.PROCESSING,
            progress=PROGRESS_STARTED,
            clear_error=True,
            increment_attempts=True,
        )

        transcription = await _transcribe(
            asset.storage_key,
            asset.file_type or "",
            job_id,
            queue_job_id,
            FIRST_TEN_MINUTES_SECONDS if limit_first_ten else None,
        )
        segments = list(transcription.get("segments") or [])
        if not segments:
            raise RuntimeError("Transcription returned no segments.")
        await _update_job(job_id, queue_job_id=queue_job_id, progress=PROGRESS_TRANSCRIBED)

        async with async_session_maker() as db:
            await _load_owned_job(db, job_id, queue_job_id)
            await db.execute(delete(TranscriptSegment).where(TranscriptSegment.asset_id == asset_id))
            db.add_all([
                TranscriptSegment(
                    asset_id=asset_id,
                    text=segment.text,
                    start_time=segment.start,
                    end_time=segment.end,
                    speaker=segment.speaker,
                    confidence=segment.confidence,
                )
                for segment in segments
            ])
            await db.commit()
        await _update_job(job_id, queue_job_id=queue_job_id, progress=PROGRESS_PERSISTED)

        await _update_job(
            job_id,
            queue_job_id=queue_job_id,
            status=TranscriptionStatus.COMPLETED,
            progress=PROGRESS_COMPLETE,
            completed=True,
        )
        logger.info("Transcription job %s completed with %s segments", job_id, len(segments))
    except SupersededJobError as exc:
        logger.info("Stopping transcription: %s", exc)
    except Exception as exc:
        logger.exception("Transcription job %s failed: %s", job_id, exc)
        try:
            await _update_job(
                job_id,
                queue_job_id=queue_job_id,
                status=TranscriptionStatus.FAILED,
                progress=0,
                error=str(exc) or "Transcription failed",
            )
        except SupersededJobError:
            logger.info("Transcription job %s was re-triggered; failure not recorded", job_id)


def process_transcription_job(job_id: str, first_ten_minutes_only: Optional[bool] = None) -> None:
    """RQ worker entrypoint for transcription jobs."""
    current = get_current_job()
    asyncio.run(process_transcription_job_async(
        job_id,
        first_ten_minutes_only,
        queue_job_id=current.id if current is not None else None,
    ))
